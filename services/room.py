"""房间档案维护"""
from decimal import InvalidOperation
from typing import List
from sqlalchemy.exc import IntegrityError
from config import get_logger
from models import Room
from models.entities import ROOM_STATUSES, ROOM_AVAILABLE
from services.audit import AuditService
from services.gate import requires
from utils.exceptions import ConflictError, NotFoundError, ValidationError
from utils.helpers import to_money

logger = get_logger(__name__)

ROOM_FIELDS = ('name', 'type', 'price_per_month', 'status', 'description', 'image_path', 'amenities')


class RoomService:
    @staticmethod
    def get_room(s, room_id: int) -> Room:
        room = s.get(Room, room_id)
        if room is None:
            raise NotFoundError(f"房间不存在: {room_id}")
        return room

    @staticmethod
    def list_rooms(s, status: str = None) -> List[Room]:
        q = s.query(Room)
        if status:
            q = q.filter(Room.status == status)
        return q.order_by(Room.name).all()

    @staticmethod
    def _clean(data: dict) -> dict:
        unknown = set(data) - set(ROOM_FIELDS)
        if unknown:
            raise ValidationError("未知的房间字段", {k: ["未知字段"] for k in sorted(unknown)})
        errors, cleaned = {}, dict(data)
        if 'name' in data and not (data['name'] or '').strip():
            errors['name'] = ["必填"]
        elif 'name' in data:
            cleaned['name'] = data['name'].strip()
        if 'price_per_month' in data:
            try:
                cleaned['price_per_month'] = to_money(data['price_per_month'])
                if cleaned['price_per_month'] < 0:
                    errors['price_per_month'] = ["不能为负数"]
            except (InvalidOperation, ValueError):
                errors['price_per_month'] = ["必须为数字"]
        if 'status' in data and data['status'] not in ROOM_STATUSES:
            errors['status'] = [f"无效状态: {data['status']}"]
        if 'amenities' in data and data['amenities'] is not None and not isinstance(data['amenities'], list):
            errors['amenities'] = ["必须为列表"]
        if errors:
            raise ValidationError("房间信息不合法", errors)
        return cleaned

    @staticmethod
    def create_room(s, data: dict) -> Room:
        cleaned = RoomService._clean(data)
        if 'name' not in cleaned:
            raise ValidationError("房间信息不合法", {"name": ["必填"]})
        cleaned.setdefault('status', ROOM_AVAILABLE)
        cleaned.setdefault('amenities', [])
        room = Room(**cleaned)
        try:
            with s.begin_nested():
                s.add(room)
                s.flush()
        except IntegrityError:
            raise ConflictError(f"房间名已存在: {cleaned['name']}")
        logger.info(f"新增房间: {room.name}")
        return room

    @staticmethod
    def update_room(s, room: Room, data: dict) -> Room:
        cleaned = RoomService._clean(data)
        try:
            with s.begin_nested():
                for key, value in cleaned.items():
                    setattr(room, key, value)
                s.flush()
        except IntegrityError:
            raise ConflictError(f"房间名已存在: {cleaned.get('name')}")
        logger.info(f"更新房间: {room.name} {sorted(cleaned)}")
        return room


@requires('create-rooms')
def create_room(s, data: dict, actor=None, audit_buffer: list = None) -> Room:
    room = RoomService.create_room(s, data)
    AuditService.log_deferred(s, audit_buffer, actor.email, "新增房间", room.name)
    return room


@requires('edit-rooms')
def update_room(s, room_id: int, data: dict, actor=None, audit_buffer: list = None) -> Room:
    room = RoomService.update_room(s, RoomService.get_room(s, room_id), data)
    AuditService.log_deferred(s, audit_buffer, actor.email, "更新房间", room.name, data)
    return room
