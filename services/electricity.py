"""电表读数台账"""
import datetime
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql import desc
from config import get_logger
from models import ElectricityUsage, Room
from services.audit import AuditService
from services.gate import requires
from utils.exceptions import ConflictError, NotFoundError, ValidationError
from utils.helpers import to_money

logger = get_logger(__name__)


def compute_units_used(previous_units: int, current_units: int) -> int:
    return int(current_units or 0) - int(previous_units or 0)


class ElectricityService:
    @staticmethod
    def save(s, usage: ElectricityUsage) -> ElectricityUsage:
        """写入前总是重新计算 units_used，忽略传入值"""
        usage.units_used = compute_units_used(usage.previous_units, usage.current_units)
        s.add(usage)
        s.flush()
        return usage

    @staticmethod
    def get_latest_for_room(s, room_id: int) -> Optional[ElectricityUsage]:
        return s.query(ElectricityUsage).filter(ElectricityUsage.room_id == room_id) \
            .order_by(desc(ElectricityUsage.reading_date), desc(ElectricityUsage.id)).first()

    @staticmethod
    def record_reading(s, room_id: int, reading_date: datetime.date, current_units: int,
                       previous_units: int = None) -> ElectricityUsage:
        """录入一次抄表

        previous_units 未提供时取该房间上一次读数的 current_units，无记录时为 0。
        本次读数小于上次读数视为无效输入（不做回绕处理）。
        """
        if s.get(Room, room_id) is None:
            raise NotFoundError(f"房间不存在: {room_id}")
        if current_units is None or int(current_units) < 0:
            raise ValidationError("读数不合法", {"current_units": ["必须为非负整数"]})
        if previous_units is None:
            latest = ElectricityService.get_latest_for_room(s, room_id)
            previous_units = latest.current_units if latest else 0
        elif int(previous_units) < 0:
            raise ValidationError("读数不合法", {"previous_units": ["必须为非负整数"]})

        if int(current_units) < int(previous_units):
            logger.warning(f"房间 {room_id} 本次读数 {current_units} 小于上次读数 {previous_units}")
            raise ValidationError("读数不合法", {
                "current_units": [f"本次读数 ({current_units}) 不能小于上次读数 ({previous_units})"]
            })

        usage = ElectricityUsage(
            room_id=room_id, reading_date=reading_date,
            previous_units=int(previous_units), current_units=int(current_units),
            is_billed=False,
        )
        try:
            with s.begin_nested():
                ElectricityService.save(s, usage)
        except IntegrityError:
            raise ConflictError(f"房间 {room_id} 在 {reading_date} 已有读数")
        logger.info(f"抄表录入: 房间={room_id}, 日期={reading_date}, 用量={usage.units_used}")
        return usage

    @staticmethod
    def query(s, room_id: int = None, billed: bool = None,
              start_date: datetime.date = None, end_date: datetime.date = None) -> List[ElectricityUsage]:
        q = s.query(ElectricityUsage)
        if room_id is not None:
            q = q.filter(ElectricityUsage.room_id == room_id)
        if billed is not None:
            q = q.filter(ElectricityUsage.is_billed.is_(billed))
        if start_date is not None and end_date is not None:
            q = q.filter(ElectricityUsage.reading_date.between(start_date, end_date))
        return q.order_by(desc(ElectricityUsage.reading_date), desc(ElectricityUsage.id)).all()

    @staticmethod
    def unbilled(s, room_id: int = None) -> List[ElectricityUsage]:
        return ElectricityService.query(s, room_id=room_id, billed=False)

    @staticmethod
    def billed(s, room_id: int = None) -> List[ElectricityUsage]:
        return ElectricityService.query(s, room_id=room_id, billed=True)

    @staticmethod
    def latest_unbilled_in_period(s, room_id: int, start_date: datetime.date,
                                  end_date: datetime.date) -> Optional[ElectricityUsage]:
        rows = ElectricityService.query(s, room_id=room_id, billed=False,
                                        start_date=start_date, end_date=end_date)
        return rows[0] if rows else None

    @staticmethod
    def mark_as_billed(s, usage: ElectricityUsage) -> bool:
        """每条读数只能计入一张账单"""
        if usage.is_billed:
            logger.warning(f"读数 {usage.id} 已计费，忽略重复标记")
            return False
        usage.is_billed = True
        s.flush()
        return True

    @staticmethod
    def calculate_charge(usage: ElectricityUsage, rate) -> Decimal:
        return to_money(Decimal(usage.units_used or 0) * to_money(rate))


@requires('manage-utilities')
def record_reading(s, room_id: int, reading_date: datetime.date, current_units: int,
                   previous_units: int = None, actor=None, audit_buffer: list = None) -> ElectricityUsage:
    """带授权与审计的抄表入口"""
    usage = ElectricityService.record_reading(s, room_id, reading_date, current_units, previous_units)
    AuditService.log_deferred(s, audit_buffer, actor.email, "抄表录入", f"room:{room_id}",
                              {"reading_date": reading_date, "current_units": usage.current_units,
                               "units_used": usage.units_used})
    return usage
