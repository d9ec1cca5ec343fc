"""租约生命周期服务

状态流转: pending -> approved -> active -> completed，
pending / approved 可取消为 cancelled；completed 与 cancelled 为终态。
审批、激活、取消等操作的授权由 services.gate 负责，实体本身不做判断。
"""
import datetime
import math
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql import desc, func
from config import config, get_logger
from models import Rental, Room, TenantInformation, Payment, User
from models.entities import (
    ROOM_AVAILABLE, ROOM_OCCUPIED,
    RENTAL_PENDING, RENTAL_APPROVED, RENTAL_ACTIVE, RENTAL_COMPLETED, RENTAL_CANCELLED,
    PAYMENT_PAID,
)
from services.audit import AuditService
from services.gate import AuthorizationGate, requires
from services.rbac import ADMIN_ROLE
from services.schemas import parse_booking
from utils.exceptions import ConflictError, NotFoundError, StateTransitionError, ValidationError
from utils.helpers import to_decimal, to_money

logger = get_logger(__name__)

TRANSITIONS = {
    RENTAL_PENDING: (RENTAL_APPROVED, RENTAL_CANCELLED),
    RENTAL_APPROVED: (RENTAL_ACTIVE, RENTAL_CANCELLED),
    RENTAL_ACTIVE: (RENTAL_COMPLETED,),
}

# 占用房间的租约状态
OCCUPYING_STATUSES = (RENTAL_APPROVED, RENTAL_ACTIVE)


def _transition(rental: Rental, target: str):
    if target not in TRANSITIONS.get(rental.status, ()):
        raise StateTransitionError(
            f"租约 {rental.id} 不能从 {rental.status} 变更为 {target}",
            {"status": [f"invalid transition {rental.status} -> {target}"]}
        )
    old = rental.status
    rental.status = target
    logger.info(f"租约状态变更: {rental.id} {old} -> {target}")


class BookingService:
    @staticmethod
    def calculate_total_price(price_per_month, start_date: datetime.date, end_date: datetime.date) -> Decimal:
        """按 30 天一个月向上取整计算总价"""
        days = (end_date - start_date).days
        months = math.ceil(days / config.DAYS_PER_MONTH)
        return to_money(to_decimal(price_per_month) * months)

    @staticmethod
    def generate_contract_number(s, today: datetime.date) -> str:
        """格式: CNT-YYYYMMDD-NNNN"""
        prefix = f"CNT-{today:%Y%m%d}-"
        last = s.query(Rental.contract_number) \
            .filter(Rental.contract_number.like(prefix + '%')) \
            .order_by(desc(Rental.contract_number)).first()
        seq = int(last[0][-4:]) + 1 if last else 1
        return f"{prefix}{seq:04d}"

    @staticmethod
    def has_overlap(s, room_id: int, start_date: datetime.date, end_date: datetime.date,
                    exclude_id: int = None) -> bool:
        """与已批准/生效租约的日期区间是否重叠（端点相接也算重叠）"""
        q = s.query(Rental.id).filter(
            Rental.room_id == room_id,
            Rental.status.in_(OCCUPYING_STATUSES),
            Rental.start_date <= end_date,
            Rental.end_date >= start_date,
        )
        if exclude_id is not None:
            q = q.filter(Rental.id != exclude_id)
        return q.first() is not None

    @staticmethod
    def create_booking(s, user: User, payload, today: datetime.date = None) -> Rental:
        """创建 pending 租约及租客信息，两者同时成功或同时失败"""
        req = parse_booking(payload)
        today = today or datetime.date.today()
        if req.start_date < today:
            raise ValidationError("预订信息校验失败",
                                  {"start_date": ["开始日期不能早于今天"]})

        room = s.get(Room, req.room_id)
        if room is None:
            raise NotFoundError("所选房间不存在")
        if not room.is_available():
            raise ValidationError(f"该房间当前不可预订，状态: {room.status}",
                                  {"room_id": [f"房间状态为 {room.status}"]})
        if BookingService.has_overlap(s, room.id, req.start_date, req.end_date):
            raise ConflictError("该房间在所选日期内已被预订")
        if s.query(TenantInformation.id).filter(
                TenantInformation.id_card_number == req.tenant.id_card_number).first() is not None:
            raise ConflictError("身份证号已登记", retryable=False,
                                errors={"tenant.id_card_number": ["该身份证号已存在"]})

        tenant_data = req.tenant.model_dump()
        try:
            with s.begin_nested():
                rental = Rental(
                    user_id=user.id, room_id=room.id,
                    start_date=req.start_date, end_date=req.end_date,
                    total_price=BookingService.calculate_total_price(room.price_per_month, req.start_date, req.end_date),
                    status=RENTAL_PENDING,
                    contract_number=BookingService.generate_contract_number(s, today),
                    contract_date=today,
                    deposit_amount=to_money(req.deposit_amount),
                    advance_payment=to_money(req.advance_payment),
                    monthly_rent=to_money(room.price_per_month),
                    special_conditions=req.special_conditions,
                    notes=req.notes,
                )
                s.add(rental)
                s.flush()
                s.add(TenantInformation(rental_id=rental.id, **tenant_data))
                s.flush()
        except IntegrityError as e:
            logger.warning(f"创建租约冲突: {e.orig}")
            raise ConflictError("租约保存冲突，请重试", retryable=True)

        logger.info(f"创建租约: {rental.contract_number} 用户={user.email} 房间={room.name}")
        return rental

    @staticmethod
    def get_rental(s, rental_id: int) -> Rental:
        rental = s.get(Rental, rental_id)
        if rental is None:
            raise NotFoundError("租约不存在")
        return rental

    # ---------- 状态流转 ----------
    @staticmethod
    def approve(s, rental: Rental) -> Rental:
        if rental.status != RENTAL_PENDING:
            raise StateTransitionError("只有待审批的预订可以批准",
                                       {"status": [rental.status]})
        room = rental.room
        if not room.is_available():
            raise ValidationError("房间已不可用", {"room_id": [room.status]})
        if BookingService.has_overlap(s, room.id, rental.start_date, rental.end_date, exclude_id=rental.id) \
                or BookingService.occupying_rental(s, room.id, exclude_id=rental.id) is not None:
            raise ConflictError("该房间已有其他生效租约")
        _transition(rental, RENTAL_APPROVED)
        room.status = ROOM_OCCUPIED
        s.flush()
        return rental

    @staticmethod
    def activate(s, rental: Rental) -> Rental:
        _transition(rental, RENTAL_ACTIVE)
        s.flush()
        return rental

    @staticmethod
    def complete(s, rental: Rental) -> Rental:
        _transition(rental, RENTAL_COMPLETED)
        rental.room.status = ROOM_AVAILABLE
        s.flush()
        return rental

    @staticmethod
    def reject(s, rental: Rental) -> Rental:
        if rental.status != RENTAL_PENDING:
            raise StateTransitionError("只有待审批的预订可以拒绝",
                                       {"status": [rental.status]})
        _transition(rental, RENTAL_CANCELLED)
        s.flush()
        return rental

    @staticmethod
    def cancel(s, rental: Rental) -> Rental:
        was_occupying = rental.status == RENTAL_APPROVED
        _transition(rental, RENTAL_CANCELLED)
        if was_occupying:
            rental.room.status = ROOM_AVAILABLE
        s.flush()
        return rental

    # ---------- 金额 ----------
    @staticmethod
    def total_paid(s, rental: Rental) -> Decimal:
        result = s.query(func.sum(Payment.amount)).filter(
            Payment.rental_id == rental.id, Payment.status == PAYMENT_PAID
        ).scalar()
        return to_money(result)

    @staticmethod
    def remaining_balance(s, rental: Rental) -> Decimal:
        return to_money(rental.total_price) - BookingService.total_paid(s, rental)

    @staticmethod
    def is_fully_paid(s, rental: Rental) -> bool:
        return BookingService.remaining_balance(s, rental) <= 0

    # ---------- 查询 ----------
    @staticmethod
    def active(s) -> List[Rental]:
        return s.query(Rental).filter(Rental.status == RENTAL_ACTIVE).all()

    @staticmethod
    def pending(s) -> List[Rental]:
        return s.query(Rental).filter(Rental.status == RENTAL_PENDING).all()

    @staticmethod
    def billable(s) -> List[Rental]:
        return s.query(Rental).filter(Rental.status.in_(OCCUPYING_STATUSES)).order_by(Rental.id).all()

    @staticmethod
    def occupying_rental(s, room_id: int, exclude_id: int = None) -> Optional[Rental]:
        q = s.query(Rental).filter(Rental.room_id == room_id, Rental.status.in_(OCCUPYING_STATUSES))
        if exclude_id is not None:
            q = q.filter(Rental.id != exclude_id)
        return q.first()

    @staticmethod
    def list_bookings(s, status: str = None, room_id: int = None, search: str = None,
                      user_id: int = None) -> List[Rental]:
        q = s.query(Rental)
        if status:
            q = q.filter(Rental.status == status)
        if room_id is not None:
            q = q.filter(Rental.room_id == room_id)
        if user_id is not None:
            q = q.filter(Rental.user_id == user_id)
        if search:
            like = f"%{search}%"
            q = q.outerjoin(TenantInformation).filter(or_(
                Rental.contract_number.like(like),
                TenantInformation.first_name.like(like),
                TenantInformation.last_name.like(like),
                TenantInformation.phone_number.like(like),
            ))
        return q.order_by(desc(Rental.created_at), desc(Rental.id)).all()

    @staticmethod
    def serialize_rental(s, rental: Rental) -> dict:
        """对外输出的租约数据；身份证号只以脱敏形式出现"""
        tenant = rental.tenant_information
        return {
            "id": rental.id,
            "user_id": rental.user_id,
            "room_id": rental.room_id,
            "room_name": rental.room.name if rental.room else None,
            "start_date": rental.start_date,
            "end_date": rental.end_date,
            "status": rental.status,
            "total_price": to_money(rental.total_price),
            "contract_number": rental.contract_number,
            "contract_date": rental.contract_date,
            "deposit_amount": to_money(rental.deposit_amount),
            "advance_payment": to_money(rental.advance_payment),
            "monthly_rent": to_money(rental.monthly_rent),
            "special_conditions": rental.special_conditions,
            "notes": rental.notes,
            "total_paid": BookingService.total_paid(s, rental),
            "remaining_balance": BookingService.remaining_balance(s, rental),
            "tenant": tenant.to_dict() if tenant else None,
        }


# ---------- 带授权与审计的入口 ----------

@requires()
def create_booking(s, payload, actor=None, audit_buffer: list = None, today: datetime.date = None) -> Rental:
    """登录用户为自己创建预订"""
    rental = BookingService.create_booking(s, actor, payload, today=today)
    AuditService.log_deferred(s, audit_buffer, actor.email, "创建预订", rental.contract_number,
                              {"room_id": rental.room_id, "start": rental.start_date, "end": rental.end_date})
    return rental


@requires('approve-bookings')
def approve_booking(s, rental_id: int, actor=None, audit_buffer: list = None) -> Rental:
    rental = BookingService.approve(s, BookingService.get_rental(s, rental_id))
    AuditService.log_deferred(s, audit_buffer, actor.email, "批准预订", rental.contract_number)
    return rental


@requires('approve-bookings')
def activate_booking(s, rental_id: int, actor=None, audit_buffer: list = None) -> Rental:
    rental = BookingService.activate(s, BookingService.get_rental(s, rental_id))
    AuditService.log_deferred(s, audit_buffer, actor.email, "租约生效", rental.contract_number)
    return rental


@requires('approve-bookings')
def complete_booking(s, rental_id: int, actor=None, audit_buffer: list = None) -> Rental:
    rental = BookingService.complete(s, BookingService.get_rental(s, rental_id))
    AuditService.log_deferred(s, audit_buffer, actor.email, "租约结束", rental.contract_number)
    return rental


@requires('reject-bookings')
def reject_booking(s, rental_id: int, actor=None, audit_buffer: list = None) -> Rental:
    rental = BookingService.reject(s, BookingService.get_rental(s, rental_id))
    AuditService.log_deferred(s, audit_buffer, actor.email, "拒绝预订", rental.contract_number)
    return rental


@requires()
def cancel_booking(s, rental_id: int, actor=None, audit_buffer: list = None) -> Rental:
    """租客只能取消自己的 pending 预订；管理人员可取消 pending 或 approved 租约"""
    gate = AuthorizationGate(s, actor)
    is_staff = gate.has_role(ADMIN_ROLE) or gate.has_permission('reject-bookings')
    rental = BookingService.get_rental(s, rental_id)
    if not is_staff:
        if rental.user_id != actor.id:
            raise NotFoundError("租约不存在")
        if rental.status != RENTAL_PENDING:
            raise StateTransitionError("只有待审批的预订可以取消",
                                       {"status": [rental.status]})
    BookingService.cancel(s, rental)
    AuditService.log_deferred(s, audit_buffer, actor.email, "取消预订", rental.contract_number)
    return rental
