"""租约付款记录

只有 status=paid 的付款计入租约已付金额；支付网关不在本系统范围内，
这里只记录租客提交的付款（含转账凭证路径）与管理员确认结果。
"""
import datetime
from decimal import InvalidOperation
from config import get_logger
from models import Payment, Rental
from models.entities import PAYMENT_PENDING, PAYMENT_PAID, PAYMENT_FAILED, PAYMENT_STATUSES
from services.audit import AuditService
from services.booking import BookingService
from services.gate import AuthorizationGate, requires
from services.rbac import ADMIN_ROLE
from utils.exceptions import NotFoundError, StateTransitionError, ValidationError
from utils.helpers import to_money

logger = get_logger(__name__)


class PaymentService:
    @staticmethod
    def record_payment(s, rental: Rental, amount, payment_method: str,
                       payment_date: datetime.date = None, status: str = PAYMENT_PENDING,
                       slip_image_path: str = None) -> Payment:
        errors = {}
        try:
            amount = to_money(amount)
        except (InvalidOperation, ValueError, TypeError):
            amount = None
        if amount is None or amount <= 0:
            errors["amount"] = ["金额必须大于0"]
        if not payment_method:
            errors["payment_method"] = ["必填"]
        if status not in PAYMENT_STATUSES:
            errors["status"] = [f"无效状态: {status}"]
        if errors:
            raise ValidationError("付款信息不合法", errors)

        payment = Payment(
            rental_id=rental.id, amount=amount,
            payment_date=payment_date or datetime.date.today(),
            status=status, payment_method=payment_method,
            slip_image_path=slip_image_path,
        )
        s.add(payment)
        s.flush()
        logger.info(f"登记付款: 租约={rental.id}, 金额={amount}, 状态={status}")
        return payment

    @staticmethod
    def get_payment(s, payment_id: int) -> Payment:
        payment = s.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError(f"付款记录不存在: {payment_id}")
        return payment

    @staticmethod
    def _settle(s, payment: Payment, status: str) -> Payment:
        if payment.status != PAYMENT_PENDING:
            raise StateTransitionError(f"付款 {payment.id} 已是 {payment.status}，不能再变更",
                                       {"status": [payment.status]})
        payment.status = status
        s.flush()
        logger.info(f"付款状态变更: {payment.id} -> {status}")
        return payment

    @staticmethod
    def mark_paid(s, payment: Payment) -> Payment:
        return PaymentService._settle(s, payment, PAYMENT_PAID)

    @staticmethod
    def mark_failed(s, payment: Payment) -> Payment:
        return PaymentService._settle(s, payment, PAYMENT_FAILED)


@requires()
def submit_payment(s, rental_id: int, amount, payment_method: str, payment_date: datetime.date = None,
                   slip_image_path: str = None, actor=None, audit_buffer: list = None) -> Payment:
    """租客为自己的租约提交付款，管理人员可代为登记"""
    rental = BookingService.get_rental(s, rental_id)
    gate = AuthorizationGate(s, actor)
    if rental.user_id != actor.id and not (gate.has_role(ADMIN_ROLE) or gate.has_permission('manage-invoices')):
        raise NotFoundError("租约不存在")
    payment = PaymentService.record_payment(s, rental, amount, payment_method, payment_date,
                                            slip_image_path=slip_image_path)
    AuditService.log_deferred(s, audit_buffer, actor.email, "提交付款", rental.contract_number,
                              {"amount": payment.amount, "method": payment_method})
    return payment


@requires('manage-invoices')
def confirm_payment(s, payment_id: int, actor=None, audit_buffer: list = None) -> Payment:
    payment = PaymentService.mark_paid(s, PaymentService.get_payment(s, payment_id))
    AuditService.log_deferred(s, audit_buffer, actor.email, "确认付款", f"payment:{payment.id}")
    return payment


@requires('manage-invoices')
def reject_payment(s, payment_id: int, actor=None, audit_buffer: list = None) -> Payment:
    payment = PaymentService.mark_failed(s, PaymentService.get_payment(s, payment_id))
    AuditService.log_deferred(s, audit_buffer, actor.email, "驳回付款", f"payment:{payment.id}")
    return payment
