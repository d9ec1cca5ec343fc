"""账单生成服务

账单号格式 INV-YYYYMM-NNNN，序号按自然月重置。序号取本月前缀下字符串最大的
账单号加一，属于先读后写；并发下依赖唯一约束兜底，冲突时在保存点内重取序号重试，
重试耗尽抛出可重试的 ConflictError。
"""
import calendar
import datetime
from decimal import Decimal, InvalidOperation
from typing import List
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.sql import desc
from config import config, get_logger
from models import ElectricityUsage, Invoice, Rental
from models.entities import (
    INVOICE_UNPAID, INVOICE_PAID, INVOICE_OVERDUE, INVOICE_STATUSES,
    RENTAL_APPROVED, RENTAL_ACTIVE,
)
from services.audit import AuditService
from services.booking import BookingService
from services.electricity import ElectricityService
from services.gate import requires
from services.utility_rate import UtilityRateRegistry
from utils.exceptions import ConflictError, MotelException, NotFoundError, StateTransitionError, ValidationError
from utils.helpers import to_money

logger = get_logger(__name__)

INVOICE_PREFIX = 'INV'
BILLABLE_STATUSES = (RENTAL_APPROVED, RENTAL_ACTIVE)


def compute_total_amount(room_rent, electricity_charge, water_charge) -> Decimal:
    return to_money(room_rent) + to_money(electricity_charge) + to_money(water_charge)


def month_bounds(year: int, month: int):
    last_day = calendar.monthrange(year, month)[1]
    return datetime.date(year, month, 1), datetime.date(year, month, last_day)


def is_overdue(invoice: Invoice, today: datetime.date = None) -> bool:
    today = today or datetime.date.today()
    return invoice.status == INVOICE_UNPAID and invoice.due_date < today


def days_until_due(invoice: Invoice, today: datetime.date = None) -> int:
    """距到期日的天数，已过期为负数"""
    today = today or datetime.date.today()
    return (invoice.due_date - today).days


class InvoiceGenerator:
    def __init__(self, s, rate_registry: UtilityRateRegistry = None, due_days: int = None,
                 max_retries: int = None):
        self.s = s
        self.rates = rate_registry or UtilityRateRegistry(s)
        self.due_days = config.INVOICE_DUE_DAYS if due_days is None else due_days
        self.max_retries = max_retries or config.INVOICE_NUMBER_RETRIES

    # ---------- 编号与保存 ----------
    def generate_invoice_number(self, now: datetime.datetime = None) -> str:
        now = now or datetime.datetime.now()
        prefix = f"{INVOICE_PREFIX}-{now:%Y%m}-"
        last = self.s.query(Invoice.invoice_number) \
            .filter(Invoice.invoice_number.like(prefix + '%')) \
            .order_by(desc(Invoice.invoice_number)).first()
        seq = int(last[0][-4:]) + 1 if last else 1
        return f"{prefix}{seq:04d}"

    def save(self, invoice: Invoice) -> Invoice:
        """写入前总是重新计算 total_amount，忽略传入值"""
        invoice.total_amount = compute_total_amount(
            invoice.room_rent, invoice.electricity_charge, invoice.water_charge)
        self.s.add(invoice)
        self.s.flush()
        return invoice

    def _insert(self, invoice: Invoice, now: datetime.datetime) -> Invoice:
        for attempt in range(1, self.max_retries + 1):
            invoice.invoice_number = self.generate_invoice_number(now)
            try:
                with self.s.begin_nested():
                    self.save(invoice)
                return invoice
            except IntegrityError:
                logger.warning(f"账单号冲突: {invoice.invoice_number}，第 {attempt} 次重试")
        raise ConflictError(f"账单号分配冲突，已重试 {self.max_retries} 次", retryable=True)

    # ---------- 生成 ----------
    def _check_billable(self, rental: Rental):
        if rental.status not in BILLABLE_STATUSES:
            raise StateTransitionError(f"租约 {rental.id} 状态为 {rental.status}，不能开具账单",
                                       {"rental_id": [rental.status]})

    def create_invoice(self, rental: Rental, period_start: datetime.date = None,
                       period_end: datetime.date = None, now: datetime.datetime = None) -> Invoice:
        """按租约月租、账期内未计费电量与当前费率生成账单"""
        now = now or datetime.datetime.now()
        if period_start is None or period_end is None:
            period_start, period_end = month_bounds(now.year, now.month)
        self._check_billable(rental)

        room_rent = rental.monthly_rent if rental.monthly_rent is not None else rental.room.price_per_month
        # 账期内只取最新一条未计费读数
        usage = ElectricityService.latest_unbilled_in_period(self.s, rental.room_id, period_start, period_end)
        electricity_charge = Decimal('0.00')
        if usage is not None:
            electricity_charge = ElectricityService.calculate_charge(usage, self.rates.get_electricity_rate())

        invoice = Invoice(
            rental_id=rental.id,
            issue_date=now.date(),
            due_date=now.date() + datetime.timedelta(days=self.due_days),
            room_rent=to_money(room_rent),
            electricity_charge=to_money(electricity_charge),
            water_charge=self.rates.get_water_rate(),
            status=INVOICE_UNPAID,
        )
        self._insert(invoice, now)
        if usage is not None:
            ElectricityService.mark_as_billed(self.s, usage)
        logger.info(f"生成账单: {invoice.invoice_number} 租约={rental.id} 合计={invoice.total_amount}")
        return invoice

    def create_manual_invoice(self, rental: Rental, room_rent, electricity_charge, water_charge,
                              electricity_usage=None, now: datetime.datetime = None) -> Invoice:
        """手工录入各项费用；合计仍由系统计算"""
        now = now or datetime.datetime.now()
        self._check_billable(rental)
        charges, errors = {}, {}
        for key, value in (("room_rent", room_rent), ("electricity_charge", electricity_charge),
                           ("water_charge", water_charge)):
            try:
                amount = to_money(value)
            except (InvalidOperation, ValueError, TypeError):
                errors[key] = ["必须为数字"]
                continue
            if value is None or amount < 0:
                errors[key] = ["必须为非负数"]
            charges[key] = amount
        if electricity_usage is not None and electricity_usage.is_billed:
            errors["electricity_usage_id"] = ["该读数已计费"]
        if errors:
            raise ValidationError("账单信息不合法", errors)

        invoice = Invoice(
            rental_id=rental.id,
            issue_date=now.date(),
            due_date=now.date() + datetime.timedelta(days=self.due_days),
            status=INVOICE_UNPAID,
            **charges,
        )
        self._insert(invoice, now)
        if electricity_usage is not None:
            ElectricityService.mark_as_billed(self.s, electricity_usage)
        logger.info(f"手工开具账单: {invoice.invoice_number} 租约={rental.id} 合计={invoice.total_amount}")
        return invoice

    def generate_monthly_invoices(self, year: int, month: int, now: datetime.datetime = None) -> dict:
        """为所有已批准/生效租约生成月度账单；单个租约失败不影响其它租约"""
        errors = {}
        if not isinstance(month, int) or not 1 <= month <= 12:
            errors["month"] = ["必须为 1-12"]
        if not isinstance(year, int) or not 2000 <= year <= 2100:
            errors["year"] = ["必须为 2000-2100"]
        if errors:
            raise ValidationError("账期不合法", errors)

        start, end = month_bounds(year, month)
        result = {"invoices_generated": 0, "invoice_numbers": [], "errors": [],
                  "year": year, "month": month, "period": f"{year}-{month:02d}"}
        for rental in BookingService.billable(self.s):
            try:
                with self.s.begin_nested():
                    invoice = self.create_invoice(rental, start, end, now=now)
                result["invoices_generated"] += 1
                result["invoice_numbers"].append(invoice.invoice_number)
            except (MotelException, SQLAlchemyError) as e:
                logger.error(f"租约 {rental.id} 生成账单失败: {e}")
                result["errors"].append({
                    "rental_id": rental.id,
                    "room_name": rental.room.name if rental.room else None,
                    "error": str(e),
                })
        logger.info(f"月度账单生成完成: {result['period']} 共 {result['invoices_generated']} 张, "
                    f"失败 {len(result['errors'])} 个")
        return result

    # ---------- 状态 ----------
    def get_invoice(self, invoice_id: int) -> Invoice:
        invoice = self.s.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError(f"账单不存在: {invoice_id}")
        return invoice

    def mark_as_paid(self, invoice: Invoice) -> bool:
        if invoice.status == INVOICE_PAID:
            return False
        invoice.status = INVOICE_PAID
        self.s.flush()
        logger.info(f"账单已支付: {invoice.invoice_number}")
        return True

    def mark_as_overdue(self, invoice: Invoice) -> bool:
        if invoice.status == INVOICE_OVERDUE:
            return False
        if invoice.status != INVOICE_UNPAID:
            raise StateTransitionError(f"账单 {invoice.invoice_number} 状态为 {invoice.status}，不能标记逾期",
                                       {"status": [invoice.status]})
        invoice.status = INVOICE_OVERDUE
        self.s.flush()
        logger.info(f"账单逾期: {invoice.invoice_number}")
        return True

    def get_overdue_invoices(self, today: datetime.date = None) -> List[Invoice]:
        """未支付且已过到期日的账单；由外部定时任务调用 sweep_overdue"""
        today = today or datetime.date.today()
        return self.s.query(Invoice).filter(
            Invoice.status == INVOICE_UNPAID, Invoice.due_date < today
        ).order_by(Invoice.due_date).all()

    def sweep_overdue(self, today: datetime.date = None) -> int:
        count = 0
        for invoice in self.get_overdue_invoices(today):
            if self.mark_as_overdue(invoice):
                count += 1
        return count

    # ---------- 查询 ----------
    def query(self, status: str = None, rental_id: int = None, start_date: datetime.date = None,
              end_date: datetime.date = None, user_id: int = None) -> List[Invoice]:
        q = self.s.query(Invoice)
        if status:
            if status not in INVOICE_STATUSES:
                raise ValidationError("无效状态", {"status": [status]})
            q = q.filter(Invoice.status == status)
        if rental_id is not None:
            q = q.filter(Invoice.rental_id == rental_id)
        if start_date is not None and end_date is not None:
            q = q.filter(Invoice.issue_date.between(start_date, end_date))
        if user_id is not None:
            q = q.join(Rental, Rental.id == Invoice.rental_id).filter(Rental.user_id == user_id)
        return q.order_by(desc(Invoice.issue_date), desc(Invoice.invoice_number)).all()

    def invoices_for_user(self, user_id: int) -> List[Invoice]:
        return self.query(user_id=user_id)


# ---------- 带授权与审计的入口 ----------

@requires('manage-invoices')
def generate_monthly_invoices(s, year: int, month: int, actor=None, audit_buffer: list = None,
                              now: datetime.datetime = None) -> dict:
    result = InvoiceGenerator(s).generate_monthly_invoices(year, month, now=now)
    AuditService.log_deferred(s, audit_buffer, actor.email, "批量生成账单", result["period"],
                              {"count": result["invoices_generated"], "errors": len(result["errors"])})
    return result


@requires('manage-invoices')
def create_manual_invoice(s, rental_id: int, room_rent, electricity_charge, water_charge,
                          electricity_usage_id: int = None, actor=None, audit_buffer: list = None) -> Invoice:
    rental = BookingService.get_rental(s, rental_id)
    usage = None
    if electricity_usage_id is not None:
        usage = s.get(ElectricityUsage, electricity_usage_id)
        if usage is None:
            raise NotFoundError(f"读数不存在: {electricity_usage_id}")
    invoice = InvoiceGenerator(s).create_manual_invoice(rental, room_rent, electricity_charge, water_charge, usage)
    AuditService.log_deferred(s, audit_buffer, actor.email, "手工开具账单", invoice.invoice_number,
                              {"total": invoice.total_amount})
    return invoice


@requires('manage-invoices')
def mark_invoice_paid(s, invoice_id: int, actor=None, audit_buffer: list = None) -> bool:
    generator = InvoiceGenerator(s)
    invoice = generator.get_invoice(invoice_id)
    changed = generator.mark_as_paid(invoice)
    AuditService.log_deferred(s, audit_buffer, actor.email, "账单收款", invoice.invoice_number)
    return changed


@requires('manage-invoices')
def sweep_overdue(s, actor=None, audit_buffer: list = None, today: datetime.date = None) -> int:
    count = InvoiceGenerator(s).sweep_overdue(today)
    AuditService.log_deferred(s, audit_buffer, actor.email, "逾期扫描", "invoices", {"count": count})
    return count
