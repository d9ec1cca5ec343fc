"""账单生成测试"""
import pytest
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import date, datetime
from decimal import Decimal
from models import Invoice
from services.electricity import ElectricityService
from services.invoice import (
    InvoiceGenerator, compute_total_amount, is_overdue, days_until_due, month_bounds,
    generate_monthly_invoices, mark_invoice_paid, sweep_overdue,
)
from services.utility_rate import UtilityRateRegistry
from utils.exceptions import AuthorizationError, ConflictError, StateTransitionError, ValidationError

OCT = datetime(2024, 10, 31, 9, 0)


def _set_rates(s, electricity="5", water="150"):
    UtilityRateRegistry(s).update_rates({"electricity_rate_per_unit": electricity, "water_flat_rate": water})


class TestTotals:
    """合计金额测试"""

    def test_compute_total_amount(self):
        """测试合计为三项之和"""
        assert compute_total_amount("5000", "1000.50", "150") == Decimal('6150.50')
        assert compute_total_amount(None, 0, "0") == Decimal('0.00')

    def test_save_recomputes_total(self, make_rental, seeded):
        """测试保存时忽略传入合计"""
        rental = make_rental('approved')
        generator = InvoiceGenerator(seeded)
        invoice = Invoice(rental_id=rental.id, invoice_number="INV-202410-0099", issue_date=date(2024, 10, 1),
                          due_date=date(2024, 10, 8), room_rent=Decimal('5000'), electricity_charge=Decimal('100'),
                          water_charge=Decimal('50'), total_amount=Decimal('1'))
        generator.save(invoice)
        assert invoice.total_amount == Decimal('5150.00')
        invoice.water_charge = Decimal('0')
        generator.save(invoice)
        assert invoice.total_amount == Decimal('5100.00')


class TestNumbering:
    """账单编号测试"""

    def test_sequence_per_month(self, make_rental, seeded):
        """测试编号按月递增并在新月份重置"""
        rental = make_rental('approved')
        generator = InvoiceGenerator(seeded)
        first = generator.create_invoice(rental, now=datetime(2024, 10, 5))
        second = generator.create_invoice(rental, now=datetime(2024, 10, 20))
        third = generator.create_invoice(rental, now=datetime(2024, 11, 2))
        assert first.invoice_number == "INV-202410-0001"
        assert second.invoice_number == "INV-202410-0002"
        assert third.invoice_number == "INV-202411-0001"

    def test_next_number_after_highest(self, make_rental, seeded):
        """测试取本月最大编号加一"""
        rental = make_rental('approved')
        generator = InvoiceGenerator(seeded)
        generator.save(Invoice(rental_id=rental.id, invoice_number="INV-202410-0041",
                               issue_date=date(2024, 10, 1), due_date=date(2024, 10, 8),
                               room_rent=Decimal('0'), electricity_charge=Decimal('0'), water_charge=Decimal('0')))
        assert generator.generate_invoice_number(datetime(2024, 10, 9)) == "INV-202410-0042"
        assert generator.generate_invoice_number(datetime(2024, 9, 9)) == "INV-202409-0001"

    def test_collision_retried(self, make_rental, seeded, monkeypatch):
        """测试编号冲突后重试成功"""
        rental = make_rental('approved')
        generator = InvoiceGenerator(seeded)
        generator.create_invoice(rental, now=OCT)
        numbers = iter(["INV-202410-0001", "INV-202410-0002"])
        monkeypatch.setattr(generator, "generate_invoice_number", lambda now=None: next(numbers))
        invoice = generator.create_invoice(rental, now=OCT)
        assert invoice.invoice_number == "INV-202410-0002"
        assert seeded.query(Invoice).count() == 2

    def test_persistent_collision_is_retryable_conflict(self, make_rental, seeded, monkeypatch):
        """测试持续冲突抛出可重试冲突"""
        rental = make_rental('approved')
        generator = InvoiceGenerator(seeded, max_retries=3)
        generator.create_invoice(rental, now=OCT)
        monkeypatch.setattr(generator, "generate_invoice_number", lambda now=None: "INV-202410-0001")
        with pytest.raises(ConflictError) as exc:
            generator.create_invoice(rental, now=OCT)
        assert exc.value.retryable
        assert seeded.query(Invoice).count() == 1


class TestCreateInvoice:
    """生成账单测试"""

    def test_charges_from_rent_usage_and_rates(self, make_rental, seeded):
        """测试房租、电费、水费与到期日"""
        rental = make_rental('active')
        _set_rates(seeded)
        usage = ElectricityService.record_reading(seeded, rental.room_id, date(2024, 10, 25), 1200,
                                                  previous_units=1000)
        invoice = InvoiceGenerator(seeded).create_invoice(rental, now=OCT)
        assert invoice.room_rent == Decimal('5000.00')
        assert invoice.electricity_charge == Decimal('1000.00')
        assert invoice.water_charge == Decimal('150.00')
        assert invoice.total_amount == Decimal('6150.00')
        assert invoice.issue_date == date(2024, 10, 31)
        assert invoice.due_date == date(2024, 11, 7)
        assert invoice.status == 'unpaid'
        assert usage.is_billed

    def test_usage_billed_once(self, make_rental, seeded):
        """测试同一读数不会重复计费"""
        rental = make_rental('approved')
        _set_rates(seeded)
        ElectricityService.record_reading(seeded, rental.room_id, date(2024, 10, 25), 100)
        generator = InvoiceGenerator(seeded)
        assert generator.create_invoice(rental, now=OCT).electricity_charge == Decimal('500.00')
        assert generator.create_invoice(rental, now=OCT).electricity_charge == Decimal('0.00')

    def test_reading_outside_period_ignored(self, make_rental, seeded):
        """测试账期外的读数不计入"""
        rental = make_rental('approved')
        _set_rates(seeded)
        usage = ElectricityService.record_reading(seeded, rental.room_id, date(2024, 9, 30), 100)
        invoice = InvoiceGenerator(seeded).create_invoice(rental, *month_bounds(2024, 10), now=OCT)
        assert invoice.electricity_charge == Decimal('0.00')
        assert not usage.is_billed

    def test_zero_rates_are_valid(self, make_rental, seeded):
        """测试未配置费率时按零计费"""
        rental = make_rental('approved')
        ElectricityService.record_reading(seeded, rental.room_id, date(2024, 10, 25), 100)
        invoice = InvoiceGenerator(seeded).create_invoice(rental, now=OCT)
        assert invoice.electricity_charge == Decimal('0.00')
        assert invoice.water_charge == Decimal('0.00')
        assert invoice.total_amount == Decimal('5000.00')

    def test_pending_rental_not_billable(self, make_rental, seeded):
        """测试待审批租约不能开票"""
        rental = make_rental()
        with pytest.raises(StateTransitionError):
            InvoiceGenerator(seeded).create_invoice(rental, now=OCT)

    def test_manual_invoice(self, make_rental, seeded):
        """测试手工开票"""
        rental = make_rental('approved')
        usage = ElectricityService.record_reading(seeded, rental.room_id, date(2024, 10, 25), 100)
        invoice = InvoiceGenerator(seeded).create_manual_invoice(rental, "4800", "320.25", "100", usage, now=OCT)
        assert invoice.total_amount == Decimal('5220.25')
        assert usage.is_billed
        with pytest.raises(ValidationError) as exc:
            InvoiceGenerator(seeded).create_manual_invoice(rental, "-1", "0", "x", usage, now=OCT)
        assert set(exc.value.errors) == {"room_rent", "water_charge", "electricity_usage_id"}


class TestMonthlyGeneration:
    """月度批量生成测试"""

    def test_generates_for_billable_rentals(self, make_rental, seeded):
        """测试只为已批准和生效租约生成"""
        make_rental('approved')
        make_rental('active')
        make_rental()
        result = InvoiceGenerator(seeded).generate_monthly_invoices(2024, 10, now=OCT)
        assert result["invoices_generated"] == 2
        assert result["invoice_numbers"] == ["INV-202410-0001", "INV-202410-0002"]
        assert result["errors"] == []
        assert result["period"] == "2024-10"

    def test_failures_are_collected(self, make_rental, seeded, monkeypatch):
        """测试单个租约失败不影响其它租约"""
        bad = make_rental('approved')
        make_rental('approved')
        original = InvoiceGenerator.create_invoice

        def flaky(self, rental, *args, **kwargs):
            if rental.id == bad.id:
                raise ValidationError("broken rental")
            return original(self, rental, *args, **kwargs)
        monkeypatch.setattr(InvoiceGenerator, "create_invoice", flaky)
        result = InvoiceGenerator(seeded).generate_monthly_invoices(2024, 10, now=OCT)
        assert result["invoices_generated"] == 1
        assert result["errors"][0]["rental_id"] == bad.id
        assert "broken rental" in result["errors"][0]["error"]

    @pytest.mark.parametrize("year, month, field", [(2024, 13, "month"), (2024, 0, "month"), (1999, 5, "year")])
    def test_invalid_period(self, seeded, year, month, field):
        """测试非法账期"""
        with pytest.raises(ValidationError) as exc:
            InvoiceGenerator(seeded).generate_monthly_invoices(year, month)
        assert field in exc.value.errors


class TestOverdue:
    """逾期测试"""

    def _invoice(self, rental, seeded, issue=date(2024, 10, 1)):
        return InvoiceGenerator(seeded).create_invoice(rental, now=datetime(issue.year, issue.month, issue.day))

    def test_overdue_scenario(self, make_rental, seeded):
        """测试过期未付账单标记逾期"""
        invoice = self._invoice(make_rental('approved'), seeded)
        today = date(2024, 10, 20)
        assert is_overdue(invoice, today)
        assert days_until_due(invoice, today) == -12
        generator = InvoiceGenerator(seeded)
        assert generator.mark_as_overdue(invoice)
        assert invoice.status == 'overdue'
        assert not is_overdue(invoice, today)
        assert not generator.mark_as_overdue(invoice)

    def test_not_overdue_before_due(self, make_rental, seeded):
        """测试到期日当天不算逾期"""
        invoice = self._invoice(make_rental('approved'), seeded)
        assert not is_overdue(invoice, date(2024, 10, 8))
        assert days_until_due(invoice, date(2024, 10, 6)) == 2
        assert days_until_due(invoice, date(2024, 10, 8)) == 0
        generator = InvoiceGenerator(seeded)
        assert generator.sweep_overdue(date(2024, 10, 8)) == 0
        assert invoice.status == 'unpaid'
        assert is_overdue(invoice, date(2024, 10, 9))
        assert generator.sweep_overdue(date(2024, 10, 9)) == 1

    def test_paid_invoice_cannot_become_overdue(self, make_rental, seeded):
        """测试已付账单不能标记逾期"""
        invoice = self._invoice(make_rental('approved'), seeded)
        generator = InvoiceGenerator(seeded)
        assert generator.mark_as_paid(invoice)
        assert not generator.mark_as_paid(invoice)
        assert not is_overdue(invoice, date(2024, 12, 1))
        with pytest.raises(StateTransitionError):
            generator.mark_as_overdue(invoice)

    def test_sweep(self, make_rental, seeded):
        """测试逾期扫描"""
        rental = make_rental('approved')
        old = self._invoice(rental, seeded, date(2024, 10, 1))
        fresh = self._invoice(rental, seeded, date(2024, 10, 18))
        generator = InvoiceGenerator(seeded)
        assert [i.id for i in generator.get_overdue_invoices(date(2024, 10, 20))] == [old.id]
        assert generator.sweep_overdue(date(2024, 10, 20)) == 1
        assert old.status == 'overdue'
        assert fresh.status == 'unpaid'
        assert generator.sweep_overdue(date(2024, 10, 20)) == 0


class TestQueries:
    """账单查询测试"""

    def test_scopes(self, make_rental, make_user, seeded):
        """测试按状态、租约、日期与用户查询"""
        owner = make_user('user')
        mine = make_rental('approved', user=owner)
        other = make_rental('approved')
        generator = InvoiceGenerator(seeded)
        a = generator.create_invoice(mine, now=datetime(2024, 10, 1))
        b = generator.create_invoice(other, now=datetime(2024, 11, 1))
        generator.mark_as_paid(b)
        assert [i.id for i in generator.query(status='unpaid')] == [a.id]
        assert [i.id for i in generator.query(status='paid')] == [b.id]
        assert [i.id for i in generator.query(rental_id=other.id)] == [b.id]
        assert [i.id for i in generator.query(start_date=date(2024, 10, 1), end_date=date(2024, 10, 31))] == [a.id]
        assert [i.id for i in generator.invoices_for_user(owner.id)] == [a.id]
        with pytest.raises(ValidationError):
            generator.query(status='void')


class TestGatedInvoices:
    """带授权的账单入口测试"""

    def test_manage_invoices_required(self, make_rental, make_user, seeded):
        """测试账单操作需要 manage-invoices"""
        make_rental('approved')
        tenant = make_user('user')
        with pytest.raises(AuthorizationError):
            generate_monthly_invoices(seeded, 2024, 10, actor=tenant, now=OCT)
        manager = make_user('manager')
        audit_buffer = []
        result = generate_monthly_invoices(seeded, 2024, 10, actor=manager, audit_buffer=audit_buffer, now=OCT)
        assert result["invoices_generated"] == 1
        assert audit_buffer[0]["target"] == "2024-10"
        invoice_id = seeded.query(Invoice).one().id
        with pytest.raises(AuthorizationError):
            mark_invoice_paid(seeded, invoice_id, actor=tenant)
        assert mark_invoice_paid(seeded, invoice_id, actor=manager)
        assert sweep_overdue(seeded, actor=manager, today=date(2030, 1, 1)) == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
