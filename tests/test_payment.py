"""付款记录测试"""
import pytest
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import date
from decimal import Decimal
from services.booking import BookingService
from services.payment import PaymentService, submit_payment, confirm_payment, reject_payment
from utils.exceptions import AuthorizationError, NotFoundError, StateTransitionError, ValidationError


class TestPaymentService:
    """付款服务测试"""

    @pytest.mark.parametrize("amount, method, status, field", [
        ("0", "cash", "pending", "amount"),
        ("-5", "cash", "pending", "amount"),
        ("abc", "cash", "pending", "amount"),
        ("100", "", "pending", "payment_method"),
        ("100", "cash", "refunded", "status"),
    ])
    def test_invalid_payment(self, make_rental, seeded, amount, method, status, field):
        """测试非法付款信息"""
        rental = make_rental()
        with pytest.raises(ValidationError) as exc:
            PaymentService.record_payment(seeded, rental, amount, method, status=status)
        assert field in exc.value.errors

    def test_record_defaults(self, make_rental, seeded):
        """测试默认待确认与当天日期"""
        rental = make_rental()
        payment = PaymentService.record_payment(seeded, rental, "1500.5", "transfer", slip_image_path="slips/a.png")
        assert payment.status == 'pending'
        assert payment.amount == Decimal('1500.50')
        assert payment.payment_date == date.today()
        assert payment.slip_image_path == "slips/a.png"

    def test_confirm_and_reject_once(self, make_rental, seeded):
        """测试确认与驳回只能一次"""
        rental = make_rental('approved')
        p1 = PaymentService.record_payment(seeded, rental, "1000", "transfer")
        p2 = PaymentService.record_payment(seeded, rental, "500", "transfer")
        PaymentService.mark_paid(seeded, p1)
        PaymentService.mark_failed(seeded, p2)
        assert BookingService.total_paid(seeded, rental) == Decimal('1000.00')
        with pytest.raises(StateTransitionError):
            PaymentService.mark_failed(seeded, p1)
        with pytest.raises(StateTransitionError):
            PaymentService.mark_paid(seeded, p2)


class TestGatedPayments:
    """带授权的付款入口测试"""

    def test_owner_submits_staff_confirms(self, make_rental, make_user, seeded):
        """测试租客提交、管理人员确认"""
        owner = make_user('user')
        rental = make_rental('approved', user=owner)
        payment = submit_payment(seeded, rental.id, "2000", "transfer", actor=owner)
        with pytest.raises(AuthorizationError):
            confirm_payment(seeded, payment.id, actor=owner)
        confirm_payment(seeded, payment.id, actor=make_user('manager'))
        assert payment.status == 'paid'

    def test_stranger_cannot_submit(self, make_rental, make_user, seeded):
        """测试他人不能为租约付款"""
        rental = make_rental()
        with pytest.raises(NotFoundError):
            submit_payment(seeded, rental.id, "100", "cash", actor=make_user('user'))

    def test_reject_payment(self, make_rental, make_user, seeded):
        """测试驳回付款"""
        rental = make_rental()
        payment = PaymentService.record_payment(seeded, rental, "100", "cash")
        reject_payment(seeded, payment.id, actor=make_user('admin'))
        assert payment.status == 'failed'
        with pytest.raises(NotFoundError):
            reject_payment(seeded, 9999, actor=make_user('admin'))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
