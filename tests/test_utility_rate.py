"""水电费率测试"""
import pytest
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from decimal import Decimal
from models import UtilityRate
from services.utility_rate import UtilityRateRegistry, RateDefaults, update_rates
from utils.exceptions import AuthorizationError, ValidationError


class TestUtilityRateRegistry:
    """费率登记测试"""

    def test_current_creates_singleton_with_zero(self, db):
        """测试首次读取创建零费率记录"""
        registry = UtilityRateRegistry(db)
        assert db.query(UtilityRate).count() == 0
        rate = registry.current()
        assert rate.id == 1
        assert registry.get_electricity_rate() == Decimal('0.00')
        assert registry.get_water_rate() == Decimal('0.00')
        registry.current()
        assert db.query(UtilityRate).count() == 1

    def test_explicit_defaults(self, db):
        """测试注入默认费率"""
        registry = UtilityRateRegistry(db, RateDefaults(Decimal('7.50'), Decimal('150.00')))
        assert registry.get_electricity_rate() == Decimal('7.50')
        assert registry.get_water_rate() == Decimal('150.00')

    def test_partial_update(self, db):
        """测试部分更新"""
        registry = UtilityRateRegistry(db)
        assert registry.update_rates({"electricity_rate_per_unit": "8"})
        assert registry.get_electricity_rate() == Decimal('8.00')
        assert registry.get_water_rate() == Decimal('0.00')
        registry.update_rates({"water_flat_rate": 100})
        assert registry.get_electricity_rate() == Decimal('8.00')
        assert registry.get_water_rate() == Decimal('100.00')

    def test_returns_whether_changed(self, db):
        """测试无实际变化时返回 False"""
        registry = UtilityRateRegistry(db)
        assert not registry.update_rates({})
        assert registry.update_rates({"water_flat_rate": "120"})
        assert not registry.update_rates({"water_flat_rate": "120.00"})
        assert registry.get_water_rate() == Decimal('120.00')

    def test_zero_is_valid(self, db):
        """测试零费率合法"""
        registry = UtilityRateRegistry(db)
        registry.update_rates({"electricity_rate_per_unit": "5"})
        registry.update_rates({"electricity_rate_per_unit": "0"})
        assert registry.get_electricity_rate() == Decimal('0.00')

    @pytest.mark.parametrize("patch, field", [
        ({"gas_rate": "1"}, "gas_rate"),
        ({"water_flat_rate": "-1"}, "water_flat_rate"),
        ({"electricity_rate_per_unit": "abc"}, "electricity_rate_per_unit"),
        ({"electricity_rate_per_unit": None}, "electricity_rate_per_unit"),
    ])
    def test_invalid_patch(self, db, patch, field):
        """测试非法费率"""
        registry = UtilityRateRegistry(db)
        with pytest.raises(ValidationError) as exc:
            registry.update_rates(patch)
        assert field in exc.value.errors
        assert registry.get_electricity_rate() == Decimal('0.00')

    def test_gated_update(self, make_user, seeded):
        """测试费率更新授权"""
        with pytest.raises(AuthorizationError):
            update_rates(seeded, {"water_flat_rate": "50"}, actor=make_user('user'))
        audit_buffer = []
        update_rates(seeded, {"water_flat_rate": "50"}, actor=make_user('manager'), audit_buffer=audit_buffer)
        assert UtilityRateRegistry(seeded).get_water_rate() == Decimal('50.00')
        assert audit_buffer[0]["action"] == "更新费率"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
