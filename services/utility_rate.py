"""水电费率登记

系统只有一条费率记录（id=1）。记录缺失时按 RateDefaults 自动创建，
默认费率为 0，调用方应把 0 视为合法费率而非错误。
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from config import config, get_logger
from models import UtilityRate
from services.audit import AuditService
from services.gate import requires
from utils.exceptions import ValidationError
from utils.helpers import to_money

logger = get_logger(__name__)

SINGLETON_ID = 1
RATE_FIELDS = ('electricity_rate_per_unit', 'water_flat_rate')


@dataclass(frozen=True)
class RateDefaults:
    electricity_rate_per_unit: Decimal = Decimal('0.00')
    water_flat_rate: Decimal = Decimal('0.00')

    @classmethod
    def from_config(cls) -> 'RateDefaults':
        return cls(to_money(config.DEFAULT_ELECTRICITY_RATE), to_money(config.DEFAULT_WATER_RATE))


class UtilityRateRegistry:
    def __init__(self, s, defaults: RateDefaults = None):
        self.s = s
        self.defaults = defaults or RateDefaults.from_config()

    def current(self) -> UtilityRate:
        """获取或创建费率记录"""
        rate = self.s.get(UtilityRate, SINGLETON_ID)
        if rate is None:
            rate = UtilityRate(
                id=SINGLETON_ID,
                electricity_rate_per_unit=self.defaults.electricity_rate_per_unit,
                water_flat_rate=self.defaults.water_flat_rate,
            )
            self.s.add(rate)
            self.s.flush()
            logger.info("费率记录不存在，已按默认值创建")
        return rate

    def update_rates(self, patch: dict) -> bool:
        """部分更新费率字段，返回是否有字段实际变化"""
        unknown = set(patch) - set(RATE_FIELDS)
        if unknown:
            raise ValidationError("未知的费率字段", {k: ["未知字段"] for k in sorted(unknown)})
        errors = {}
        cleaned = {}
        for key, value in patch.items():
            if value is None or value == "":
                errors[key] = ["必填"]
                continue
            try:
                amount = to_money(value)
            except (InvalidOperation, ValueError):
                errors[key] = ["必须为数字"]
                continue
            if amount < 0:
                errors[key] = ["不能为负数"]
                continue
            cleaned[key] = amount
        if errors:
            raise ValidationError("费率数据不合法", errors)

        rate = self.current()
        changed = {k: v for k, v in cleaned.items() if to_money(getattr(rate, k)) != v}
        if not changed:
            return False
        for key, value in changed.items():
            setattr(rate, key, value)
        self.s.flush()
        logger.info(f"更新费率: {changed}")
        return True

    def get_electricity_rate(self) -> Decimal:
        return to_money(self.current().electricity_rate_per_unit)

    def get_water_rate(self) -> Decimal:
        return to_money(self.current().water_flat_rate)


@requires('manage-utilities')
def update_rates(s, patch: dict, actor=None, audit_buffer: list = None) -> bool:
    """带授权与审计的费率更新入口"""
    result = UtilityRateRegistry(s).update_rates(patch)
    AuditService.log_deferred(s, audit_buffer, actor.email, "更新费率", "utility_rates", patch)
    return result
