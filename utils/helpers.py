"""通用工具函数"""
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal('0.01')


def to_decimal(val) -> Decimal:
    if val is None:
        return Decimal('0.00')
    return Decimal(str(val))


def to_money(val) -> Decimal:
    """金额统一保留两位小数"""
    return to_decimal(val).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(val) -> str:
    return f"฿{to_decimal(val):,.2f}"


def mask_phone(val, is_admin: bool) -> str:
    """脱敏函数：非管理员掩盖手机号"""
    if is_admin:
        return val
    s = str(val or '')
    if len(s) == 10 and s.isdigit():
        return s[:3] + "****" + s[7:]
    return s
