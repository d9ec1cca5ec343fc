"""工具函数模块"""
from .helpers import to_decimal, to_money, format_money, mask_phone
from .transaction import transaction_scope

__all__ = ['to_decimal', 'to_money', 'format_money', 'mask_phone', 'transaction_scope']
