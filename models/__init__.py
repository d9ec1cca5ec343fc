"""数据模型模块"""
from .base import Base, engine, SessionLocal
from .entities import (
    Role, Permission, User, Room, Rental, TenantInformation, Payment,
    ElectricityUsage, UtilityRate, Invoice, AuditLog, LoginFail, SessionToken,
    role_user, permission_role
)

__all__ = [
    'Base', 'engine', 'SessionLocal',
    'Role', 'Permission', 'User', 'Room', 'Rental', 'TenantInformation', 'Payment',
    'ElectricityUsage', 'UtilityRate', 'Invoice', 'AuditLog', 'LoginFail', 'SessionToken',
    'role_user', 'permission_role'
]
