"""业务服务模块"""
from .audit import AuditService
from .auth import AuthService
from .rbac import RbacService, RoleRef, PermissionRef, ADMIN_ROLE
from .gate import AuthorizationGate, requires
from .utility_rate import UtilityRateRegistry, RateDefaults
from .electricity import ElectricityService, compute_units_used
from .room import RoomService
from .booking import BookingService
from .payment import PaymentService
from .invoice import InvoiceGenerator, compute_total_amount

__all__ = [
    'AuditService', 'AuthService', 'RbacService', 'RoleRef', 'PermissionRef', 'ADMIN_ROLE',
    'AuthorizationGate', 'requires', 'UtilityRateRegistry', 'RateDefaults',
    'ElectricityService', 'compute_units_used', 'RoomService', 'BookingService', 'PaymentService',
    'InvoiceGenerator', 'compute_total_amount',
]
