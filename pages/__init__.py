"""页面模块导出"""
from .rooms import page_rooms
from .bookings import page_bookings, page_book_room, page_my_bookings
from .utilities import page_electricity, page_utility_settings
from .invoices import page_invoices, page_my_invoices
from .roles import page_roles

__all__ = [
    'page_rooms', 'page_bookings', 'page_book_room', 'page_my_bookings',
    'page_electricity', 'page_utility_settings', 'page_invoices', 'page_my_invoices',
    'page_roles',
]
