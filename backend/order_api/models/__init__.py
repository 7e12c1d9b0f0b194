"""
SQLAlchemy ORM Models Package.

- base: Base class, TimestampMixin, SoftDeleteMixin
- user: User
- tenant: Restaurant, Membership
- table: Table
- menu: MenuVersion, MenuItem
- order: Order, OrderItem
- audit: AuditLogEntry
"""

from .base import Base, SoftDeleteMixin, TimestampMixin, new_id
from .user import User
from .tenant import Restaurant, Membership
from .table import Table
from .menu import MenuVersion, MenuItem
from .order import Order, OrderItem
from .audit import AuditLogEntry

__all__ = [
    "Base",
    "SoftDeleteMixin",
    "TimestampMixin",
    "new_id",
    "User",
    "Restaurant",
    "Membership",
    "Table",
    "MenuVersion",
    "MenuItem",
    "Order",
    "OrderItem",
    "AuditLogEntry",
]
