"""
Centralized constants for the backend application.
Avoid magic strings and repeated constants.

Usage:
    from shared.config.constants import Role, OrderStatus, ORDER_TRANSITIONS

    if context.role >= Role.MANAGER:
        ...

    if target in ORDER_TRANSITIONS[order.status]:
        ...
"""

from enum import Enum, IntEnum
from typing import Final


# =============================================================================
# Membership Roles
# =============================================================================


class Role(IntEnum):
    """
    Membership role, totally ordered by privilege.

    Integer values allow direct comparison: ``Role.ADMIN >= Role.MANAGER``.
    """

    CUSTOMER = 1
    STAFF = 2
    MANAGER = 3
    ADMIN = 4
    OWNER = 5

    @classmethod
    def parse(cls, value: "str | int | Role | None") -> "Role | None":
        """Lenient lookup by name or level. Unknown values return None."""
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                return None
        return cls.__members__.get(str(value).upper())


# Permission strings embedded in issued tokens
ROLE_PERMISSIONS: Final[dict[Role, tuple[str, ...]]] = {
    Role.CUSTOMER: ("orders:create", "orders:read:own", "menu:read"),
    Role.STAFF: ("orders:read", "orders:update", "menu:read", "tables:read"),
    Role.MANAGER: (
        "orders:*",
        "menu:*",
        "tables:*",
        "staff:read",
        "analytics:read",
    ),
    Role.ADMIN: ("*",),
    Role.OWNER: ("*",),
}


# =============================================================================
# Entity Status Constants
# =============================================================================


class OrderStatus(str, Enum):
    """Order status values."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    READY = "READY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


TERMINAL_ORDER_STATUSES: Final[frozenset[OrderStatus]] = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
)


class MenuItemStatus:
    """Menu item availability constants."""

    AVAILABLE: Final[str] = "AVAILABLE"
    UNAVAILABLE: Final[str] = "UNAVAILABLE"


class AuditAction(str, Enum):
    """Actions recorded in the audit trail."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    EXPORT = "EXPORT"
    IMPORT = "IMPORT"


# =============================================================================
# Status Transitions
# =============================================================================

# Valid order status transitions (from -> [allowed to states])
# PENDING → CONFIRMED → PREPARING → READY → DELIVERED, CANCELLED from any non-terminal
ORDER_TRANSITIONS: Final[dict[OrderStatus, frozenset[OrderStatus]]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),  # Terminal state
    OrderStatus.CANCELLED: frozenset(),  # Terminal state
}

# Timestamp column stamped when an order enters the given status
ORDER_STATUS_TIMESTAMPS: Final[dict[OrderStatus, str]] = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.DELIVERED: "completed_at",
    OrderStatus.CANCELLED: "completed_at",
}


# =============================================================================
# Validation Constants
# =============================================================================


class Limits:
    """Validation limits."""

    # Quantity limits
    MIN_QUANTITY: Final[int] = 1
    MAX_QUANTITY: Final[int] = 99
    MAX_ORDER_LINES: Final[int] = 100

    # String lengths
    MAX_NAME_LENGTH: Final[int] = 200
    MAX_NOTES_LENGTH: Final[int] = 1000
    MAX_REQUEST_ID_LENGTH: Final[int] = 255

    # Estimated preparation time bounds (minutes)
    MIN_ESTIMATED_MINUTES: Final[int] = 5
    MAX_ESTIMATED_MINUTES: Final[int] = 60
    DEFAULT_PREP_MINUTES: Final[int] = 10
    # Aggregate prep minutes are divided by this factor (parallel kitchen work)
    PREP_PARALLELISM_FACTOR: Final[int] = 10

    # Order number sequence
    ORDER_NUMBER_PREFIX: Final[str] = "ORD"
    ORDER_SEQUENCE_DIGITS: Final[int] = 3


# =============================================================================
# Event Types (for Redis pub/sub)
# =============================================================================


class EventType:
    """Redis event type constants."""

    ORDER_CREATED: Final[str] = "ORDER_CREATED"
    ORDER_STATUS_CHANGED: Final[str] = "ORDER_STATUS_CHANGED"


# =============================================================================
# HTTP headers
# =============================================================================


class Headers:
    """Header names shared across the HTTP layer."""

    IDEMPOTENCY_KEY: Final[str] = "Idempotency-Key"
    IDEMPOTENCY_KEY_ALT: Final[str] = "X-Idempotency-Key"
    IDEMPOTENT_REPLAYED: Final[str] = "Idempotent-Replayed"
    REQUEST_ID: Final[str] = "X-Request-ID"
