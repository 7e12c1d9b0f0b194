"""
Access control rules: minimum role per (entity, operation).

The table is closed over EntityKind and Operation, so a misspelled entity
cannot silently fall through to "no rule". Pairs without a rule are denied.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final

from shared.config.constants import Role


class EntityKind(str, Enum):
    """Entities reachable through the tenant-scoped data gateway."""

    USER = "User"
    RESTAURANT = "Restaurant"
    MEMBERSHIP = "Membership"
    TABLE = "Table"
    MENU_VERSION = "MenuVersion"
    MENU_ITEM = "MenuItem"
    ORDER = "Order"
    ORDER_ITEM = "OrderItem"
    AUDIT_LOG = "AuditLog"


class Operation(str, Enum):
    READ = "read"
    LIST = "list"
    COUNT = "count"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def _crud(read: Role, create: Role, update: Role, delete: Role, list_: Role | None = None):
    listing = list_ if list_ is not None else read
    return {
        Operation.READ: read,
        Operation.LIST: listing,
        Operation.COUNT: listing,
        Operation.CREATE: create,
        Operation.UPDATE: update,
        Operation.DELETE: delete,
    }


_RULES_BY_ENTITY: Final[dict[EntityKind, dict[Operation, Role]]] = {
    EntityKind.USER: _crud(
        read=Role.CUSTOMER, list_=Role.MANAGER,
        create=Role.ADMIN, update=Role.ADMIN, delete=Role.OWNER,
    ),
    EntityKind.RESTAURANT: _crud(
        read=Role.CUSTOMER, create=Role.OWNER, update=Role.ADMIN, delete=Role.OWNER,
    ),
    EntityKind.MEMBERSHIP: _crud(
        read=Role.STAFF, list_=Role.MANAGER,
        create=Role.ADMIN, update=Role.ADMIN, delete=Role.ADMIN,
    ),
    EntityKind.TABLE: _crud(
        read=Role.CUSTOMER, create=Role.MANAGER, update=Role.MANAGER, delete=Role.MANAGER,
    ),
    EntityKind.MENU_VERSION: _crud(
        read=Role.CUSTOMER, create=Role.MANAGER, update=Role.MANAGER, delete=Role.MANAGER,
    ),
    EntityKind.MENU_ITEM: _crud(
        read=Role.CUSTOMER, create=Role.MANAGER, update=Role.MANAGER, delete=Role.MANAGER,
    ),
    # Customers list and count orders too: listings are narrowed to their own
    # orders by OrderService, and counting feeds order-number allocation.
    EntityKind.ORDER: _crud(
        read=Role.CUSTOMER, create=Role.CUSTOMER, update=Role.STAFF, delete=Role.MANAGER,
    ),
    # Lines are written once with their order and never edited
    EntityKind.ORDER_ITEM: {
        Operation.READ: Role.CUSTOMER,
        Operation.LIST: Role.CUSTOMER,
        Operation.COUNT: Role.CUSTOMER,
        Operation.CREATE: Role.CUSTOMER,
    },
    # Append-only trail
    EntityKind.AUDIT_LOG: {
        Operation.READ: Role.ADMIN,
        Operation.LIST: Role.ADMIN,
        Operation.COUNT: Role.ADMIN,
        Operation.CREATE: Role.CUSTOMER,
    },
}

ACCESS_RULES: Final[dict[tuple[EntityKind, Operation], Role]] = {
    (entity, operation): role
    for entity, rules in _RULES_BY_ENTITY.items()
    for operation, role in rules.items()
}


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = AccessDecision(True)


def minimum_role(entity: EntityKind, operation: Operation) -> Role | None:
    return ACCESS_RULES.get((entity, operation))


def evaluate(context, entity: EntityKind, operation: Operation) -> AccessDecision:
    """
    Decide whether ``context`` may perform ``operation`` on ``entity``.

    Pure function of the rule table and the context's role. System contexts
    are always allowed; a missing role or a pair without a rule is denied.
    """
    if context.is_system:
        return ALLOW

    required = minimum_role(entity, operation)
    if required is None:
        return AccessDecision(False, f"no rule allows {operation.value} on {entity.value}")

    if context.role is None:
        return AccessDecision(False, "no role")

    if context.role < required:
        return AccessDecision(
            False,
            f"{operation.value} on {entity.value} requires {required.name}, "
            f"caller is {context.role.name}",
        )
    return ALLOW
