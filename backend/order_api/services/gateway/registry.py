"""
Entity registry: maps each EntityKind to its model and gateway behaviour.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from order_api.models import (
    AuditLogEntry,
    Base,
    Membership,
    MenuItem,
    MenuVersion,
    Order,
    OrderItem,
    Restaurant,
    Table,
    User,
)
from order_api.services.permissions import EntityKind


@dataclass(frozen=True)
class EntitySpec:
    model: type[Base]
    # Column holding the owning restaurant (None = not tenant scoped)
    scope_column: str | None = "restaurant_id"
    # Deletes become is_active=False updates
    soft_delete: bool = False
    audited: bool = True
    # Scope value is injected into create payloads
    scope_on_create: bool = True


ENTITY_REGISTRY: Final[dict[EntityKind, EntitySpec]] = {
    # Identity is global, not tenant-owned
    EntityKind.USER: EntitySpec(User, scope_column=None, soft_delete=True),
    EntityKind.RESTAURANT: EntitySpec(
        Restaurant, scope_column="id", soft_delete=True, scope_on_create=False
    ),
    EntityKind.MEMBERSHIP: EntitySpec(Membership, soft_delete=True),
    EntityKind.TABLE: EntitySpec(Table, soft_delete=True),
    EntityKind.MENU_VERSION: EntitySpec(MenuVersion, soft_delete=True),
    EntityKind.MENU_ITEM: EntitySpec(MenuItem, soft_delete=True),
    EntityKind.ORDER: EntitySpec(Order),
    EntityKind.ORDER_ITEM: EntitySpec(OrderItem),
    EntityKind.AUDIT_LOG: EntitySpec(AuditLogEntry, audited=False),
}


def spec_for(entity: EntityKind) -> EntitySpec:
    return ENTITY_REGISTRY[entity]
