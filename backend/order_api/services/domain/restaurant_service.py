"""
Restaurant Domain Service.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from shared.config.constants import Role
from shared.config.logging import get_logger
from shared.infrastructure.db import transaction
from shared.security.tenant_context import TenantContext
from shared.utils.exceptions import NotFoundError

from order_api.services.audit import AuditContext
from order_api.services.gateway import TenantScopedGateway
from order_api.services.permissions import EntityKind, PermissionContext

logger = get_logger(__name__)

# Children deactivated with their restaurant, leaves first.
# Orders and audit entries are history and stay untouched.
CASCADE_ENTITIES = (
    EntityKind.MENU_ITEM,
    EntityKind.MENU_VERSION,
    EntityKind.TABLE,
    EntityKind.MEMBERSHIP,
)


class RestaurantService:
    def __init__(self, db: Session, context: TenantContext, audit_context: AuditContext | None = None):
        self._db = db
        self._context = context
        self._gateway = TenantScopedGateway(db, context, audit_context=audit_context)

    def deactivate(self) -> dict[str, int]:
        """
        Soft-delete the context's restaurant and its active tables, menus and
        memberships in one transaction. OWNER only.

        Returns the number of rows deactivated per entity.
        """
        PermissionContext(self._context).require_role(Role.OWNER)

        affected: dict[str, int] = {}
        with transaction(self._db):
            restaurant = self._gateway.find_first(EntityKind.RESTAURANT, where={"is_active": True})
            if restaurant is None:
                raise NotFoundError("Restaurant", self._context.restaurant_id)

            for entity in CASCADE_ENTITIES:
                affected[entity.value] = self._gateway.delete_many(entity, where={"is_active": True})

            self._gateway.delete(EntityKind.RESTAURANT, where={"id": restaurant.id})
            affected[EntityKind.RESTAURANT.value] = 1

        logger.info("Restaurant deactivated", restaurant_id=self._context.restaurant_id, **affected)
        return affected
