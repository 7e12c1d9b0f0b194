"""
Membership Domain Service.

Invites users into the context's restaurant and deactivates memberships.
Memberships are never hard-deleted: deactivation goes through the gateway's
soft-delete rule and keeps the row for the audit trail.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from shared.config.constants import Role
from shared.config.logging import get_logger
from shared.infrastructure.db import transaction
from shared.security.tenant_context import TenantContext
from shared.utils.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

from order_api.models import Membership
from order_api.services.audit import AuditContext
from order_api.services.gateway import TenantScopedGateway
from order_api.services.permissions import EntityKind, Operation, PermissionContext

logger = get_logger(__name__)


class MembershipService:
    def __init__(self, db: Session, context: TenantContext, audit_context: AuditContext | None = None):
        self._db = db
        self._context = context
        self._gateway = TenantScopedGateway(db, context, audit_context=audit_context)

    def _check_grantable(self, role: Role) -> None:
        if self._context.is_system:
            return
        if self._context.role is None or role > self._context.role:
            raise PermissionDeniedError(
                f"grant role {role.name}",
                reason="cannot grant a role above your own",
            )

    def invite(self, user_id: str, role: Role | str) -> Membership:
        """
        Add ``user_id`` to the context's restaurant with ``role``.

        An inactive membership for the same user is reactivated with the new
        role instead of creating a second row.

        Raises:
            PermissionDeniedError: inviter below ADMIN, or role above the inviter's
            NotFoundError: unknown or inactive user
            ConflictError: user already holds an active membership
        """
        parsed = Role.parse(role)
        if parsed is None:
            raise ValidationError(f"Unknown role '{role}'", field="role")
        PermissionContext(self._context).require(Operation.CREATE, EntityKind.MEMBERSHIP)
        self._check_grantable(parsed)

        with transaction(self._db):
            user = self._gateway.find_first(EntityKind.USER, where={"id": user_id, "is_active": True})
            if user is None:
                raise NotFoundError("User", user_id)

            existing = self._gateway.find_first(EntityKind.MEMBERSHIP, where={"user_id": user_id})
            if existing is not None and existing.is_active:
                raise ConflictError("User is already a member of this restaurant", user_id=user_id)

            if existing is not None:
                membership = self._gateway.update(
                    EntityKind.MEMBERSHIP,
                    where={"id": existing.id},
                    data={
                        "role": parsed.name,
                        "is_active": True,
                        "deleted_at": None,
                        "invited_by_id": self._context.user_id,
                    },
                )
            else:
                membership = self._gateway.create(
                    EntityKind.MEMBERSHIP,
                    {
                        "user_id": user_id,
                        "role": parsed.name,
                        "invited_by_id": self._context.user_id,
                    },
                )

        logger.info(
            "Membership granted",
            membership_id=membership.id,
            user_id=user_id,
            restaurant_id=membership.restaurant_id,
            role=parsed.name,
            reactivated=existing is not None,
        )
        return membership

    def deactivate(self, membership_id: str) -> Membership:
        """
        Soft-deactivate a membership. A member cannot remove someone holding a
        higher role than their own.
        """
        with transaction(self._db):
            membership = self._gateway.find_first(
                EntityKind.MEMBERSHIP, where={"id": membership_id, "is_active": True}
            )
            if membership is None:
                raise NotFoundError("Membership", membership_id)
            self._check_grantable(Role.parse(membership.role) or Role.OWNER)
            membership = self._gateway.delete(EntityKind.MEMBERSHIP, where={"id": membership_id})

        logger.info("Membership deactivated", membership_id=membership_id, user_id=membership.user_id)
        return membership
