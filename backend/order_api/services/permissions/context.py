"""
Permission Context - role checks for service code.
"""

from shared.config.constants import Role
from shared.config.logging import audit_access_denied
from shared.security.tenant_context import TenantContext
from shared.utils.exceptions import PermissionDeniedError

from .rules import AccessDecision, EntityKind, Operation, evaluate


class PermissionContext:
    """
    Wraps a TenantContext with convenience checks.

    Usage:
        perms = PermissionContext(ctx)

        if perms.can(Operation.UPDATE, EntityKind.ORDER):
            ...

        perms.require(Operation.DELETE, EntityKind.RESTAURANT)
    """

    def __init__(self, context: TenantContext):
        self._context = context

    @property
    def context(self) -> TenantContext:
        return self._context

    @property
    def role(self) -> Role | None:
        return self._context.role

    def check(self, operation: Operation, entity: EntityKind) -> AccessDecision:
        return evaluate(self._context, entity, operation)

    def can(self, operation: Operation, entity: EntityKind) -> bool:
        return self.check(operation, entity).allowed

    def require(self, operation: Operation, entity: EntityKind) -> None:
        """Raise PermissionDeniedError if the operation is not allowed."""
        decision = self.check(operation, entity)
        if not decision.allowed:
            audit_access_denied(
                entity.value,
                operation.value,
                user_id=self._context.user_id,
                restaurant_id=self._context.restaurant_id,
                reason=decision.reason,
            )
            raise PermissionDeniedError(
                f"{operation.value} {entity.value}",
                reason=decision.reason,
            )

    def require_role(self, minimum: Role) -> None:
        if self._context.is_system:
            return
        if not self._context.at_least(minimum):
            raise PermissionDeniedError(
                f"perform this action (requires {minimum.name})",
                reason="insufficient role",
            )
