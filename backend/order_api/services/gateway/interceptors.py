"""
Gateway interceptors.

Each interceptor implements ``dispatch(op, call_next)`` and either forwards a
(possibly rewritten) operation to ``call_next`` or raises. The gateway chains
them in a fixed order:

    membership -> access control -> tenant scope -> soft delete -> audit -> executor
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Mapping, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from shared.config.logging import audit_access_denied, get_logger
from shared.infrastructure.db import utcnow
from shared.security.tenant_context import TenantContext
from shared.utils.exceptions import PermissionDeniedError

from order_api.models import Membership, Restaurant, User
from order_api.services.permissions import evaluate

from .filters import split_key
from .operation import DataAction, DataOperation
from .registry import spec_for

logger = get_logger(__name__)

CallNext = Callable[[DataOperation], Any]


class Interceptor(Protocol):
    def dispatch(self, op: DataOperation, call_next: CallNext) -> Any:
        ...


def _deny(context: TenantContext, op: DataOperation, reason: str) -> PermissionDeniedError:
    audit_access_denied(
        op.entity.value,
        op.action.value,
        user_id=context.user_id,
        restaurant_id=context.restaurant_id,
        reason=reason,
    )
    return PermissionDeniedError(f"{op.action.value} {op.entity.value}", reason=reason)


# =============================================================================
# Membership
# =============================================================================


class MembershipInterceptor:
    """
    Fails closed unless the context's user holds an active membership in the
    context's restaurant. Checked once per gateway instance.
    """

    def __init__(self, db: Session, context: TenantContext):
        self._db = db
        self._context = context
        self._verified: bool | None = None

    def _verify(self) -> bool:
        ctx = self._context
        if ctx.is_system or ctx.restaurant_id is None or ctx.user_id is None:
            # Guests carry no identity to check; scope rules still apply
            return True

        stmt = (
            select(Membership.id)
            .join(User, User.id == Membership.user_id)
            .join(Restaurant, Restaurant.id == Membership.restaurant_id)
            .where(
                Membership.user_id == ctx.user_id,
                Membership.restaurant_id == ctx.restaurant_id,
                Membership.is_active.is_(True),
                User.is_active.is_(True),
                Restaurant.is_active.is_(True),
            )
            .limit(1)
        )
        return self._db.scalar(stmt) is not None

    def dispatch(self, op: DataOperation, call_next: CallNext) -> Any:
        if self._verified is None:
            self._verified = self._verify()
        if not self._verified:
            raise _deny(self._context, op, "no active membership in restaurant")
        return call_next(op)


# =============================================================================
# Access control
# =============================================================================


class AccessControlInterceptor:
    """Evaluates every access-control operation the action implies."""

    def __init__(self, context: TenantContext):
        self._context = context

    def dispatch(self, op: DataOperation, call_next: CallNext) -> Any:
        for operation in op.action.operations:
            decision = evaluate(self._context, op.entity, operation)
            if not decision.allowed:
                raise _deny(self._context, op, decision.reason or "denied")
        return call_next(op)


# =============================================================================
# Tenant scope
# =============================================================================


class TenantScopeInterceptor:
    """
    Confines every operation to the context's restaurant.

    - Filters always get ``<scope column> = restaurant_id``
    - Create payloads get the scope column injected
    - A caller-supplied value naming another restaurant is rejected
    """

    def __init__(self, context: TenantContext):
        self._context = context

    def _check_payload(self, op: DataOperation, column: str, payload: Mapping[str, Any] | None) -> None:
        if payload and column in payload and payload[column] != self._context.restaurant_id:
            raise _deny(self._context, op, "payload targets another restaurant")

    def _scoped_where(self, op: DataOperation, column: str) -> dict[str, Any]:
        restaurant_id = self._context.restaurant_id
        where = dict(op.where)
        for key, value in where.items():
            field, lookup = split_key(key)
            if field != column:
                continue
            if lookup is None and value != restaurant_id:
                raise _deny(self._context, op, "filter targets another restaurant")
            if lookup == "in" and restaurant_id not in list(value):
                raise _deny(self._context, op, "filter targets another restaurant")
        # Remaining lookups on the scope column are ANDed with the equality
        where[column] = restaurant_id
        return where

    def _scoped_payload(self, op: DataOperation, column: str, payload: Mapping[str, Any] | None) -> dict[str, Any]:
        self._check_payload(op, column, payload)
        return {**dict(payload or {}), column: self._context.restaurant_id}

    def dispatch(self, op: DataOperation, call_next: CallNext) -> Any:
        spec = spec_for(op.entity)
        column = spec.scope_column
        if column is None:
            return call_next(op)

        if self._context.restaurant_id is None:
            if self._context.is_system:
                # Maintenance jobs without a restaurant operate across tenants
                return call_next(op)
            raise _deny(self._context, op, "no restaurant in context")

        changes: dict[str, Any] = {}
        if op.action is DataAction.CREATE:
            if spec.scope_on_create:
                changes["data"] = self._scoped_payload(op, column, op.data)
        elif op.action is DataAction.CREATE_MANY:
            if spec.scope_on_create:
                changes["data"] = [self._scoped_payload(op, column, row) for row in op.data or []]
        else:
            changes["where"] = self._scoped_where(op, column)
            if op.action in (DataAction.UPDATE, DataAction.UPDATE_MANY, DataAction.UPSERT):
                # Rows are never re-parented
                self._check_payload(op, column, op.data)
            if op.action is DataAction.UPSERT:
                changes["create_data"] = self._scoped_payload(op, column, op.create_data)

        return call_next(replace(op, **changes))


# =============================================================================
# Soft delete
# =============================================================================


class SoftDeleteInterceptor:
    """Rewrites deletes of soft-deletable entities into deactivating updates."""

    def dispatch(self, op: DataOperation, call_next: CallNext) -> Any:
        if not spec_for(op.entity).soft_delete:
            return call_next(op)
        if op.action not in (DataAction.DELETE, DataAction.DELETE_MANY):
            return call_next(op)

        action = DataAction.UPDATE if op.action is DataAction.DELETE else DataAction.UPDATE_MANY
        logger.debug("Soft delete", entity=op.entity.value, action=op.action.value)
        return call_next(
            replace(
                op,
                action=action,
                data={"is_active": False, "deleted_at": utcnow()},
                soft_delete=True,
            )
        )


# =============================================================================
# Audit
# =============================================================================


class AuditInterceptor:
    """Hands audited mutations to the audit recorder."""

    def __init__(self, recorder, snapshot: Callable[[DataOperation], Any]):
        self._recorder = recorder
        self._snapshot = snapshot

    def dispatch(self, op: DataOperation, call_next: CallNext) -> Any:
        if not op.action.is_mutation or not spec_for(op.entity).audited:
            return call_next(op)
        return self._recorder.wrap(op, call_next, self._snapshot)
