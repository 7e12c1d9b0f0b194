"""
Tenant-scoped data gateway.

The only path service code takes to the data store. Every call is turned into
a DataOperation and run through the interceptor pipeline, so scope, role and
audit rules apply whether or not the caller remembered them.

Usage:
    gateway = TenantScopedGateway(db, ctx, audit_context=audit_ctx)
    order = gateway.find_first(EntityKind.ORDER, where={"id": order_id})
"""

from __future__ import annotations

from functools import partial
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy.orm import Session

from shared.security.tenant_context import TenantContext

from order_api.services.permissions import EntityKind

from .executor import SQLAlchemyExecutor
from .interceptors import (
    AccessControlInterceptor,
    AuditInterceptor,
    Interceptor,
    MembershipInterceptor,
    SoftDeleteInterceptor,
    TenantScopeInterceptor,
)
from .operation import DataAction, DataOperation


class TenantScopedGateway:
    def __init__(
        self,
        db: Session,
        context: TenantContext,
        audit_context=None,
    ):
        # Import here to avoid circular imports (the recorder uses gateway types)
        from order_api.services.audit import AuditRecorder

        self._db = db
        self._context = context
        self._executor = SQLAlchemyExecutor(db)
        self._recorder = AuditRecorder(db, context, audit_context)
        self._interceptors: list[Interceptor] = [
            MembershipInterceptor(db, context),
            AccessControlInterceptor(context),
            TenantScopeInterceptor(context),
            SoftDeleteInterceptor(),
            AuditInterceptor(self._recorder, self._executor.snapshot),
        ]
        self._handler = self._build_chain()

    def _build_chain(self):
        handler = self._executor
        for interceptor in reversed(self._interceptors):
            handler = partial(interceptor.dispatch, call_next=handler)
        return handler

    @property
    def db(self) -> Session:
        return self._db

    @property
    def context(self) -> TenantContext:
        return self._context

    @property
    def recorder(self):
        return self._recorder

    def execute(self, op: DataOperation) -> Any:
        return self._handler(op)

    # =========================================================================
    # Reads
    # =========================================================================

    def find_first(
        self,
        entity: EntityKind,
        where: Mapping[str, Any] | None = None,
        order_by: Sequence[str] = (),
    ) -> Any | None:
        return self.execute(
            DataOperation(entity, DataAction.FIND_FIRST, where=dict(where or {}), order_by=tuple(order_by))
        )

    def find_many(
        self,
        entity: EntityKind,
        where: Mapping[str, Any] | None = None,
        order_by: Sequence[str] = (),
        offset: int | None = None,
        limit: int | None = None,
    ) -> list[Any]:
        return self.execute(
            DataOperation(
                entity,
                DataAction.FIND_MANY,
                where=dict(where or {}),
                order_by=tuple(order_by),
                offset=offset,
                limit=limit,
            )
        )

    def count(self, entity: EntityKind, where: Mapping[str, Any] | None = None) -> int:
        return self.execute(DataOperation(entity, DataAction.COUNT, where=dict(where or {})))

    # =========================================================================
    # Writes
    # =========================================================================

    def create(self, entity: EntityKind, data: Mapping[str, Any]) -> Any:
        return self.execute(DataOperation(entity, DataAction.CREATE, data=dict(data)))

    def create_many(self, entity: EntityKind, rows: Iterable[Mapping[str, Any]]) -> int:
        return self.execute(
            DataOperation(entity, DataAction.CREATE_MANY, data=[dict(row) for row in rows])
        )

    def update(self, entity: EntityKind, where: Mapping[str, Any], data: Mapping[str, Any]) -> Any:
        return self.execute(DataOperation(entity, DataAction.UPDATE, where=dict(where), data=dict(data)))

    def update_many(self, entity: EntityKind, where: Mapping[str, Any], data: Mapping[str, Any]) -> int:
        return self.execute(
            DataOperation(entity, DataAction.UPDATE_MANY, where=dict(where), data=dict(data))
        )

    def upsert(
        self,
        entity: EntityKind,
        where: Mapping[str, Any],
        create: Mapping[str, Any],
        update: Mapping[str, Any],
    ) -> Any:
        return self.execute(
            DataOperation(
                entity,
                DataAction.UPSERT,
                where=dict(where),
                data=dict(update),
                create_data=dict(create),
            )
        )

    def delete(self, entity: EntityKind, where: Mapping[str, Any]) -> Any:
        return self.execute(DataOperation(entity, DataAction.DELETE, where=dict(where)))

    def delete_many(self, entity: EntityKind, where: Mapping[str, Any]) -> int:
        return self.execute(DataOperation(entity, DataAction.DELETE_MANY, where=dict(where)))
