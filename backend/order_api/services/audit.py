"""
Audit recorder.
Captures before/after state around audited mutations and appends one
AuditLogEntry per logical operation.

Audit is secondary to the business write: a failure to persist an entry is
reported on the ``ops.audit`` channel and never propagates to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Mapping, Sequence

from fastapi import Request
from sqlalchemy.orm import Session

from shared.config.constants import AuditAction
from shared.config.logging import get_logger, ops_audit_logger
from shared.infrastructure.db import utcnow
from shared.security.tenant_context import TenantContext

from order_api.models import AuditLogEntry
from order_api.services.gateway.operation import DataAction, DataOperation
from order_api.services.permissions import EntityKind

logger = get_logger(__name__)

REDACTED = "[REDACTED]"

# Matched case-insensitively as substrings of the normalized key
# ("api_key", "apiKey" and "API-KEY" all normalize to "apikey")
SENSITIVE_FIELDS = (
    "password",
    "passwordhash",
    "token",
    "refreshtoken",
    "secret",
    "apikey",
    "privatekey",
)

_ACTION_MAP: dict[DataAction, AuditAction] = {
    DataAction.CREATE: AuditAction.CREATE,
    DataAction.CREATE_MANY: AuditAction.CREATE,
    DataAction.UPDATE: AuditAction.UPDATE,
    DataAction.UPDATE_MANY: AuditAction.UPDATE,
    DataAction.UPSERT: AuditAction.UPDATE,
    DataAction.DELETE: AuditAction.DELETE,
    DataAction.DELETE_MANY: AuditAction.DELETE,
}


# =============================================================================
# Request context
# =============================================================================


@dataclass(frozen=True)
class AuditContext:
    """Request facts stamped on every entry."""

    ip_address: str | None = None
    user_agent: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


def client_ip(request: Request) -> str | None:
    """First X-Forwarded-For hop, then X-Real-IP, CF-Connecting-IP, peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    for header in ("x-real-ip", "cf-connecting-ip"):
        value = request.headers.get(header)
        if value:
            return value
    return request.client.host if request.client else None


def create_audit_context(request: Request) -> AuditContext:
    return AuditContext(
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        metadata={
            "timestamp": utcnow().isoformat(),
            "method": request.method,
            "url": str(request.url),
        },
    )


# =============================================================================
# Serialization and redaction
# =============================================================================


def _json_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(k): _json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_value(v) for v in value]
    return value


def serialize_model(obj: Any) -> dict[str, Any]:
    """
    Copy a model's column values into a JSON-ready dict.

    The copy is taken immediately so later mutation of ``obj`` cannot alter
    a captured pre-image.
    """
    return {key: _json_value(value) for key, value in obj.to_dict().items()}


def _is_sensitive(key: str) -> bool:
    normalized = key.lower().replace("_", "").replace("-", "")
    return any(token in normalized for token in SENSITIVE_FIELDS)


def sanitize(value: Any) -> Any:
    """Replace values of secret-like keys with a marker, recursively."""
    if isinstance(value, Mapping):
        return {
            k: REDACTED if _is_sensitive(str(k)) else sanitize(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [sanitize(v) for v in value]
    return value


# =============================================================================
# Recorder
# =============================================================================


class AuditRecorder:
    """
    Wraps audited gateway operations and records custom events.

    Usage:
        recorder = AuditRecorder(db, ctx, audit_context)
        recorder.log_custom_event(AuditAction.LOGIN, "User", record_id=user.id)
    """

    def __init__(self, db: Session, context: TenantContext, audit_context: AuditContext | None = None):
        self._db = db
        self._context = context
        self._audit_context = audit_context or AuditContext()

    def wrap(
        self,
        op: DataOperation,
        call_next: Callable[[DataOperation], Any],
        snapshot: Callable[[DataOperation], Sequence[Any]],
    ) -> Any:
        """
        Execute ``op`` with pre-image capture, then append one audit entry.
        """
        before_rows: list[dict[str, Any]] | None = None
        if op.action in (
            DataAction.UPDATE,
            DataAction.UPDATE_MANY,
            DataAction.UPSERT,
            DataAction.DELETE,
            DataAction.DELETE_MANY,
        ):
            before_rows = [serialize_model(row) for row in snapshot(op)]

        result = call_next(op)

        try:
            entry = self._build_entry(op, before_rows, result)
        except Exception:
            ops_audit_logger.error(
                "Audit entry could not be built",
                entity=op.entity.value,
                action=op.action.value,
                exc_info=True,
            )
            return result

        self._persist(entry)
        return result

    def _build_entry(
        self,
        op: DataOperation,
        before_rows: list[dict[str, Any]] | None,
        result: Any,
    ) -> AuditLogEntry:
        action = AuditAction.DELETE if op.soft_delete else _ACTION_MAP[op.action]

        before_state: Any = None
        if before_rows is not None:
            if op.action.is_bulk:
                before_state = before_rows
            else:
                before_state = before_rows[0] if before_rows else None

        after_state: Any
        record: dict[str, Any] | None = None
        if op.action is DataAction.CREATE_MANY:
            after_state = {"records_created": result}
        elif op.action in (DataAction.UPDATE_MANY, DataAction.DELETE_MANY):
            after_state = {"records_affected": result}
        elif op.action is DataAction.DELETE:
            after_state = None
            record = before_state
        else:
            record = serialize_model(result)
            after_state = record

        return AuditLogEntry(
            user_id=self._context.user_id,
            restaurant_id=self._restaurant_id(record),
            order_id=self._order_id(op, record),
            action=action.value,
            table_name=op.entity.value,
            record_id=record.get("id") if record else None,
            before_state=sanitize(before_state),
            after_state=sanitize(after_state),
            ip_address=self._audit_context.ip_address,
            user_agent=self._audit_context.user_agent,
            metadata_=self._metadata(),
        )

    def _restaurant_id(self, record: dict[str, Any] | None) -> str | None:
        if self._context.restaurant_id:
            return self._context.restaurant_id
        if record:
            return record.get("restaurant_id")
        return None

    @staticmethod
    def _order_id(op: DataOperation, record: dict[str, Any] | None) -> str | None:
        if op.entity is EntityKind.ORDER:
            return record.get("id") if record else None
        if op.entity is EntityKind.ORDER_ITEM:
            if record:
                return record.get("order_id")
            if op.action is DataAction.CREATE_MANY:
                order_ids = {row.get("order_id") for row in op.data or []}
                if len(order_ids) == 1:
                    return order_ids.pop()
        return None

    def _metadata(self, extra: Mapping[str, Any] | None = None) -> dict[str, Any]:
        metadata = dict(self._audit_context.metadata)
        if self._context.is_system:
            metadata["system"] = True
        if extra:
            metadata.update(_json_value(extra))
        return metadata

    def _persist(self, entry: AuditLogEntry) -> bool:
        """
        Insert inside a SAVEPOINT so a failed audit insert rolls back alone
        and leaves the business transaction usable.
        """
        try:
            with self._db.begin_nested():
                self._db.add(entry)
            return True
        except Exception:
            ops_audit_logger.error(
                "AuditPersistenceFailure",
                table_name=entry.table_name,
                action=entry.action,
                record_id=entry.record_id,
                restaurant_id=entry.restaurant_id,
                exc_info=True,
            )
            return False

    def log_custom_event(
        self,
        action: AuditAction,
        table_name: str,
        record_id: str | None = None,
        before: Mapping[str, Any] | None = None,
        after: Mapping[str, Any] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> bool:
        """
        Record an event that is not a gateway mutation (LOGIN, LOGOUT, EXPORT, IMPORT).
        Returns False if the entry could not be persisted.
        """
        entry = AuditLogEntry(
            user_id=self._context.user_id,
            restaurant_id=self._context.restaurant_id,
            action=AuditAction(action).value,
            table_name=table_name,
            record_id=record_id,
            before_state=sanitize(_json_value(before)) if before is not None else None,
            after_state=sanitize(_json_value(after)) if after is not None else None,
            ip_address=self._audit_context.ip_address,
            user_agent=self._audit_context.user_agent,
            metadata_=sanitize(self._metadata(metadata)),
        )
        return self._persist(entry)
