"""
Audit Log Model.

Append-only: the ORM refuses to UPDATE or DELETE existing rows.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Index, String, Text, event, func
from sqlalchemy.orm import Mapped, mapped_column

from shared.utils.exceptions import AuditLogImmutableError

from .base import Base, id_column


class AuditLogEntry(Base):
    """
    One audited operation with its before/after state.

    restaurant_id / user_id / order_id are plain columns (no foreign keys) so
    the trail outlives deactivated tenants and is untouched by their cascades.
    """

    __tablename__ = "audit_log"

    id: Mapped[str] = id_column()
    user_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    restaurant_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    order_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)

    action: Mapped[str] = mapped_column(String(20), nullable=False)
    table_name: Mapped[str] = mapped_column(String(64), nullable=False)
    record_id: Mapped[Optional[str]] = mapped_column(String(36))

    before_state: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    after_state: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    ip_address: Mapped[Optional[str]] = mapped_column(String(64))
    user_agent: Mapped[Optional[str]] = mapped_column(Text)
    metadata_: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_audit_log_restaurant_table", "restaurant_id", "table_name"),
        Index("ix_audit_log_created", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<AuditLogEntry(id={self.id}, action='{self.action}', table='{self.table_name}')>"


@event.listens_for(AuditLogEntry, "before_update")
def _reject_audit_update(mapper, connection, target) -> None:
    raise AuditLogImmutableError(f"Audit log entry {target.id} cannot be modified")


@event.listens_for(AuditLogEntry, "before_delete")
def _reject_audit_delete(mapper, connection, target) -> None:
    raise AuditLogImmutableError(f"Audit log entry {target.id} cannot be deleted")
