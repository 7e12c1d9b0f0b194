"""
Tests for the audit recorder: captured state, redaction, failure isolation
and immutability of the trail.
"""

from decimal import Decimal
from unittest import mock

import pytest
from sqlalchemy import select
from starlette.requests import Request

from shared.config.constants import AuditAction, Role
from shared.utils.exceptions import AuditLogImmutableError

from order_api.models import AuditLogEntry, Table
from order_api.services.audit import (
    REDACTED,
    AuditContext,
    AuditRecorder,
    client_ip,
    create_audit_context,
    sanitize,
)
from order_api.services.gateway import TenantScopedGateway
from order_api.services.permissions import EntityKind


def make_request(headers: dict[str, str], client=("127.0.0.1", 5000)) -> Request:
    return Request({
        "type": "http",
        "method": "POST",
        "scheme": "http",
        "server": ("testserver", 80),
        "path": "/api/orders",
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": client,
    })


def entries(db_session):
    return db_session.scalars(select(AuditLogEntry)).all()


class TestRecordedState:
    def test_create_records_after_state(self, db_session, world, context_for):
        audit_ctx = AuditContext(ip_address="198.51.100.7", user_agent="pytest")
        gateway = TenantScopedGateway(db_session, context_for(Role.MANAGER), audit_context=audit_ctx)

        table = gateway.create(EntityKind.TABLE, {"number": 5})
        db_session.commit()

        [entry] = entries(db_session)
        assert entry.action == "CREATE"
        assert entry.table_name == "Table"
        assert entry.record_id == table.id
        assert entry.before_state is None
        assert entry.after_state["number"] == 5
        assert entry.user_id == world.users[Role.MANAGER].id
        assert entry.restaurant_id == world.main.id
        assert entry.ip_address == "198.51.100.7"
        assert entry.user_agent == "pytest"

    def test_update_records_before_and_after(self, db_session, world, context_for):
        gateway = TenantScopedGateway(db_session, context_for(Role.MANAGER))

        gateway.update(EntityKind.MENU_ITEM, where={"id": world.pizza.id}, data={"price": Decimal("13.50")})
        db_session.commit()

        [entry] = entries(db_session)
        assert entry.action == "UPDATE"
        assert entry.before_state["price"] == "12.99"
        assert entry.after_state["price"] == "13.50"

    def test_reads_are_not_audited(self, db_session, world, context_for):
        gateway = TenantScopedGateway(db_session, context_for(Role.MANAGER))

        gateway.find_many(EntityKind.TABLE)
        gateway.count(EntityKind.MENU_ITEM)
        db_session.commit()

        assert entries(db_session) == []

    def test_bulk_update_records_count(self, db_session, world, context_for):
        gateway = TenantScopedGateway(db_session, context_for(Role.MANAGER))

        gateway.update_many(EntityKind.TABLE, where={"is_active": True}, data={"name": "Renamed"})
        db_session.commit()

        [entry] = entries(db_session)
        assert entry.after_state == {"records_affected": 1}
        assert [row["id"] for row in entry.before_state] == [world.table.id]

    def test_hard_delete_records_pre_image(self, db_session, world, context_for):
        gateway = TenantScopedGateway(db_session, context_for(Role.CUSTOMER))
        gateway.create(EntityKind.ORDER, {
            "order_number": "ORD-20250101-001",
            "subtotal": Decimal("10.00"), "tax": Decimal("1.00"), "total": Decimal("11.00"),
        })
        db_session.commit()
        order_id = entries(db_session)[0].record_id

        TenantScopedGateway(db_session, context_for(Role.MANAGER)).delete(
            EntityKind.ORDER, where={"id": order_id}
        )
        db_session.commit()

        deleted = db_session.scalars(
            select(AuditLogEntry).where(AuditLogEntry.action == "DELETE")
        ).one()
        assert deleted.action == "DELETE"
        assert deleted.record_id == order_id
        assert deleted.order_id == order_id
        assert deleted.before_state["order_number"] == "ORD-20250101-001"
        assert deleted.after_state is None


class TestRedaction:
    def test_sensitive_keys_are_redacted(self):
        state = {
            "email": "a@b.test",
            "password": "hunter2",
            "apiKey": "k",
            "refresh_token": "t",
            "nested": {"client_secret": "s", "keep": 1},
            "rows": [{"passwordHash": "x"}],
        }

        clean = sanitize(state)

        assert clean["email"] == "a@b.test"
        assert clean["password"] == REDACTED
        assert clean["apiKey"] == REDACTED
        assert clean["refresh_token"] == REDACTED
        assert clean["nested"] == {"client_secret": REDACTED, "keep": 1}
        assert clean["rows"] == [{"passwordHash": REDACTED}]
        # Input is left untouched
        assert state["password"] == "hunter2"

    def test_custom_event_is_sanitized(self, db_session, world, context_for):
        recorder = AuditRecorder(db_session, context_for(Role.ADMIN))

        assert recorder.log_custom_event(
            AuditAction.EXPORT,
            "Order",
            after={"rows": 3, "token": "abc"},
            metadata={"api_key": "zzz", "format": "csv"},
        )
        db_session.commit()

        [entry] = entries(db_session)
        assert entry.action == "EXPORT"
        assert entry.after_state == {"rows": 3, "token": REDACTED}
        assert entry.metadata_["api_key"] == REDACTED
        assert entry.metadata_["format"] == "csv"


class TestFailureIsolation:
    """A failed audit insert never undoes or blocks the business write."""

    def test_business_write_survives_audit_failure(self, db_session, world, context_for):
        gateway = TenantScopedGateway(db_session, context_for(Role.MANAGER))
        # The audit insert will fail with "no such table"
        AuditLogEntry.__table__.drop(db_session.connection())

        with mock.patch("order_api.services.audit.ops_audit_logger") as ops_logger:
            table = gateway.create(EntityKind.TABLE, {"number": 8})
            db_session.commit()

        assert ops_logger.error.call_args[0][0] == "AuditPersistenceFailure"
        assert db_session.get(Table, table.id).number == 8

    def test_custom_event_reports_failure(self, db_session, world, context_for):
        recorder = AuditRecorder(db_session, context_for(Role.ADMIN))

        with mock.patch.object(db_session, "begin_nested", side_effect=RuntimeError("boom")):
            assert recorder.log_custom_event(AuditAction.LOGIN, "User") is False


class TestImmutability:
    def test_entries_cannot_be_updated(self, db_session, world, context_for):
        AuditRecorder(db_session, context_for(Role.ADMIN)).log_custom_event(AuditAction.LOGIN, "User")
        db_session.commit()
        [entry] = entries(db_session)

        entry.action = "LOGOUT"
        with pytest.raises(AuditLogImmutableError):
            db_session.flush()
        db_session.rollback()

    def test_entries_cannot_be_deleted(self, db_session, world, context_for):
        AuditRecorder(db_session, context_for(Role.ADMIN)).log_custom_event(AuditAction.LOGIN, "User")
        db_session.commit()
        [entry] = entries(db_session)

        db_session.delete(entry)
        with pytest.raises(AuditLogImmutableError):
            db_session.flush()
        db_session.rollback()


class TestAuditContext:
    def test_forwarded_for_first_hop(self):
        request = make_request({"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})
        assert client_ip(request) == "203.0.113.9"

    def test_real_ip_then_peer(self):
        assert client_ip(make_request({"X-Real-IP": "192.0.2.4"})) == "192.0.2.4"
        assert client_ip(make_request({})) == "127.0.0.1"

    def test_create_audit_context(self):
        audit_ctx = create_audit_context(make_request({"User-Agent": "curl/8"}))

        assert audit_ctx.user_agent == "curl/8"
        assert audit_ctx.metadata["method"] == "POST"
        assert audit_ctx.metadata["url"].endswith("/api/orders")
