"""
Tests for order status changes: state machine, optimistic versioning and
timestamps.
"""

from datetime import datetime, timedelta, timezone
from unittest import mock

import pytest
from sqlalchemy import select, text

from shared.config.constants import ROLE_PERMISSIONS, OrderStatus, Role
from shared.security.tenant_context import TenantContext
from shared.utils.exceptions import (
    InvalidTransitionError,
    OrderNotFoundError,
    PermissionDeniedError,
    VersionConflictError,
)
from shared.utils.schemas import CreateOrderRequest

from order_api.models import AuditLogEntry, Order
from order_api.services.domain import OrderListFilters, OrderService

NOON = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


class Clock:
    """Manually advanced clock."""

    def __init__(self, now=NOON):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, minutes):
        self.now += timedelta(minutes=minutes)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def staff_service(db_session, context_for, redis_client, clock):
    return OrderService(db_session, context_for(Role.STAFF), redis_client=redis_client, clock=clock)


@pytest.fixture
def customer_service(db_session, context_for, redis_client, clock):
    return OrderService(db_session, context_for(Role.CUSTOMER), redis_client=redis_client, clock=clock)


@pytest.fixture
def placed_order(customer_service, world):
    request = CreateOrderRequest(items=[{"menu_item_id": world.pizza.id, "quantity": 1}])
    return customer_service.create_order(request).data


class TestStatusUpdates:
    def test_confirm_bumps_version_and_stamps(self, db_session, staff_service, placed_order, clock):
        clock.advance(5)

        result = staff_service.update_status(placed_order.id, 1, OrderStatus.CONFIRMED, estimated_time=25)

        assert result.status is OrderStatus.CONFIRMED
        assert result.version == 2
        stored = db_session.get(Order, placed_order.id)
        assert stored.confirmed_at.replace(tzinfo=timezone.utc) == NOON + timedelta(minutes=5)
        assert stored.completed_at is None
        assert stored.estimated_time == 25

    def test_full_lifecycle(self, db_session, staff_service, placed_order):
        version = placed_order.version
        for target in (OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.DELIVERED):
            version = staff_service.update_status(placed_order.id, version, target).version

        assert version == 5
        stored = db_session.get(Order, placed_order.id)
        assert stored.status == OrderStatus.DELIVERED.value
        assert stored.confirmed_at is not None
        assert stored.completed_at is not None

    def test_cancel_from_pending_stamps_completion(self, db_session, staff_service, placed_order):
        staff_service.update_status(placed_order.id, 1, OrderStatus.CANCELLED, notes="customer left")

        stored = db_session.get(Order, placed_order.id)
        assert stored.status == OrderStatus.CANCELLED.value
        assert stored.completed_at is not None
        assert stored.notes == "customer left"

    def test_status_change_is_audited(self, db_session, staff_service, placed_order, world):
        staff_service.update_status(placed_order.id, 1, OrderStatus.CONFIRMED)

        entry = db_session.scalars(
            select(AuditLogEntry).where(AuditLogEntry.action == "UPDATE")
        ).one()
        assert entry.order_id == placed_order.id
        assert entry.user_id == world.users[Role.STAFF].id
        assert entry.before_state["status"] == "PENDING"
        assert entry.after_state["status"] == "CONFIRMED"


class TestRejectedUpdates:
    def test_stale_version_is_rejected(self, db_session, staff_service, placed_order):
        staff_service.update_status(placed_order.id, 1, OrderStatus.CONFIRMED)

        with pytest.raises(VersionConflictError) as exc_info:
            staff_service.update_status(placed_order.id, 1, OrderStatus.CANCELLED)

        assert exc_info.value.status_code == 409
        assert exc_info.value.expected == 1
        assert exc_info.value.actual == 2
        assert db_session.get(Order, placed_order.id).status == OrderStatus.CONFIRMED.value

    @pytest.mark.parametrize("target", [OrderStatus.READY, OrderStatus.DELIVERED, OrderStatus.PENDING])
    def test_invalid_transition(self, db_session, staff_service, placed_order, target):
        with pytest.raises(InvalidTransitionError) as exc_info:
            staff_service.update_status(placed_order.id, 1, target)

        assert exc_info.value.status_code == 422
        stored = db_session.get(Order, placed_order.id)
        assert stored.status == OrderStatus.PENDING.value
        assert stored.version == 1

    def test_terminal_states_are_final(self, staff_service, placed_order):
        staff_service.update_status(placed_order.id, 1, OrderStatus.CANCELLED)

        with pytest.raises(InvalidTransitionError):
            staff_service.update_status(placed_order.id, 2, OrderStatus.CONFIRMED)

    def test_customer_cannot_change_status(self, customer_service, placed_order):
        with pytest.raises(PermissionDeniedError):
            customer_service.update_status(placed_order.id, 1, OrderStatus.CANCELLED)

    def test_foreign_order_is_not_found(self, db_session, redis_client, placed_order, world):
        outsider = OrderService(
            db_session,
            TenantContext(
                role=Role.MANAGER,
                user_id=world.outsider.id,
                restaurant_id=world.other.id,
                permissions=ROLE_PERMISSIONS[Role.MANAGER],
            ),
            redis_client=redis_client,
        )

        with pytest.raises(OrderNotFoundError):
            outsider.update_status(placed_order.id, 1, OrderStatus.CONFIRMED)

    def test_missing_order_is_not_found(self, staff_service, world):
        with pytest.raises(OrderNotFoundError):
            staff_service.update_status("no-such-order", 1, OrderStatus.CONFIRMED)

    def test_concurrent_write_between_read_and_write(self, db_session, staff_service, placed_order):
        gateway = staff_service.gateway
        original_find_first = gateway.find_first

        def find_then_race(*args, **kwargs):
            found = original_find_first(*args, **kwargs)
            # Another writer commits a change after our read
            db_session.execute(
                text("UPDATE customer_order SET version = version + 1 WHERE id = :id"),
                {"id": placed_order.id},
            )
            return found

        with mock.patch.object(gateway, "find_first", side_effect=find_then_race):
            with pytest.raises(VersionConflictError):
                staff_service.update_status(placed_order.id, 1, OrderStatus.CONFIRMED)

        stored = db_session.scalars(select(Order).where(Order.id == placed_order.id)).one()
        db_session.refresh(stored)
        assert stored.status == OrderStatus.PENDING.value


class TestReads:
    def test_get_order_detail(self, staff_service, placed_order, world):
        detail = staff_service.get_order(placed_order.id)

        assert detail.order_number == placed_order.order_number
        assert detail.item_count == 1
        assert detail.items[0].menu_item_id == world.pizza.id
        assert detail.currency == "USD"

    def test_customer_sees_only_own_orders(self, db_session, context_for, redis_client, staff_service, placed_order, world):
        request = CreateOrderRequest(items=[{"menu_item_id": world.salad.id, "quantity": 1}])
        staff_order = staff_service.create_order(request).data
        customer = OrderService(db_session, context_for(Role.CUSTOMER), redis_client=redis_client)

        orders, total = customer.list_orders(OrderListFilters())

        assert total == 1
        assert [o.id for o in orders] == [placed_order.id]
        with pytest.raises(OrderNotFoundError):
            customer.get_order(staff_order.id)

    def test_guest_cannot_browse(self, db_session, guest_context, redis_client, placed_order):
        guest = OrderService(db_session, guest_context, redis_client=redis_client)

        with pytest.raises(PermissionDeniedError):
            guest.list_orders(OrderListFilters())
        with pytest.raises(PermissionDeniedError):
            guest.get_order(placed_order.id)

    def test_list_filters_and_paging(self, staff_service, clock, world):
        ids = []
        for minutes, table_id in ((0, world.table.id), (10, None), (20, world.table.id)):
            clock.now = NOON + timedelta(minutes=minutes)
            request = CreateOrderRequest(
                items=[{"menu_item_id": world.pizza.id, "quantity": 1}],
                table_id=table_id,
                customer_phone="+1-555-0100" if table_id else None,
            )
            ids.append(staff_service.create_order(request).data.id)
        staff_service.update_status(ids[0], 1, OrderStatus.CONFIRMED)

        newest_first, total = staff_service.list_orders(OrderListFilters(limit=2))
        assert total == 3
        assert [o.id for o in newest_first] == [ids[2], ids[1]]

        second_page, _ = staff_service.list_orders(OrderListFilters(page=2, limit=2))
        assert [o.id for o in second_page] == [ids[0]]

        at_table, total = staff_service.list_orders(OrderListFilters(table_id=world.table.id))
        assert total == 2

        confirmed, total = staff_service.list_orders(OrderListFilters(status=OrderStatus.CONFIRMED))
        assert [o.id for o in confirmed] == [ids[0]]

        window, total = staff_service.list_orders(OrderListFilters(
            from_date=NOON + timedelta(minutes=5), to_date=NOON + timedelta(minutes=15),
        ))
        assert [o.id for o in window] == [ids[1]]

        by_phone, total = staff_service.list_orders(OrderListFilters(customer_phone="555-0100"))
        assert total == 2
