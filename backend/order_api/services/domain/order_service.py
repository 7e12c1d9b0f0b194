"""
Order Domain Service.

Places orders and moves them through their lifecycle. All data access goes
through the tenant-scoped gateway, so restaurant scope, role rules and the
audit trail apply to every read and write made here.

Creation runs under the idempotency coordinator keyed on the client's request
ID; status changes use the order's version for optimistic concurrency.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Callable

import redis
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shared.config.constants import Limits, MenuItemStatus, OrderStatus, Role
from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.infrastructure.db import transaction, utcnow
from shared.security.tenant_context import TenantContext
from shared.utils.exceptions import (
    ConflictError,
    InvalidTransitionError,
    ItemsUnavailableError,
    OrderNotFoundError,
    OrderNumberConflictError,
    PermissionDeniedError,
    TableUnavailableError,
    VersionConflictError,
)
from shared.utils.schemas import (
    CreateOrderRequest,
    OrderCreatedOutput,
    OrderDetail,
    OrderItemOutput,
    OrderStatusOutput,
    OrderSummary,
)

from order_api.models import Order, new_id
from order_api.services.audit import AuditContext
from order_api.services.gateway import TenantScopedGateway
from order_api.services.idempotency import (
    DuplicateRequest,
    IdempotencyContext,
    IdempotencyCoordinator,
    IdempotencyResult,
)
from order_api.services.permissions import EntityKind, Operation, PermissionContext

from .order_lifecycle import (
    PricedLine,
    calculate_totals,
    day_window,
    estimate_preparation_time,
    format_order_number,
    is_valid_transition,
    order_number_prefix,
    parse_order_sequence,
    timestamp_field_for,
)

logger = get_logger(__name__)

CREATE_ORDER_ENDPOINT = "/api/orders"


@dataclass(frozen=True)
class OrderListFilters:
    page: int = 1
    limit: int = 20
    status: OrderStatus | None = None
    table_id: str | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    customer_phone: str | None = None


class OrderService:
    """
    Domain service for Order operations.

    Usage:
        service = OrderService(db, ctx, redis_client=get_redis_sync_client())
        result = service.create_order(request, request_id="abc-123")
        if result.is_from_cache:
            ...
    """

    def __init__(
        self,
        db: Session,
        context: TenantContext,
        *,
        redis_client: redis.Redis,
        audit_context: AuditContext | None = None,
        clock: Callable[[], datetime] = utcnow,
        coordinator: IdempotencyCoordinator | None = None,
    ):
        self._db = db
        self._context = context
        self._gateway = TenantScopedGateway(db, context, audit_context=audit_context)
        self._coordinator = coordinator or IdempotencyCoordinator(redis_client)
        self._clock = clock

    @property
    def gateway(self) -> TenantScopedGateway:
        return self._gateway

    # =========================================================================
    # Creation
    # =========================================================================

    def create_order(
        self,
        request: CreateOrderRequest,
        request_id: str | None = None,
    ) -> IdempotencyResult[OrderCreatedOutput]:
        """
        Place an order exactly once per request ID.

        ``request.request_id`` wins over the ``request_id`` argument (usually
        the Idempotency-Key header). Without either the order is placed
        unconditionally.
        """
        request_id = request.request_id or request_id
        idem_context = IdempotencyContext(
            request_id=request_id,
            endpoint=CREATE_ORDER_ENDPOINT,
            method="POST",
            user_id=self._context.user_id,
            restaurant_id=self._context.restaurant_id,
        )
        return self._coordinator.execute_idempotent(
            idem_context,
            lambda: self._place_order(request, request_id),
            lookup=lambda: self._find_committed(request_id),
            encode=lambda output: output.model_dump_json(),
            decode=OrderCreatedOutput.model_validate_json,
        )

    def _find_committed(self, request_id: str | None) -> OrderCreatedOutput | None:
        """
        Durable idempotency check: the order already stored under this request ID.

        Ends its read transaction so a caller backing off on the lock holds no
        snapshot or database lock while it waits.
        """
        if not request_id:
            return None
        try:
            order = self._gateway.find_first(EntityKind.ORDER, where={"request_id": request_id})
            if order is None:
                return None
            # Guests have no identity to match, so they never claim a stored order
            if self._context.user_id is None or order.user_id != self._context.user_id:
                raise ConflictError(
                    "Request ID already used by another client",
                    request_id=request_id,
                )
            return self._created_output(order, self._load_items(order.id))
        finally:
            self._db.rollback()

    def _place_order(self, request: CreateOrderRequest, request_id: str | None) -> OrderCreatedOutput:
        attempts = settings.order_number_max_retries
        for attempt in range(1, attempts + 1):
            try:
                with transaction(self._db):
                    return self._insert_order(request, request_id, attempt)
            except IntegrityError as e:
                logger.warning(
                    "Order insert collided",
                    restaurant_id=self._context.restaurant_id,
                    attempt=attempt,
                    error=str(e.orig),
                )
                existing = self._find_committed(request_id)
                if existing is not None:
                    raise DuplicateRequest(existing) from e
        raise OrderNumberConflictError(attempts, restaurant_id=self._context.restaurant_id)

    def _insert_order(
        self,
        request: CreateOrderRequest,
        request_id: str | None,
        attempt: int,
    ) -> OrderCreatedOutput:
        restaurant = self._gateway.find_first(EntityKind.RESTAURANT, where={"is_active": True})
        if restaurant is None:
            raise PermissionDeniedError("create orders", reason="restaurant is not active")

        lines = self._price_lines(request)

        if request.table_id:
            table = self._gateway.find_first(
                EntityKind.TABLE, where={"id": request.table_id, "is_active": True}
            )
            if table is None:
                raise TableUnavailableError(request.table_id)

        tax_rate = restaurant.tax_rate if restaurant.tax_rate is not None else Decimal(str(settings.tax_rate))
        totals = calculate_totals(lines, tax_rate)
        placed_at = self._clock()

        start, end = day_window(placed_at)
        sequence = self._gateway.count(
            EntityKind.ORDER, where={"placed_at__gte": start, "placed_at__lt": end}
        ) + 1
        if attempt > 1:
            # The number that collided may belong to an order outside today's window
            sequence = max(sequence, self._highest_sequence(start.date()) + 1)
        order_number = format_order_number(start.date(), sequence)

        order = self._gateway.create(
            EntityKind.ORDER,
            {
                "table_id": request.table_id,
                "user_id": self._context.user_id,
                "order_number": order_number,
                "status": OrderStatus.PENDING.value,
                "subtotal": totals.subtotal,
                "tax": totals.tax,
                "total": totals.total,
                "currency": restaurant.currency or settings.currency,
                "customer_name": request.customer_name,
                "customer_phone": request.customer_phone,
                "special_requests": request.special_requests,
                "estimated_time": estimate_preparation_time(lines),
                "request_id": request_id,
                "placed_at": placed_at,
            },
        )

        rows = [
            {
                "id": new_id(),
                "order_id": order.id,
                "menu_item_id": line.menu_item_id,
                "name": line.name,
                "line_number": number,
                "quantity": line.quantity,
                "unit_price": line.unit_price,
                "total_price": line.total_price,
                "special_requests": line.special_requests,
            }
            for number, line in enumerate(lines, start=1)
        ]
        self._gateway.create_many(EntityKind.ORDER_ITEM, rows)

        logger.info(
            "Order placed",
            order_id=order.id,
            order_number=order_number,
            restaurant_id=order.restaurant_id,
            lines=len(rows),
            total=str(totals.total),
        )
        return self._created_output(order, [OrderItemOutput.model_validate(row) for row in rows])

    def _highest_sequence(self, day: date) -> int:
        numbered = self._gateway.find_many(
            EntityKind.ORDER, where={"order_number__startswith": order_number_prefix(day)}
        )
        return max((parse_order_sequence(order.order_number) for order in numbered), default=0)

    def _price_lines(self, request: CreateOrderRequest) -> list[PricedLine]:
        """
        Snapshot current price and prep time for each requested line.

        Every referenced item must be AVAILABLE, active and on an active menu
        version of the restaurant.
        """
        requested_ids = {line.menu_item_id for line in request.items}
        versions = self._gateway.find_many(EntityKind.MENU_VERSION, where={"is_active": True})
        items = self._gateway.find_many(
            EntityKind.MENU_ITEM,
            where={
                "id__in": sorted(requested_ids),
                "status": MenuItemStatus.AVAILABLE,
                "is_active": True,
                "menu_version_id__in": [version.id for version in versions],
            },
        )
        by_id = {item.id: item for item in items}
        if len(by_id) != len(requested_ids):
            raise ItemsUnavailableError(
                sorted(requested_ids - by_id.keys()),
                restaurant_id=self._context.restaurant_id,
            )

        return [
            PricedLine(
                menu_item_id=line.menu_item_id,
                name=by_id[line.menu_item_id].name,
                quantity=line.quantity,
                unit_price=Decimal(by_id[line.menu_item_id].price),
                prep_time=by_id[line.menu_item_id].prep_time or Limits.DEFAULT_PREP_MINUTES,
                special_requests=line.special_requests,
            )
            for line in request.items
        ]

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def update_status(
        self,
        order_id: str,
        expected_version: int,
        target: OrderStatus,
        estimated_time: int | None = None,
        notes: str | None = None,
    ) -> OrderStatusOutput:
        """
        Move an order to ``target`` if the caller's version is current and the
        transition is allowed.

        Raises:
            OrderNotFoundError: order missing or outside the caller's restaurant
            VersionConflictError: ``expected_version`` is stale, or a concurrent
                writer won between our read and our write
            InvalidTransitionError: move not allowed from the current status
        """
        PermissionContext(self._context).require(Operation.UPDATE, EntityKind.ORDER)
        target = OrderStatus(target)

        with transaction(self._db):
            order = self._gateway.find_first(EntityKind.ORDER, where={"id": order_id})
            if order is None:
                raise OrderNotFoundError(order_id)

            if order.version != expected_version:
                raise VersionConflictError(
                    "Order", order_id, expected=expected_version, actual=order.version
                )

            current = OrderStatus(order.status)
            if not is_valid_transition(current, target):
                raise InvalidTransitionError("Order", current.value, target.value, order_id=order_id)

            data: dict[str, object] = {"status": target.value}
            stamp = timestamp_field_for(target)
            if stamp:
                data[stamp] = self._clock()
            if estimated_time is not None:
                data["estimated_time"] = estimated_time
            if notes is not None:
                data["notes"] = notes

            order = self._gateway.update(EntityKind.ORDER, where={"id": order_id}, data=data)

        logger.info(
            "Order status changed",
            order_id=order_id,
            from_status=current.value,
            to_status=target.value,
            version=order.version,
        )
        return OrderStatusOutput(
            id=order.id,
            order_number=order.order_number,
            status=OrderStatus(order.status),
            version=order.version,
            updated_at=order.updated_at or self._clock(),
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def _owner_filter(self) -> dict[str, str]:
        """Customers only see their own orders; guests see none."""
        if self._context.is_system or self._context.at_least(Role.STAFF):
            return {}
        if self._context.user_id is None:
            raise PermissionDeniedError("read orders", reason="guest sessions cannot browse orders")
        return {"user_id": self._context.user_id}

    def get_order(self, order_id: str) -> OrderDetail:
        try:
            order = self._gateway.find_first(
                EntityKind.ORDER, where={"id": order_id, **self._owner_filter()}
            )
            if order is None:
                raise OrderNotFoundError(order_id)
            items = self._load_items(order.id)
            return OrderDetail(
                **self._summary_fields(order, len(items)),
                subtotal=order.subtotal,
                tax=order.tax,
                currency=order.currency,
                estimated_time=order.estimated_time,
                special_requests=order.special_requests,
                notes=order.notes,
                confirmed_at=order.confirmed_at,
                completed_at=order.completed_at,
                items=items,
            )
        finally:
            self._db.rollback()

    def list_orders(self, filters: OrderListFilters) -> tuple[list[OrderSummary], int]:
        """Page of order summaries, newest first, plus the total match count."""
        limit = max(1, min(filters.limit, settings.orders_max_page_size))
        page = max(1, filters.page)

        where: dict[str, object] = self._owner_filter()
        if filters.status:
            where["status"] = OrderStatus(filters.status).value
        if filters.table_id:
            where["table_id"] = filters.table_id
        if filters.from_date:
            where["placed_at__gte"] = filters.from_date
        if filters.to_date:
            where["placed_at__lte"] = filters.to_date
        if filters.customer_phone:
            where["customer_phone__contains"] = filters.customer_phone

        try:
            total = self._gateway.count(EntityKind.ORDER, where=where)
            orders = self._gateway.find_many(
                EntityKind.ORDER,
                where=where,
                order_by=("-placed_at", "-order_number"),
                offset=(page - 1) * limit,
                limit=limit,
            )
            line_counts: dict[str, int] = {}
            if orders:
                for item in self._gateway.find_many(
                    EntityKind.ORDER_ITEM, where={"order_id__in": [o.id for o in orders]}
                ):
                    line_counts[item.order_id] = line_counts.get(item.order_id, 0) + 1

            summaries = [
                OrderSummary(**self._summary_fields(order, line_counts.get(order.id, 0)))
                for order in orders
            ]
        finally:
            self._db.rollback()
        return summaries, total

    # =========================================================================
    # Output helpers
    # =========================================================================

    def _load_items(self, order_id: str) -> list[OrderItemOutput]:
        items = self._gateway.find_many(
            EntityKind.ORDER_ITEM, where={"order_id": order_id}, order_by=("line_number",)
        )
        return [OrderItemOutput.model_validate(item) for item in items]

    @staticmethod
    def _summary_fields(order: Order, item_count: int) -> dict[str, object]:
        return {
            "id": order.id,
            "order_number": order.order_number,
            "status": OrderStatus(order.status),
            "version": order.version,
            "total": order.total,
            "table_id": order.table_id,
            "customer_name": order.customer_name,
            "customer_phone": order.customer_phone,
            "item_count": item_count,
            "placed_at": order.placed_at,
        }

    @staticmethod
    def _created_output(order: Order, items: list[OrderItemOutput]) -> OrderCreatedOutput:
        return OrderCreatedOutput(
            id=order.id,
            order_number=order.order_number,
            status=OrderStatus(order.status),
            version=order.version,
            subtotal=order.subtotal,
            tax=order.tax,
            total=order.total,
            estimated_time=order.estimated_time,
            table_id=order.table_id,
            placed_at=order.placed_at,
            items=items,
        )
