"""
Order endpoints: placement, status transitions and tenant-scoped reads.
"""

import math
from datetime import datetime

import redis
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response, status

from shared.config.constants import EventType, Headers, OrderStatus
from shared.config.settings import settings
from shared.security.rate_limit import limiter
from shared.security.tenant_context import TenantContext
from shared.utils.schemas import (
    CreateOrderRequest,
    CreateOrderResponse,
    OrderDetailResponse,
    OrderListResponse,
    Pagination,
    UpdateOrderStatusRequest,
    UpdateOrderStatusResponse,
)

from order_api.core.dependencies import get_order_service, get_redis
from order_api.services.domain import OrderListFilters, OrderService
from order_api.services.events import publish_order_event
from order_api.services.idempotency import request_id_from_headers

router = APIRouter(prefix="/api/orders", tags=["orders"])


def _actor(ctx: TenantContext) -> dict:
    return {"user_id": ctx.user_id, "role": ctx.role.name if ctx.role else None}


@router.post("", response_model=CreateOrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.create_order_rate_limit)
def create_order(
    request: Request,
    response: Response,
    body: CreateOrderRequest,
    background_tasks: BackgroundTasks,
    service: OrderService = Depends(get_order_service),
    redis_client: redis.Redis = Depends(get_redis),
) -> CreateOrderResponse:
    """
    Place an order.

    Retries carrying the same request ID (body ``request_id`` or the
    Idempotency-Key header) return the original order with status 200 and
    ``Idempotent-Replayed: true`` instead of placing a second one.
    """
    result = service.create_order(body, request_id=request_id_from_headers(request.headers))
    order = result.data
    ctx = service.gateway.context

    if result.is_from_cache:
        response.status_code = status.HTTP_200_OK
        response.headers[Headers.IDEMPOTENT_REPLAYED] = "true"
    else:
        background_tasks.add_task(
            publish_order_event,
            redis_client,
            EventType.ORDER_CREATED,
            ctx.restaurant_id,
            {
                "order_id": order.id,
                "order_number": order.order_number,
                "status": order.status.value,
                "total": str(order.total),
                "table_id": order.table_id,
            },
            _actor(ctx),
        )

    return CreateOrderResponse(order=order, replayed=result.is_from_cache)


@router.patch("/{order_id}/status", response_model=UpdateOrderStatusResponse)
def update_order_status(
    order_id: str,
    body: UpdateOrderStatusRequest,
    background_tasks: BackgroundTasks,
    service: OrderService = Depends(get_order_service),
    redis_client: redis.Redis = Depends(get_redis),
) -> UpdateOrderStatusResponse:
    """
    Move an order to a new status. ``version`` must match the order's current
    version or the request fails with 409 VERSION_CONFLICT.
    """
    order = service.update_status(
        order_id,
        expected_version=body.version,
        target=body.status,
        estimated_time=body.estimated_time,
        notes=body.notes,
    )
    ctx = service.gateway.context
    background_tasks.add_task(
        publish_order_event,
        redis_client,
        EventType.ORDER_STATUS_CHANGED,
        ctx.restaurant_id,
        {
            "order_id": order.id,
            "order_number": order.order_number,
            "status": order.status.value,
            "version": order.version,
        },
        _actor(ctx),
    )
    return UpdateOrderStatusResponse(order=order)


@router.get("", response_model=OrderListResponse)
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.orders_default_page_size, ge=1, le=settings.orders_max_page_size),
    status_filter: OrderStatus | None = Query(None, alias="status"),
    table_id: str | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    customer_phone: str | None = None,
    service: OrderService = Depends(get_order_service),
) -> OrderListResponse:
    """List orders of the caller's restaurant, newest first."""
    orders, total = service.list_orders(
        OrderListFilters(
            page=page,
            limit=limit,
            status=status_filter,
            table_id=table_id,
            from_date=from_date,
            to_date=to_date,
            customer_phone=customer_phone,
        )
    )
    return OrderListResponse(
        orders=orders,
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if total else 0,
        ),
    )


@router.get("/{order_id}", response_model=OrderDetailResponse)
def get_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
) -> OrderDetailResponse:
    return OrderDetailResponse(order=service.get_order(order_id))
