"""
Shared Pydantic schemas used across the application.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

from shared.config.constants import Limits, OrderStatus


# =============================================================================
# Common Types
# =============================================================================

# Monetary amounts are Decimal internally and plain JSON numbers on the wire
Money = Annotated[
    Decimal,
    PlainSerializer(lambda v: float(v), return_type=float, when_used="json"),
]


# =============================================================================
# Order Schemas
# =============================================================================


class OrderItemInput(BaseModel):
    """Input for a single line of a new order."""

    menu_item_id: str = Field(min_length=1)
    quantity: int = Field(ge=Limits.MIN_QUANTITY, le=Limits.MAX_QUANTITY)
    special_requests: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)


class CreateOrderRequest(BaseModel):
    """Request to place a new order."""

    table_id: str | None = None
    customer_name: str | None = Field(default=None, max_length=Limits.MAX_NAME_LENGTH)
    customer_phone: str | None = Field(default=None, max_length=50)
    special_requests: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)
    items: list[OrderItemInput] = Field(min_length=1, max_length=Limits.MAX_ORDER_LINES)
    # Client-supplied idempotency key; the Idempotency-Key header is used when absent
    request_id: str | None = Field(default=None, max_length=Limits.MAX_REQUEST_ID_LENGTH)


class OrderItemOutput(BaseModel):
    """Output for a single order line."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    menu_item_id: str
    name: str | None = None
    quantity: int
    unit_price: Money
    total_price: Money
    special_requests: str | None = None


class OrderCreatedOutput(BaseModel):
    """Order as returned right after creation (also the cached idempotent result)."""

    id: str
    order_number: str
    status: OrderStatus
    version: int
    subtotal: Money
    tax: Money
    total: Money
    estimated_time: int | None = None
    table_id: str | None = None
    placed_at: datetime
    items: list[OrderItemOutput]


class CreateOrderResponse(BaseModel):
    """Response after creating (or replaying) an order."""

    success: bool = True
    order: OrderCreatedOutput
    replayed: bool = False


class UpdateOrderStatusRequest(BaseModel):
    """Request to move an order through its lifecycle."""

    status: OrderStatus
    # Version the client last read; a stale value is rejected with 409
    version: int = Field(ge=1)
    estimated_time: int | None = Field(default=None, ge=1, le=240)
    notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)


class OrderStatusOutput(BaseModel):
    """Order after a status transition."""

    id: str
    order_number: str
    status: OrderStatus
    version: int
    updated_at: datetime | None = None


class UpdateOrderStatusResponse(BaseModel):
    success: bool = True
    order: OrderStatusOutput


class OrderSummary(BaseModel):
    """Order row in list views."""

    id: str
    order_number: str
    status: OrderStatus
    version: int
    total: Money
    table_id: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    item_count: int = 0
    placed_at: datetime


class OrderDetail(OrderSummary):
    """Full order with lines and lifecycle timestamps."""

    subtotal: Money
    tax: Money
    currency: str
    estimated_time: int | None = None
    special_requests: str | None = None
    notes: str | None = None
    confirmed_at: datetime | None = None
    completed_at: datetime | None = None
    items: list[OrderItemOutput]


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class OrderListResponse(BaseModel):
    success: bool = True
    orders: list[OrderSummary]
    pagination: Pagination


class OrderDetailResponse(BaseModel):
    success: bool = True
    order: OrderDetail


# =============================================================================
# Error Schemas
# =============================================================================


class ErrorResponse(BaseModel):
    """Standard error response."""

    success: bool = False
    error: str
    code: str | None = None
