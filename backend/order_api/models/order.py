"""
Order Models: Order, OrderItem.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import OrderStatus

from .base import Base, TimestampMixin, id_column


class Order(TimestampMixin, Base):
    """
    A customer order. Owned by exactly one restaurant and never re-parented.

    ``version`` is the optimistic-concurrency counter: SQLAlchemy bumps it by
    one on every UPDATE and adds ``WHERE version = <loaded>`` to the statement,
    so a write based on a stale read fails with StaleDataError instead of
    silently overwriting a concurrent change.
    """

    __tablename__ = "customer_order"

    id: Mapped[str] = id_column()
    restaurant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("restaurant.id"), nullable=False, index=True
    )
    table_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("dining_table.id"), nullable=True, index=True
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("app_user.id"), nullable=True, index=True
    )
    order_number: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=OrderStatus.PENDING.value, nullable=False, index=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tax: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)

    customer_name: Mapped[Optional[str]] = mapped_column(String(200))
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50))
    special_requests: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    estimated_time: Mapped[Optional[int]] = mapped_column(Integer)

    # Client-supplied idempotency key
    request_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    placed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order", order_by="OrderItem.line_number"
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("restaurant_id", "order_number", name="uq_order_restaurant_number"),
        UniqueConstraint("restaurant_id", "request_id", name="uq_order_restaurant_request"),
        CheckConstraint("version >= 1", name="ck_order_version_positive"),
        Index("ix_order_restaurant_placed", "restaurant_id", "placed_at"),
        Index("ix_order_restaurant_status", "restaurant_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, order_number='{self.order_number}', status='{self.status}', version={self.version})>"


class OrderItem(TimestampMixin, Base):
    """
    A single line of an order.
    unit_price is the menu price at order time and never changes afterwards.
    """

    __tablename__ = "order_item"

    id: Mapped[str] = id_column()
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("customer_order.id"), nullable=False, index=True
    )
    # Denormalized tenant scope so lines are filtered like their parent order
    restaurant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("restaurant.id"), nullable=False, index=True
    )
    menu_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("menu_item.id"), nullable=False
    )
    # 1-based position within the order
    line_number: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(200))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    special_requests: Mapped[Optional[str]] = mapped_column(Text)

    order: Mapped["Order"] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_item_quantity_positive"),
    )

    def __repr__(self) -> str:
        return f"<OrderItem(id={self.id}, order_id={self.order_id}, qty={self.quantity})>"
