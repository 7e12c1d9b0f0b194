"""
Menu Models: MenuVersion, MenuItem.

Read-only from the order pipeline's perspective: only an item's price at
order time is copied into OrderItem.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import Limits, MenuItemStatus

from .base import Base, SoftDeleteMixin, TimestampMixin, id_column


class MenuVersion(SoftDeleteMixin, TimestampMixin, Base):
    """
    A published revision of a restaurant's menu.
    Only items belonging to an active version can be ordered.
    """

    __tablename__ = "menu_version"

    id: Mapped[str] = id_column()
    restaurant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("restaurant.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    items: Mapped[list["MenuItem"]] = relationship(back_populates="menu_version")

    def __repr__(self) -> str:
        return f"<MenuVersion(id={self.id}, restaurant_id={self.restaurant_id}, active={self.is_active})>"


class MenuItem(SoftDeleteMixin, TimestampMixin, Base):
    __tablename__ = "menu_item"

    id: Mapped[str] = id_column()
    restaurant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("restaurant.id"), nullable=False, index=True
    )
    menu_version_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("menu_version.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=MenuItemStatus.AVAILABLE, nullable=False
    )
    # Minutes to prepare one unit
    prep_time: Mapped[int] = mapped_column(
        Integer, default=Limits.DEFAULT_PREP_MINUTES, nullable=False
    )

    menu_version: Mapped["MenuVersion"] = relationship(back_populates="items")

    __table_args__ = (
        Index("ix_menu_item_restaurant_status", "restaurant_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<MenuItem(id={self.id}, name='{self.name}', price={self.price})>"
