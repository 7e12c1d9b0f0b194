"""
Table Model.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, SoftDeleteMixin, TimestampMixin, id_column


class Table(SoftDeleteMixin, TimestampMixin, Base):
    __tablename__ = "dining_table"

    id: Mapped[str] = id_column()
    restaurant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("restaurant.id"), nullable=False, index=True
    )
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(100))

    __table_args__ = (
        Index("ix_dining_table_restaurant_number", "restaurant_id", "number"),
    )

    def __repr__(self) -> str:
        return f"<Table(id={self.id}, number={self.number}, restaurant_id={self.restaurant_id})>"
