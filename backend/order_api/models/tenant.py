"""
Tenant Models: Restaurant, Membership.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, SoftDeleteMixin, TimestampMixin, id_column

if TYPE_CHECKING:
    from .user import User


class Restaurant(SoftDeleteMixin, TimestampMixin, Base):
    """
    A restaurant account: the unit of data isolation.
    """

    __tablename__ = "restaurant"

    id: Mapped[str] = id_column()
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    # Overrides the configured default tax rate when set (e.g. 0.0825)
    tax_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 4), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)

    memberships: Mapped[list["Membership"]] = relationship(back_populates="restaurant")

    def __repr__(self) -> str:
        return f"<Restaurant(id={self.id}, slug='{self.slug}')>"


class Membership(SoftDeleteMixin, TimestampMixin, Base):
    """
    Joins a user to a restaurant with a role.
    Deactivated (is_active=False), never hard-deleted.
    """

    __tablename__ = "membership"

    id: Mapped[str] = id_column()
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("app_user.id"), nullable=False, index=True
    )
    restaurant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("restaurant.id"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)  # Role name
    invited_by_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("app_user.id"), nullable=True
    )

    user: Mapped["User"] = relationship(back_populates="memberships", foreign_keys=[user_id])
    restaurant: Mapped["Restaurant"] = relationship(back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("user_id", "restaurant_id", name="uq_membership_user_restaurant"),
    )

    def __repr__(self) -> str:
        return f"<Membership(user_id={self.user_id}, restaurant_id={self.restaurant_id}, role='{self.role}')>"
