"""
Pure order rules: state machine, pricing, order numbering, prep-time estimate.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from shared.config.constants import (
    Limits,
    ORDER_STATUS_TIMESTAMPS,
    ORDER_TRANSITIONS,
    OrderStatus,
)

CENT = Decimal("0.01")


def is_valid_transition(current: OrderStatus | str | None, target: OrderStatus | str) -> bool:
    """
    Check a move against ORDER_TRANSITIONS.

    With no current status the only valid move is the initial one into PENDING.
    """
    target = OrderStatus(target)
    if current is None:
        return target is OrderStatus.PENDING
    return target in ORDER_TRANSITIONS[OrderStatus(current)]


def timestamp_field_for(status: OrderStatus) -> str | None:
    """Order column stamped when entering ``status`` (confirmed_at / completed_at)."""
    return ORDER_STATUS_TIMESTAMPS.get(status)


# =============================================================================
# Pricing
# =============================================================================


@dataclass(frozen=True)
class PricedLine:
    menu_item_id: str
    name: str
    quantity: int
    unit_price: Decimal
    prep_time: int
    special_requests: str | None = None

    @property
    def total_price(self) -> Decimal:
        return (self.unit_price * self.quantity).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax: Decimal
    total: Decimal


def to_money(value: Decimal | float | int | str) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_totals(lines: Iterable[PricedLine], tax_rate: Decimal | float | str) -> OrderTotals:
    """
    subtotal = sum(unit_price * quantity); tax = subtotal * rate rounded half-up
    to cents; total = subtotal + tax.
    """
    subtotal = sum((line.total_price for line in lines), Decimal("0")).quantize(CENT)
    tax = (subtotal * Decimal(str(tax_rate))).quantize(CENT, rounding=ROUND_HALF_UP)
    return OrderTotals(subtotal=subtotal, tax=tax, total=subtotal + tax)


def estimate_preparation_time(lines: Iterable[PricedLine]) -> int:
    """
    Slowest item plus the aggregate workload spread over the kitchen,
    clamped to [MIN_ESTIMATED_MINUTES, MAX_ESTIMATED_MINUTES].
    """
    lines = list(lines)
    if not lines:
        return Limits.MIN_ESTIMATED_MINUTES
    longest = max(line.prep_time for line in lines)
    workload = sum(line.prep_time * line.quantity for line in lines)
    estimate = longest + math.ceil(workload / Limits.PREP_PARALLELISM_FACTOR)
    return max(Limits.MIN_ESTIMATED_MINUTES, min(Limits.MAX_ESTIMATED_MINUTES, estimate))


# =============================================================================
# Order numbers
# =============================================================================


def order_number_prefix(day: date) -> str:
    return f"{Limits.ORDER_NUMBER_PREFIX}-{day:%Y%m%d}-"


def format_order_number(day: date, sequence: int) -> str:
    """ORD-YYYYMMDD-NNN"""
    return f"{order_number_prefix(day)}{sequence:0{Limits.ORDER_SEQUENCE_DIGITS}d}"


def parse_order_sequence(order_number: str) -> int:
    """Sequence part of an order number, 0 when it has none."""
    _, _, sequence = order_number.rpartition("-")
    return int(sequence) if sequence.isdigit() else 0


def day_window(moment: datetime) -> tuple[datetime, datetime]:
    """[start, end) of the UTC calendar day containing ``moment``."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)
