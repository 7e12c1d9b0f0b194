"""
Property-based Testing with Hypothesis.

Pure order rules: pricing, estimates, numbering and the status state machine.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from hypothesis import given, settings, strategies as st

from shared.config.constants import Limits, ORDER_TRANSITIONS, TERMINAL_ORDER_STATUSES, OrderStatus

from order_api.services.domain.order_lifecycle import (
    PricedLine,
    calculate_totals,
    day_window,
    estimate_preparation_time,
    format_order_number,
    is_valid_transition,
    parse_order_sequence,
    to_money,
)
from order_api.services.idempotency import IdempotencyContext, generate_idempotency_key

prices = st.decimals(min_value=Decimal("0.01"), max_value=Decimal("999.99"), places=2)
quantities = st.integers(min_value=Limits.MIN_QUANTITY, max_value=Limits.MAX_QUANTITY)
prep_times = st.integers(min_value=1, max_value=120)

lines_strategy = st.lists(
    st.builds(
        PricedLine,
        menu_item_id=st.text(min_size=1, max_size=8),
        name=st.just("item"),
        quantity=quantities,
        unit_price=prices,
        prep_time=prep_times,
    ),
    min_size=1,
    max_size=20,
)
tax_rates = st.decimals(min_value=Decimal("0"), max_value=Decimal("0.25"), places=4)
statuses = st.sampled_from(list(OrderStatus))


class TestPricingProperties:
    @given(lines=lines_strategy, tax_rate=tax_rates)
    @settings(max_examples=100)
    def test_total_is_subtotal_plus_tax(self, lines, tax_rate):
        totals = calculate_totals(lines, tax_rate)

        assert totals.total == totals.subtotal + totals.tax
        assert totals.subtotal == sum(line.unit_price * line.quantity for line in lines)

    @given(lines=lines_strategy, tax_rate=tax_rates)
    def test_amounts_have_two_decimals(self, lines, tax_rate):
        totals = calculate_totals(lines, tax_rate)

        for amount in (totals.subtotal, totals.tax, totals.total):
            assert amount == to_money(amount)
            assert amount.as_tuple().exponent == -2

    @given(lines=lines_strategy, tax_rate=tax_rates)
    def test_tax_within_half_cent(self, lines, tax_rate):
        totals = calculate_totals(lines, tax_rate)

        assert abs(totals.tax - totals.subtotal * tax_rate) <= Decimal("0.005")

    @given(lines=lines_strategy)
    def test_zero_tax(self, lines):
        totals = calculate_totals(lines, Decimal("0"))

        assert totals.tax == Decimal("0.00")
        assert totals.total == totals.subtotal


class TestEstimateProperties:
    @given(lines=lines_strategy)
    def test_estimate_is_clamped(self, lines):
        estimate = estimate_preparation_time(lines)

        assert Limits.MIN_ESTIMATED_MINUTES <= estimate <= Limits.MAX_ESTIMATED_MINUTES

    @given(lines=lines_strategy)
    def test_estimate_covers_slowest_item(self, lines):
        slowest = max(line.prep_time for line in lines)

        estimate = estimate_preparation_time(lines)

        assert estimate >= min(slowest, Limits.MAX_ESTIMATED_MINUTES)


class TestOrderNumberProperties:
    @given(
        day=st.dates(min_value=date(2000, 1, 1), max_value=date(2099, 12, 31)),
        sequence=st.integers(min_value=1, max_value=999),
    )
    def test_format(self, day, sequence):
        number = format_order_number(day, sequence)

        prefix, day_part, seq_part = number.split("-")
        assert prefix == "ORD"
        assert day_part == day.strftime("%Y%m%d")
        assert int(seq_part) == sequence
        assert len(seq_part) == 3
        assert parse_order_sequence(number) == sequence

    @given(moment=st.datetimes(
        min_value=datetime(2000, 1, 1), max_value=datetime(2099, 12, 31), timezones=st.just(timezone.utc)
    ))
    def test_day_window_contains_moment(self, moment):
        start, end = day_window(moment)

        assert start <= moment < end
        assert end - start == timedelta(days=1)
        assert (start.hour, start.minute, start.second, start.microsecond) == (0, 0, 0, 0)


class TestStateMachineProperties:
    @given(current=statuses, target=statuses)
    def test_matches_transition_table(self, current, target):
        assert is_valid_transition(current, target) is (target in ORDER_TRANSITIONS[current])

    @given(current=st.sampled_from(sorted(TERMINAL_ORDER_STATUSES, key=lambda s: s.value)), target=statuses)
    def test_terminal_states_have_no_exit(self, current, target):
        assert not is_valid_transition(current, target)

    @given(target=statuses)
    def test_initial_state_is_pending(self, target):
        assert is_valid_transition(None, target) is (target is OrderStatus.PENDING)

    @given(current=statuses)
    def test_no_self_transitions(self, current):
        assert not is_valid_transition(current, current)

    @given(current=st.sampled_from([s for s in OrderStatus if s not in TERMINAL_ORDER_STATUSES]))
    def test_every_open_state_can_cancel(self, current):
        assert is_valid_transition(current, OrderStatus.CANCELLED)


class TestIdempotencyKeyProperties:
    @given(
        request_id=st.text(min_size=1, max_size=64),
        user_id=st.one_of(st.none(), st.text(min_size=1, max_size=36)),
        restaurant_id=st.one_of(st.none(), st.text(min_size=1, max_size=36)),
    )
    def test_key_is_stable_hex_digest(self, request_id, user_id, restaurant_id):
        context = IdempotencyContext(request_id, "/api/orders", "POST", user_id, restaurant_id)

        key = generate_idempotency_key(context)

        assert key == generate_idempotency_key(context)
        assert len(key) == 64
        int(key, 16)
