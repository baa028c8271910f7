"""Tests for the time-series aggregator.

Covers:
    - Window filtering and direction filtering
    - Monthly and daily bucketing, chronological order
    - Order independence
    - Insufficient-data signalling
    - Un-windowed monthly totals
"""

import random
from datetime import datetime, timedelta

import pytest

from inventory_insight.errors import InsufficientData
from inventory_insight.models import Movement, MovementDirection
from inventory_insight.timeseries import (
    DAY,
    MONTH,
    WEEK,
    aggregate,
    bucket,
    filter_window,
    monthly_series,
    monthly_totals,
    resolve_window,
    sort_movements,
)

NOW = datetime(2026, 10, 18, 12, 0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _make_movement(
    movement_id: int,
    timestamp: datetime,
    quantity: int = 5,
    direction: MovementDirection = MovementDirection.OUT,
    product_id: int = 1,
) -> Movement:
    return Movement(
        id=movement_id,
        product_id=product_id,
        direction=direction,
        quantity=quantity,
        timestamp=timestamp,
    )


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


class TestFilterWindow:
    def test_excludes_movements_before_window(self):
        inside = _make_movement(1, NOW - timedelta(days=10))
        outside = _make_movement(2, NOW - timedelta(days=40))
        assert filter_window([inside, outside], NOW, 30) == [inside]

    def test_window_start_is_inclusive(self):
        edge = _make_movement(1, NOW - timedelta(days=30))
        assert filter_window([edge], NOW, 30) == [edge]

    def test_outbound_only_by_default(self):
        out = _make_movement(1, NOW - timedelta(days=1))
        inbound = _make_movement(2, NOW - timedelta(days=1), direction=MovementDirection.IN)
        assert filter_window([out, inbound], NOW, 30) == [out]

    def test_direction_none_keeps_both(self):
        out = _make_movement(1, NOW - timedelta(days=2))
        inbound = _make_movement(2, NOW - timedelta(days=1), direction=MovementDirection.IN)
        assert filter_window([inbound, out], NOW, 30, direction=None) == [out, inbound]

    def test_ties_broken_by_id(self):
        ts = NOW - timedelta(days=1)
        a = _make_movement(7, ts)
        b = _make_movement(3, ts)
        assert sort_movements([a, b]) == [b, a]


# ---------------------------------------------------------------------------
# Bucketing
# ---------------------------------------------------------------------------


class TestBucket:
    def test_monthly_buckets_sum_and_order(self):
        movements = [
            _make_movement(1, datetime(2026, 9, 3), 4),
            _make_movement(2, datetime(2026, 7, 20), 6),
            _make_movement(3, datetime(2026, 9, 28), 1),
        ]
        buckets = bucket(movements, MONTH)
        assert [b.period for b in buckets] == ["2026-07", "2026-09"]
        assert [b.quantity for b in buckets] == [6, 5]
        assert buckets[1].month == 9

    def test_daily_buckets(self):
        movements = [
            _make_movement(1, datetime(2026, 9, 3, 9), 4),
            _make_movement(2, datetime(2026, 9, 3, 17), 2),
            _make_movement(3, datetime(2026, 9, 4, 8), 1),
        ]
        buckets = bucket(movements, DAY)
        assert [(b.period, b.quantity) for b in buckets] == [
            ("2026-09-03", 6),
            ("2026-09-04", 1),
        ]

    def test_order_independent(self):
        movements = [
            _make_movement(i, NOW - timedelta(days=3 * i), quantity=i + 1) for i in range(20)
        ]
        shuffled = list(movements)
        random.Random(7).shuffle(shuffled)
        assert aggregate(movements, NOW, 180) == aggregate(shuffled, NOW, 180)

    def test_empty(self):
        assert bucket([]) == []


class TestMonthlySeries:
    def test_raises_when_too_few_outbound(self):
        movements = [_make_movement(i, NOW - timedelta(days=i + 1)) for i in range(4)]
        with pytest.raises(InsufficientData) as exc_info:
            monthly_series(movements, NOW, 180, min_movements=5)
        assert exc_info.value.available == 4
        assert exc_info.value.required == 5

    def test_inbound_does_not_count(self):
        movements = [
            _make_movement(i, NOW - timedelta(days=i + 1), direction=MovementDirection.IN)
            for i in range(10)
        ]
        with pytest.raises(InsufficientData):
            monthly_series(movements, NOW, 180, min_movements=5)

    def test_returns_buckets(self):
        movements = [_make_movement(i, NOW - timedelta(days=i + 1)) for i in range(5)]
        buckets = monthly_series(movements, NOW, 180, min_movements=5)
        assert sum(b.quantity for b in buckets) == 25


class TestMonthlyTotals:
    def test_ignores_window_and_inbound(self):
        movements = [
            _make_movement(1, datetime(2024, 1, 5), 3),
            _make_movement(2, datetime(2024, 1, 9), 2),
            _make_movement(3, datetime(2026, 9, 1), 7),
            _make_movement(4, datetime(2026, 9, 2), 50, direction=MovementDirection.IN),
        ]
        assert monthly_totals(movements) == {"2024-01": 5, "2026-09": 7}


class TestResolveWindow:
    def test_none_selects_default(self):
        assert resolve_window(None, 180) == 180

    def test_explicit_window_kept(self):
        assert resolve_window(7, 180) == 7

    @pytest.mark.parametrize("window_days", [0, -1])
    def test_non_positive_rejected(self, window_days):
        with pytest.raises(ValueError):
            resolve_window(window_days, 180)


class TestWeeklyBuckets:
    def test_iso_week_keys(self):
        movements = [
            _make_movement(1, datetime(2026, 10, 12, 9), 4),  # Monday, week 42
            _make_movement(2, datetime(2026, 10, 18, 9), 6),  # Sunday, week 42
            _make_movement(3, datetime(2026, 10, 19, 9), 1),  # Monday, week 43
        ]
        buckets = bucket(movements, WEEK)
        assert [(b.period, b.quantity) for b in buckets] == [("2026-W42", 10), ("2026-W43", 1)]
