"""Time-series aggregation of stock movements.

Buckets one product's movements into chronological periods. Movements
are filtered to the lookback window and sorted before grouping, so the
result depends only on the multiset of movements, never on their order.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from .errors import InsufficientData
from .models import Movement, MovementDirection

MONTH = "month"
WEEK = "week"
DAY = "day"

_PERIOD_FORMATS = {MONTH: "%Y-%m", WEEK: "%G-W%V", DAY: "%Y-%m-%d"}


@dataclass(frozen=True)
class PeriodBucket:
    """Total quantity moved in one period (``YYYY-MM``, ``YYYY-Www`` or ``YYYY-MM-DD``)."""

    period: str
    quantity: int

    @property
    def month(self) -> int:
        """Calendar month of a monthly or daily bucket (1-12)."""
        return int(self.period[5:7])


def sort_movements(movements: Iterable[Movement]) -> list[Movement]:
    """Chronological order; ties broken by id."""
    return sorted(movements, key=lambda m: (m.timestamp, m.id))


def resolve_window(window_days: int | None, default: int) -> int:
    """Lookback window in days; ``None`` selects ``default``.

    Raises:
        ValueError: If the window is zero or negative.
    """
    if window_days is None:
        return default
    if window_days <= 0:
        raise ValueError(f"window_days must be positive, got {window_days}")
    return window_days


def window_start(now: datetime, window_days: int) -> datetime:
    return now - timedelta(days=window_days)


def filter_window(
    movements: Iterable[Movement],
    now: datetime,
    window_days: int,
    direction: MovementDirection | None = MovementDirection.OUT,
) -> list[Movement]:
    """Movements with ``timestamp >= now - window`` and matching direction.

    ``direction=None`` keeps both directions.
    """
    start = window_start(now, window_days)
    return sort_movements(
        m
        for m in movements
        if m.timestamp >= start and (direction is None or m.direction == direction)
    )


def bucket(movements: Iterable[Movement], granularity: str = MONTH) -> list[PeriodBucket]:
    """Sum quantities per period, in chronological order."""
    fmt = _PERIOD_FORMATS[granularity]
    totals: dict[str, int] = defaultdict(int)
    for m in sort_movements(movements):
        totals[m.timestamp.strftime(fmt)] += m.quantity
    return [PeriodBucket(period=p, quantity=q) for p, q in sorted(totals.items())]


def aggregate(
    movements: Iterable[Movement],
    now: datetime,
    window_days: int,
    direction: MovementDirection | None = MovementDirection.OUT,
    granularity: str = MONTH,
) -> list[PeriodBucket]:
    """Filter to the window, then bucket."""
    return bucket(filter_window(movements, now, window_days, direction), granularity)


def monthly_series(
    movements: Iterable[Movement],
    now: datetime,
    window_days: int,
    min_movements: int,
) -> list[PeriodBucket]:
    """Monthly outbound buckets for classification.

    Raises:
        InsufficientData: If fewer than ``min_movements`` outbound
            movements fall inside the window.
    """
    outbound = filter_window(movements, now, window_days, MovementDirection.OUT)
    if len(outbound) < min_movements:
        raise InsufficientData(
            f"{len(outbound)} outbound movements in {window_days} days "
            f"(need {min_movements})",
            available=len(outbound),
            required=min_movements,
        )
    return bucket(outbound, MONTH)


def monthly_totals(movements: Iterable[Movement]) -> dict[str, int]:
    """Un-windowed outbound totals keyed by ``YYYY-MM``."""
    return {
        b.period: b.quantity
        for b in bucket((m for m in movements if m.is_outbound), MONTH)
    }
