"""Consumption trend analysis.

Answers "is demand for this product going up, down or holding steady?"
over a short lookback window, with a three-period forecast.

Algorithm:
    1. Outbound movements inside the window, bucketed by ISO week when
       there are at least 20 of them, by month otherwise.
    2. percent_change = mean(second half) / mean(first half) - 1
       slope          = least-squares slope over the bucket index
       growth  if change >= +10% or slope > 0
       decline if change <= -10% or slope < 0
       stable  otherwise
    3. Seasonal when some calendar month's average movement size differs
       from the overall average by more than 30% (>= 3 months seen).
    4. Forecast: the last bucket grown by the mean period-over-period
       rate of the last three buckets, seasonally adjusted when seasonal.

Confidence:
    high:   >= 6 buckets and not seasonal
    medium: >= 4 buckets, or 3 buckets and not seasonal
    low:    otherwise
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Iterable

import numpy as np

from .config import InsightSettings, get_settings
from .models import (
    ConfidenceLevel,
    ConsumptionTrend,
    Movement,
    MovementDirection,
    PeriodQuantity,
    TrendDirection,
)
from .patterns import round_half_up
from .timeseries import MONTH, WEEK, PeriodBucket, bucket, filter_window, resolve_window

logger = logging.getLogger("insight.trends")


def _slope(values: list[int]) -> float:
    """Least-squares slope over the bucket index; exactly 0 for a flat series."""
    if len(values) < 2:
        return 0.0
    y = np.asarray(values, dtype=float)
    x = np.arange(len(y), dtype=float)
    dx = x - x.mean()
    return float((dx * (y - y.mean())).sum() / (dx * dx).sum())


def _percent_change(values: list[int]) -> float:
    split = len(values) // 2
    first, second = values[:split], values[split:]
    if not first:
        return 0.0
    first_mean = sum(first) / len(first)
    if first_mean <= 0:
        return 0.0
    return (sum(second) / len(second) - first_mean) / first_mean * 100


def _next_month(now: datetime, months: int) -> datetime:
    idx = now.month - 1 + months
    return datetime(now.year + idx // 12, idx % 12 + 1, 1)


class TrendAnalyzer:
    """Classify the recent direction of a product's consumption.

    Usage:
        analyzer = TrendAnalyzer()
        trend = analyzer.analyze(movements, now=datetime.now())
        print(trend.direction, trend.percent_change)
    """

    def __init__(self, settings: InsightSettings | None = None):
        self.settings = settings or get_settings()
        self.heuristics = self.settings.trends

    def insufficient_trend(self) -> ConsumptionTrend:
        return ConsumptionTrend(
            direction=TrendDirection.STABLE,
            description="Insufficient data for a trend analysis",
        )

    def failed_trend(self) -> ConsumptionTrend:
        return ConsumptionTrend(
            direction=TrendDirection.STABLE,
            description="Could not analyze the consumption trend",
        )

    def analyze(
        self,
        movements: Iterable[Movement],
        now: datetime,
        window_days: int | None = None,
    ) -> ConsumptionTrend:
        h = self.heuristics
        window_days = resolve_window(window_days, h.window_days)
        outbound = filter_window(movements, now, window_days, MovementDirection.OUT)
        if len(outbound) < h.min_movements:
            return self.insufficient_trend()

        weekly = len(outbound) >= h.weekly_min_movements
        buckets = bucket(outbound, WEEK if weekly else MONTH)
        values = [b.quantity for b in buckets]

        month_means, variation = self._month_profile(outbound)
        seasonal = (
            variation > h.seasonal_variation and len(month_means) >= h.min_seasonal_months
        )

        change = _percent_change(values)
        slope = _slope(values)
        if change >= h.change_threshold_pct or slope > 0:
            direction = TrendDirection.GROWTH
            description = f"Consumption up {abs(change):.1f}%"
        elif change <= -h.change_threshold_pct or slope < 0:
            direction = TrendDirection.DECLINE
            description = f"Consumption down {abs(change):.1f}%"
        else:
            direction = TrendDirection.STABLE
            description = f"Stable consumption over recent {'weeks' if weekly else 'months'}"

        n = len(buckets)
        if n >= h.high_confidence_periods and not seasonal:
            confidence = ConfidenceLevel.HIGH
        elif n >= h.medium_confidence_periods or (
            n >= h.non_seasonal_medium_periods and not seasonal
        ):
            confidence = ConfidenceLevel.MEDIUM
        else:
            confidence = ConfidenceLevel.LOW

        if seasonal:
            description += (
                f". Significant seasonality detected "
                f"({round(variation * 100)}% variation between months)"
            )
        if confidence == ConfidenceLevel.LOW:
            description += ". Low confidence due to limited history"

        forecast = self._forecast(buckets, now, weekly, month_means if seasonal else None)
        logger.debug(
            "Trend %s (%.1f%%, slope %.2f) over %d %s buckets",
            direction.value,
            change,
            slope,
            n,
            WEEK if weekly else MONTH,
        )

        return ConsumptionTrend(
            direction=direction,
            percent_change=round(change, 1),
            description=description,
            confidence=confidence,
            forecast=forecast or None,
            seasonal=seasonal,
        )

    def _month_profile(self, outbound: list[Movement]) -> tuple[dict[int, float], float]:
        """Average movement size per calendar month, relative to the overall mean.

        Returns the month means and the largest relative deviation.
        """
        by_month: dict[int, list[int]] = defaultdict(list)
        for m in outbound:
            by_month[m.timestamp.month].append(m.quantity)
        overall = sum(m.quantity for m in outbound) / len(outbound)
        means = {month: sum(q) / len(q) for month, q in by_month.items()}
        variation = max(abs(v - overall) / overall for v in means.values())
        return {month: v / overall for month, v in means.items()}, variation

    def _forecast(
        self,
        buckets: list[PeriodBucket],
        now: datetime,
        weekly: bool,
        month_factors: dict[int, float] | None,
    ) -> list[PeriodQuantity]:
        h = self.heuristics
        recent = [b.quantity for b in buckets[-h.recent_periods:]]
        if len(recent) < 2:
            return []

        rates = [
            cur / prev - 1 for prev, cur in zip(recent, recent[1:]) if prev > 0
        ]
        rate = sum(rates) / (len(recent) - 1)

        value = float(recent[-1])
        result = []
        for i in range(1, h.forecast_periods + 1):
            if weekly:
                moment = now + timedelta(days=7 * i)
                period = moment.strftime("%G-W%V")
            else:
                moment = _next_month(now, i)
                period = moment.strftime("%Y-%m")
            value *= 1 + rate
            if month_factors is not None:
                value *= month_factors.get(moment.month, 1.0)
            result.append(PeriodQuantity(period=period, quantity=max(0, round_half_up(value))))
        return result
