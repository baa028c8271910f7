"""Consumption Pattern Classifier.

Turns a product's monthly outbound series into a ConsumptionPattern:
type, confidence, peaks/troughs, seasonality factors and a six-month
forecast.

Statistics over the n monthly buckets:
    mean   = average bucket quantity
    trend  = sum(sign(b[i] - b[i-1]))      -- up/down vote, not a slope
    cv     = mean(|b[i] - mean|) / mean
    factor[m] = avg(buckets in calendar month m) / mean

Classification (first match wins, default confidences):
    seasonal   seasonality AND >= 4 distinct months  0.6 + 0.3 * months/12
    growing    trend >  n * 0.5                      0.7 + 0.3 * trend/n
    declining  trend < -n * 0.5                      0.7 + 0.3 * |trend|/n
    regular    cv < 0.2                              0.8
    seasonal   >= 2 peaks OR >= 2 troughs            0.6 + 0.05 * peaks
    irregular  otherwise                             0.4
"""

from __future__ import annotations

import calendar
import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from .config import InsightSettings, PatternHeuristics, get_settings
from .errors import InsufficientData
from .models import (
    AnalyzedPeriod,
    ConsumptionPattern,
    Movement,
    PatternType,
    PeriodQuantity,
    SeasonalityFactor,
)
from .timeseries import PeriodBucket, monthly_series, resolve_window, window_start

logger = logging.getLogger("insight.patterns")


def _sign(x: float) -> int:
    return (x > 0) - (x < 0)


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _add_months(moment: datetime, months: int) -> tuple[int, int]:
    idx = moment.month - 1 + months
    return moment.year + idx // 12, idx % 12 + 1


@dataclass
class SeriesStats:
    """Summary statistics of a monthly series."""

    n: int
    mean: float
    trend: int
    coefficient_of_variation: float
    peaks: list[PeriodBucket] = field(default_factory=list)
    troughs: list[PeriodBucket] = field(default_factory=list)
    factors: dict[int, float] = field(default_factory=dict)
    has_seasonality: bool = False

    @property
    def distinct_months(self) -> int:
        return len(self.factors)

    def factor(self, month: int, default: float = 1.0) -> float:
        return self.factors.get(month, default)


def compute_stats(
    buckets: list[PeriodBucket], heuristics: PatternHeuristics | None = None
) -> SeriesStats:
    """Summary statistics for a non-empty, chronologically ordered series."""
    h = heuristics or get_settings().patterns
    if not buckets:
        raise InsufficientData("Empty series", available=0, required=1)

    values = [b.quantity for b in buckets]
    n = len(values)
    mean = sum(values) / n
    trend = sum(_sign(values[i] - values[i - 1]) for i in range(1, n))
    mad = sum(abs(v - mean) for v in values) / n
    cv = mad / mean if mean > 0 else 0.0

    peaks = [b for b in buckets if b.quantity > mean * h.peak_factor]
    troughs = [b for b in buckets if b.quantity < mean * h.trough_factor]

    by_month: dict[int, list[int]] = defaultdict(list)
    for b in buckets:
        by_month[b.month].append(b.quantity)
    factors: dict[int, float] = {}
    if mean > 0:
        for month in sorted(by_month):
            month_values = by_month[month]
            factors[month] = (sum(month_values) / len(month_values)) / mean

    has_seasonality = any(
        f > h.seasonal_high or f < h.seasonal_low for f in factors.values()
    )

    return SeriesStats(
        n=n,
        mean=mean,
        trend=trend,
        coefficient_of_variation=cv,
        peaks=peaks,
        troughs=troughs,
        factors=factors,
        has_seasonality=has_seasonality,
    )


def forecast(
    stats: SeriesStats,
    now: datetime,
    heuristics: PatternHeuristics | None = None,
) -> list[PeriodQuantity]:
    """Seasonally and trend-adjusted forecast for the next months."""
    h = heuristics or get_settings().patterns
    growth = stats.trend / stats.n if stats.n else 0.0
    result = []
    for i in range(1, h.forecast_months + 1):
        year, month = _add_months(now, i)
        value = stats.mean * stats.factor(month)
        value *= 1 + growth * h.forecast_trend_weight * i
        result.append(
            PeriodQuantity(
                period=f"{year:04d}-{month:02d}",
                quantity=round_half_up(max(0.0, value)),
            )
        )
    return result


def _half_change(buckets: list[PeriodBucket]) -> tuple[float, float]:
    """Mean of the first and second half of the series."""
    split = math.ceil(len(buckets) / 2)
    first = [b.quantity for b in buckets[:split]]
    last = [b.quantity for b in buckets[split:]] or first
    return sum(first) / len(first), sum(last) / len(last)


class PatternClassifier:
    """Classify consumption behaviour from movement history.

    Usage:
        classifier = PatternClassifier()
        pattern = classifier.classify(movements, now=datetime.now())
        print(pattern.type, pattern.confidence)
    """

    def __init__(self, settings: InsightSettings | None = None):
        self.settings = settings or get_settings()
        self.heuristics = self.settings.patterns

    def _period(self, now: datetime, window_days: int) -> AnalyzedPeriod:
        return AnalyzedPeriod(
            start=window_start(now, window_days).date(), end=now.date()
        )

    def insufficient_pattern(self, now: datetime, window_days: int) -> ConsumptionPattern:
        return ConsumptionPattern(
            type=PatternType.IRREGULAR,
            confidence=self.heuristics.insufficient_confidence,
            description="Insufficient data for a reliable analysis",
            analyzed_period=self._period(now, window_days),
            mean_consumption=0.0,
        )

    def failed_pattern(self, now: datetime, window_days: int) -> ConsumptionPattern:
        return ConsumptionPattern(
            type=PatternType.IRREGULAR,
            confidence=self.heuristics.failure_confidence,
            description="Analysis failed",
            analyzed_period=self._period(now, window_days),
            mean_consumption=0.0,
        )

    def classify(
        self,
        movements: Iterable[Movement],
        now: datetime,
        window_days: int | None = None,
    ) -> ConsumptionPattern:
        """Classify one product's movements.

        Returns the insufficient-data pattern (irregular, 0.3) when the
        window holds too few outbound movements.
        """
        window_days = resolve_window(window_days, self.heuristics.window_days)
        try:
            buckets = monthly_series(
                movements, now, window_days, self.heuristics.min_movements
            )
        except InsufficientData as e:
            logger.debug("Pattern short-circuit: %s", e)
            return self.insufficient_pattern(now, window_days)
        return self.classify_series(buckets, now, window_days)

    def classify_series(
        self,
        buckets: list[PeriodBucket],
        now: datetime,
        window_days: int | None = None,
    ) -> ConsumptionPattern:
        """Classify an already bucketed monthly series."""
        h = self.heuristics
        window_days = resolve_window(window_days, h.window_days)
        stats = compute_stats(buckets, h)
        pattern_type, confidence, description = self._decide(stats, buckets)

        return ConsumptionPattern(
            type=pattern_type,
            confidence=confidence,
            description=description,
            analyzed_period=self._period(now, window_days),
            mean_consumption=stats.mean,
            peaks=[PeriodQuantity(period=b.period, quantity=b.quantity) for b in stats.peaks],
            troughs=[PeriodQuantity(period=b.period, quantity=b.quantity) for b in stats.troughs],
            monthly_forecast=forecast(stats, now, h),
            seasonality_factors=(
                [SeasonalityFactor(month=m, factor=f) for m, f in stats.factors.items()]
                if stats.has_seasonality
                else None
            ),
        )

    def _decide(
        self, stats: SeriesStats, buckets: list[PeriodBucket]
    ) -> tuple[PatternType, float, str]:
        h = self.heuristics
        n = stats.n

        if stats.has_seasonality and stats.distinct_months >= h.min_seasonal_months:
            coverage = min(1.0, stats.distinct_months / 12)
            ranked = sorted(stats.factors.items(), key=lambda kv: kv[1], reverse=True)
            high = calendar.month_name[ranked[0][0]]
            low = calendar.month_name[ranked[-1][0]]
            return (
                PatternType.SEASONAL,
                h.seasonal_base_confidence + h.seasonal_coverage_weight * coverage,
                f"Seasonal pattern with peak in {high} and lowest consumption in {low}",
            )

        if stats.trend > n * h.trend_vote_ratio:
            confidence = h.trend_base_confidence + h.trend_vote_weight * (stats.trend / n)
            first, last = _half_change(buckets)
            rate = (last / first - 1) * 100 if first else 0.0
            return (
                PatternType.GROWING,
                confidence,
                f"Consumption growing by {rate:.1f}% "
                f"({round(min(confidence, 1.0) * 100)}% confidence)",
            )

        if stats.trend < -n * h.trend_vote_ratio:
            confidence = h.trend_base_confidence + h.trend_vote_weight * (abs(stats.trend) / n)
            first, last = _half_change(buckets)
            rate = (1 - last / first) * 100 if first else 0.0
            return (
                PatternType.DECLINING,
                confidence,
                f"Consumption declining by {rate:.1f}% "
                f"({round(min(confidence, 1.0) * 100)}% confidence)",
            )

        if stats.coefficient_of_variation < h.regular_cv_cutoff:
            return PatternType.REGULAR, h.regular_confidence, "Regular, predictable consumption"

        if len(stats.peaks) >= 2 or len(stats.troughs) >= 2:
            return (
                PatternType.SEASONAL,
                h.seasonal_base_confidence + h.peak_confidence_step * len(stats.peaks),
                "Seasonal pattern with periodic variations",
            )

        return (
            PatternType.IRREGULAR,
            h.irregular_confidence,
            "Irregular consumption with no clear pattern",
        )
