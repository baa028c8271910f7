"""Heuristic configuration for the analytics core.

Every threshold the analyzers use lives here as a named, overridable
value. They encode business heuristics, not laws, so deployments tune
them through environment variables (prefix ``INSIGHT_``, nested with
``__``), a ``.env`` file, or a YAML file loaded with ``load_settings``.

Usage:
    from inventory_insight.config import get_settings, load_settings

    settings = get_settings()
    settings = load_settings("config/insight.yaml")

    # INSIGHT_ANOMALIES__ASSUMED_UNIT_VALUE=12.5 overrides a single value
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("insight.config")


class PatternHeuristics(BaseModel):
    """Consumption pattern classification thresholds."""

    window_days: int = Field(default=180, gt=0)
    min_movements: int = Field(
        default=5, description="Outbound movements needed before classifying."
    )
    insufficient_confidence: float = 0.3
    failure_confidence: float = 0.1
    peak_factor: float = Field(default=1.5, description="Bucket > factor x mean is a peak.")
    trough_factor: float = Field(default=0.5, description="Bucket < factor x mean is a trough.")
    seasonal_high: float = 1.3
    seasonal_low: float = 0.7
    min_seasonal_months: int = 4
    trend_vote_ratio: float = Field(
        default=0.5, description="Trend votes above ratio x buckets mean growth."
    )
    regular_cv_cutoff: float = 0.2
    forecast_months: int = 6
    forecast_trend_weight: float = 0.1

    # Confidence per classification branch
    seasonal_base_confidence: float = 0.6
    seasonal_coverage_weight: float = Field(
        default=0.3, description="Added in proportion to months covered out of 12."
    )
    trend_base_confidence: float = 0.7
    trend_vote_weight: float = Field(
        default=0.3, description="Added in proportion to trend votes per bucket."
    )
    regular_confidence: float = 0.8
    peak_confidence_step: float = Field(
        default=0.05, description="Added per peak in the fallback seasonal branch."
    )
    irregular_confidence: float = 0.4

    @model_validator(mode="after")
    def check_ordering(self) -> PatternHeuristics:
        if self.trough_factor >= self.peak_factor:
            raise ValueError(
                f"trough_factor ({self.trough_factor}) must be below "
                f"peak_factor ({self.peak_factor})"
            )
        if self.seasonal_low >= self.seasonal_high:
            raise ValueError(
                f"seasonal_low ({self.seasonal_low}) must be below "
                f"seasonal_high ({self.seasonal_high})"
            )
        return self


class DepletionHeuristics(BaseModel):
    """Days-to-zero and reorder heuristics."""

    window_days: int = Field(default=30, gt=0)
    min_movements: int = 3
    default_min_quantity: int = 5
    reorder_horizon_days: int = 14
    cover_days: int = Field(default=30, description="Days of demand a reorder should cover.")
    safety_days: int = Field(
        default=7, description="Reorder threshold when the product has no minimum."
    )
    high_confidence_movements: int = 10
    high_confidence_min_window: int = Field(
        default=30, description="Shorter windows never reach high confidence."
    )
    low_confidence_movements: int = 5
    forecast_months: int = 6

    # Scenarios: consumption multipliers around the realistic rate
    optimistic_factor: float = Field(default=0.8, gt=0)
    pessimistic_factor: float = Field(default=1.3, gt=0)
    base_deviation: float = 0.1
    seasonal_deviation: float = 0.15
    irregular_deviation: float = 0.2
    optimistic_deviation_factor: float = 0.7
    pessimistic_deviation_factor: float = 1.5
    # (realistic, optimistic, pessimistic) probabilities by horizon
    short_horizon_days: int = 30
    long_horizon_days: int = 90
    short_horizon_probabilities: tuple[float, float, float] = (0.7, 0.15, 0.15)
    mid_horizon_probabilities: tuple[float, float, float] = (0.6, 0.2, 0.2)
    long_horizon_probabilities: tuple[float, float, float] = (0.5, 0.25, 0.25)

    # Stockout probability
    stockout_horizon_days: int = Field(
        default=30, gt=0, description="Pessimistic runs shorter than this drive the risk."
    )
    distant_stockout_factor: float = 0.5
    no_consumption_stockout: float = Field(default=0.05, ge=0, le=1)
    low_stock_stockout: float = Field(
        default=0.8, ge=0, le=1, description="Too little history, stock at or below minimum."
    )
    stocked_stockout: float = Field(
        default=0.2, ge=0, le=1, description="Too little history, stock above minimum."
    )

    @model_validator(mode="after")
    def check_scenarios(self) -> DepletionHeuristics:
        if not self.optimistic_factor < 1 < self.pessimistic_factor:
            raise ValueError(
                f"optimistic_factor ({self.optimistic_factor}) must be below 1 and "
                f"pessimistic_factor ({self.pessimistic_factor}) above it"
            )
        return self


class TrendHeuristics(BaseModel):
    """Consumption trend analysis thresholds."""

    window_days: int = Field(default=90, gt=0)
    min_movements: int = 5
    weekly_min_movements: int = Field(
        default=20, description="Bucket by ISO week instead of month from this many movements."
    )
    change_threshold_pct: float = 10.0
    seasonal_variation: float = Field(
        default=0.3, description="Month average vs overall mean that counts as seasonal."
    )
    min_seasonal_months: int = 3
    recent_periods: int = 3
    forecast_periods: int = 3
    high_confidence_periods: int = 6
    medium_confidence_periods: int = 4
    non_seasonal_medium_periods: int = 3


class RecommendationHeuristics(BaseModel):
    """Advisory text thresholds."""

    recent_anomaly_days: int = 30
    lead_time_days: int = 15
    lead_time_safety_factor: float = 1.5
    ideal_cover_months: int = 2
    reorder_point_factor: float = 1.2
    restock_ratio: float = Field(
        default=0.7, description="Below ratio x ideal stock, regular products get levels."
    )
    cheap_month_factor: float = Field(
        default=0.8, description="Seasonality factor below which a month is cheap to buy in."
    )
    high_demand_factor: float = 1.2
    urgent_cover_months: float = Field(
        default=1.5, description="Months of mean demand ordered when no reorder quantity is known."
    )
    steady_decline_confidence: float = 0.7
    excess_stock_ratio: float = Field(
        default=2.0, description="On hand above ratio x minimum counts as excess."
    )
    irregular_detail_confidence: float = 0.4
    joint_purchase_products: int = 3
    joint_purchase_similarity: float = 0.7


class AnomalyHeuristics(BaseModel):
    """Outlier, replay and off-hours detection thresholds."""

    min_movements: int = 5
    min_outbound_samples: int = 3
    outlier_sigma: float = 3.0
    outlier_min_quantity: int = 5
    outlier_high_ratio: float = 1.5
    divergence_abs: float = 5
    divergence_ratio: float = 0.1
    divergence_high_ratio: float = 0.2
    off_hours_enabled: bool = True
    off_hours_start: int = Field(default=22, ge=0, le=23)
    off_hours_end: int = Field(default=6, ge=0, le=23)
    off_hours_min_count: int = 3
    # Placeholder per-unit value for impact estimates; not a pricing model.
    assumed_unit_value: float = 30.0


class SimilarityHeuristics(BaseModel):
    """Pairwise similarity and correlation thresholds."""

    type_weight: float = 0.3
    mean_weight: float = 0.4
    peaks_weight: float = 0.15
    peak_overlap_weight: float = 0.15
    report_threshold: float = 0.4
    top_n: int = 5
    substitute_correlation: float = -0.6
    substitute_min_similarity: float = 0.7
    min_shared_months: int = 4
    min_outbound_movements: int = 5
    correlation_strong: float = 0.6
    correlation_moderate: float = 0.3
    correlation_report_threshold: float = 0.4
    neutral_confidence: float = 0.2


class ClusteringHeuristics(BaseModel):
    """Greedy clustering weights and thresholds."""

    type_weight: float = 0.5
    mean_weight: float = 0.3
    confidence_weight: float = 0.2
    threshold: float = 0.7
    min_neighbors: int = 2
    min_unlabeled: int = 3
    min_catalog_size: int = 5
    min_category_size: int = 2
    subgroup_min_category_size: int = 8
    subgroup_type_weight: float = 0.6
    subgroup_mean_weight: float = 0.2
    subgroup_seasonality_weight: float = 0.2
    subgroup_threshold: float = 0.6
    misc_similarity: float = 0.4
    max_catalog_size: int = Field(
        default=500, description="Pairwise clustering is skipped above this size."
    )


class ReplenishmentHeuristics(BaseModel):
    """Priority list and shopping list parameters."""

    high_urgency_days: int = 7
    medium_urgency_days: int = 14
    min_supplier_products: int = 3
    ordering_cost: float = 100.0
    holding_cost_rate: float = 0.2


class InsightSettings(BaseSettings):
    """Configuration for the analytics core.

    All values can be set via environment variables or .env file.
    Prefix: INSIGHT_, nested groups separated by ``__``.
    """

    patterns: PatternHeuristics = Field(default_factory=PatternHeuristics)
    depletion: DepletionHeuristics = Field(default_factory=DepletionHeuristics)
    trends: TrendHeuristics = Field(default_factory=TrendHeuristics)
    recommendations: RecommendationHeuristics = Field(
        default_factory=RecommendationHeuristics
    )
    anomalies: AnomalyHeuristics = Field(default_factory=AnomalyHeuristics)
    similarity: SimilarityHeuristics = Field(default_factory=SimilarityHeuristics)
    clustering: ClusteringHeuristics = Field(default_factory=ClusteringHeuristics)
    replenishment: ReplenishmentHeuristics = Field(
        default_factory=ReplenishmentHeuristics
    )

    max_workers: int = Field(
        default=8, gt=0, description="Thread pool size for per-product fan-out."
    )

    model_config = SettingsConfigDict(
        env_prefix="INSIGHT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


def _load_yaml(path: Path) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_settings(path: str | Path) -> InsightSettings:
    """Load settings from a YAML file.

    Args:
        path: YAML file whose top-level keys mirror ``InsightSettings``.

    Raises:
        FileNotFoundError: If the file does not exist.
        pydantic.ValidationError: If a value is invalid or inconsistent.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")

    settings = InsightSettings(**_load_yaml(path))
    logger.info(
        "Loaded insight settings from %s (unit value %.2f, cluster ceiling %d)",
        path,
        settings.anomalies.assumed_unit_value,
        settings.clustering.max_catalog_size,
    )
    return settings


@lru_cache
def get_settings() -> InsightSettings:
    """Get cached settings singleton."""
    return InsightSettings()
