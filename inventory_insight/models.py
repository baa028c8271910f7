"""Pydantic models for the inventory analytics core.

Input records (``Product``, ``Movement``) are read-only snapshots handed
over by the data gateway. Every derived model (pattern, prediction,
anomaly, correlation, cluster) is recomputed per request and owned by
the caller.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MovementDirection(str, Enum):
    """Direction of a stock movement."""

    IN = "in"
    OUT = "out"


class PatternType(str, Enum):
    """Consumption pattern classification."""

    SEASONAL = "seasonal"
    REGULAR = "regular"
    IRREGULAR = "irregular"
    GROWING = "growing"
    DECLINING = "declining"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class ConfidenceLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        """Numeric rank for sorting. Higher = worse."""
        return {Severity.LOW: 1, Severity.MEDIUM: 2, Severity.HIGH: 3}[self]


class AnomalyKind(str, Enum):
    SUSPICIOUS_MOVEMENT = "suspicious_movement"
    INCONSISTENT_STOCK = "inconsistent_stock"
    INVENTORY_DIVERGENCE = "inventory_divergence"

    @property
    def display_name(self) -> str:
        return {
            AnomalyKind.SUSPICIOUS_MOVEMENT: "Suspicious Movement",
            AnomalyKind.INCONSISTENT_STOCK: "Inconsistent Stock",
            AnomalyKind.INVENTORY_DIVERGENCE: "Inventory Divergence",
        }[self]


class CorrelationKind(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class ScenarioKind(str, Enum):
    """Consumption assumption behind a depletion scenario."""

    REALISTIC = "realistic"
    OPTIMISTIC = "optimistic"
    PESSIMISTIC = "pessimistic"


class TrendDirection(str, Enum):
    GROWTH = "growth"
    DECLINE = "decline"
    STABLE = "stable"


def to_naive_utc(moment: datetime) -> datetime:
    """Express ``moment`` as a naive UTC datetime.

    Aware values are converted; naive values are taken to be UTC already.
    """
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Input records
# ---------------------------------------------------------------------------


class Movement(BaseModel):
    """A single append-only stock movement."""

    model_config = ConfigDict(frozen=True)

    id: int
    product_id: int
    direction: MovementDirection
    quantity: int = Field(gt=0)
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _naive_utc(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    @property
    def is_outbound(self) -> bool:
        return self.direction == MovementDirection.OUT

    @property
    def signed_quantity(self) -> int:
        return -self.quantity if self.is_outbound else self.quantity


class Product(BaseModel):
    """Read-only product snapshot from the inventory system."""

    model_config = ConfigDict(frozen=True)

    id: int
    code: str
    name: str
    quantity_on_hand: int = 0
    min_quantity: int | None = None
    supplier: str | None = None
    category: str | None = None
    location: str | None = None


# ---------------------------------------------------------------------------
# Consumption pattern
# ---------------------------------------------------------------------------


class PeriodQuantity(BaseModel):
    """Quantity observed (or forecast) for one ``YYYY-MM`` period."""

    period: str
    quantity: float


class SeasonalityFactor(BaseModel):
    """Ratio of a calendar month's average consumption to the overall mean."""

    month: int = Field(ge=1, le=12)
    factor: float


class AnalyzedPeriod(BaseModel):
    start: date
    end: date


class ConsumptionPattern(BaseModel):
    """Classified outbound-consumption behaviour of one product."""

    type: PatternType
    confidence: float = Field(ge=0.0, le=1.0)
    description: str
    analyzed_period: AnalyzedPeriod
    mean_consumption: float = 0.0
    peaks: list[PeriodQuantity] = Field(default_factory=list)
    troughs: list[PeriodQuantity] = Field(default_factory=list)
    monthly_forecast: list[PeriodQuantity] | None = None
    seasonality_factors: list[SeasonalityFactor] | None = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: float) -> float:
        return min(1.0, max(0.0, float(v)))

    @property
    def has_peaks(self) -> bool:
        return bool(self.peaks)

    def seasonality_factor(self, month: int, default: float = 1.0) -> float:
        """Factor for a calendar month, or ``default`` when unknown."""
        for f in self.seasonality_factors or []:
            if f.month == month:
                return f.factor
        return default


# ---------------------------------------------------------------------------
# Depletion
# ---------------------------------------------------------------------------


class DepletionScenario(BaseModel):
    """Days-to-zero under one consumption assumption."""

    kind: ScenarioKind
    days_remaining: int | None = None
    depletion_date: date | None = None
    probability: float = Field(ge=0.0, le=1.0)
    expected_deviation: float = 0.0


class DepletionPrediction(BaseModel):
    """Days-to-zero-stock estimate and reorder advice.

    ``days_remaining`` is the realistic scenario. ``scenarios`` lists the
    realistic, optimistic and pessimistic variants when the product has
    measurable consumption.
    """

    days_remaining: int | None = None
    depletion_date: date | None = None
    daily_consumption: float = 0.0
    confidence: ConfidenceLevel = ConfidenceLevel.LOW
    needs_reorder: bool = False
    recommended_quantity: int = Field(default=0, ge=0)
    alert_priority: int = Field(default=2, ge=1, le=10)
    estimated_cost: float = 0.0
    scenarios: list[DepletionScenario] = Field(default_factory=list)
    stockout_probability: float = Field(default=0.0, ge=0.0, le=1.0)
    monthly_forecast: list[PeriodQuantity] = Field(default_factory=list)

    def scenario(self, kind: ScenarioKind) -> DepletionScenario | None:
        return next((s for s in self.scenarios if s.kind == kind), None)


class ConsumptionTrend(BaseModel):
    """Direction and short-term forecast of recent outbound consumption."""

    direction: TrendDirection
    percent_change: float = 0.0
    description: str
    confidence: ConfidenceLevel = ConfidenceLevel.LOW
    forecast: list[PeriodQuantity] | None = None
    seasonal: bool = False


# ---------------------------------------------------------------------------
# Anomalies
# ---------------------------------------------------------------------------


class Anomaly(BaseModel):
    """A statistically unusual or inconsistent inventory event."""

    product_id: int
    kind: AnomalyKind
    detected_at: datetime
    description: str
    severity: Severity
    occurred_at: datetime | None = None
    suggested_fix: str | None = None
    estimated_impact: float | None = None


# ---------------------------------------------------------------------------
# Similarity, correlation, clustering
# ---------------------------------------------------------------------------


class SimilarityResult(BaseModel):
    product_id: int
    name: str
    similarity: float = Field(ge=0.0, le=1.0)
    potential_substitute: bool = False


class SimilarProducts(BaseModel):
    """Top similar products for a reference product."""

    products: list[SimilarityResult] = Field(default_factory=list)
    reference_pattern: str = ""


class Correlation(BaseModel):
    product_a: int
    product_b: int
    coefficient: float = Field(ge=-1.0, le=1.0)
    kind: CorrelationKind
    confidence: float = Field(ge=0.0, le=1.0)
    description: str


class Cluster(BaseModel):
    """A group of products with mutually high behavioural similarity."""

    name: str
    member_ids: list[int]
    intra_cluster_similarity: float = Field(ge=0.0, le=1.0)
    dominant_pattern_type: str

    @field_validator("intra_cluster_similarity", mode="before")
    @classmethod
    def _clamp_similarity(cls, v: float) -> float:
        return min(1.0, max(0.0, float(v)))


class ProductInsight(BaseModel):
    """Everything known about one product, computed over one snapshot."""

    product: Product
    pattern: ConsumptionPattern
    prediction: DepletionPrediction
    anomalies: list[Anomaly] = Field(default_factory=list)
    similar: SimilarProducts = Field(default_factory=SimilarProducts)
    recommendations: list[str] = Field(default_factory=list)
