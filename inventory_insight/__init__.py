"""Inventory Insight: consumption analytics for small inventories.

Classifies consumption patterns, predicts stock depletion, detects
anomalies, relates products to each other and turns it all into
replenishment advice. Pure computation over a snapshot read from a
pluggable data gateway.

Usage:
    from inventory_insight import InsightService, FrameGateway

    service = InsightService(FrameGateway.from_csv("products.csv", "movements.csv"))
    pattern = service.classify_pattern(42)
    print(pattern.type.display_name, pattern.confidence)
    for line in service.recommend(42):
        print(line)
    print(service.consumption_trend(42).description)

With custom heuristics:
    from inventory_insight import InsightService, InMemoryGateway, load_settings

    service = InsightService(
        InMemoryGateway(products, movements),
        settings=load_settings("insight.yaml"),
    )
    service.build_shopping_list().to_dict()
"""

from .anomalies import AnomalyDetector
from .config import InsightSettings, get_settings, load_settings
from .depletion import DepletionPredictor
from .errors import (
    DegradationSink,
    ErrorKind,
    InsightError,
    InsufficientData,
    LoggingSink,
    NotFound,
    Outcome,
    StorageUnavailable,
)
from .fanout import fan_out, run_parallel
from .gateway import DataGateway, FrameGateway, InMemoryGateway, Snapshot
from .models import (
    AnalyzedPeriod,
    Anomaly,
    AnomalyKind,
    Cluster,
    ConfidenceLevel,
    ConsumptionPattern,
    ConsumptionTrend,
    Correlation,
    CorrelationKind,
    DepletionPrediction,
    DepletionScenario,
    Movement,
    MovementDirection,
    PatternType,
    PeriodQuantity,
    Product,
    ProductInsight,
    ScenarioKind,
    SeasonalityFactor,
    Severity,
    SimilarityResult,
    SimilarProducts,
    TrendDirection,
    to_naive_utc,
)
from .patterns import PatternClassifier
from .recommendations import FALLBACK_RECOMMENDATIONS, RecommendationGenerator
from .replenishment import PriorityItem, ReplenishmentPlanner, ShoppingList
from .service import InsightService
from .similarity import SimilarityEngine, SimilarityMatrix, pattern_similarity, pearson
from .trends import TrendAnalyzer

__all__ = [
    # Service
    "InsightService",
    # Gateways
    "DataGateway",
    "InMemoryGateway",
    "FrameGateway",
    "Snapshot",
    # Analyzers
    "PatternClassifier",
    "DepletionPredictor",
    "AnomalyDetector",
    "SimilarityEngine",
    "SimilarityMatrix",
    "RecommendationGenerator",
    "ReplenishmentPlanner",
    "TrendAnalyzer",
    "pattern_similarity",
    "pearson",
    "fan_out",
    "run_parallel",
    # Models
    "AnalyzedPeriod",
    "Anomaly",
    "AnomalyKind",
    "Cluster",
    "ConfidenceLevel",
    "ConsumptionPattern",
    "ConsumptionTrend",
    "Correlation",
    "CorrelationKind",
    "DepletionPrediction",
    "DepletionScenario",
    "Movement",
    "MovementDirection",
    "PatternType",
    "PeriodQuantity",
    "Product",
    "ProductInsight",
    "ScenarioKind",
    "SeasonalityFactor",
    "Severity",
    "SimilarityResult",
    "SimilarProducts",
    "TrendDirection",
    "to_naive_utc",
    "PriorityItem",
    "ShoppingList",
    "FALLBACK_RECOMMENDATIONS",
    # Config
    "InsightSettings",
    "get_settings",
    "load_settings",
    # Errors
    "ErrorKind",
    "InsightError",
    "InsufficientData",
    "NotFound",
    "StorageUnavailable",
    "Outcome",
    "DegradationSink",
    "LoggingSink",
]
