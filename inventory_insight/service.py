"""Inventory insight service.

The public face of the analytics core. Every operation captures one
``Snapshot`` from the data gateway, runs the analyzers over it and
returns a plain value.

Error contract:
    - ``NotFound`` (unknown product id) is raised to the caller.
    - ``ValueError`` for invalid arguments (a non-positive window) is
      raised before any work is done.
    - Any other failure returns the operation's documented fallback and
      is reported to the injected ``DegradationSink`` with its error kind.

Usage:
    service = InsightService(FrameGateway.from_csv("products.csv", "movements.csv"))
    service.classify_pattern(42)
    service.recommend(42)
    service.consumption_trend(42, window_days=90)
    service.build_shopping_list().to_dict()
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, TypeVar

from .anomalies import AnomalyDetector
from .config import InsightSettings, get_settings
from .depletion import DepletionPredictor
from .errors import DegradationSink, LoggingSink, NotFound, Outcome, error_kind
from .fanout import fan_out, run_parallel
from .gateway import DataGateway, Snapshot
from .models import (
    Anomaly,
    Cluster,
    ConsumptionPattern,
    ConsumptionTrend,
    Correlation,
    DepletionPrediction,
    Movement,
    Product,
    ProductInsight,
    SimilarProducts,
    to_naive_utc,
)
from .patterns import PatternClassifier
from .recommendations import FALLBACK_RECOMMENDATIONS, RecommendationGenerator
from .replenishment import PriorityItem, ReplenishmentPlanner, ShoppingList
from .similarity import SimilarityEngine
from .timeseries import resolve_window
from .trends import TrendAnalyzer

logger = logging.getLogger("insight.service")

T = TypeVar("T")

SIMILARITY_UNAVAILABLE = "Analysis unavailable"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class InsightService:
    """Entry points for pattern, depletion, anomaly and similarity analysis.

    Args:
        gateway: Source of products and movements.
        settings: Heuristics; defaults to ``get_settings()``.
        sink: Receives one event per degraded call; defaults to a
            ``LoggingSink``.
        clock: Returns "now"; injectable for deterministic runs. Aware
            values are converted to naive UTC, the convention movement
            timestamps follow.
    """

    def __init__(
        self,
        gateway: DataGateway,
        settings: InsightSettings | None = None,
        sink: DegradationSink | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.sink = sink or LoggingSink()
        self.clock = clock or _utc_now

        self.classifier = PatternClassifier(self.settings)
        self.predictor = DepletionPredictor(self.settings)
        self.detector = AnomalyDetector(self.settings)
        self.similarity = SimilarityEngine(self.settings)
        self.generator = RecommendationGenerator(self.settings)
        self.planner = ReplenishmentPlanner(self.settings)
        self.trends = TrendAnalyzer(self.settings)

    # -----------------------------------------------------------------
    # Plumbing
    # -----------------------------------------------------------------

    def _guard(self, operation: str, fn: Callable[[], T], fallback: T) -> Outcome[T]:
        """Run ``fn``; on failure return ``fallback`` and notify the sink."""
        try:
            return Outcome(value=fn())
        except NotFound:
            raise
        except Exception as e:
            kind = error_kind(e)
            logger.debug("%s failed", operation, exc_info=True)
            self.sink(operation, kind, str(e))
            return Outcome(value=fallback, error_kind=kind, detail=str(e))

    def _now(self) -> datetime:
        return to_naive_utc(self.clock())

    def _snapshot(self) -> Snapshot:
        return Snapshot.capture(self.gateway)

    def _workers(self) -> int:
        return self.settings.max_workers

    def _patterns(self, snapshot: Snapshot, now: datetime) -> dict[int, ConsumptionPattern]:
        """Classify every product in the snapshot concurrently."""
        ids = [p.id for p in snapshot.products]
        patterns = fan_out(
            lambda pid: self.classifier.classify(snapshot.movements_for(pid), now),
            ids,
            self._workers(),
        )
        return dict(zip(ids, patterns))

    def _predict(
        self,
        product: Product,
        movements: tuple[Movement, ...],
        now: datetime,
        window_days: int | None = None,
    ) -> DepletionPrediction:
        """Depletion estimate informed by the product's consumption pattern."""
        pattern = self.classifier.classify(movements, now)
        return self.predictor.predict(product, movements, now, window_days, pattern=pattern)

    def _predictions(
        self, snapshot: Snapshot, now: datetime
    ) -> dict[int, DepletionPrediction]:
        products = list(snapshot.products)
        predictions = fan_out(
            lambda p: self._predict(p, snapshot.movements_for(p.id), now),
            products,
            self._workers(),
        )
        return {p.id: pred for p, pred in zip(products, predictions)}

    # -----------------------------------------------------------------
    # Per-product operations
    # -----------------------------------------------------------------

    def classify_pattern(
        self, product_id: int, window_days: int | None = None
    ) -> ConsumptionPattern:
        """Consumption pattern of one product (fallback: irregular, 0.1)."""
        now = self._now()
        window_days = resolve_window(window_days, self.settings.patterns.window_days)

        def run() -> ConsumptionPattern:
            snapshot = self._snapshot()
            snapshot.product(product_id)
            return self.classifier.classify(
                snapshot.movements_for(product_id), now, window_days
            )

        return self._guard(
            "classify_pattern", run, self.classifier.failed_pattern(now, window_days)
        ).value

    def predict_depletion(
        self, product_id: int, window_days: int | None = None
    ) -> DepletionPrediction:
        """Days-to-zero estimate for one product (fallback: no estimate)."""
        now = self._now()
        window_days = resolve_window(window_days, self.settings.depletion.window_days)

        def run() -> DepletionPrediction:
            snapshot = self._snapshot()
            product = snapshot.product(product_id)
            return self._predict(product, snapshot.movements_for(product_id), now, window_days)

        return self._guard("predict_depletion", run, self.predictor.fallback()).value

    def consumption_trend(
        self, product_id: int, window_days: int | None = None
    ) -> ConsumptionTrend:
        """Recent consumption direction (fallback: stable, low confidence)."""
        now = self._now()
        window_days = resolve_window(window_days, self.settings.trends.window_days)

        def run() -> ConsumptionTrend:
            snapshot = self._snapshot()
            snapshot.product(product_id)
            return self.trends.analyze(snapshot.movements_for(product_id), now, window_days)

        return self._guard("consumption_trend", run, self.trends.failed_trend()).value

    def find_similar_products(self, product_id: int) -> SimilarProducts:
        """Top similar products (fallback: none, "Analysis unavailable")."""
        now = self._now()

        def run() -> SimilarProducts:
            snapshot = self._snapshot()
            snapshot.product(product_id)
            return self.similarity.find_similar(
                product_id, self._patterns(snapshot, now), snapshot
            )

        return self._guard(
            "find_similar_products",
            run,
            SimilarProducts(reference_pattern=SIMILARITY_UNAVAILABLE),
        ).value

    def recommend(self, product_id: int) -> list[str]:
        """Advisory lines for one product, most urgent first."""
        now = self._now()

        def run() -> list[str]:
            snapshot = self._snapshot()
            insight = self._product_insight(snapshot, product_id, now, strict=True)
            return insight.recommendations

        return self._guard("recommend", run, list(FALLBACK_RECOMMENDATIONS)).value

    def product_insight(self, product_id: int) -> ProductInsight | None:
        """Pattern, prediction, anomalies, similar products and advice.

        Sub-analyses that fail fall back individually; recommendations
        then fall back to the generic advice. Returns None when the
        snapshot itself cannot be captured.
        """
        now = self._now()
        return self._guard(
            "product_insight",
            lambda: self._product_insight(self._snapshot(), product_id, now, strict=False),
            None,
        ).value

    def _product_insight(
        self, snapshot: Snapshot, product_id: int, now: datetime, strict: bool
    ) -> ProductInsight:
        product = snapshot.product(product_id)
        window = self.settings.patterns.window_days
        movements = snapshot.movements_for(product_id)

        def pattern() -> ConsumptionPattern:
            return self.classifier.classify(movements, now)

        def prediction() -> DepletionPrediction:
            return self._predict(product, movements, now)

        def anomalies() -> list[Anomaly]:
            return self.detector.detect_product(product, movements, now)

        def similar() -> SimilarProducts:
            return self.similarity.find_similar(
                product_id, self._patterns(snapshot, now), snapshot
            )

        tasks = {"pattern": pattern, "prediction": prediction, "anomalies": anomalies, "similar": similar}
        if strict:
            joined = run_parallel(tasks, self._workers())
            degraded = False
        else:
            fallbacks = {
                "pattern": self.classifier.failed_pattern(now, window),
                "prediction": self.predictor.fallback(),
                "anomalies": [],
                "similar": SimilarProducts(reference_pattern=SIMILARITY_UNAVAILABLE),
            }
            outcomes = run_parallel(
                {
                    name: (lambda name=name, fn=fn: self._guard(name, fn, fallbacks[name]))
                    for name, fn in tasks.items()
                },
                self._workers(),
            )
            joined = {name: o.value for name, o in outcomes.items()}
            degraded = not all(o.ok for o in outcomes.values())

        if degraded:
            recommendations = list(FALLBACK_RECOMMENDATIONS)
        else:
            recommendations = self.generator.generate(
                product,
                joined["pattern"],
                joined["prediction"],
                joined["anomalies"],
                joined["similar"],
                snapshot,
                now,
            )

        return ProductInsight(
            product=product,
            pattern=joined["pattern"],
            prediction=joined["prediction"],
            anomalies=joined["anomalies"],
            similar=joined["similar"],
            recommendations=recommendations,
        )

    # -----------------------------------------------------------------
    # Catalog-wide operations
    # -----------------------------------------------------------------

    def detect_anomalies(self) -> list[Anomaly]:
        """Anomalies across the whole catalog (fallback: [])."""
        now = self._now()

        def run() -> list[Anomaly]:
            snapshot = self._snapshot()
            per_product = fan_out(
                lambda p: self.detector.detect_product(p, snapshot.movements_for(p.id), now),
                list(snapshot.products),
                self._workers(),
            )
            found = [a for batch in per_product for a in batch]
            logger.info("Detected %d anomalies across %d products", len(found), len(per_product))
            return found

        return self._guard("detect_anomalies", run, []).value

    def analyze_correlations(self) -> list[Correlation]:
        """Significant consumption correlations (fallback: [])."""

        def run() -> list[Correlation]:
            return self.similarity.analyze_correlations(self._snapshot())

        return self._guard("analyze_correlations", run, []).value

    def group_by_behavior(self) -> list[Cluster]:
        """Behavioural product groups (fallback: [])."""
        now = self._now()

        def run() -> list[Cluster]:
            snapshot = self._snapshot()
            return self.similarity.group_by_behavior(snapshot, self._patterns(snapshot, now))

        return self._guard("group_by_behavior", run, []).value

    def prioritize_replenishment(self) -> list[PriorityItem]:
        """Replenishment priority list (fallback: [])."""
        now = self._now()

        def run() -> list[PriorityItem]:
            snapshot = self._snapshot()
            return self.planner.prioritize(snapshot, self._predictions(snapshot, now), now)

        return self._guard("prioritize_replenishment", run, []).value

    def build_shopping_list(self) -> ShoppingList:
        """Supplier-grouped purchase plan (fallback: empty list)."""
        now = self._now()

        def run() -> ShoppingList:
            snapshot = self._snapshot()
            items = self.planner.prioritize(snapshot, self._predictions(snapshot, now), now)
            return self.planner.shopping_list(items)

        return self._guard("build_shopping_list", run, ShoppingList()).value
