"""Recommendation Generator.

Combines a product's consumption pattern, depletion prediction,
anomalies and similar products into ordered advisory text. The most
urgent advice (stock running out within the reorder horizon) always
comes first.

The generator is a pure function of its inputs. Callers that could not
compute one of the inputs use ``FALLBACK_RECOMMENDATIONS`` instead.
"""

from __future__ import annotations

import calendar
import logging
import math
from datetime import datetime, timedelta
from typing import Sequence

from .config import InsightSettings, get_settings
from .gateway import Snapshot
from .models import (
    Anomaly,
    ConsumptionPattern,
    DepletionPrediction,
    PatternType,
    Product,
    Severity,
    SimilarProducts,
)
from .timeseries import sort_movements

logger = logging.getLogger("insight.recommendations")

FALLBACK_RECOMMENDATIONS: tuple[str, ...] = (
    "Could not fully analyze this product's data.",
    "Review the consumption history manually before making stock decisions.",
)


def _join_names(names: Sequence[str]) -> str:
    return ", ".join(names)


class RecommendationGenerator:
    """Build advisory strings for one product.

    Usage:
        generator = RecommendationGenerator()
        lines = generator.generate(product, pattern, prediction, anomalies, similar, snapshot, now)
    """

    def __init__(self, settings: InsightSettings | None = None):
        self.settings = settings or get_settings()
        self.heuristics = self.settings.recommendations

    def _minimum(self, product: Product) -> int:
        if product.min_quantity is not None:
            return product.min_quantity
        return self.settings.depletion.default_min_quantity

    def generate(
        self,
        product: Product,
        pattern: ConsumptionPattern,
        prediction: DepletionPrediction,
        anomalies: Sequence[Anomaly],
        similar: SimilarProducts,
        snapshot: Snapshot,
        now: datetime,
    ) -> list[str]:
        lines: list[str] = []
        lines.extend(self._forecast_advice(product, pattern))
        lines.extend(self._pattern_advice(product, pattern, now))
        lines.extend(self._anomaly_advice(anomalies, now))
        lines.extend(self._similar_advice(similar, snapshot))

        urgent = self._urgent_advice(product, pattern, prediction)
        if urgent:
            lines.insert(0, urgent)

        logger.debug("Product %d: %d recommendations", product.id, len(lines))
        return lines

    # -----------------------------------------------------------------
    # Sections
    # -----------------------------------------------------------------

    def _forecast_advice(self, product: Product, pattern: ConsumptionPattern) -> list[str]:
        if not pattern.monthly_forecast:
            return []
        lines = []
        upcoming = sum(p.quantity for p in pattern.monthly_forecast[:3])
        if upcoming > product.quantity_on_hand:
            lines.append(
                f"Stock alert: the next 3 months are forecast to consume "
                f"{upcoming:g} units, but only {product.quantity_on_hand} are in stock."
            )
        if pattern.type == PatternType.SEASONAL and pattern.seasonality_factors:
            cheap = [
                calendar.month_name[f.month]
                for f in pattern.seasonality_factors
                if f.factor < self.heuristics.cheap_month_factor
            ]
            if cheap:
                lines.append(
                    f"Strategic buying: consider purchasing in {_join_names(cheap)}, "
                    "when consumption is historically lowest."
                )
        return lines

    def _pattern_advice(
        self, product: Product, pattern: ConsumptionPattern, now: datetime
    ) -> list[str]:
        minimum = self._minimum(product)

        if pattern.type == PatternType.SEASONAL:
            lines = [
                "Adjust stock levels to the identified seasonality, building up "
                "before peak periods."
            ]
            current = pattern.seasonality_factor(now.month)
            if pattern.seasonality_factors and current > self.heuristics.high_demand_factor:
                lines.append(
                    f"High demand period: this month usually runs "
                    f"{round((current - 1) * 100)}% above the average. Keep stock reinforced."
                )
            peak_months = {p.period[5:7] for p in pattern.peaks}
            upcoming = {now.strftime("%m"), (now + timedelta(days=30)).strftime("%m")}
            if peak_months & upcoming:
                lines.append(
                    "A historical high-demand period is approaching. Consider "
                    "increasing stock ahead of it."
                )
            return lines

        if pattern.type == PatternType.GROWING:
            increase = round((pattern.confidence - 0.5) * 200)
            target = math.ceil(minimum * (1 + increase / 100))
            return [
                "Consumption is trending up. Review the minimum stock level to keep pace.",
                f"Raise the minimum stock from {minimum} to {target} units to follow the growth.",
            ]

        if pattern.type == PatternType.DECLINING:
            lines = [
                "Consumption is trending down. Consider buying less to avoid excess stock."
            ]
            h = self.heuristics
            if pattern.confidence > h.steady_decline_confidence:
                decrease = round((pattern.confidence - 0.5) * 200)
                if product.quantity_on_hand > minimum * h.excess_stock_ratio:
                    lines.append(
                        f"Excess stock: with a {decrease}% decline, the current "
                        f"{product.quantity_on_hand} units may be too many. Consider "
                        "pausing purchases."
                    )
                lines.append(
                    "The steady decline suggests reviewing whether this product "
                    "still belongs in the catalog."
                )
            return lines

        if pattern.type == PatternType.REGULAR:
            h = self.heuristics
            daily = pattern.mean_consumption / 30
            safety = math.ceil(daily * h.lead_time_days * h.lead_time_safety_factor)
            ideal = math.ceil(pattern.mean_consumption * h.ideal_cover_months)
            if product.quantity_on_hand < ideal * h.restock_ratio:
                return [
                    "Consumption is steady and predictable. Suggested levels: "
                    f"minimum {safety} units (covers lead time), "
                    f"ideal {ideal} units ({h.ideal_cover_months} months of cover), "
                    f"reorder point {math.ceil(safety * h.reorder_point_factor)} units."
                ]
            return ["Consumption is regular and current stock is adequate."]

        lines = [
            "Irregular consumption makes forecasts unreliable. Monitor closely "
            "and keep a larger safety margin."
        ]
        if pattern.confidence < self.heuristics.irregular_detail_confidence:
            lines.extend(
                [
                    "Check whether external factors drive the irregularity:",
                    "- correlation with seasonal events or promotions",
                    "- unstable suppliers affecting availability",
                    "- similar products competing for the same demand",
                ]
            )
        return lines

    def _anomaly_advice(self, anomalies: Sequence[Anomaly], now: datetime) -> list[str]:
        days = self.heuristics.recent_anomaly_days
        horizon = now - timedelta(days=days)
        recent = [a for a in anomalies if (a.occurred_at or a.detected_at) >= horizon]
        if not recent:
            return []

        urgent = next((a for a in recent if a.severity == Severity.HIGH), None)
        if urgent is None:
            return [
                f"{len(recent)} low or medium severity anomalies in the last "
                f"{days} days. Keep monitoring."
            ]

        lines = [f"Alert: a high severity anomaly was detected recently. {urgent.description}"]
        if urgent.estimated_impact:
            lines.append(f"Estimated impact: {urgent.estimated_impact:.2f}")
        if urgent.suggested_fix:
            lines.append(f"Suggested fix: {urgent.suggested_fix}")
        return lines

    def _similar_advice(self, similar: SimilarProducts, snapshot: Snapshot) -> list[str]:
        if not similar.products:
            return []
        lines = []

        substitutes = [p.name for p in similar.products if p.potential_substitute]
        if substitutes:
            verb = "appears to be a substitute" if len(substitutes) == 1 else "appear to be substitutes"
            lines.append(
                f"Substitutes: {_join_names(substitutes)} {verb} for this product; "
                "their consumption rises when this one falls."
            )

        top = similar.products[0]
        latest = sort_movements(snapshot.movements_for(top.product_id))[-5:]
        outbound = sum(1 for m in latest if m.is_outbound)
        if latest and outbound > 3 and outbound == len(latest):
            lines.append(
                f'The similar product "{top.name}" ({round(top.similarity * 100)}% similar) '
                "had recent sales without replenishment. This product may follow."
            )

        h = self.heuristics
        if (
            len(similar.products) >= h.joint_purchase_products
            and top.similarity > h.joint_purchase_similarity
        ):
            leaders = similar.products[: h.joint_purchase_products]
            low = [
                p.name
                for p in leaders
                if snapshot.has_product(p.product_id)
                and snapshot.product(p.product_id).quantity_on_hand
                <= self._minimum(snapshot.product(p.product_id))
            ]
            if low:
                verb = "is" if len(low) == 1 else "are"
                lines.append(
                    f"Joint purchase: {_join_names(low)} {verb} also low on stock. "
                    "A combined order can reduce freight and improve pricing."
                )
            else:
                lines.append(
                    f"Consider grouping purchases of this product with "
                    f"{_join_names([p.name for p in leaders])} to streamline logistics."
                )
        return lines

    def _urgent_advice(
        self,
        product: Product,
        pattern: ConsumptionPattern,
        prediction: DepletionPrediction,
    ) -> str | None:
        days = prediction.days_remaining
        if days is None and pattern.mean_consumption > 0:
            if product.quantity_on_hand < self._minimum(product):
                days = math.floor(product.quantity_on_hand / (pattern.mean_consumption / 30))
        if days is None or days >= self.settings.depletion.reorder_horizon_days:
            return None

        cover = math.ceil(pattern.mean_consumption * self.heuristics.urgent_cover_months)
        quantity = prediction.recommended_quantity or max(cover - product.quantity_on_hand, 0)
        supplier = product.supplier or "the usual supplier"
        return (
            f"Critical: current stock lasts about {days} days. "
            f"Reorder at least {quantity} units now and confirm availability with {supplier}."
        )
