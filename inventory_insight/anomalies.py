"""Anomaly Detector.

Flags unusual activity for every product with at least 5 movements:

    suspicious_movement     outbound qty > mean + 3*stddev (and > 5);
                            high severity above 1.5x that threshold
    inconsistent_stock      chronological replay dips below zero; the
                            balance is reset to 0 so one gap is one anomaly
    inventory_divergence    replayed balance vs on-hand differs by > 5
                            units and > 10%; high severity above 20%
    off-hours pattern       >= 3 movements between 22:00 and 06:00
                            (reported as suspicious_movement, high)

Every anomaly carries estimated_impact = affected units x the assumed
unit value from settings. That value is a placeholder, not a price.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable

import numpy as np

from .config import InsightSettings, get_settings
from .models import Anomaly, AnomalyKind, Movement, Product, Severity
from .timeseries import sort_movements

logger = logging.getLogger("insight.anomalies")


class AnomalyDetector:
    """Detect anomalies across a catalog.

    Usage:
        detector = AnomalyDetector()
        anomalies = detector.detect(products, movements_by_product, now)
    """

    def __init__(self, settings: InsightSettings | None = None):
        self.settings = settings or get_settings()
        self.heuristics = self.settings.anomalies

    @property
    def unit_value(self) -> float:
        return self.heuristics.assumed_unit_value

    def detect(
        self,
        products: Iterable[Product],
        movements_for,
        now: datetime,
    ) -> list[Anomaly]:
        """Run every detector over every product.

        Args:
            products: Catalog snapshot.
            movements_for: Callable returning a product's movements.
            now: Detection timestamp.
        """
        anomalies: list[Anomaly] = []
        for product in products:
            anomalies.extend(self.detect_product(product, movements_for(product.id), now))
        logger.info("Detected %d anomalies", len(anomalies))
        return anomalies

    def detect_product(
        self,
        product: Product,
        movements: Iterable[Movement],
        now: datetime,
    ) -> list[Anomaly]:
        movements = sort_movements(movements)
        if len(movements) < self.heuristics.min_movements:
            return []

        found = self._outliers(product, movements, now)
        replay_anomalies, balance = self._replay(product, movements, now)
        found.extend(replay_anomalies)
        divergence = self._divergence(product, balance, now)
        if divergence:
            found.append(divergence)
        if self.heuristics.off_hours_enabled:
            off_hours = self._off_hours(product, movements, now)
            if off_hours:
                found.append(off_hours)
        return found

    # -----------------------------------------------------------------
    # Individual detectors
    # -----------------------------------------------------------------

    def _outliers(
        self, product: Product, movements: list[Movement], now: datetime
    ) -> list[Anomaly]:
        h = self.heuristics
        outbound = [m for m in movements if m.is_outbound]
        if len(outbound) < h.min_outbound_samples:
            return []

        quantities = np.array([m.quantity for m in outbound], dtype=float)
        mean = float(quantities.mean())
        stddev = float(quantities.std())
        threshold = mean + h.outlier_sigma * stddev

        found = []
        for m in outbound:
            if m.quantity <= threshold or m.quantity <= h.outlier_min_quantity:
                continue
            found.append(
                Anomaly(
                    product_id=product.id,
                    kind=AnomalyKind.SUSPICIOUS_MOVEMENT,
                    detected_at=now,
                    occurred_at=m.timestamp,
                    description=(
                        f"Unusual outbound movement of {m.quantity} units "
                        f"({round(m.quantity / mean * 100)}% of the average) "
                        f"on {m.timestamp:%Y-%m-%d}"
                    ),
                    severity=(
                        Severity.HIGH
                        if m.quantity > threshold * h.outlier_high_ratio
                        else Severity.MEDIUM
                    ),
                    suggested_fix="Check for a recording error or an unauthorized movement",
                    estimated_impact=round((m.quantity - mean) * self.unit_value),
                )
            )
        return found

    def _replay(
        self, product: Product, movements: list[Movement], now: datetime
    ) -> tuple[list[Anomaly], int]:
        """Replay movements in order; flag and reset every negative balance."""
        found = []
        balance = 0
        for m in movements:
            balance += m.signed_quantity
            if balance < 0:
                found.append(
                    Anomaly(
                        product_id=product.id,
                        kind=AnomalyKind.INCONSISTENT_STOCK,
                        detected_at=now,
                        occurred_at=m.timestamp,
                        description=(
                            f"Replayed stock went negative ({balance}) after the "
                            f"movement on {m.timestamp:%Y-%m-%d}"
                        ),
                        severity=Severity.HIGH,
                        suggested_fix="Verify that every inbound movement was recorded",
                        estimated_impact=abs(balance) * self.unit_value,
                    )
                )
                balance = 0
        return found, balance

    def _divergence(self, product: Product, balance: int, now: datetime) -> Anomaly | None:
        h = self.heuristics
        on_hand = product.quantity_on_hand
        gap = abs(balance - on_hand)
        if gap <= h.divergence_abs or gap <= on_hand * h.divergence_ratio:
            return None
        return Anomaly(
            product_id=product.id,
            kind=AnomalyKind.INVENTORY_DIVERGENCE,
            detected_at=now,
            description=(
                f"{gap} unit divergence between replayed stock ({balance}) "
                f"and stock on hand ({on_hand})"
            ),
            severity=(
                Severity.HIGH if gap > on_hand * h.divergence_high_ratio else Severity.MEDIUM
            ),
            suggested_fix="Run a physical count to reconcile stock",
            estimated_impact=gap * self.unit_value,
        )

    def _is_off_hours(self, moment: datetime) -> bool:
        start, end = self.heuristics.off_hours_start, self.heuristics.off_hours_end
        if start > end:
            return moment.hour >= start or moment.hour < end
        return start <= moment.hour < end

    def _off_hours(
        self, product: Product, movements: list[Movement], now: datetime
    ) -> Anomaly | None:
        late = [m for m in movements if self._is_off_hours(m.timestamp)]
        if len(late) < self.heuristics.off_hours_min_count:
            return None
        units = sum(m.quantity for m in late)
        return Anomaly(
            product_id=product.id,
            kind=AnomalyKind.SUSPICIOUS_MOVEMENT,
            detected_at=now,
            occurred_at=late[-1].timestamp,
            description=(
                f"Suspicious pattern: {len(late)} movements outside business "
                f"hours for {product.name}"
            ),
            severity=Severity.HIGH,
            suggested_fix="Investigate movements recorded outside normal operating hours",
            estimated_impact=units * self.unit_value,
        )
