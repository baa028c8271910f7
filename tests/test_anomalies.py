"""Tests for the anomaly detector.

Covers:
    - Minimum movement gate
    - Negative replay balance with reset
    - Statistical outliers
    - Replayed vs on-hand divergence
    - Off-hours activity and its toggle
"""

from datetime import datetime, timedelta

import pytest

from inventory_insight.anomalies import AnomalyDetector
from inventory_insight.config import AnomalyHeuristics, InsightSettings
from inventory_insight.models import AnomalyKind, Movement, MovementDirection, Product, Severity

NOW = datetime(2026, 10, 18, 12, 0)
START = datetime(2026, 9, 1, 10, 0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _make_product(on_hand: int, product_id: int = 1) -> Product:
    return Product(id=product_id, code=f"P-{product_id}", name="Widget", quantity_on_hand=on_hand)


def _make_replay(
    signed: list[int], start: datetime = START, step: timedelta = timedelta(days=1)
) -> list[Movement]:
    """Movements from signed quantities (+in / -out), one per step."""
    return [
        Movement(
            id=i + 1,
            product_id=1,
            direction=MovementDirection.IN if q > 0 else MovementDirection.OUT,
            quantity=abs(q),
            timestamp=start + step * i,
        )
        for i, q in enumerate(signed)
    ]


def _make_detector(**overrides) -> AnomalyDetector:
    return AnomalyDetector(InsightSettings(anomalies=AnomalyHeuristics(**overrides)))


def _kinds(anomalies) -> list[AnomalyKind]:
    return [a.kind for a in anomalies]


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------


class TestMinimumMovements:
    def test_fewer_than_five_movements_never_flagged(self):
        movements = _make_replay([+20, -5, -20, -30])
        assert _make_detector().detect_product(_make_product(500), movements, NOW) == []

    def test_catalog_scan_skips_small_histories(self):
        products = [_make_product(0, 1), _make_product(0, 2)]
        movements = {1: _make_replay([+20, -5, -20]), 2: []}
        assert _make_detector().detect(products, lambda pid: movements[pid], NOW) == []


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------


class TestInconsistentStock:
    def test_single_negative_dip(self):
        movements = _make_replay([+20, -5, -20, +10, -2])
        anomalies = _make_detector().detect_product(_make_product(8), movements, NOW)

        assert _kinds(anomalies) == [AnomalyKind.INCONSISTENT_STOCK]
        anomaly = anomalies[0]
        assert anomaly.severity == Severity.HIGH
        assert anomaly.occurred_at == movements[2].timestamp
        assert anomaly.detected_at == NOW
        assert anomaly.estimated_impact == pytest.approx(5 * 30.0)

    def test_reset_prevents_cascade(self):
        # Without the reset every later step would stay negative
        movements = _make_replay([-5, +1, +1, +1, +2])
        anomalies = _make_detector().detect_product(_make_product(5), movements, NOW)
        assert _kinds(anomalies) == [AnomalyKind.INCONSISTENT_STOCK]

    def test_replay_uses_chronological_order(self):
        movements = _make_replay([+20, -5, -20, +10, -2])
        anomalies = _make_detector().detect_product(
            _make_product(8), list(reversed(movements)), NOW
        )
        assert _kinds(anomalies) == [AnomalyKind.INCONSISTENT_STOCK]


# ---------------------------------------------------------------------------
# Outliers
# ---------------------------------------------------------------------------


class TestSuspiciousMovement:
    def test_outlier_flagged_medium(self):
        movements = _make_replay([+200] + [-2] * 19 + [-60])
        anomalies = _make_detector().detect_product(_make_product(102), movements, NOW)

        assert _kinds(anomalies) == [AnomalyKind.SUSPICIOUS_MOVEMENT]
        assert anomalies[0].severity == Severity.MEDIUM
        assert anomalies[0].occurred_at == movements[-1].timestamp
        # (60 - 4.9) * 30
        assert anomalies[0].estimated_impact == pytest.approx(1653)

    def test_extreme_outlier_is_high(self):
        movements = _make_replay([+2000] + [-1] * 99 + [-1000])
        anomalies = _make_detector().detect_product(_make_product(901), movements, NOW)
        assert _kinds(anomalies) == [AnomalyKind.SUSPICIOUS_MOVEMENT]
        assert anomalies[0].severity == Severity.HIGH

    def test_uniform_outbound_not_flagged(self):
        movements = _make_replay([+100, -5, -5, -5, -5])
        assert _make_detector().detect_product(_make_product(80), movements, NOW) == []


# ---------------------------------------------------------------------------
# Divergence
# ---------------------------------------------------------------------------


class TestDivergence:
    def test_large_gap_is_high(self):
        movements = _make_replay([+10, -2, -2, -2, -2])
        anomalies = _make_detector().detect_product(_make_product(20), movements, NOW)
        assert _kinds(anomalies) == [AnomalyKind.INVENTORY_DIVERGENCE]
        assert anomalies[0].severity == Severity.HIGH
        assert anomalies[0].estimated_impact == pytest.approx(18 * 30.0)

    def test_moderate_gap_is_medium(self):
        movements = _make_replay([+100, -5, -5, -5, -5])
        anomalies = _make_detector().detect_product(_make_product(100), movements, NOW)
        assert _kinds(anomalies) == [AnomalyKind.INVENTORY_DIVERGENCE]
        assert anomalies[0].severity == Severity.MEDIUM

    def test_small_gap_ignored(self):
        movements = _make_replay([+100, -5, -5, -5, -5])
        assert _make_detector().detect_product(_make_product(84), movements, NOW) == []


# ---------------------------------------------------------------------------
# Off-hours
# ---------------------------------------------------------------------------


class TestOffHours:
    def test_night_activity_flagged(self):
        movements = _make_replay([+100, -5, -5, -5, -5], start=datetime(2026, 9, 1, 23, 0))
        anomalies = _make_detector().detect_product(_make_product(80), movements, NOW)

        assert _kinds(anomalies) == [AnomalyKind.SUSPICIOUS_MOVEMENT]
        assert anomalies[0].severity == Severity.HIGH
        assert anomalies[0].estimated_impact == pytest.approx(120 * 30.0)

    def test_early_morning_counts(self):
        movements = _make_replay([+100, -5, -5, -5, -5], start=datetime(2026, 9, 1, 5, 30))
        anomalies = _make_detector().detect_product(_make_product(80), movements, NOW)
        assert len(anomalies) == 1

    def test_disabled(self):
        movements = _make_replay([+100, -5, -5, -5, -5], start=datetime(2026, 9, 1, 23, 0))
        detector = _make_detector(off_hours_enabled=False)
        assert detector.detect_product(_make_product(80), movements, NOW) == []


class TestUnitValue:
    def test_impact_scales_with_configured_value(self):
        movements = _make_replay([+20, -5, -20, +10, -2])
        anomalies = _make_detector(assumed_unit_value=2.0).detect_product(
            _make_product(8), movements, NOW
        )
        assert anomalies[0].estimated_impact == pytest.approx(10.0)
