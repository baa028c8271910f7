"""Tests for similarity, correlation and clustering.

Covers:
    - Pearson correlation edge cases
    - Pattern similarity weights and symmetry
    - Similarity matrix arena
    - Similar products and substitute detection
    - Correlation scan
    - Greedy clustering, category subgroups, catalog ceiling
"""

from datetime import date, datetime

import pytest

from inventory_insight.config import ClusteringHeuristics, InsightSettings
from inventory_insight.gateway import Snapshot
from inventory_insight.models import (
    AnalyzedPeriod,
    ConsumptionPattern,
    CorrelationKind,
    Movement,
    MovementDirection,
    PatternType,
    PeriodQuantity,
    Product,
)
from inventory_insight.similarity import (
    SimilarityEngine,
    SimilarityMatrix,
    dominant_type,
    pattern_similarity,
    pearson,
)

PERIOD = AnalyzedPeriod(start=date(2026, 4, 21), end=date(2026, 10, 18))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _make_pattern(
    pattern_type: PatternType = PatternType.REGULAR,
    mean: float = 10.0,
    confidence: float = 0.8,
    peaks: list[str] | None = None,
    description: str = "test pattern",
) -> ConsumptionPattern:
    return ConsumptionPattern(
        type=pattern_type,
        confidence=confidence,
        description=description,
        analyzed_period=PERIOD,
        mean_consumption=mean,
        peaks=[PeriodQuantity(period=p, quantity=mean * 2) for p in (peaks or [])],
    )


def _make_product(product_id: int, category: str | None = None, name: str | None = None) -> Product:
    return Product(
        id=product_id,
        code=f"P-{product_id}",
        name=name or f"Product {product_id}",
        quantity_on_hand=50,
        min_quantity=10,
        category=category,
    )


def _make_monthly_outbound(product_id: int, quantities: list[int], first_id: int) -> list[Movement]:
    return [
        Movement(
            id=first_id + i,
            product_id=product_id,
            direction=MovementDirection.OUT,
            quantity=q,
            timestamp=datetime(2026, 4 + i, 10, 10),
        )
        for i, q in enumerate(quantities)
    ]


def _make_engine(**clustering) -> SimilarityEngine:
    return SimilarityEngine(InsightSettings(clustering=ClusteringHeuristics(**clustering)))


# ---------------------------------------------------------------------------
# Pearson
# ---------------------------------------------------------------------------


class TestPearson:
    def test_perfect_negative(self):
        x = [3.0, 7.0, 1.0, 9.0, 4.0]
        assert pearson(x, [-v for v in x]) == pytest.approx(-1.0)

    def test_identity(self):
        x = [3.0, 7.0, 1.0, 9.0, 4.0]
        assert pearson(x, x) == pytest.approx(1.0)

    def test_zero_variance(self):
        assert pearson([5, 5, 5, 5], [1, 2, 3, 4]) == 0.0

    def test_mismatched_or_empty(self):
        assert pearson([1, 2], [1, 2, 3]) == 0.0
        assert pearson([], []) == 0.0


# ---------------------------------------------------------------------------
# Pattern similarity
# ---------------------------------------------------------------------------


class TestPatternSimilarity:
    def test_identical_without_peaks(self):
        a = _make_pattern()
        assert pattern_similarity(a, a) == pytest.approx(0.3 + 0.4 + 0.15)

    def test_identical_with_matching_peaks(self):
        a = _make_pattern(peaks=["2026-07"])
        assert pattern_similarity(a, a) == pytest.approx(1.0)

    def test_mean_ratio(self):
        a = _make_pattern(PatternType.REGULAR, mean=10)
        b = _make_pattern(PatternType.GROWING, mean=40)
        assert pattern_similarity(a, b) == pytest.approx(0.4 * 0.25 + 0.15)

    def test_zero_means(self):
        a = _make_pattern(mean=0)
        b = _make_pattern(mean=0)
        assert pattern_similarity(a, b) == pytest.approx(0.3 + 0.15)

    def test_peaks_on_one_side_only(self):
        a = _make_pattern(peaks=["2026-07"])
        b = _make_pattern()
        assert pattern_similarity(a, b) == pytest.approx(0.3 + 0.4)

    def test_symmetric(self):
        patterns = [
            _make_pattern(PatternType.SEASONAL, 12, 0.75, ["2026-07", "2026-08"]),
            _make_pattern(PatternType.SEASONAL, 30, 0.9, ["2026-08"]),
            _make_pattern(PatternType.IRREGULAR, 3, 0.4),
            _make_pattern(PatternType.REGULAR, 0, 0.3),
        ]
        for a in patterns:
            for b in patterns:
                assert pattern_similarity(a, b) == pytest.approx(pattern_similarity(b, a))


class TestDominantType:
    def test_first_seen_wins_ties(self):
        patterns = [
            _make_pattern(PatternType.GROWING),
            _make_pattern(PatternType.REGULAR),
        ]
        assert dominant_type(patterns) == "growing"


# ---------------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------------


class TestSimilarityMatrix:
    def test_build_is_symmetric(self):
        matrix = SimilarityMatrix.build([10, 20, 30], lambda a, b: (a + b) / 100)
        assert matrix.get(10, 20) == pytest.approx(0.3)
        assert matrix.get(20, 10) == pytest.approx(0.3)
        assert matrix.get(30, 30) == 0.0
        assert len(matrix) == 3

    def test_mean_pairwise(self):
        matrix = SimilarityMatrix.build([1, 2, 3], lambda a, b: float(a * b))
        # pairs: 2, 3, 6
        assert matrix.mean_pairwise([1, 2, 3]) == pytest.approx(11 / 3)
        assert matrix.mean_pairwise([1]) == 0.0


# ---------------------------------------------------------------------------
# Similar products and correlations
# ---------------------------------------------------------------------------


class TestFindSimilar:
    def _snapshot(self) -> Snapshot:
        products = [_make_product(1), _make_product(2), _make_product(3), _make_product(4)]
        movements = (
            _make_monthly_outbound(1, [10, 20, 10, 20, 10, 20], 1)
            + _make_monthly_outbound(2, [20, 10, 20, 10, 20, 10], 100)
            + _make_monthly_outbound(3, [10, 20, 10, 20, 10, 20], 200)
        )
        return Snapshot.build(products, movements)

    def test_substitute_detected_and_lifted(self):
        patterns = {
            1: _make_pattern(PatternType.IRREGULAR, 15, description="reference"),
            2: _make_pattern(PatternType.GROWING, 1),
            3: _make_pattern(PatternType.IRREGULAR, 15),
            4: _make_pattern(PatternType.DECLINING, 0.1, peaks=["2026-05"]),
        }
        result = _make_engine().find_similar(1, patterns, self._snapshot())

        assert result.reference_pattern == "reference"
        by_id = {r.product_id: r for r in result.products}
        assert by_id[2].potential_substitute is True
        assert by_id[2].similarity == pytest.approx(0.7)
        assert by_id[3].potential_substitute is False
        assert 4 not in by_id
        assert [r.similarity for r in result.products] == sorted(
            (r.similarity for r in result.products), reverse=True
        )

    def test_top_five(self):
        products = [_make_product(i) for i in range(1, 10)]
        patterns = {i: _make_pattern() for i in range(1, 10)}
        result = _make_engine().find_similar(1, patterns, Snapshot.build(products, []))
        assert len(result.products) == 5
        assert all(r.product_id != 1 for r in result.products)


class TestCorrelations:
    def test_positive_and_negative_pairs(self):
        products = [_make_product(1, name="A"), _make_product(2, name="B"), _make_product(3, name="C")]
        movements = (
            _make_monthly_outbound(1, [10, 20, 10, 20, 10, 20], 1)
            + _make_monthly_outbound(2, [20, 10, 20, 10, 20, 10], 100)
            + _make_monthly_outbound(3, [11, 21, 11, 21, 11, 21], 200)
        )
        correlations = _make_engine().analyze_correlations(Snapshot.build(products, movements))

        kinds = {(c.product_a, c.product_b): c.kind for c in correlations}
        assert kinds[(1, 3)] == CorrelationKind.POSITIVE
        assert kinds[(1, 2)] == CorrelationKind.NEGATIVE
        assert kinds[(2, 3)] == CorrelationKind.NEGATIVE
        assert all(c.confidence == pytest.approx(1.0) for c in correlations)
        assert "(A and C)" in next(c.description for c in correlations if c.product_b == 3 and c.product_a == 1)

    def test_requires_enough_history(self):
        products = [_make_product(1), _make_product(2)]
        movements = _make_monthly_outbound(1, [10, 20, 10, 20], 1) + _make_monthly_outbound(
            2, [20, 10, 20, 10, 20, 10], 100
        )
        assert _make_engine().analyze_correlations(Snapshot.build(products, movements)) == []


# ---------------------------------------------------------------------------
# Clustering
# ---------------------------------------------------------------------------


class TestClusterUnlabeled:
    def test_groups_similar_products(self):
        patterns = {
            1: _make_pattern(PatternType.REGULAR, 10),
            2: _make_pattern(PatternType.REGULAR, 10),
            3: _make_pattern(PatternType.REGULAR, 10),
            4: _make_pattern(PatternType.GROWING, 50, 0.95),
        }
        clusters = _make_engine().cluster_unlabeled([1, 2, 3, 4], patterns)

        assert len(clusters) == 1
        assert clusters[0].name == "Group Regular"
        assert clusters[0].member_ids == [1, 2, 3]
        assert clusters[0].intra_cluster_similarity == pytest.approx(1.0)
        assert clusters[0].dominant_pattern_type == "regular"

    def test_needs_two_neighbours(self):
        patterns = {
            1: _make_pattern(PatternType.REGULAR, 10),
            2: _make_pattern(PatternType.REGULAR, 10),
            3: _make_pattern(PatternType.GROWING, 50, 0.95),
        }
        assert _make_engine().cluster_unlabeled([1, 2, 3], patterns) == []


class TestGroupByBehavior:
    def test_small_catalog(self):
        products = [_make_product(i, "Tools") for i in range(1, 5)]
        patterns = {i: _make_pattern() for i in range(1, 5)}
        assert _make_engine().group_by_behavior(Snapshot.build(products, []), patterns) == []

    def test_category_cluster_share(self):
        products = [_make_product(i, "Tools") for i in range(1, 4)] + [
            _make_product(4, "Paint"),
            _make_product(5, "Garden"),
        ]
        patterns = {
            1: _make_pattern(PatternType.REGULAR),
            2: _make_pattern(PatternType.REGULAR),
            3: _make_pattern(PatternType.IRREGULAR),
            4: _make_pattern(),
            5: _make_pattern(),
        }
        clusters = _make_engine().group_by_behavior(Snapshot.build(products, []), patterns)

        assert [c.name for c in clusters] == ["Tools"]
        assert clusters[0].intra_cluster_similarity == pytest.approx(2 / 3)
        assert clusters[0].dominant_pattern_type == "regular"

    def test_large_category_split_into_subgroups(self):
        products = [_make_product(i, "Tools") for i in range(1, 9)]
        patterns = {i: _make_pattern(PatternType.REGULAR, 10) for i in range(1, 5)}
        patterns.update({i: _make_pattern(PatternType.GROWING, 50) for i in range(5, 9)})
        clusters = _make_engine().group_by_behavior(Snapshot.build(products, []), patterns)

        names = {c.name: c for c in clusters}
        assert set(names) == {"Tools - Regular", "Tools - Growing"}
        assert names["Tools - Regular"].member_ids == [1, 2, 3, 4]
        assert names["Tools - Growing"].member_ids == [5, 6, 7, 8]

    def test_subgroup_remainder_is_misc(self):
        engine = _make_engine()
        patterns = {i: _make_pattern(PatternType.REGULAR, 10) for i in range(1, 7)}
        patterns[7] = _make_pattern(PatternType.GROWING, 1)
        patterns[8] = _make_pattern(PatternType.DECLINING, 90)
        subgroups = engine.subgroup_category("Tools", list(range(1, 9)), patterns)

        assert [s.name for s in subgroups] == ["Tools - Regular", "Tools - Misc"]
        misc = subgroups[1]
        assert misc.member_ids == [7, 8]
        assert misc.intra_cluster_similarity == pytest.approx(0.4)
        assert misc.dominant_pattern_type == "mixed"

    def test_unlabeled_products_grouped(self):
        products = [_make_product(i) for i in range(1, 6)]
        patterns = {i: _make_pattern() for i in range(1, 6)}
        clusters = _make_engine().group_by_behavior(Snapshot.build(products, []), patterns)
        assert [c.name for c in clusters] == ["Group Regular"]
        assert clusters[0].member_ids == [1, 2, 3, 4, 5]

    def test_ceiling_skips_pairwise_grouping(self):
        products = [_make_product(i) for i in range(1, 7)]
        patterns = {i: _make_pattern() for i in range(1, 7)}
        engine = _make_engine(max_catalog_size=5)
        assert engine.group_by_behavior(Snapshot.build(products, []), patterns) == []

    def test_sorted_by_similarity(self):
        products = [_make_product(i, "A") for i in range(1, 3)] + [
            _make_product(i, "B") for i in range(3, 6)
        ]
        patterns = {
            1: _make_pattern(PatternType.REGULAR),
            2: _make_pattern(PatternType.GROWING),
            3: _make_pattern(),
            4: _make_pattern(),
            5: _make_pattern(),
        }
        clusters = _make_engine().group_by_behavior(Snapshot.build(products, []), patterns)
        assert [c.name for c in clusters] == ["B", "A"]
