"""Similarity, correlation and behavioural clustering.

Pairwise comparisons between products' consumption patterns. All
pairwise passes store their scores in a ``SimilarityMatrix``: a dense
numpy array indexed by a stable product -> row mapping, built once per
analysis run.

Similarity (reference product vs. another):
    0.30  pattern type matches
    0.40  x min(meanA, meanB) / max(meanA, meanB)
    0.15  both or neither have peaks
    0.15  x share of coinciding peak months (both have peaks)

Substitutes: Pearson correlation of monthly outbound totals over
shared months (>= 4) below -0.6 marks a potential substitute and lifts
similarity to at least 0.7.

Clustering (products without a category): weights 0.5 type, 0.3 mean
ratio, 0.2 confidence closeness; greedy grouping at >= 0.7. Large
categories are split with weights 0.6 / 0.2 / 0.2 (seasonality factor
closeness) at >= 0.6, leftovers land in "<category> - Misc".
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Callable, Mapping, Sequence

import numpy as np

from .config import ClusteringHeuristics, InsightSettings, SimilarityHeuristics, get_settings
from .gateway import Snapshot
from .models import (
    Cluster,
    ConsumptionPattern,
    Correlation,
    CorrelationKind,
    PatternType,
    SimilarityResult,
    SimilarProducts,
)
from .timeseries import monthly_totals

logger = logging.getLogger("insight.similarity")

MIXED = "mixed"


# ---------------------------------------------------------------------------
# Scoring primitives
# ---------------------------------------------------------------------------


def pearson(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson correlation coefficient of two aligned series.

    Returns 0.0 for empty or mismatched series and when either series
    has zero variance.
    """
    if len(x) != len(y) or len(x) == 0:
        return 0.0
    a = np.asarray(x, dtype=float)
    b = np.asarray(y, dtype=float)
    da = a - a.mean()
    db = b - b.mean()
    denom_a = float(np.dot(da, da))
    denom_b = float(np.dot(db, db))
    if denom_a == 0 or denom_b == 0:
        return 0.0
    r = float(np.dot(da, db)) / float(np.sqrt(denom_a * denom_b))
    return float(np.clip(r, -1.0, 1.0))


def _mean_ratio(a: ConsumptionPattern, b: ConsumptionPattern) -> float:
    high = max(a.mean_consumption, b.mean_consumption)
    if high <= 0:
        return 0.0
    return min(a.mean_consumption, b.mean_consumption) / high


def pattern_similarity(
    a: ConsumptionPattern,
    b: ConsumptionPattern,
    heuristics: SimilarityHeuristics | None = None,
) -> float:
    """Symmetric behavioural similarity in [0, 1]."""
    h = heuristics or get_settings().similarity
    score = 0.0
    if a.type == b.type:
        score += h.type_weight
    score += _mean_ratio(a, b) * h.mean_weight

    if a.has_peaks == b.has_peaks:
        score += h.peaks_weight
        if a.has_peaks:
            peaks_a = {p.period[:7] for p in a.peaks}
            peaks_b = {p.period[:7] for p in b.peaks}
            overlap = min(len(peaks_a), len(peaks_b))
            if overlap:
                score += len(peaks_a & peaks_b) / overlap * h.peak_overlap_weight
    return min(score, 1.0)


def cluster_similarity(
    a: ConsumptionPattern,
    b: ConsumptionPattern,
    heuristics: ClusteringHeuristics | None = None,
) -> float:
    """Similarity used to group uncategorised products."""
    h = heuristics or get_settings().clustering
    score = h.type_weight if a.type == b.type else 0.0
    score += _mean_ratio(a, b) * h.mean_weight
    score += (1 - abs(a.confidence - b.confidence)) * h.confidence_weight
    return score


def subgroup_similarity(
    a: ConsumptionPattern,
    b: ConsumptionPattern,
    heuristics: ClusteringHeuristics | None = None,
) -> float:
    """Similarity used to split a large category, weighting pattern type."""
    h = heuristics or get_settings().clustering
    score = h.subgroup_type_weight if a.type == b.type else 0.0
    score += _mean_ratio(a, b) * h.subgroup_mean_weight
    if a.seasonality_factors and b.seasonality_factors:
        closeness = sum(
            1 - abs(a.seasonality_factor(m) - b.seasonality_factor(m))
            for m in range(1, 13)
        )
        score += closeness / 12 * h.subgroup_seasonality_weight
    return score


def dominant_type(patterns: Sequence[ConsumptionPattern]) -> str:
    """Most frequent pattern type; the first one seen wins ties."""
    counts = Counter(p.type.value for p in patterns)
    return counts.most_common(1)[0][0]


def _type_label(type_value: str) -> str:
    return PatternType(type_value).display_name


# ---------------------------------------------------------------------------
# Similarity matrix
# ---------------------------------------------------------------------------


class SimilarityMatrix:
    """Dense pairwise score arena keyed by product id.

    Usage:
        matrix = SimilarityMatrix.build(ids, lambda a, b: score(a, b))
        matrix.get(3, 7)
    """

    def __init__(self, ids: Sequence[int]):
        self.ids = list(ids)
        self.index = {pid: i for i, pid in enumerate(self.ids)}
        self.scores = np.zeros((len(self.ids), len(self.ids)), dtype=float)

    @classmethod
    def build(
        cls, ids: Sequence[int], score: Callable[[int, int], float]
    ) -> SimilarityMatrix:
        matrix = cls(ids)
        n = len(matrix.ids)
        for i in range(n):
            for j in range(i + 1, n):
                value = score(matrix.ids[i], matrix.ids[j])
                matrix.scores[i, j] = value
                matrix.scores[j, i] = value
        return matrix

    def get(self, a: int, b: int) -> float:
        return float(self.scores[self.index[a], self.index[b]])

    def mean_pairwise(self, ids: Sequence[int]) -> float:
        """Average score over all unordered pairs of ``ids``."""
        rows = [self.index[pid] for pid in ids]
        if len(rows) < 2:
            return 0.0
        block = self.scores[np.ix_(rows, rows)]
        upper = block[np.triu_indices(len(rows), k=1)]
        return float(upper.mean())

    def __len__(self) -> int:
        return len(self.ids)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class SimilarityEngine:
    """Similar products, correlations and behavioural groups.

    All methods take the patterns already classified for the snapshot
    (``{product_id: ConsumptionPattern}``), so each pattern is computed
    once per run no matter how many pairs it appears in.
    """

    def __init__(self, settings: InsightSettings | None = None):
        self.settings = settings or get_settings()
        self.heuristics = self.settings.similarity
        self.clustering = self.settings.clustering

    # -- substitutes / correlation -------------------------------------

    def _correlated_months(
        self, a: dict[str, int], b: dict[str, int]
    ) -> tuple[list[int], list[int]] | None:
        shared = [month for month in a if month in b]
        if len(shared) < self.heuristics.min_shared_months:
            return None
        return [a[m] for m in shared], [b[m] for m in shared]

    def _outbound_totals(self, snapshot: Snapshot) -> dict[int, dict[str, int]]:
        """Monthly totals of products with enough outbound history."""
        totals = {}
        for product in snapshot.products:
            outbound = snapshot.outbound(product.id)
            if len(outbound) >= self.heuristics.min_outbound_movements:
                totals[product.id] = monthly_totals(outbound)
        return totals

    def find_similar(
        self,
        reference_id: int,
        patterns: Mapping[int, ConsumptionPattern],
        snapshot: Snapshot,
    ) -> SimilarProducts:
        """Top similar products for ``reference_id``, highest first."""
        h = self.heuristics
        reference = patterns[reference_id]
        totals = self._outbound_totals(snapshot)
        reference_totals = totals.get(reference_id)

        results = []
        for product in snapshot.products:
            if product.id == reference_id or product.id not in patterns:
                continue
            score = pattern_similarity(reference, patterns[product.id], h)

            substitute = False
            other_totals = totals.get(product.id)
            if reference_totals is not None and other_totals is not None:
                aligned = self._correlated_months(reference_totals, other_totals)
                if aligned and pearson(*aligned) < h.substitute_correlation:
                    substitute = True
                    score = max(score, h.substitute_min_similarity)

            if score > h.report_threshold:
                results.append(
                    SimilarityResult(
                        product_id=product.id,
                        name=product.name,
                        similarity=min(score, 1.0),
                        potential_substitute=substitute,
                    )
                )

        results.sort(key=lambda r: r.similarity, reverse=True)
        return SimilarProducts(
            products=results[: h.top_n], reference_pattern=reference.description
        )

    def _classify_correlation(self, r: float) -> tuple[CorrelationKind, float, str]:
        h = self.heuristics
        if r > h.correlation_strong:
            return (
                CorrelationKind.POSITIVE,
                abs(r),
                "Strong positive correlation: these products tend to be consumed together",
            )
        if r < -h.correlation_strong:
            return (
                CorrelationKind.NEGATIVE,
                abs(r),
                "Negative correlation: one product tends to replace the other",
            )
        if abs(r) > h.correlation_moderate:
            kind = CorrelationKind.POSITIVE if r > 0 else CorrelationKind.NEGATIVE
            return kind, abs(r), f"Moderate {kind.value} correlation"
        return (
            CorrelationKind.NEUTRAL,
            h.neutral_confidence,
            "No significant correlation between these products",
        )

    def analyze_correlations(self, snapshot: Snapshot) -> list[Correlation]:
        """Significant monthly-consumption correlations, strongest first."""
        h = self.heuristics
        totals = self._outbound_totals(snapshot)
        ids = list(totals)
        if len(ids) < 2:
            return []

        correlations = []
        for i, a in enumerate(ids):
            for b in ids[i + 1 :]:
                aligned = self._correlated_months(totals[a], totals[b])
                if aligned is None:
                    continue
                r = pearson(*aligned)
                if abs(r) <= h.correlation_report_threshold:
                    continue
                kind, confidence, text = self._classify_correlation(r)
                name_a = snapshot.product(a).name
                name_b = snapshot.product(b).name
                correlations.append(
                    Correlation(
                        product_a=a,
                        product_b=b,
                        coefficient=r,
                        kind=kind,
                        confidence=min(confidence, 1.0),
                        description=f"{text} ({name_a} and {name_b})",
                    )
                )

        correlations.sort(key=lambda c: abs(c.coefficient), reverse=True)
        logger.info(
            "Correlation scan: %d products, %d significant pairs",
            len(ids),
            len(correlations),
        )
        return correlations

    # -- clustering ----------------------------------------------------

    def cluster_unlabeled(
        self, ids: Sequence[int], patterns: Mapping[int, ConsumptionPattern]
    ) -> list[Cluster]:
        """Greedy grouping of products with no category."""
        h = self.clustering
        matrix = SimilarityMatrix.build(
            ids, lambda a, b: cluster_similarity(patterns[a], patterns[b], h)
        )
        assigned: set[int] = set()
        clusters = []
        for pid in ids:
            if pid in assigned:
                continue
            neighbours = [
                other
                for other in ids
                if other != pid
                and other not in assigned
                and matrix.get(pid, other) >= h.threshold
            ]
            if len(neighbours) < h.min_neighbors:
                continue
            members = [pid, *neighbours]
            dominant = dominant_type([patterns[m] for m in members])
            clusters.append(
                Cluster(
                    name=f"Group {_type_label(dominant)}",
                    member_ids=members,
                    intra_cluster_similarity=matrix.mean_pairwise(members),
                    dominant_pattern_type=dominant,
                )
            )
            assigned.update(members)
        return clusters

    def subgroup_category(
        self,
        category: str,
        ids: Sequence[int],
        patterns: Mapping[int, ConsumptionPattern],
    ) -> list[Cluster]:
        """Split a large category around its most similar pairs."""
        h = self.clustering
        matrix = SimilarityMatrix.build(
            ids, lambda a, b: subgroup_similarity(patterns[a], patterns[b], h)
        )
        assigned: set[int] = set()
        subgroups = []
        while len(assigned) < len(ids):
            best, pair = 0.0, None
            for i, a in enumerate(ids):
                if a in assigned:
                    continue
                for b in ids[i + 1 :]:
                    if b in assigned:
                        continue
                    score = matrix.get(a, b)
                    if score > best:
                        best, pair = score, (a, b)

            if pair is None or best < h.subgroup_threshold:
                rest = [pid for pid in ids if pid not in assigned]
                subgroups.append(
                    Cluster(
                        name=f"{category} - Misc",
                        member_ids=rest,
                        intra_cluster_similarity=h.misc_similarity,
                        dominant_pattern_type=MIXED,
                    )
                )
                break

            members = list(pair)
            assigned.update(members)
            seeds = list(members)
            for pid in ids:
                if pid in assigned:
                    continue
                avg = sum(matrix.get(pid, s) for s in seeds) / len(seeds)
                if avg >= h.subgroup_threshold:
                    members.append(pid)
                    assigned.add(pid)

            dominant = dominant_type([patterns[m] for m in members])
            subgroups.append(
                Cluster(
                    name=f"{category} - {_type_label(dominant)}",
                    member_ids=members,
                    intra_cluster_similarity=matrix.mean_pairwise(members),
                    dominant_pattern_type=dominant,
                )
            )
        return subgroups

    def group_by_behavior(
        self, snapshot: Snapshot, patterns: Mapping[int, ConsumptionPattern]
    ) -> list[Cluster]:
        """Category clusters, large-category subgroups and behavioural groups."""
        h = self.clustering
        products = snapshot.products
        if len(products) < h.min_catalog_size:
            return []

        pairwise = len(products) <= h.max_catalog_size
        if not pairwise:
            logger.warning(
                "Catalog of %d products exceeds clustering ceiling %d; "
                "skipping pairwise grouping",
                len(products),
                h.max_catalog_size,
            )

        categories: dict[str, list[int]] = {}
        unlabeled: list[int] = []
        for product in products:
            if product.category:
                categories.setdefault(product.category, []).append(product.id)
            else:
                unlabeled.append(product.id)

        clusters: list[Cluster] = []
        for category, ids in categories.items():
            if len(ids) < h.min_category_size:
                continue
            if pairwise and len(ids) >= h.subgroup_min_category_size:
                subgroups = self.subgroup_category(category, ids, patterns)
                if len(subgroups) > 1:
                    clusters.extend(subgroups)
                    continue
            members = [patterns[pid] for pid in ids]
            dominant = dominant_type(members)
            share = sum(1 for p in members if p.type.value == dominant) / len(members)
            clusters.append(
                Cluster(
                    name=category,
                    member_ids=ids,
                    intra_cluster_similarity=share,
                    dominant_pattern_type=dominant,
                )
            )

        if pairwise and len(unlabeled) >= h.min_unlabeled:
            clusters.extend(self.cluster_unlabeled(unlabeled, patterns))

        clusters.sort(key=lambda c: c.intra_cluster_similarity, reverse=True)
        logger.info("Grouped %d products into %d clusters", len(products), len(clusters))
        return clusters
