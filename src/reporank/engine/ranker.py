"""Ordering of filtered repositories."""

import math
from collections.abc import Sequence
from dataclasses import dataclass

from reporank.engine.scorer import calculate_percentiles
from reporank.models.config import SUB_SCORES, EngineConfig
from reporank.models.enums import FilterStatus, RankingAlgorithm, RankingScope
from reporank.models.schemas import (
    FilterResult,
    RankedEntry,
    Ranking,
    ScoreBreakdown,
    UnifiedRecord,
    is_numeric,
)


@dataclass(frozen=True)
class Candidate:
    """A repository that made it through aggregate, score and filter."""

    record: UnifiedRecord
    score: ScoreBreakdown
    filter_result: FilterResult

    @property
    def repository_id(self) -> str:
        return self.record.repository_id

    @property
    def category(self) -> str:
        return self.record.category

    @property
    def rankable(self) -> bool:
        return self.filter_result.status != FilterStatus.FAILED


def dominates(a: Sequence[float], b: Sequence[float]) -> bool:
    """True if a is at least as good as b everywhere and better somewhere."""
    return all(x >= y for x, y in zip(a, b)) and any(x > y for x, y in zip(a, b))


def pareto_fronts(points: Sequence[Sequence[float]]) -> list[int]:
    """Front number (1 = non-dominated) of every point."""
    fronts = [0] * len(points)
    remaining = set(range(len(points)))
    front = 0
    while remaining:
        front += 1
        current = {
            i for i in remaining
            if not any(dominates(points[j], points[i]) for j in remaining if j != i)
        }
        for i in current:
            fronts[i] = front
        remaining -= current
    return fronts


def topsis_closeness(points: Sequence[Sequence[float]], weights: Sequence[float]) -> list[float]:
    """Relative closeness of every point to the ideal solution.

    Columns are vector-normalized and weighted; ideal and worst points are the
    per-column maximum and minimum. A point equidistant at zero from both
    (all points identical) gets 0.5.
    """
    if not points:
        return []

    columns = len(weights)
    norms = [math.sqrt(sum(p[j] ** 2 for p in points)) for j in range(columns)]
    weighted = [
        [weights[j] * (p[j] / norms[j]) if norms[j] > 0 else 0.0 for j in range(columns)]
        for p in points
    ]
    ideal = [max(row[j] for row in weighted) for j in range(columns)]
    worst = [min(row[j] for row in weighted) for j in range(columns)]

    closeness = []
    for row in weighted:
        d_best = math.dist(row, ideal)
        d_worst = math.dist(row, worst)
        total = d_best + d_worst
        closeness.append(d_worst / total if total > 0 else 0.5)
    return closeness


class Ranker:
    """Orders passed and warning candidates with the configured algorithm.

    Ties are broken by the category's tiebreak field (higher first, missing
    last), then by repository identifier, so every ordering is deterministic.
    """

    def __init__(self, config: EngineConfig) -> None:
        self.config = config
        self.algorithm = config.ranking

    def rank(self, run_id: str, scope: str, candidates: Sequence[Candidate]) -> Ranking:
        """Rank candidates. Failed candidates are left out.

        Args:
            run_id: Run identifier.
            scope: ``global`` or the category name.
            candidates: Candidates of this scope.

        Returns:
            Ranking with 1-based ranks and percentiles.
        """
        eligible = sorted((c for c in candidates if c.rankable), key=lambda c: c.repository_id)
        points = [c.score.sub_scores() for c in eligible]

        fronts: list[int | None] = [None] * len(eligible)
        if self.algorithm == RankingAlgorithm.TOPSIS:
            values = topsis_closeness(points, self._criteria_weights(scope))
        else:
            values = [c.score.overall for c in eligible]
            if self.algorithm == RankingAlgorithm.PARETO:
                fronts = pareto_fronts(points)

        tiebreaks = [self._tiebreak_value(c) for c in eligible]

        def sort_key(i: int):
            tiebreak = tiebreaks[i]
            return (
                fronts[i] or 0,
                -values[i],
                -eligible[i].score.overall,
                tiebreak is None,
                -(tiebreak or 0.0),
                eligible[i].repository_id,
            )

        order = sorted(range(len(eligible)), key=sort_key)

        # Reverse rank order so a better-ranked tie gets the higher percentile
        percentiles = calculate_percentiles([eligible[i].score.overall for i in reversed(order)])
        percentiles.reverse()

        entries = [
            RankedEntry(
                rank=position + 1,
                repository_id=eligible[i].repository_id,
                category=eligible[i].category,
                status=eligible[i].filter_result.status,
                scores=eligible[i].score,
                ranking_value=values[i],
                front=fronts[i],
                tiebreak_value=tiebreaks[i],
                percentile=percentiles[position],
            )
            for position, i in enumerate(order)
        ]
        return Ranking(run_id=run_id, scope=scope, algorithm=self.algorithm, entries=entries)

    def rank_all(self, run_id: str, candidates: Sequence[Candidate]) -> list[Ranking]:
        """One global ranking, or one per category, depending on the configured scope."""
        if self.config.ranking_scope == RankingScope.GLOBAL:
            return [self.rank(run_id, RankingScope.GLOBAL.value, candidates)]

        by_category: dict[str, list[Candidate]] = {}
        for candidate in candidates:
            by_category.setdefault(candidate.category, []).append(candidate)
        return [self.rank(run_id, category, by_category[category]) for category in sorted(by_category)]

    def _criteria_weights(self, scope: str) -> list[float]:
        if scope in self.config.categories:
            overall = self.config.weights_for(scope).overall
        else:
            overall = self.config.weights.overall
        return [overall[name] for name in SUB_SCORES]

    def _tiebreak_value(self, candidate: Candidate) -> float | None:
        value = candidate.record.value(self.config.tiebreak_for(candidate.category))
        return float(value) if is_numeric(value) else None
