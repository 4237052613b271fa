"""Score calculator for unified repository records."""

from reporank.models.config import SUB_SCORES, WeightProfile
from reporank.models.schemas import ScoreBreakdown, UnifiedRecord

# Lower bound of each letter grade on the overall score
GRADE_BOUNDS = [
    ("A", 0.9),
    ("B", 0.8),
    ("C", 0.7),
    ("D", 0.6),
]


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class Scorer:
    """Calculates composite scores from normalized metrics.

    Sub-scores:
    - popularity: stars, downloads, fork-to-star ratio
    - activity: commit frequency, contributor count, release frequency
    - community_health: issue response time (inverted), resolution rate,
      contributor diversity
    - quality_score: documentation, test signal, security signal

    A missing metric contributes 0 and its weight stays in the denominator,
    so sparse records are penalized rather than renormalized.
    """

    def score(self, record: UnifiedRecord, profile: WeightProfile) -> ScoreBreakdown:
        """Calculate all sub-scores and the overall score.

        Args:
            record: The unified record to score.
            profile: Weight profile of the record's category.

        Returns:
            ScoreBreakdown with sub-scores, overall and grade.
        """
        missing: set[str] = set()
        sub_scores: dict[str, float] = {}

        for name in SUB_SCORES:
            sub_scores[name] = self._weighted(record, profile.components(name), missing)

        overall = _clamp(sum(profile.overall[name] * sub_scores[name] for name in SUB_SCORES))

        return ScoreBreakdown(
            **sub_scores,
            overall=overall,
            grade=score_to_grade(overall),
            missing_inputs=sorted(missing),
        )

    def _weighted(self, record: UnifiedRecord, weights: dict[str, float], missing: set[str]) -> float:
        total = sum(weights.values())
        if total <= 0:
            return 0.0

        acc = 0.0
        for metric, weight in weights.items():
            value = record.normalized(metric)
            if value is None:
                missing.add(metric)
                continue
            acc += weight * value
        return _clamp(acc / total)


def score_to_grade(score: float) -> str:
    """Convert an overall score to a letter grade."""
    for grade, bound in GRADE_BOUNDS:
        if score >= bound:
            return grade
    return "F"


def calculate_percentiles(overalls: list[float]) -> list[float]:
    """Percentile rank of each score within the list.

    Scores are ordered ascending (stable for ties) and the i-th gets
    ``(i + 1) / n * 100``, rounded to one decimal.

    Returns:
        Percentiles in the order of the input.
    """
    n = len(overalls)
    order = sorted(range(n), key=lambda i: overalls[i])
    percentiles = [0.0] * n
    for position, index in enumerate(order):
        percentiles[index] = round((position + 1) / n * 100, 1)
    return percentiles
