"""Pass / warning / fail classification of scored records."""

from datetime import datetime

from reporank.models.config import SUB_SCORES, Threshold, ThresholdSet
from reporank.models.enums import FilterStatus, ThresholdKind
from reporank.models.schemas import (
    CriterionResult,
    FilterResult,
    ScoreBreakdown,
    UnifiedRecord,
    is_numeric,
)

SCORE_METRICS = (*SUB_SCORES, "overall")
QUALITY_METRICS = ("completeness", "consistency", "freshness", "source_count")


def metric_value(metric: str, record: UnifiedRecord, score: ScoreBreakdown):
    """Look up a threshold metric.

    Score and data-quality names win over resolved fields of the same name.
    Timestamps are returned as ISO strings.
    """
    if metric in SCORE_METRICS:
        return getattr(score, metric)
    if metric in QUALITY_METRICS:
        return getattr(record.quality, metric)
    value = record.value(metric)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def check(threshold: Threshold, record: UnifiedRecord, score: ScoreBreakdown) -> CriterionResult:
    """Evaluate one criterion. A missing or non-numeric value violates min/max."""
    value = metric_value(threshold.metric, record, score)

    if threshold.kind == ThresholdKind.PRESENT:
        passed = value is not None
    elif not is_numeric(value):
        passed = False
    elif threshold.kind == ThresholdKind.MIN:
        passed = value >= threshold.value
    else:
        passed = value <= threshold.value

    return CriterionResult(
        name=threshold.name,
        metric=threshold.metric,
        kind=threshold.kind,
        threshold=threshold.value,
        value=value,
        passed=passed,
    )


def classify(record: UnifiedRecord, score: ScoreBreakdown, thresholds: ThresholdSet) -> FilterResult:
    """Classify a scored record against a threshold set.

    Every must-criterion is evaluated and kept as evidence; the first
    violated one is the reason for ``failed``. Quality criteria are always
    evaluated in full.

    Args:
        record: The unified record.
        score: Its score breakdown.
        thresholds: Category thresholds (defaults merged with overrides).

    Returns:
        FilterResult with status, reason and evidence.
    """
    must_results = [check(t, record, score) for t in thresholds.must]
    quality_results = [check(t, record, score) for t in thresholds.quality]

    reason = next((c for c in must_results if not c.passed), None)
    if reason is not None:
        status = FilterStatus.FAILED
    elif any(not c.passed for c in quality_results):
        status = FilterStatus.WARNING
    else:
        status = FilterStatus.PASSED

    return FilterResult(
        repository_id=record.repository_id,
        category=record.category,
        run_id=record.run_id,
        status=status,
        reason=reason,
        must_results=must_results,
        quality_results=quality_results,
        thresholds=thresholds,
    )
