"""Reduction of several sources' values for one field to one value."""

from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from reporank.errors import NonNumericField
from reporank.models.config import FieldConflictPolicy
from reporank.models.enums import ConflictStrategy, Source
from reporank.models.schemas import FieldValue, is_numeric

# Confidence of a consensus field that fell back to source priority
LOW_CONFIDENCE = 0.25

# Confidence of a single-source field whose source is not on the priority list
UNLISTED_SOURCE_CONFIDENCE = 0.5


@dataclass(frozen=True)
class SourceValue:
    """One source's value for a field."""

    source: Source
    value: FieldValue
    observed_at: datetime


@dataclass(frozen=True)
class Resolution:
    """Resolved value of a field with its confidence."""

    value: FieldValue
    confidence: float
    consistent: bool
    sources: tuple[Source, ...]
    strategy: ConflictStrategy


def priority_key(policy: FieldConflictPolicy):
    """Sort key: listed sources in order, then unlisted sources by name."""
    ranks = {source: i for i, source in enumerate(policy.source_priority)}

    def key(source: Source) -> tuple[int, str]:
        return (ranks.get(source, len(ranks)), source.value)

    return key


def within_tolerance(a: Any, b: Any, tolerance: float) -> bool:
    """Relative comparison for numbers, equality for everything else."""
    if is_numeric(a) and is_numeric(b):
        scale = max(abs(a), abs(b))
        if scale == 0:
            return True
        return abs(a - b) / scale <= tolerance
    return a == b


def values_agree(values: Sequence[Any], tolerance: float) -> bool:
    """True when all values lie within tolerance of each other."""
    if len(values) < 2:
        return True
    if all(is_numeric(v) for v in values):
        return within_tolerance(max(values), min(values), tolerance)
    first = values[0]
    return all(v == first for v in values[1:])


def _comparable(values: Sequence[Any]) -> bool:
    if all(is_numeric(v) for v in values):
        return True
    return all(isinstance(v, str) for v in values) or all(isinstance(v, datetime) for v in values)


def _highest_value(field: str, ordered: list[SourceValue], policy: FieldConflictPolicy, reliability) -> Any:
    if not _comparable([o.value for o in ordered]):
        raise NonNumericField(field, ConflictStrategy.HIGHEST_VALUE.value)
    best = ordered[0]
    for candidate in ordered[1:]:
        if candidate.value > best.value:
            best = candidate
    return best.value


def _most_recent(field: str, ordered: list[SourceValue], policy: FieldConflictPolicy, reliability) -> Any:
    best = ordered[0]
    for candidate in ordered[1:]:
        if candidate.observed_at > best.observed_at:
            best = candidate
    return best.value


def _weighted_average(
    field: str,
    ordered: list[SourceValue],
    policy: FieldConflictPolicy,
    reliability: Mapping[Source, float],
) -> float:
    if not all(is_numeric(o.value) for o in ordered):
        raise NonNumericField(field, ConflictStrategy.WEIGHTED_AVERAGE.value)

    weights = [reliability.get(o.source, 1.0) for o in ordered]
    total = sum(weights)
    if total == 0:
        return sum(o.value for o in ordered) / len(ordered)
    return sum(w * o.value for w, o in zip(weights, ordered)) / total


def _consensus_key(value: Any) -> Any:
    return float(value) if is_numeric(value) else value


def _consensus(ordered: list[SourceValue]) -> tuple[Any, float]:
    """Strict-majority value and its share, else the priority pick with low confidence."""
    counts = Counter(_consensus_key(o.value) for o in ordered)
    winner, count = counts.most_common(1)[0]
    if count * 2 > len(ordered):
        holder = next(o for o in ordered if _consensus_key(o.value) == winner)
        return holder.value, count / len(ordered)
    return ordered[0].value, LOW_CONFIDENCE


_PICKERS = {
    ConflictStrategy.HIGHEST_VALUE: _highest_value,
    ConflictStrategy.MOST_RECENT: _most_recent,
    ConflictStrategy.WEIGHTED_AVERAGE: _weighted_average,
}


def resolve(
    field: str,
    observations: Sequence[SourceValue],
    policy: FieldConflictPolicy,
    reliability: Mapping[Source, float] | None = None,
) -> Resolution | None:
    """Resolve one field.

    Args:
        field: Field name.
        observations: One value per reporting source.
        policy: Strategy, source priority and tolerance for the field.
        reliability: Per-source weights for weighted_average (default 1.0).

    Returns:
        Resolution, or None when no source reported the field (missing).

    Raises:
        NonNumericField: When a numeric strategy meets non-numeric values.
    """
    if not observations:
        return None

    reliability = reliability or {}
    strategy = policy.strategy
    source_key = priority_key(policy)
    ordered = sorted(observations, key=lambda o: source_key(o.source))
    values = [o.value for o in ordered]
    sources = tuple(o.source for o in ordered)
    consistent = values_agree(values, policy.tolerance)

    if strategy == ConflictStrategy.WEIGHTED_AVERAGE and not all(is_numeric(v) for v in values):
        raise NonNumericField(field, strategy.value)

    if len(ordered) == 1:
        confidence = 1.0 if ordered[0].source in policy.source_priority else UNLISTED_SOURCE_CONFIDENCE
        return Resolution(
            value=ordered[0].value,
            confidence=confidence,
            consistent=True,
            sources=sources,
            strategy=strategy,
        )

    if strategy == ConflictStrategy.CONSENSUS:
        value, confidence = _consensus(ordered)
    else:
        value = _PICKERS[strategy](field, ordered, policy, reliability)
        agreeing = sum(1 for v in values if within_tolerance(v, value, policy.tolerance))
        confidence = agreeing / len(values)

    return Resolution(
        value=value,
        confidence=confidence,
        consistent=consistent,
        sources=sources,
        strategy=strategy,
    )
