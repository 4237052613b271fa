"""Rescaling of raw metrics onto [0, 1]."""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from reporank.engine.context import PopulationStats
from reporank.errors import InvalidMetricValue
from reporank.models.config import NormalizationSpec
from reporank.models.enums import NormalizationStrategy
from reporank.models.schemas import is_numeric

# z-scores beyond this are already 0 or 1 after the sigmoid
Z_CLAMP = 50.0


@dataclass(frozen=True)
class MetricContext:
    """Everything a strategy needs besides the value itself."""

    minimum: float | None = None
    maximum: float | None = None
    mean: float | None = None
    stddev: float | None = None
    ceiling: float | None = None
    invert: bool = False


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _min_max(value: float, context: MetricContext) -> float:
    if context.minimum is None or context.maximum is None:
        return 0.5
    span = context.maximum - context.minimum
    if span <= 0:
        return 0.5
    return _clamp((value - context.minimum) / span)


def _z_score(value: float, context: MetricContext) -> float:
    if context.mean is None or not context.stddev:
        return 0.5
    z = (value - context.mean) / context.stddev
    z = max(-Z_CLAMP, min(Z_CLAMP, z))
    return 1.0 / (1.0 + math.exp(-z))


def _log_scale(value: float, context: MetricContext) -> float:
    if context.ceiling is None:
        return 0.5
    denominator = math.log1p(context.ceiling)
    if denominator <= 0:
        return 0.0
    return _clamp(math.log1p(value) / denominator)


_STRATEGIES = {
    NormalizationStrategy.MIN_MAX: _min_max,
    NormalizationStrategy.Z_SCORE: _z_score,
    NormalizationStrategy.LOG_SCALE: _log_scale,
}


def normalize(
    value: Any,
    strategy: NormalizationStrategy,
    context: MetricContext,
    field: str = "value",
) -> float:
    """Map a raw value onto [0, 1].

    Args:
        value: Raw metric value.
        strategy: Normalization strategy.
        context: Bounds and population statistics for the metric.
        field: Field name, used in error messages.

    Returns:
        Normalized value in [0, 1], inverted if the context says so.

    Raises:
        InvalidMetricValue: For non-numeric or non-finite values, and for
            negative values under log_scale.
    """
    if not is_numeric(value):
        raise InvalidMetricValue(field, value, "not a number")
    if not math.isfinite(value):
        raise InvalidMetricValue(field, value, "not finite")
    if strategy == NormalizationStrategy.LOG_SCALE and value < 0:
        raise InvalidMetricValue(field, value, "log_scale requires a non-negative value")

    result = _STRATEGIES[strategy](float(value), context)
    return 1.0 - result if context.invert else result


class Normalizer:
    """Normalizes metrics against frozen per-run contexts.

    Metric contexts are derived once at construction from the configured
    specs and the run's population statistics; explicit bounds win.
    """

    def __init__(
        self,
        specs: Mapping[str, NormalizationSpec],
        population: Mapping[str, PopulationStats],
    ) -> None:
        self._specs = dict(specs)
        self._contexts = {
            metric: self._build_context(spec, population.get(metric))
            for metric, spec in self._specs.items()
        }

    @staticmethod
    def _build_context(spec: NormalizationSpec, stats: PopulationStats | None) -> MetricContext:
        minimum, maximum = spec.minimum, spec.maximum
        if minimum is None and stats is not None:
            minimum, maximum = stats.minimum, stats.maximum

        ceiling = spec.ceiling
        if ceiling is None and stats is not None and stats.maximum > 0:
            ceiling = stats.maximum

        return MetricContext(
            minimum=minimum,
            maximum=maximum,
            mean=stats.mean if stats else None,
            stddev=stats.stddev if stats else None,
            ceiling=ceiling,
            invert=spec.invert,
        )

    def handles(self, metric: str) -> bool:
        """Whether a normalization spec exists for the metric."""
        return metric in self._specs

    def context_for(self, metric: str) -> MetricContext | None:
        return self._contexts.get(metric)

    def normalize_metric(self, metric: str, value: Any) -> float | None:
        """Normalize a metric value; None if the metric has no spec.

        Raises:
            InvalidMetricValue: See ``normalize``.
        """
        spec = self._specs.get(metric)
        if spec is None:
            return None
        return normalize(value, spec.strategy, self._contexts[metric], field=metric)
