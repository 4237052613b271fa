"""Run-scoped, read-only context shared by every per-repository task.

Population statistics are computed once, before the worker pool starts,
and never recomputed mid-run.
"""

import math
import statistics
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType

from reporank.engine.derived import derive
from reporank.models.schemas import SourceRecord, is_numeric
from reporank.store.records import latest_by_source


@dataclass(frozen=True)
class PopulationStats:
    """Distribution of one metric across the repositories of a run."""

    count: int
    minimum: float
    maximum: float
    mean: float
    stddev: float  # population standard deviation

    @classmethod
    def from_values(cls, values: list[float]) -> "PopulationStats":
        return cls(
            count=len(values),
            minimum=min(values),
            maximum=max(values),
            mean=statistics.fmean(values),
            stddev=statistics.pstdev(values) if len(values) > 1 else 0.0,
        )


@dataclass(frozen=True)
class RunContext:
    """Identity, reference time and population snapshot of one run."""

    run_id: str
    as_of: datetime
    population: Mapping[str, PopulationStats] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "population", MappingProxyType(dict(self.population)))


def repository_estimates(records: list[SourceRecord]) -> dict[str, float]:
    """Pre-resolution estimate of each numeric metric for one repository.

    Uses the mean of the latest value from each source, plus derived metrics.
    """
    per_field: dict[str, list[float]] = defaultdict(list)
    latest = latest_by_source(records)
    for source in sorted(latest, key=lambda s: s.value):
        for name, value in latest[source].fields.items():
            if is_numeric(value) and math.isfinite(value):
                per_field[name].append(float(value))

    estimates = {name: statistics.fmean(values) for name, values in per_field.items()}
    estimates.update(derive(estimates))
    return estimates


def build_run_context(
    records_by_repo: Mapping[str, list[SourceRecord]],
    run_id: str,
    as_of: datetime,
) -> RunContext:
    """Compute the population snapshot for a run.

    Args:
        records_by_repo: All source records of the run, keyed by repository.
        run_id: Identifier of the run.
        as_of: Reference time for freshness. Records observed after it are ignored.

    Returns:
        A frozen RunContext.
    """
    samples: dict[str, list[float]] = defaultdict(list)
    for repo_id in sorted(records_by_repo):
        known = [r for r in records_by_repo[repo_id] if r.observed_at <= as_of]
        for name, value in repository_estimates(known).items():
            samples[name].append(value)

    population = {name: PopulationStats.from_values(values) for name, values in samples.items()}
    return RunContext(run_id=run_id, as_of=as_of, population=population)
