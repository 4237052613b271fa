"""Builds one UnifiedRecord per repository from its source records."""

import logging
import math
from collections import defaultdict
from collections.abc import Sequence
from datetime import datetime

from reporank.engine.context import RunContext
from reporank.engine.derived import DERIVED_METRICS
from reporank.engine.normalizer import Normalizer
from reporank.engine.resolver import SourceValue, resolve, values_agree
from reporank.engine.trends import series_for, summarize_trend
from reporank.errors import InvalidMetricValue, NonNumericField, NoSourceData, UnknownCategory
from reporank.models.config import EngineConfig
from reporank.models.schemas import (
    DataQuality,
    FieldIssue,
    ResolvedField,
    SourceRecord,
    TrendSummary,
    UnifiedRecord,
    is_numeric,
)
from reporank.store.records import latest_by_source

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86_400


class Aggregator:
    """Merges per-source records into unified records.

    Resolution and normalization use only the aggregator's config and the
    frozen run context, so ``aggregate`` is a pure function of its arguments
    and can be called from several worker threads at once.

    Usage:
        aggregator = Aggregator(config, context)
        record = aggregator.aggregate("rust-lang/regex", "rust-libraries", records)
    """

    def __init__(self, config: EngineConfig, context: RunContext) -> None:
        self.config = config
        self.context = context
        self.normalizer = Normalizer(config.normalization, context.population)

    def aggregate(
        self,
        identifier: str,
        category: str,
        records: Sequence[SourceRecord],
    ) -> UnifiedRecord:
        """Aggregate one repository.

        Args:
            identifier: Repository identifier.
            category: Category the repository was classified into.
            records: Every known SourceRecord of the repository.

        Returns:
            The merged UnifiedRecord.

        Raises:
            NoSourceData: If no record was observed at or before ``as_of``.
            UnknownCategory: If the category has no configuration.
        """
        history = [r for r in records if r.observed_at <= self.context.as_of]
        if not history:
            raise NoSourceData(identifier)
        profile = self.config.categories.get(category)
        if profile is None:
            raise UnknownCategory(identifier, category)

        latest = latest_by_source(history)
        issues: list[FieldIssue] = []
        observations = self._collect(latest.values(), issues)

        fields: dict[str, ResolvedField] = {}
        for name in sorted(observations):
            fields[name] = self._resolve_field(name, observations[name], issues)

        fields.update(self._derive(fields, issues))

        for name in profile.expected_fields:
            if name not in fields:
                fields[name] = ResolvedField(name=name, missing=True)

        quality = DataQuality(
            completeness=self._completeness(fields, profile.expected_fields),
            consistency=self._consistency(fields, observations),
            freshness=self._freshness(latest.values()),
            source_count=len(latest),
        )

        for issue in issues:
            logger.debug(f"{identifier}: dropped '{issue.field}': {issue.message}")

        return UnifiedRecord(
            repository_id=identifier,
            category=category,
            run_id=self.context.run_id,
            fields=dict(sorted(fields.items())),
            quality=quality,
            issues=issues,
            trends=self._trends(history),
            merged_at=self.context.as_of,
        )

    def _collect(self, latest, issues: list[FieldIssue]) -> dict[str, list[SourceValue]]:
        """Group the latest per-source values by field.

        Non-finite numbers are dropped as invalid before resolution.
        """
        observations: dict[str, list[SourceValue]] = defaultdict(list)
        for record in sorted(latest, key=lambda r: r.source.value):
            for name, value in record.fields.items():
                if is_numeric(value) and not math.isfinite(value):
                    error = InvalidMetricValue(name, value, f"not finite (from {record.source.value})")
                    issues.append(FieldIssue(field=name, error=type(error).__name__, message=str(error)))
                    observations.setdefault(name, [])
                    continue
                observations[name].append(
                    SourceValue(source=record.source, value=value, observed_at=record.observed_at)
                )
        return observations

    def _resolve_field(
        self,
        name: str,
        observed: list[SourceValue],
        issues: list[FieldIssue],
    ) -> ResolvedField:
        policy = self.config.policy_for(name)
        sources = [o.source for o in observed]
        consistent = values_agree([o.value for o in observed], policy.tolerance)

        try:
            resolution = resolve(name, observed, policy, self.config.source_reliability)
        except NonNumericField as e:
            issues.append(FieldIssue(field=name, error=type(e).__name__, message=str(e)))
            return ResolvedField(
                name=name,
                missing=True,
                strategy=policy.strategy,
                sources=sources,
                consistent=consistent,
            )

        if resolution is None:
            return ResolvedField(name=name, missing=True, strategy=policy.strategy)

        try:
            normalized = self._normalize(name, resolution.value)
        except InvalidMetricValue as e:
            issues.append(FieldIssue(field=name, error=type(e).__name__, message=str(e)))
            return ResolvedField(
                name=name,
                missing=True,
                strategy=resolution.strategy,
                sources=list(resolution.sources),
                consistent=resolution.consistent,
            )

        return ResolvedField(
            name=name,
            value=resolution.value,
            normalized=normalized,
            confidence=resolution.confidence,
            strategy=resolution.strategy,
            sources=list(resolution.sources),
            consistent=resolution.consistent,
        )

    def _normalize(self, name: str, value) -> float | None:
        if not self.normalizer.handles(name):
            return None
        return self.normalizer.normalize_metric(name, value)

    def _derive(
        self,
        fields: dict[str, ResolvedField],
        issues: list[FieldIssue],
    ) -> dict[str, ResolvedField]:
        """Compute derived metrics from resolved fields."""
        values = {name: f.value for name, f in fields.items() if not f.missing}
        derived: dict[str, ResolvedField] = {}

        for name, (inputs, func) in DERIVED_METRICS.items():
            if name in fields:
                continue  # reported directly by a source
            value = func(values)
            if value is None:
                continue

            used = [fields[i] for i in inputs]
            sources = sorted({s for f in used for s in f.sources}, key=lambda s: s.value)
            try:
                normalized = self._normalize(name, value)
            except InvalidMetricValue as e:
                issues.append(FieldIssue(field=name, error=type(e).__name__, message=str(e)))
                derived[name] = ResolvedField(name=name, missing=True, sources=sources)
                continue

            derived[name] = ResolvedField(
                name=name,
                value=value,
                normalized=normalized,
                confidence=min(f.confidence for f in used),
                sources=sources,
                consistent=all(f.consistent for f in used),
            )
        return derived

    @staticmethod
    def _completeness(fields: dict[str, ResolvedField], expected: list[str]) -> float:
        expected_names = set(expected)
        resolved = sum(1 for name in expected_names if not fields[name].missing)
        return resolved / len(expected_names)

    @staticmethod
    def _consistency(
        fields: dict[str, ResolvedField],
        observations: dict[str, list[SourceValue]],
    ) -> float:
        """1 minus the fraction of reported fields whose sources disagreed."""
        reported = [name for name, observed in observations.items() if observed]
        if not reported:
            return 1.0
        disagreed = sum(1 for name in reported if not fields[name].consistent)
        return 1.0 - disagreed / len(reported)

    def _freshness(self, latest) -> float:
        """Decay of the stalest contributing (field, record) pair.

        Each field decays with the half-life of its field class; a record
        with no fields decays with the default half-life.
        """
        freshness = 1.0
        for record in latest:
            age_days = self._age_days(record.observed_at)
            half_lives = [self.config.half_life_for(name) for name in record.fields]
            if not half_lives:
                half_lives = [self.config.default_half_life_days]
            for half_life in half_lives:
                freshness = min(freshness, 0.5 ** (age_days / half_life))
        return freshness

    def _age_days(self, observed_at: datetime) -> float:
        seconds = (self.context.as_of - observed_at).total_seconds()
        return max(0.0, seconds / SECONDS_PER_DAY)

    def _trends(self, history: Sequence[SourceRecord]) -> dict[str, TrendSummary]:
        return {
            name: summarize_trend(name, series_for(name, history), self.config.trend_stable_band)
            for name in self.config.trend_fields
        }
