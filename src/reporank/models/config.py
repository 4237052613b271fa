"""Pydantic models for engine configuration.

Configuration is loaded once per run and never mutated. Validation happens at
construction, so a bad profile or quota fails before any repository is
processed.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from reporank.models.enums import (
    BucketDimension,
    ConflictStrategy,
    NormalizationStrategy,
    RankingAlgorithm,
    RankingScope,
    Source,
    ThresholdKind,
)

SUB_SCORES = ("popularity", "activity", "community_health", "quality_score")

# Weights must sum to 1 within this tolerance
WEIGHT_TOLERANCE = 1e-6


class FieldConflictPolicy(BaseModel):
    """Resolution policy for one field."""

    model_config = ConfigDict(frozen=True)

    strategy: ConflictStrategy = ConflictStrategy.MOST_RECENT
    source_priority: list[Source] = Field(default_factory=list)
    tolerance: float = Field(default=0.05, ge=0)  # relative disagreement allowed


class NormalizationSpec(BaseModel):
    """How a metric is rescaled onto [0, 1].

    Explicit bounds (``minimum``/``maximum`` for min_max, ``ceiling`` for
    log_scale) take precedence over run population statistics.
    """

    model_config = ConfigDict(frozen=True)

    strategy: NormalizationStrategy
    minimum: float | None = None
    maximum: float | None = None
    ceiling: float | None = Field(default=None, gt=0)
    invert: bool = False  # lower raw values are better

    @model_validator(mode="after")
    def _check_bounds(self) -> NormalizationSpec:
        if (self.minimum is None) != (self.maximum is None):
            raise ValueError("minimum and maximum must be given together")
        if self.minimum is not None and self.maximum < self.minimum:
            raise ValueError(f"maximum {self.maximum} is below minimum {self.minimum}")
        return self


class WeightProfile(BaseModel):
    """Metric weights per sub-score plus the sub-score weights of overall."""

    model_config = ConfigDict(frozen=True)

    popularity: dict[str, float]
    activity: dict[str, float]
    community_health: dict[str, float]
    quality_score: dict[str, float]
    overall: dict[str, float]

    @model_validator(mode="after")
    def _check_weights(self) -> WeightProfile:
        if set(self.overall) != set(SUB_SCORES):
            raise ValueError(f"overall weights must cover exactly {', '.join(SUB_SCORES)}")

        for name in (*SUB_SCORES, "overall"):
            weights = getattr(self, name)
            if not weights:
                raise ValueError(f"{name} has no weights")
            negative = [key for key, weight in weights.items() if weight < 0]
            if negative:
                raise ValueError(f"{name} has negative weights: {', '.join(negative)}")
            total = sum(weights.values())
            if abs(total - 1.0) > WEIGHT_TOLERANCE:
                raise ValueError(f"{name} weights sum to {total:.6f}, expected 1")
        return self

    def components(self, sub_score: str) -> dict[str, float]:
        """Return the metric weights of one sub-score."""
        return getattr(self, sub_score)

    def metrics(self) -> set[str]:
        """All metric names referenced by this profile."""
        names: set[str] = set()
        for sub_score in SUB_SCORES:
            names.update(self.components(sub_score))
        return names


class Threshold(BaseModel):
    """One named pass/fail criterion."""

    model_config = ConfigDict(frozen=True)

    name: str
    metric: str  # score name, data-quality name, or resolved field
    kind: ThresholdKind = ThresholdKind.MIN
    value: float | None = None

    @model_validator(mode="after")
    def _check_value(self) -> Threshold:
        if self.kind != ThresholdKind.PRESENT and self.value is None:
            raise ValueError(f"threshold '{self.name}' needs a value")
        return self


class ThresholdSet(BaseModel):
    """Must-thresholds (disqualifying) and quality-thresholds (warning)."""

    model_config = ConfigDict(frozen=True)

    must: list[Threshold] = Field(default_factory=list)
    quality: list[Threshold] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_names(self) -> ThresholdSet:
        for group in ("must", "quality"):
            names = [t.name for t in getattr(self, group)]
            duplicates = {n for n in names if names.count(n) > 1}
            if duplicates:
                raise ValueError(f"duplicate {group} thresholds: {', '.join(sorted(duplicates))}")
        return self

    def merged(self, override: ThresholdSet | None) -> ThresholdSet:
        """Apply category overrides: same-named criteria replace, new ones append."""
        if override is None:
            return self
        return ThresholdSet(
            must=_merge_thresholds(self.must, override.must),
            quality=_merge_thresholds(self.quality, override.quality),
        )


def _merge_thresholds(base: list[Threshold], override: list[Threshold]) -> list[Threshold]:
    replacements = {t.name: t for t in override}
    merged = [replacements.pop(t.name, t) for t in base]
    merged.extend(t for t in override if t.name in replacements)
    return merged


class QuotaBucket(BaseModel):
    """A shortlist slot group with a target count."""

    model_config = ConfigDict(frozen=True)

    name: str
    dimension: BucketDimension
    match: str  # scale bucket name, category name, or field value
    field: str | None = None  # only for the field dimension
    quota: int = Field(ge=0)


class DiversityQuota(BaseModel):
    """Bucket definitions for diversity-constrained selection."""

    model_config = ConfigDict(frozen=True)

    scale_metric: str = "stars"
    # Lower bound (inclusive) of each scale bucket
    scale_thresholds: dict[str, float] = Field(
        default_factory=lambda: {"small": 0.0, "medium": 1_000.0, "large": 10_000.0}
    )
    buckets: list[QuotaBucket]
    max_selected: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _check_buckets(self) -> DiversityQuota:
        if not self.buckets:
            raise ValueError("diversity quota needs at least one bucket")
        names = [b.name for b in self.buckets]
        if len(names) != len(set(names)):
            raise ValueError("bucket names must be unique")
        for bucket in self.buckets:
            if bucket.dimension == BucketDimension.SCALE and bucket.match not in self.scale_thresholds:
                raise ValueError(f"bucket '{bucket.name}' matches unknown scale '{bucket.match}'")
            if bucket.dimension == BucketDimension.FIELD and not bucket.field:
                raise ValueError(f"bucket '{bucket.name}' needs a field name")
        return self

    def scale_bucket(self, value: float | None) -> str | None:
        """Return the scale bucket for a raw scale-metric value."""
        if value is None:
            return None
        chosen = None
        for name, lower in sorted(self.scale_thresholds.items(), key=lambda item: item[1]):
            if value >= lower:
                chosen = name
        return chosen


class CategoryProfile(BaseModel):
    """Per-category expectations and overrides."""

    model_config = ConfigDict(frozen=True)

    expected_fields: list[str] = Field(min_length=1)
    weights: WeightProfile | None = None
    thresholds: ThresholdSet | None = None  # merged over the defaults by name
    diversity: DiversityQuota | None = None
    tiebreak_field: str = "stars"


class EngineConfig(BaseModel):
    """Complete configuration of one pipeline run."""

    model_config = ConfigDict(frozen=True)

    categories: dict[str, CategoryProfile]
    conflict_policies: dict[str, FieldConflictPolicy] = Field(default_factory=dict)
    default_policy: FieldConflictPolicy = Field(default_factory=FieldConflictPolicy)
    source_reliability: dict[Source, float] = Field(default_factory=dict)
    normalization: dict[str, NormalizationSpec]
    weights: WeightProfile
    thresholds: ThresholdSet = Field(default_factory=ThresholdSet)
    diversity: DiversityQuota
    ranking: RankingAlgorithm = RankingAlgorithm.WEIGHTED_SUM
    ranking_scope: RankingScope = RankingScope.GLOBAL

    # Freshness decay
    field_classes: dict[str, str] = Field(default_factory=dict)
    half_life_days: dict[str, float] = Field(default_factory=dict)
    default_half_life_days: float = Field(default=90.0, gt=0)

    # Historical trends
    trend_fields: list[str] = Field(default_factory=list)
    trend_stable_band: float = Field(default=0.05, ge=0)

    # Data-quality summary
    low_quality_completeness: float = Field(default=0.5, ge=0, le=1)

    # Execution
    max_workers: int = Field(default=4, ge=1)
    time_budget_seconds: float | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _check_consistency(self) -> EngineConfig:
        if not self.categories:
            raise ValueError("at least one category must be configured")

        profiles = [self.weights] + [p.weights for p in self.categories.values() if p.weights]
        unnormalized = set()
        for profile in profiles:
            unnormalized.update(m for m in profile.metrics() if m not in self.normalization)
        if unnormalized:
            raise ValueError(f"no normalization for metrics: {', '.join(sorted(unnormalized))}")

        bad_half_lives = [name for name, days in self.half_life_days.items() if days <= 0]
        if bad_half_lives:
            raise ValueError(f"half-lives must be positive: {', '.join(bad_half_lives)}")

        bad_reliability = [s.value for s, weight in self.source_reliability.items() if weight < 0]
        if bad_reliability:
            raise ValueError(f"negative reliability for: {', '.join(bad_reliability)}")

        quotas = [self.diversity] + [p.diversity for p in self.categories.values() if p.diversity]
        unknown = {
            b.match
            for quota in quotas
            for b in quota.buckets
            if b.dimension == BucketDimension.CATEGORY and b.match not in self.categories
        }
        if unknown:
            raise ValueError(f"diversity buckets match unknown categories: {', '.join(sorted(unknown))}")
        return self

    def policy_for(self, field: str) -> FieldConflictPolicy:
        return self.conflict_policies.get(field, self.default_policy)

    def reliability_for(self, source: Source) -> float:
        return self.source_reliability.get(source, 1.0)

    def half_life_for(self, field: str) -> float:
        field_class = self.field_classes.get(field)
        if field_class is None:
            return self.default_half_life_days
        return self.half_life_days.get(field_class, self.default_half_life_days)

    def weights_for(self, category: str) -> WeightProfile:
        profile = self.categories.get(category)
        if profile and profile.weights:
            return profile.weights
        return self.weights

    def thresholds_for(self, category: str) -> ThresholdSet:
        profile = self.categories.get(category)
        return self.thresholds.merged(profile.thresholds if profile else None)

    def diversity_for(self, category: str | None) -> DiversityQuota:
        profile = self.categories.get(category) if category else None
        if profile and profile.diversity:
            return profile.diversity
        return self.diversity

    def tiebreak_for(self, category: str) -> str:
        profile = self.categories.get(category)
        return profile.tiebreak_field if profile else "stars"
