"""Pydantic models for source records and pipeline artifacts."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from reporank.models.config import DiversityQuota, ThresholdSet
from reporank.models.enums import (
    ConflictStrategy,
    FilterStatus,
    RankingAlgorithm,
    RunStatus,
    SelectionReason,
    Severity,
    Source,
    ThresholdKind,
    TrendDirection,
)

# A raw field value: number, string or timestamp
FieldValue = int | float | str | datetime

# Timestamps are tagged in JSON so they never come back as plain strings
TIMESTAMP_TAG = "$timestamp"


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def encode_value(value: Any) -> Any:
    """Encode a field value for JSON storage."""
    if isinstance(value, datetime):
        return {TIMESTAMP_TAG: ensure_utc(value).isoformat()}
    return value


def decode_value(value: Any) -> Any:
    """Decode a field value from JSON storage."""
    if isinstance(value, dict) and TIMESTAMP_TAG in value:
        return ensure_utc(datetime.fromisoformat(value[TIMESTAMP_TAG]))
    if isinstance(value, datetime):
        return ensure_utc(value)
    return value


def is_numeric(value: Any) -> bool:
    """True for int/float values (bools are not metrics)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# --- Source data ---


class SourceObservation(BaseModel):
    """A single (repository, source, field) observation from a collector."""

    repository_id: str
    source: Source
    field: str
    value: FieldValue
    observed_at: datetime

    @field_validator("value", mode="before")
    @classmethod
    def _decode(cls, value: Any) -> Any:
        return decode_value(value)

    @field_validator("observed_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_serializer("value")
    def _encode(self, value: Any) -> Any:
        return encode_value(value)


class SourceRecord(BaseModel):
    """One source's observation of one repository at one point in time."""

    model_config = ConfigDict(frozen=True)

    repository_id: str
    source: Source
    fields: dict[str, FieldValue] = Field(default_factory=dict)
    observed_at: datetime

    @field_validator("fields", mode="before")
    @classmethod
    def _decode_fields(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {name: decode_value(v) for name, v in value.items()}
        return value

    @field_validator("observed_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_serializer("fields")
    def _encode_fields(self, fields: dict[str, Any]) -> dict[str, Any]:
        return {name: encode_value(v) for name, v in fields.items()}


# --- Unified records ---


class FieldIssue(BaseModel):
    """A field dropped during aggregation, with the error that caused it."""

    model_config = ConfigDict(frozen=True)

    field: str
    error: str  # InvalidMetricValue, NonNumericField
    message: str


class ResolvedField(BaseModel):
    """The merged value of one field."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: FieldValue | None = None
    missing: bool = False
    normalized: float | None = Field(default=None, ge=0, le=1)
    confidence: float = Field(default=0.0, ge=0, le=1)
    strategy: ConflictStrategy | None = None
    sources: list[Source] = Field(default_factory=list)
    consistent: bool = True  # sources agreed within tolerance

    @field_validator("value", mode="before")
    @classmethod
    def _decode(cls, value: Any) -> Any:
        return decode_value(value)

    @field_serializer("value")
    def _encode(self, value: Any) -> Any:
        return encode_value(value)


class DataQuality(BaseModel):
    """Completeness, consistency and freshness of a unified record."""

    model_config = ConfigDict(frozen=True)

    completeness: float = Field(ge=0, le=1)
    consistency: float = Field(ge=0, le=1)
    freshness: float = Field(ge=0, le=1)
    source_count: int = Field(ge=0)


class TrendSummary(BaseModel):
    """Historical movement of a numeric field."""

    model_config = ConfigDict(frozen=True)

    field: str
    points: int
    slope_per_day: float | None = None
    growth_rate: float | None = None  # (last - first) / first
    direction: TrendDirection = TrendDirection.INSUFFICIENT_DATA


class UnifiedRecord(BaseModel):
    """The merged view of one repository."""

    model_config = ConfigDict(frozen=True)

    repository_id: str
    category: str
    run_id: str
    fields: dict[str, ResolvedField] = Field(default_factory=dict)
    quality: DataQuality
    issues: list[FieldIssue] = Field(default_factory=list)
    trends: dict[str, TrendSummary] = Field(default_factory=dict)
    merged_at: datetime

    def value(self, name: str) -> FieldValue | None:
        """Resolved raw value, or None if the field is missing."""
        resolved = self.fields.get(name)
        if resolved is None or resolved.missing:
            return None
        return resolved.value

    def normalized(self, name: str) -> float | None:
        """Normalized value, or None if the field is missing."""
        resolved = self.fields.get(name)
        if resolved is None or resolved.missing:
            return None
        return resolved.normalized

    @property
    def missing_fields(self) -> list[str]:
        return sorted(name for name, f in self.fields.items() if f.missing)


# --- Scoring ---


class ScoreBreakdown(BaseModel):
    """Composite scores derived from a unified record."""

    model_config = ConfigDict(frozen=True)

    popularity: float = Field(ge=0, le=1)
    activity: float = Field(ge=0, le=1)
    community_health: float = Field(ge=0, le=1)
    quality_score: float = Field(ge=0, le=1)
    overall: float = Field(ge=0, le=1)
    grade: str  # A, B, C, D, F
    missing_inputs: list[str] = Field(default_factory=list)

    def sub_scores(self) -> tuple[float, float, float, float]:
        return (self.popularity, self.activity, self.community_health, self.quality_score)


# --- Filtering ---


class CriterionResult(BaseModel):
    """Evidence for one threshold comparison."""

    model_config = ConfigDict(frozen=True)

    name: str
    metric: str
    kind: ThresholdKind
    threshold: float | None = None
    value: float | str | None = None  # numbers for min/max, any present value otherwise
    passed: bool

    @property
    def evidence(self) -> str:
        if self.value is None:
            shown = "missing"
        elif isinstance(self.value, str):
            shown = self.value
        else:
            shown = f"{self.value:g}"
        if self.kind == ThresholdKind.PRESENT:
            return f"{self.metric}={shown} (must be present)"
        op = ">=" if self.kind == ThresholdKind.MIN else "<="
        return f"{self.metric}={shown} (needs {op} {self.threshold:g})"


class FilterResult(BaseModel):
    """Threshold classification of one scored record."""

    model_config = ConfigDict(frozen=True)

    repository_id: str
    category: str
    run_id: str
    status: FilterStatus
    reason: CriterionResult | None = None  # first violated must-criterion
    must_results: list[CriterionResult] = Field(default_factory=list)
    quality_results: list[CriterionResult] = Field(default_factory=list)
    thresholds: ThresholdSet

    @property
    def violations(self) -> list[CriterionResult]:
        return [c for c in self.must_results + self.quality_results if not c.passed]


# --- Ranking ---


class RankedEntry(BaseModel):
    """One repository's position in a ranking."""

    model_config = ConfigDict(frozen=True)

    rank: int = Field(ge=1)
    repository_id: str
    category: str
    status: FilterStatus
    scores: ScoreBreakdown
    ranking_value: float  # overall, or TOPSIS closeness
    front: int | None = None  # pareto front, 1 is non-dominated
    tiebreak_value: float | None = None
    percentile: float | None = None


class Ranking(BaseModel):
    """An ordered sequence of repositories."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    scope: str  # "global" or a category name
    algorithm: RankingAlgorithm
    entries: list[RankedEntry] = Field(default_factory=list)

    def ids(self) -> list[str]:
        return [e.repository_id for e in self.entries]


class SelectionEntry(BaseModel):
    """Inclusion decision for one ranked entry."""

    model_config = ConfigDict(frozen=True)

    repository_id: str
    rank: int
    category: str
    status: FilterStatus
    scores: ScoreBreakdown
    included: bool
    bucket: str | None = None
    reason: SelectionReason
    detail: str = ""


class DiversitySelection(BaseModel):
    """A ranking with diversity quotas applied."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    scope: str
    ranking: Ranking
    quota: DiversityQuota
    entries: list[SelectionEntry] = Field(default_factory=list)
    bucket_counts: dict[str, int] = Field(default_factory=dict)

    @property
    def selected(self) -> list[SelectionEntry]:
        return [e for e in self.entries if e.included]

    @property
    def excluded(self) -> list[SelectionEntry]:
        return [e for e in self.entries if not e.included]


# --- Run output ---


class ManifestEntry(BaseModel):
    """A per-repository error or warning from a run."""

    model_config = ConfigDict(frozen=True)

    repository_id: str
    severity: Severity
    stage: str  # aggregate, score, filter, run
    error_type: str
    message: str


class DataQualitySummary(BaseModel):
    """Run-level summary of record data quality."""

    repositories: int = 0
    aggregated: int = 0
    failed: int = 0
    mean_completeness: float | None = None
    mean_consistency: float | None = None
    mean_freshness: float | None = None
    low_quality: list[str] = Field(default_factory=list)


class RunResult(BaseModel):
    """Everything one pipeline run produced."""

    run_id: str
    status: RunStatus = RunStatus.COMPLETED
    started_at: datetime
    finished_at: datetime | None = None
    as_of: datetime
    algorithm: RankingAlgorithm
    unified_records: list[UnifiedRecord] = Field(default_factory=list)
    scores: dict[str, ScoreBreakdown] = Field(default_factory=dict)
    filter_results: list[FilterResult] = Field(default_factory=list)
    rankings: list[Ranking] = Field(default_factory=list)
    selections: list[DiversitySelection] = Field(default_factory=list)
    manifest: list[ManifestEntry] = Field(default_factory=list)
    data_quality: DataQualitySummary = Field(default_factory=DataQualitySummary)
    incomplete: list[str] = Field(default_factory=list)

    @property
    def shortlist(self) -> list[SelectionEntry]:
        """Selected entries across all selections, in rank order per scope."""
        return [entry for selection in self.selections for entry in selection.selected]

    @property
    def errors(self) -> list[ManifestEntry]:
        return [e for e in self.manifest if e.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[ManifestEntry]:
        return [e for e in self.manifest if e.severity == Severity.WARNING]
