"""Data models and schemas."""

from reporank.models.config import (
    CategoryProfile,
    DiversityQuota,
    EngineConfig,
    FieldConflictPolicy,
    NormalizationSpec,
    QuotaBucket,
    Threshold,
    ThresholdSet,
    WeightProfile,
)
from reporank.models.enums import (
    BucketDimension,
    ConflictStrategy,
    FilterStatus,
    NormalizationStrategy,
    RankingAlgorithm,
    RankingScope,
    RunStatus,
    SelectionReason,
    Severity,
    Source,
    ThresholdKind,
    TrendDirection,
)
from reporank.models.schemas import (
    DataQuality,
    DiversitySelection,
    FilterResult,
    ManifestEntry,
    Ranking,
    ResolvedField,
    RunResult,
    ScoreBreakdown,
    SourceObservation,
    SourceRecord,
    UnifiedRecord,
)

__all__ = [
    "BucketDimension",
    "CategoryProfile",
    "ConflictStrategy",
    "DataQuality",
    "DiversityQuota",
    "DiversitySelection",
    "EngineConfig",
    "FieldConflictPolicy",
    "FilterResult",
    "FilterStatus",
    "ManifestEntry",
    "NormalizationSpec",
    "NormalizationStrategy",
    "QuotaBucket",
    "Ranking",
    "RankingAlgorithm",
    "RankingScope",
    "ResolvedField",
    "RunResult",
    "RunStatus",
    "ScoreBreakdown",
    "SelectionReason",
    "Severity",
    "Source",
    "SourceObservation",
    "SourceRecord",
    "Threshold",
    "ThresholdKind",
    "ThresholdSet",
    "TrendDirection",
    "UnifiedRecord",
    "WeightProfile",
]
