"""Enumerations shared by records, results and configuration."""

from enum import Enum


class Source(str, Enum):
    """External systems that report repository signals."""

    HOST = "host"
    REGISTRY_NPM = "registry-npm"
    REGISTRY_PYPI = "registry-pypi"
    REGISTRY_CRATES = "registry-crates"
    TRENDING = "trending"


class ConflictStrategy(str, Enum):
    """How several sources' values for one field are reduced to one."""

    HIGHEST_VALUE = "highest_value"
    MOST_RECENT = "most_recent"
    WEIGHTED_AVERAGE = "weighted_average"
    CONSENSUS = "consensus"


class NormalizationStrategy(str, Enum):
    """Rescaling of a raw metric onto [0, 1]."""

    MIN_MAX = "min_max"
    Z_SCORE = "z_score"
    LOG_SCALE = "log_scale"


class ThresholdKind(str, Enum):
    """Comparison applied by a threshold criterion."""

    MIN = "min"  # value >= threshold
    MAX = "max"  # value <= threshold
    PRESENT = "present"  # value is not missing


class FilterStatus(str, Enum):
    """Outcome of the threshold filter."""

    PASSED = "passed"
    WARNING = "warning"
    FAILED = "failed"


class RankingAlgorithm(str, Enum):
    """Ordering algorithm used for a run."""

    WEIGHTED_SUM = "weighted_sum"
    PARETO = "pareto"
    TOPSIS = "topsis"


class RankingScope(str, Enum):
    """Whether rankings are computed across all categories or per category."""

    GLOBAL = "global"
    PER_CATEGORY = "per_category"


class BucketDimension(str, Enum):
    """What a diversity bucket matches on."""

    SCALE = "scale"
    CATEGORY = "category"
    FIELD = "field"  # resolved string field, e.g. approach or community


class SelectionReason(str, Enum):
    """Why a ranked entry was included in or excluded from the shortlist."""

    SELECTED = "selected"
    QUOTA_EXHAUSTED = "quota_exhausted"
    NO_MATCHING_BUCKET = "no_matching_bucket"


class TrendDirection(str, Enum):
    """Direction of a historical metric series."""

    GROWING = "growing"
    STABLE = "stable"
    DECLINING = "declining"
    INSUFFICIENT_DATA = "insufficient_data"


class RunStatus(str, Enum):
    """Terminal state of a pipeline run."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


class Severity(str, Enum):
    """Manifest entry severity."""

    ERROR = "error"
    WARNING = "warning"
