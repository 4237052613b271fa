"""Exception hierarchy for reporank.

All exceptions inherit from ReporankError (single catch point).
Field-level errors are absorbed by the aggregator, repository-level errors
by the run pipeline; only configuration errors and RunTimedOut reach callers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from reporank.models.schemas import RunResult


class ReporankError(Exception):
    """Base exception for all reporank errors."""


class ConfigurationError(ReporankError):
    """Configuration is unreadable or invalid. Fatal before any repository runs."""


class InvalidMetricValue(ReporankError):
    """A raw metric value cannot be normalized (negative, NaN, infinite)."""

    def __init__(self, field: str, value: Any, reason: str) -> None:
        self.field = field
        self.value = value
        super().__init__(f"Invalid value {value!r} for '{field}': {reason}")


class NonNumericField(ReporankError):
    """A numeric-only resolution strategy was applied to a non-numeric field."""

    def __init__(self, field: str, strategy: str) -> None:
        self.field = field
        self.strategy = strategy
        super().__init__(f"Strategy '{strategy}' requires numeric values for '{field}'")


class NoSourceData(ReporankError):
    """A repository has no source records."""

    def __init__(self, repository_id: str) -> None:
        self.repository_id = repository_id
        super().__init__(f"No source records for {repository_id}")


class UnknownCategory(ReporankError):
    """A repository was classified into a category with no configuration."""

    def __init__(self, repository_id: str, category: str | None) -> None:
        self.repository_id = repository_id
        self.category = category
        super().__init__(f"Unknown category {category!r} for {repository_id}")


class RunTimedOut(ReporankError):
    """The ranking barrier gave up waiting for per-repository tasks."""

    def __init__(self, incomplete: list[str], partial: RunResult | None = None) -> None:
        self.incomplete = sorted(incomplete)
        self.partial = partial
        super().__init__(
            f"Run budget exhausted with {len(self.incomplete)} repositories incomplete"
        )
