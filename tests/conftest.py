"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from reporank.config import build_config, default_config
from reporank.engine.aggregator import Aggregator
from reporank.engine.context import RunContext, build_run_context
from reporank.engine.ranker import Candidate
from reporank.engine.scorer import score_to_grade
from reporank.models.config import ThresholdSet
from reporank.models.enums import FilterStatus, Source
from reporank.models.schemas import (
    DataQuality,
    FilterResult,
    ResolvedField,
    ScoreBreakdown,
    SourceRecord,
    UnifiedRecord,
)

AS_OF = datetime(2025, 6, 1, tzinfo=timezone.utc)


def make_record(
    repository_id: str = "acme/widget",
    source: Source = Source.HOST,
    fields: dict | None = None,
    days_old: float = 0,
) -> SourceRecord:
    """A SourceRecord observed ``days_old`` days before AS_OF."""
    return SourceRecord(
        repository_id=repository_id,
        source=source,
        fields=fields or {},
        observed_at=AS_OF - timedelta(days=days_old),
    )


def full_host_fields(**overrides) -> dict:
    """Host fields covering every weighted metric."""
    fields = {
        "stars": 10_000,
        "forks": 1_000,
        "commit_frequency": 10.0,
        "contributor_count": 50,
        "release_frequency": 12,
        "issue_response_hours": 24.0,
        "issue_resolution_rate": 0.8,
        "contributor_diversity": 0.6,
        "documentation_completeness": 0.9,
        "test_signal": 1.0,
        "security_signal": 0.5,
        "license": "MIT",
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def as_of() -> datetime:
    return AS_OF


@pytest.fixture
def config():
    return default_config()


@pytest.fixture
def empty_context() -> RunContext:
    return RunContext(run_id="run-1", as_of=AS_OF)


@pytest.fixture
def aggregator(config, empty_context) -> Aggregator:
    return Aggregator(config, empty_context)


@pytest.fixture
def build_aggregator():
    """Aggregator over a config built from overrides and a population."""

    def _build(overrides: dict | None = None, records_by_repo: dict | None = None) -> Aggregator:
        cfg = build_config(overrides)
        context = build_run_context(records_by_repo or {}, "run-1", AS_OF)
        return Aggregator(cfg, context)

    return _build


def make_candidate(
    repository_id: str,
    sub_scores: tuple[float, float, float, float],
    category: str = "rust-libraries",
    status: FilterStatus = FilterStatus.PASSED,
    fields: dict | None = None,
) -> Candidate:
    """A ranker candidate with fixed sub-scores and equal overall weights."""
    resolved = {
        name: ResolvedField(name=name, value=value, confidence=1.0) for name, value in (fields or {}).items()
    }
    record = UnifiedRecord(
        repository_id=repository_id,
        category=category,
        run_id="run-1",
        fields=resolved,
        quality=DataQuality(completeness=1.0, consistency=1.0, freshness=1.0, source_count=1),
        merged_at=AS_OF,
    )
    overall = sum(sub_scores) / 4
    score = ScoreBreakdown(
        popularity=sub_scores[0],
        activity=sub_scores[1],
        community_health=sub_scores[2],
        quality_score=sub_scores[3],
        overall=overall,
        grade=score_to_grade(overall),
    )
    filter_result = FilterResult(
        repository_id=repository_id,
        category=category,
        run_id="run-1",
        status=status,
        thresholds=ThresholdSet(),
    )
    return Candidate(record=record, score=score, filter_result=filter_result)
