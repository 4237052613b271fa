"""Tests for record and configuration models."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from reporank.models.config import (
    DiversityQuota,
    NormalizationSpec,
    Threshold,
    ThresholdSet,
    WeightProfile,
)
from reporank.models.enums import Source, ThresholdKind
from reporank.models.schemas import CriterionResult, SourceObservation, SourceRecord

OVERALL = {"popularity": 0.25, "activity": 0.25, "community_health": 0.25, "quality_score": 0.25}


def weight_profile(**overrides) -> dict:
    data = {
        "popularity": {"stars": 1.0},
        "activity": {"commit_frequency": 1.0},
        "community_health": {"issue_resolution_rate": 1.0},
        "quality_score": {"test_signal": 1.0},
        "overall": dict(OVERALL),
    }
    data.update(overrides)
    return data


class TestSourceRecord:
    def test_timestamp_values_round_trip(self):
        released = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        record = SourceRecord(
            repository_id="acme/widget",
            source=Source.HOST,
            fields={"stars": 10, "license": "MIT", "last_commit_at": released},
            observed_at=datetime(2024, 3, 2, tzinfo=timezone.utc),
        )
        data = record.model_dump(mode="json")
        assert data["fields"]["last_commit_at"] == {"$timestamp": released.isoformat()}

        restored = SourceRecord.model_validate(data)
        assert restored == record
        assert isinstance(restored.fields["last_commit_at"], datetime)
        assert restored.fields["license"] == "MIT"

    def test_naive_observed_at_is_utc(self):
        record = SourceRecord(
            repository_id="a/b",
            source="trending",
            observed_at=datetime(2024, 1, 1),
        )
        assert record.observed_at.tzinfo == timezone.utc
        assert record.source == Source.TRENDING

    def test_records_are_frozen(self):
        record = SourceRecord(repository_id="a/b", source="host", observed_at=datetime(2024, 1, 1))
        with pytest.raises(ValidationError):
            record.repository_id = "c/d"

    def test_unknown_source_rejected(self):
        with pytest.raises(ValidationError):
            SourceObservation(
                repository_id="a/b",
                source="mailing-list",
                field="stars",
                value=1,
                observed_at=datetime(2024, 1, 1),
            )


class TestWeightProfile:
    def test_valid_profile(self):
        profile = WeightProfile.model_validate(weight_profile())
        assert profile.components("popularity") == {"stars": 1.0}
        assert profile.metrics() == {"stars", "commit_frequency", "issue_resolution_rate", "test_signal"}

    def test_overall_must_sum_to_one(self):
        overall = dict(OVERALL, popularity=0.3)
        with pytest.raises(ValidationError, match="sum to"):
            WeightProfile.model_validate(weight_profile(overall=overall))

    def test_sum_within_epsilon_accepted(self):
        profile = WeightProfile.model_validate(
            weight_profile(popularity={"stars": 0.5, "downloads": 0.5 + 5e-7})
        )
        assert profile.popularity["downloads"] > 0.5

    def test_sub_score_must_sum_to_one(self):
        with pytest.raises(ValidationError):
            WeightProfile.model_validate(weight_profile(activity={"commit_frequency": 0.9}))

    def test_negative_weight_rejected(self):
        with pytest.raises(ValidationError, match="negative"):
            WeightProfile.model_validate(
                weight_profile(popularity={"stars": 1.5, "downloads": -0.5})
            )

    def test_overall_must_name_every_sub_score(self):
        with pytest.raises(ValidationError):
            WeightProfile.model_validate(
                weight_profile(overall={"popularity": 0.5, "activity": 0.5})
            )


class TestThresholds:
    def test_value_required_for_min(self):
        with pytest.raises(ValidationError):
            Threshold(name="t", metric="stars", kind=ThresholdKind.MIN)

    def test_present_needs_no_value(self):
        assert Threshold(name="t", metric="license", kind="present").value is None

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValidationError, match="duplicate"):
            ThresholdSet(
                must=[
                    Threshold(name="a", metric="stars", value=1),
                    Threshold(name="a", metric="forks", value=1),
                ]
            )

    def test_merge_replaces_by_name_and_appends(self):
        base = ThresholdSet(
            must=[
                Threshold(name="min-stars", metric="stars", value=100),
                Threshold(name="has-license", metric="license", kind="present"),
            ]
        )
        override = ThresholdSet(
            must=[
                Threshold(name="min-stars", metric="stars", value=50),
                Threshold(name="min-forks", metric="forks", value=5),
            ]
        )
        merged = base.merged(override)
        assert [t.name for t in merged.must] == ["min-stars", "has-license", "min-forks"]
        assert merged.must[0].value == 50


class TestNormalizationSpec:
    def test_bounds_come_in_pairs(self):
        with pytest.raises(ValidationError):
            NormalizationSpec(strategy="min_max", minimum=0)

    def test_inverted_bounds_rejected(self):
        with pytest.raises(ValidationError):
            NormalizationSpec(strategy="min_max", minimum=10, maximum=1)

    def test_ceiling_must_be_positive(self):
        with pytest.raises(ValidationError):
            NormalizationSpec(strategy="log_scale", ceiling=0)


class TestDiversityQuota:
    def test_scale_bucket(self):
        quota = DiversityQuota(buckets=[{"name": "all", "dimension": "category", "match": "x", "quota": 1}])
        assert quota.scale_bucket(0) == "small"
        assert quota.scale_bucket(999) == "small"
        assert quota.scale_bucket(1_000) == "medium"
        assert quota.scale_bucket(50_000) == "large"
        assert quota.scale_bucket(None) is None
        assert quota.scale_bucket(-1) is None

    def test_unknown_scale_rejected(self):
        with pytest.raises(ValidationError, match="unknown scale"):
            DiversityQuota(buckets=[{"name": "huge", "dimension": "scale", "match": "huge", "quota": 1}])

    def test_field_bucket_needs_field(self):
        with pytest.raises(ValidationError):
            DiversityQuota(buckets=[{"name": "rust", "dimension": "field", "match": "rust", "quota": 1}])

    def test_needs_buckets(self):
        with pytest.raises(ValidationError):
            DiversityQuota(buckets=[])

    def test_negative_quota_rejected(self):
        with pytest.raises(ValidationError):
            DiversityQuota(buckets=[{"name": "s", "dimension": "scale", "match": "small", "quota": -1}])


class TestCriterionResult:
    def test_evidence_for_min(self):
        result = CriterionResult(
            name="min-stars", metric="stars", kind="min", threshold=100, value=42, passed=False
        )
        assert result.evidence == "stars=42 (needs >= 100)"

    def test_evidence_for_missing_present(self):
        result = CriterionResult(name="has-license", metric="license", kind="present", passed=False)
        assert result.evidence == "license=missing (must be present)"

    def test_evidence_for_string_value(self):
        result = CriterionResult(
            name="has-license", metric="license", kind="present", value="MIT", passed=True
        )
        assert result.evidence == "license=MIT (must be present)"
