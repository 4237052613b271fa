"""Tests for diversity-constrained selection."""

from __future__ import annotations

import pytest
from conftest import make_candidate

from reporank.config import build_config, default_config
from reporank.engine.diversity import DiversityBalancer
from reporank.engine.ranker import Ranker
from reporank.models.config import DiversityQuota, QuotaBucket
from reporank.models.enums import SelectionReason


def ranked(candidates):
    ranking = Ranker(default_config()).rank("run-1", "global", candidates)
    records = {c.repository_id: c.record for c in candidates}
    return ranking, records


def scale_quota(**kwargs) -> DiversityQuota:
    return DiversityQuota(
        buckets=[
            QuotaBucket(name="large", dimension="scale", match="large", quota=2),
            QuotaBucket(name="small", dimension="scale", match="small", quota=1),
        ],
        **kwargs,
    )


def by_stars(stars: list[int]):
    """Candidates ranked in list order, with the given star counts."""
    count = len(stars)
    return [
        make_candidate(f"r/{i}", ((count - i) / count,) * 4, fields={"stars": s})
        for i, s in enumerate(stars)
    ]


class TestScaleBuckets:
    def test_quota_exhausted(self):
        ranking, records = ranked(by_stars([20_000, 15_000, 12_000, 50]))
        selection = DiversityBalancer(scale_quota()).select(ranking, records)

        assert [e.repository_id for e in selection.selected] == ["r/0", "r/1", "r/3"]
        dropped = selection.entries[2]
        assert dropped.reason == SelectionReason.QUOTA_EXHAUSTED
        assert dropped.detail == "buckets full: large 2/2"
        assert selection.bucket_counts == {"large": 2, "small": 1}

    def test_no_matching_bucket(self):
        ranking, records = ranked(by_stars([20_000, 5_000]))
        selection = DiversityBalancer(scale_quota()).select(ranking, records)
        medium = selection.entries[1]
        assert not medium.included
        assert medium.reason == SelectionReason.NO_MATCHING_BUCKET

    def test_missing_scale_metric(self):
        candidates = [make_candidate("a/a", (0.5,) * 4)]
        ranking, records = ranked(candidates)
        selection = DiversityBalancer(scale_quota()).select(ranking, records)
        assert selection.entries[0].reason == SelectionReason.NO_MATCHING_BUCKET

    def test_shortlist_cap_is_a_quota(self):
        ranking, records = ranked(by_stars([20_000, 15_000, 50]))
        selection = DiversityBalancer(scale_quota(max_selected=2)).select(ranking, records)
        assert [e.reason for e in selection.entries] == [
            SelectionReason.SELECTED,
            SelectionReason.SELECTED,
            SelectionReason.QUOTA_EXHAUSTED,
        ]
        assert selection.entries[2].detail == "shortlist full: 2/2"

    def test_quota_never_exceeded(self):
        ranking, records = ranked(by_stars([20_000] * 6 + [10] * 6))
        selection = DiversityBalancer(scale_quota()).select(ranking, records)
        for bucket in selection.quota.buckets:
            members = [e for e in selection.selected if e.bucket == bucket.name]
            assert len(members) <= bucket.quota
        assert len(selection.entries) == len(ranking.entries)


class TestOtherDimensions:
    def test_category_buckets(self):
        candidates = [
            make_candidate("a/a", (0.75,) * 4, category="cli-tools"),
            make_candidate("b/b", (0.5,) * 4, category="cli-tools"),
            make_candidate("c/c", (0.25,) * 4),
        ]
        quota = DiversityQuota(
            buckets=[
                QuotaBucket(name="cli", dimension="category", match="cli-tools", quota=1),
                QuotaBucket(name="rust", dimension="category", match="rust-libraries", quota=1),
            ]
        )
        ranking, records = ranked(candidates)
        selection = DiversityBalancer(quota).select(ranking, records)
        assert [e.repository_id for e in selection.selected] == ["a/a", "c/c"]
        assert selection.selected[1].bucket == "rust"

    def test_field_buckets_fill_in_declared_order(self):
        candidates = [
            make_candidate("a/a", (0.75,) * 4, fields={"approach": "async", "stars": 20_000}),
            make_candidate("b/b", (0.5,) * 4, fields={"approach": "async", "stars": 20_000}),
        ]
        quota = DiversityQuota(
            buckets=[
                QuotaBucket(name="async", dimension="field", field="approach", match="async", quota=1),
                QuotaBucket(name="large", dimension="scale", match="large", quota=1),
            ]
        )
        ranking, records = ranked(candidates)
        selection = DiversityBalancer(quota).select(ranking, records)
        assert [e.bucket for e in selection.entries] == ["async", "large"]


class TestDeterminism:
    def test_same_inputs_same_selection(self):
        ranking, records = ranked(by_stars([20_000, 15_000, 12_000, 50, 40]))
        balancer = DiversityBalancer(scale_quota())
        assert balancer.select(ranking, records) == balancer.select(ranking, dict(reversed(records.items())))

    def test_ranking_order_is_preserved(self):
        ranking, records = ranked(by_stars([20_000, 50, 15_000]))
        selection = DiversityBalancer(scale_quota()).select(ranking, records)
        assert [e.repository_id for e in selection.entries] == ranking.ids()
        assert [e.rank for e in selection.entries] == [1, 2, 3]


class TestExclusionReasons:
    @pytest.mark.parametrize("algorithm", ["pareto", "topsis"])
    def test_higher_overall_is_only_dropped_for_quota(self, algorithm):
        candidates = [
            make_candidate("r/a", (1.0, 0.0, 0.0, 0.0), fields={"stars": 20_000}),
            make_candidate("r/b", (0.75,) * 4, fields={"stars": 20_000}),
            make_candidate("r/c", (0.875,) * 4, fields={"stars": 20_000}),
        ]
        ranking = Ranker(build_config({"ranking": algorithm})).rank("run-1", "global", candidates)
        records = {c.repository_id: c.record for c in candidates}
        quota = DiversityQuota(
            buckets=[QuotaBucket(name="large", dimension="scale", match="large", quota=5)],
            max_selected=2,
        )
        selection = DiversityBalancer(quota).select(ranking, records)

        included = selection.selected
        assert len(included) == 2
        for entry in selection.excluded:
            peers = [e.scores.overall for e in included if e.bucket == "large"]
            assert entry.reason == SelectionReason.QUOTA_EXHAUSTED or entry.scores.overall < min(peers)

    def test_pareto_front_outranks_higher_overall(self):
        candidates = [
            make_candidate("r/a", (1.0, 0.0, 0.0, 0.0), fields={"stars": 20_000}),
            make_candidate("r/b", (0.75,) * 4, fields={"stars": 20_000}),
            make_candidate("r/c", (0.875,) * 4, fields={"stars": 20_000}),
        ]
        ranking = Ranker(build_config({"ranking": "pareto"})).rank("run-1", "global", candidates)
        quota = DiversityQuota(
            buckets=[QuotaBucket(name="large", dimension="scale", match="large", quota=5)],
            max_selected=2,
        )
        selection = DiversityBalancer(quota).select(ranking, {c.repository_id: c.record for c in candidates})

        assert [e.repository_id for e in selection.selected] == ["r/c", "r/a"]
        dropped = selection.excluded[0]
        assert (dropped.repository_id, dropped.reason) == ("r/b", SelectionReason.QUOTA_EXHAUSTED)
