"""Tests for per-field conflict resolution."""

from __future__ import annotations

from datetime import timedelta

import pytest
from conftest import AS_OF

from reporank.engine.resolver import LOW_CONFIDENCE, SourceValue, resolve, values_agree
from reporank.errors import NonNumericField
from reporank.models.config import FieldConflictPolicy
from reporank.models.enums import ConflictStrategy, Source

HOST = Source.HOST
NPM = Source.REGISTRY_NPM
PYPI = Source.REGISTRY_PYPI
CRATES = Source.REGISTRY_CRATES
TRENDING = Source.TRENDING


def sv(source: Source, value, days_old: float = 0) -> SourceValue:
    return SourceValue(source=source, value=value, observed_at=AS_OF - timedelta(days=days_old))


def policy(strategy: str, priority: list[Source] | None = None, tolerance: float = 0.05) -> FieldConflictPolicy:
    return FieldConflictPolicy(strategy=strategy, source_priority=priority or [], tolerance=tolerance)


class TestSingleSource:
    def test_listed_source_has_full_confidence(self):
        resolution = resolve("stars", [sv(HOST, 42)], policy("highest_value", [HOST]))
        assert resolution.value == 42
        assert resolution.confidence == 1.0
        assert resolution.consistent

    def test_unlisted_source_has_half_confidence(self):
        resolution = resolve("stars", [sv(TRENDING, 42)], policy("highest_value", [HOST]))
        assert resolution.value == 42
        assert resolution.confidence == 0.5

    def test_no_sources_is_missing(self):
        assert resolve("stars", [], policy("highest_value")) is None


class TestHighestValue:
    def test_picks_max(self):
        resolution = resolve("stars", [sv(HOST, 100), sv(TRENDING, 120)], policy("highest_value", [HOST]))
        assert resolution.value == 120
        assert resolution.strategy == ConflictStrategy.HIGHEST_VALUE

    def test_tie_broken_by_priority(self):
        observed = [sv(NPM, 10.0), sv(PYPI, 10)]
        resolution = resolve("downloads", observed, policy("highest_value", [PYPI, NPM]))
        assert resolution.value == 10
        assert isinstance(resolution.value, int)
        assert resolution.sources == (PYPI, NPM)

    def test_mixed_types_rejected(self):
        with pytest.raises(NonNumericField):
            resolve("stars", [sv(HOST, 10), sv(TRENDING, "lots")], policy("highest_value"))

    def test_confidence_is_agreeing_share(self):
        observed = [sv(HOST, 100), sv(TRENDING, 102), sv(NPM, 300)]
        resolution = resolve("stars", observed, policy("highest_value", [HOST]))
        assert resolution.value == 300
        assert resolution.confidence == pytest.approx(1 / 3)
        assert not resolution.consistent


class TestMostRecent:
    def test_picks_latest(self):
        observed = [sv(HOST, 5, days_old=3), sv(CRATES, 9, days_old=1)]
        assert resolve("commit_frequency", observed, policy("most_recent", [HOST])).value == 9

    def test_tie_broken_by_priority(self):
        observed = [sv(HOST, 5), sv(CRATES, 9)]
        assert resolve("commit_frequency", observed, policy("most_recent", [CRATES, HOST])).value == 9
        assert resolve("commit_frequency", observed, policy("most_recent", [HOST, CRATES])).value == 5

    def test_unlisted_sources_after_listed_then_by_name(self):
        observed = [sv(TRENDING, "b"), sv(NPM, "a")]
        # neither listed: registry-npm sorts before trending
        assert resolve("homepage", observed, policy("most_recent", [HOST])).value == "a"

    def test_strings_allowed(self):
        resolution = resolve("license", [sv(HOST, "MIT"), sv(NPM, "MIT")], policy("most_recent", [HOST]))
        assert resolution.value == "MIT"
        assert resolution.confidence == 1.0


class TestWeightedAverage:
    def test_reliability_weights(self):
        observed = [sv(HOST, 0.8), sv(TRENDING, 0.2)]
        reliability = {HOST: 1.0, TRENDING: 0.5}
        resolution = resolve("issue_resolution_rate", observed, policy("weighted_average", [HOST]), reliability)
        assert resolution.value == pytest.approx((0.8 * 1.0 + 0.2 * 0.5) / 1.5)

    def test_missing_reliability_defaults_to_one(self):
        observed = [sv(HOST, 2.0), sv(NPM, 4.0)]
        assert resolve("x", observed, policy("weighted_average")).value == pytest.approx(3.0)

    def test_zero_weights_fall_back_to_mean(self):
        observed = [sv(HOST, 2.0), sv(NPM, 4.0)]
        reliability = {HOST: 0.0, NPM: 0.0}
        assert resolve("x", observed, policy("weighted_average"), reliability).value == pytest.approx(3.0)

    def test_non_numeric_rejected(self):
        with pytest.raises(NonNumericField):
            resolve("license", [sv(HOST, "MIT"), sv(NPM, "MIT")], policy("weighted_average"))

    def test_non_numeric_single_source_rejected(self):
        with pytest.raises(NonNumericField):
            resolve("license", [sv(HOST, "MIT")], policy("weighted_average", [HOST]))


class TestConsensus:
    def test_strict_majority(self):
        observed = [sv(HOST, "MIT"), sv(NPM, "MIT"), sv(CRATES, "Apache-2.0")]
        resolution = resolve("license", observed, policy("consensus", [CRATES, HOST, NPM]))
        assert resolution.value == "MIT"
        assert resolution.confidence == pytest.approx(2 / 3)

    def test_no_majority_falls_back_to_priority(self):
        observed = [sv(HOST, "MIT"), sv(NPM, "Apache-2.0")]
        resolution = resolve("license", observed, policy("consensus", [NPM, HOST]))
        assert resolution.value == "Apache-2.0"
        assert resolution.confidence == LOW_CONFIDENCE

    def test_numeric_values_compare_by_value(self):
        observed = [sv(HOST, 12), sv(NPM, 12.0), sv(PYPI, 6)]
        resolution = resolve("release_frequency", observed, policy("consensus", [HOST]))
        assert resolution.value == 12


class TestValuesAgree:
    def test_within_five_percent(self):
        assert values_agree([10_000, 10_050], 0.05)

    def test_beyond_tolerance(self):
        assert not values_agree([10_000, 20_000], 0.05)

    def test_strings(self):
        assert values_agree(["MIT", "MIT"], 0.05)
        assert not values_agree(["MIT", "BSD"], 0.05)

    def test_zeros_agree(self):
        assert values_agree([0, 0.0], 0.05)
