"""Tests for run metrics collection and dashboard text."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from reporank.monitoring.dashboard import (
    activity_text,
    errors_text,
    format_duration,
    progress_text,
    results_text,
    timing_text,
)
from reporank.monitoring.metrics import MetricsCollector, RunMetrics, StageTimer


@pytest.fixture
def collector(tmp_path: Path) -> MetricsCollector:
    return MetricsCollector(tmp_path / ".metrics.json")


class TestMetricsCollector:
    def test_counts(self, collector):
        collector.start_run("run-1", 4)
        collector.complete_repository("a/a", "passed", score=0.8, grade="B")
        collector.complete_repository("b/b", "warning", score=0.6, grade="D")
        collector.complete_repository("c/c", "failed", score=0.2, grade="F")
        collector.record_error("d/d", "NoSourceData", "No source records for d/d")
        collector.complete_repository("d/d", "error", message="No source records for d/d")

        metrics = collector.get_metrics()
        assert metrics.completed_repositories == 4
        assert (metrics.passed_count, metrics.warning_count, metrics.failed_count) == (1, 1, 1)
        assert metrics.error_count == 1
        assert metrics.scored_count == 3
        assert metrics.average_score == pytest.approx(1.6 / 3)
        assert metrics.grade_distribution["B"] == 1
        assert metrics.progress_percent == 100.0
        assert metrics.recent_errors[0].error_type == "NoSourceData"

    def test_persists_for_dashboard(self, collector, tmp_path: Path):
        collector.start_run("run-1", 2)
        collector.complete_repository("a/a", "passed", score=0.9, grade="A")
        collector.finish_run("completed", shortlist_size=1)

        data = json.loads((tmp_path / ".metrics.json").read_text())
        assert data["status"] == "completed"

        loaded = MetricsCollector(tmp_path / ".metrics.json").load()
        assert loaded.run_id == "run-1"
        assert loaded.shortlist_size == 1
        assert not loaded.is_running
        assert loaded.activity_log[0].repository == "a/a"

    def test_in_memory(self, tmp_path: Path):
        collector = MetricsCollector(tmp_path / ".metrics.json", persist=False)
        collector.start_run("run-1", 1)
        assert not (tmp_path / ".metrics.json").exists()
        assert collector.get_metrics().is_running

    def test_load_missing_file(self, tmp_path: Path):
        assert MetricsCollector(tmp_path / "nope.json").load().run_id == ""

    def test_load_corrupt_file(self, tmp_path: Path):
        path = tmp_path / ".metrics.json"
        path.write_text("{not json")
        assert MetricsCollector(path).load().total_repositories == 0

    def test_stage_timer_running_average(self, collector):
        collector.record_stage_timing("score", 0.2)
        collector.record_stage_timing("score", 0.4)
        with StageTimer(collector, "rank"):
            pass

        metrics = collector.get_metrics()
        assert metrics.stage_timings["score"] == pytest.approx(0.3)
        assert metrics.stage_counts == {"score": 2, "rank": 1}

    def test_eta_without_progress(self):
        assert RunMetrics(total_repositories=5).eta_seconds is None


class TestDashboardText:
    def test_progress(self):
        metrics = RunMetrics(run_id="run-1", total_repositories=4, completed_repositories=1, status="cancelled")
        text = progress_text(metrics)
        assert "25%" in text
        assert "CANCELLED" in text
        assert "1/4 repositories" in text

    def test_results(self):
        metrics = RunMetrics(passed_count=2, total_score=1.5, shortlist_size=2)
        text = results_text(metrics)
        assert "0.750" in text
        assert "Shortlist:[/bold] 2" in text

    def test_timing_marks_missing_stages(self):
        text = timing_text(RunMetrics(stage_timings={"score": 0.05}))
        assert "50.0ms" in text
        assert "Rank" in text

    def test_empty_panels(self):
        assert "No errors" in errors_text(RunMetrics())
        assert "No activity yet" in activity_text(RunMetrics())

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [(5, "5.0s"), (125, "2m 5s"), (7_260, "2h 1m")],
    )
    def test_format_duration(self, seconds, expected):
        assert format_duration(seconds) == expected
