"""Thread-safe metrics collector for ranking runs."""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

ERROR_BUFFER = 10
ACTIVITY_BUFFER = 50


@dataclass
class ErrorEntry:
    """A per-repository failure recorded during a run."""

    timestamp: datetime
    repository: str
    error_type: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "repository": self.repository,
            "error_type": self.error_type,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ErrorEntry:
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            repository=data["repository"],
            error_type=data["error_type"],
            message=data["message"],
        )


@dataclass
class ActivityEntry:
    """A completed repository."""

    timestamp: datetime
    repository: str
    status: str  # "passed", "warning", "failed", "error"
    score: float | None = None
    grade: str | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "repository": self.repository,
            "status": self.status,
            "score": self.score,
            "grade": self.grade,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActivityEntry:
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            repository=data["repository"],
            status=data["status"],
            score=data.get("score"),
            grade=data.get("grade"),
            message=data.get("message"),
        )


@dataclass
class RunMetrics:
    """Current state of a ranking run."""

    # Progress
    run_id: str = ""
    total_repositories: int = 0
    completed_repositories: int = 0
    start_time: datetime | None = None

    # Results
    passed_count: int = 0
    warning_count: int = 0
    failed_count: int = 0
    error_count: int = 0
    grade_distribution: dict[str, int] = field(
        default_factory=lambda: {"A": 0, "B": 0, "C": 0, "D": 0, "F": 0}
    )
    total_score: float = 0.0
    shortlist_size: int = 0

    # Stage timings (running averages, seconds)
    stage_timings: dict[str, float] = field(default_factory=dict)
    stage_counts: dict[str, int] = field(default_factory=dict)

    recent_errors: deque[ErrorEntry] = field(default_factory=lambda: deque(maxlen=ERROR_BUFFER))
    activity_log: deque[ActivityEntry] = field(default_factory=lambda: deque(maxlen=ACTIVITY_BUFFER))

    is_running: bool = False
    status: str = ""  # final RunStatus value
    last_updated: datetime | None = None

    @property
    def scored_count(self) -> int:
        return self.passed_count + self.warning_count + self.failed_count

    @property
    def progress_percent(self) -> float:
        if self.total_repositories == 0:
            return 0.0
        return (self.completed_repositories / self.total_repositories) * 100

    @property
    def elapsed_seconds(self) -> float:
        if self.start_time is None:
            return 0.0
        return (datetime.now() - self.start_time).total_seconds()

    @property
    def eta_seconds(self) -> float | None:
        """Estimated remaining time, from the completion rate so far."""
        if self.completed_repositories == 0 or self.total_repositories == 0:
            return None
        elapsed = self.elapsed_seconds
        rate = self.completed_repositories / elapsed if elapsed > 0 else 0
        remaining = self.total_repositories - self.completed_repositories
        return remaining / rate if rate > 0 else None

    @property
    def average_score(self) -> float | None:
        if self.scored_count == 0:
            return None
        return self.total_score / self.scored_count

    def to_dict(self) -> dict[str, Any]:
        """Serialize metrics for JSON storage."""
        return {
            "run_id": self.run_id,
            "total_repositories": self.total_repositories,
            "completed_repositories": self.completed_repositories,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "passed_count": self.passed_count,
            "warning_count": self.warning_count,
            "failed_count": self.failed_count,
            "error_count": self.error_count,
            "grade_distribution": self.grade_distribution,
            "total_score": self.total_score,
            "shortlist_size": self.shortlist_size,
            "stage_timings": self.stage_timings,
            "stage_counts": self.stage_counts,
            "recent_errors": [e.to_dict() for e in self.recent_errors],
            "activity_log": [a.to_dict() for a in self.activity_log],
            "is_running": self.is_running,
            "status": self.status,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunMetrics:
        """Deserialize metrics from a dictionary."""
        metrics = cls(
            run_id=data.get("run_id", ""),
            total_repositories=data.get("total_repositories", 0),
            completed_repositories=data.get("completed_repositories", 0),
            start_time=(
                datetime.fromisoformat(data["start_time"]) if data.get("start_time") else None
            ),
            passed_count=data.get("passed_count", 0),
            warning_count=data.get("warning_count", 0),
            failed_count=data.get("failed_count", 0),
            error_count=data.get("error_count", 0),
            grade_distribution=data.get(
                "grade_distribution", {"A": 0, "B": 0, "C": 0, "D": 0, "F": 0}
            ),
            total_score=data.get("total_score", 0.0),
            shortlist_size=data.get("shortlist_size", 0),
            stage_timings=data.get("stage_timings", {}),
            stage_counts=data.get("stage_counts", {}),
            is_running=data.get("is_running", False),
            status=data.get("status", ""),
            last_updated=(
                datetime.fromisoformat(data["last_updated"]) if data.get("last_updated") else None
            ),
        )
        metrics.recent_errors = deque(
            [ErrorEntry.from_dict(e) for e in data.get("recent_errors", [])],
            maxlen=ERROR_BUFFER,
        )
        metrics.activity_log = deque(
            [ActivityEntry.from_dict(a) for a in data.get("activity_log", [])],
            maxlen=ACTIVITY_BUFFER,
        )
        return metrics


class MetricsCollector:
    """Thread-safe metrics collector for ranking runs.

    Worker threads report progress here; the collector persists a JSON
    snapshot that the dashboard reads from another process. Pass
    ``metrics_file=None`` to keep metrics in memory only.
    """

    def __init__(self, metrics_file: Path | None = None, persist: bool = True):
        self._lock = threading.Lock()
        self._metrics_file = metrics_file or Path("data/.metrics.json")
        self._persist = persist
        self._metrics = RunMetrics()

    def start_run(self, run_id: str, total: int) -> None:
        """Reset metrics for a new run."""
        with self._lock:
            now = datetime.now()
            self._metrics = RunMetrics(
                run_id=run_id,
                total_repositories=total,
                start_time=now,
                is_running=True,
                last_updated=now,
            )
            self._save()

    def complete_repository(
        self,
        repository: str,
        status: str,
        score: float | None = None,
        grade: str | None = None,
        message: str | None = None,
    ) -> None:
        """Record the end of one repository's per-repository stages."""
        with self._lock:
            metrics = self._metrics
            metrics.completed_repositories += 1
            metrics.last_updated = datetime.now()

            if status == "error":
                metrics.error_count += 1
            else:
                counter = f"{status}_count"
                setattr(metrics, counter, getattr(metrics, counter) + 1)
                if score is not None:
                    metrics.total_score += score
                if grade:
                    metrics.grade_distribution[grade] = metrics.grade_distribution.get(grade, 0) + 1

            metrics.activity_log.append(
                ActivityEntry(
                    timestamp=datetime.now(),
                    repository=repository,
                    status=status,
                    score=score,
                    grade=grade,
                    message=message,
                )
            )
            self._save()

    def record_error(self, repository: str, error_type: str, message: str) -> None:
        """Record a per-repository failure."""
        with self._lock:
            self._metrics.recent_errors.append(
                ErrorEntry(
                    timestamp=datetime.now(),
                    repository=repository,
                    error_type=error_type,
                    message=message,
                )
            )
            self._metrics.last_updated = datetime.now()
            self._save()

    def record_stage_timing(self, stage: str, duration: float) -> None:
        """Record the duration of a stage (updates the running average)."""
        with self._lock:
            count = self._metrics.stage_counts.get(stage, 0)
            average = self._metrics.stage_timings.get(stage, 0.0)
            self._metrics.stage_counts[stage] = count + 1
            self._metrics.stage_timings[stage] = (average * count + duration) / (count + 1)

    def finish_run(self, status: str, shortlist_size: int = 0) -> None:
        """Mark the run as finished."""
        with self._lock:
            self._metrics.is_running = False
            self._metrics.status = status
            self._metrics.shortlist_size = shortlist_size
            self._metrics.last_updated = datetime.now()
            self._save()

    def get_metrics(self) -> RunMetrics:
        """A copy of the current metrics."""
        with self._lock:
            return RunMetrics.from_dict(self._metrics.to_dict())

    def _save(self) -> None:
        """Write metrics to file (lock held). Write failures never stop a run."""
        if not self._persist:
            return
        try:
            self._metrics_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self._metrics_file, "w") as f:
                json.dump(self._metrics.to_dict(), f, indent=2)
        except OSError as e:
            logger.debug(f"Could not write metrics to {self._metrics_file}: {e}")

    def load(self) -> RunMetrics:
        """Load metrics from file (for dashboard use)."""
        try:
            with open(self._metrics_file) as f:
                return RunMetrics.from_dict(json.load(f))
        except FileNotFoundError:
            return RunMetrics()
        except (OSError, ValueError, KeyError) as e:
            logger.debug(f"Could not read metrics from {self._metrics_file}: {e}")
            return RunMetrics()


class StageTimer:
    """Context manager for timing pipeline stages."""

    def __init__(self, collector: MetricsCollector, stage: str):
        self.collector = collector
        self.stage = stage
        self.start_time: float | None = None

    def __enter__(self) -> StageTimer:
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self.start_time is not None:
            self.collector.record_stage_timing(self.stage, time.perf_counter() - self.start_time)
