"""Durable storage of run outputs."""

import json
import logging
from pathlib import Path

from reporank.models.schemas import (
    DataQualitySummary,
    DiversitySelection,
    FilterResult,
    ManifestEntry,
    Ranking,
    RunResult,
    ScoreBreakdown,
    UnifiedRecord,
)

logger = logging.getLogger(__name__)

SUMMARY_FILE = "summary.json"


class ArtifactStore:
    """Writes and reads pipeline runs under ``<data_dir>/runs/<run_id>/``.

    Each artifact kind goes to its own JSON file so downstream tools can load
    only what they need (the shortlist is in ``selections.json``).
    """

    def __init__(self, data_dir: Path | None = None) -> None:
        self.data_dir = data_dir or Path("data")
        self.runs_dir = self.data_dir / "runs"

    def save_run(self, result: RunResult) -> Path:
        """Save every artifact of a run.

        Args:
            result: The run to save.

        Returns:
            Directory the run was written to.
        """
        run_dir = self.runs_dir / result.run_id
        run_dir.mkdir(parents=True, exist_ok=True)

        self._write(run_dir / "unified.json", [r.model_dump(mode="json") for r in result.unified_records])
        self._write(
            run_dir / "scores.json",
            {repo_id: s.model_dump(mode="json") for repo_id, s in result.scores.items()},
        )
        self._write(
            run_dir / "filter_results.json",
            [f.model_dump(mode="json") for f in result.filter_results],
        )
        self._write(run_dir / "rankings.json", [r.model_dump(mode="json") for r in result.rankings])
        self._write(
            run_dir / "selections.json",
            [s.model_dump(mode="json") for s in result.selections],
        )
        self._write(run_dir / "manifest.json", [m.model_dump(mode="json") for m in result.manifest])
        self._write(
            run_dir / SUMMARY_FILE,
            {
                "run_id": result.run_id,
                "status": result.status.value,
                "started_at": result.started_at.isoformat(),
                "finished_at": result.finished_at.isoformat() if result.finished_at else None,
                "as_of": result.as_of.isoformat(),
                "algorithm": result.algorithm.value,
                "incomplete": result.incomplete,
                "data_quality": result.data_quality.model_dump(mode="json"),
                "shortlist": [e.repository_id for e in result.shortlist],
            },
        )

        logger.info(f"Saved run {result.run_id} to {run_dir}")
        return run_dir

    def load_run(self, run_id: str) -> RunResult:
        """Load a saved run.

        Raises:
            FileNotFoundError: If the run does not exist.
        """
        run_dir = self.runs_dir / run_id
        summary = self._read(run_dir / SUMMARY_FILE)

        return RunResult(
            run_id=summary["run_id"],
            status=summary["status"],
            started_at=summary["started_at"],
            finished_at=summary["finished_at"],
            as_of=summary["as_of"],
            algorithm=summary["algorithm"],
            incomplete=summary["incomplete"],
            data_quality=DataQualitySummary.model_validate(summary["data_quality"]),
            unified_records=[
                UnifiedRecord.model_validate(r) for r in self._read(run_dir / "unified.json")
            ],
            scores={
                repo_id: ScoreBreakdown.model_validate(s)
                for repo_id, s in self._read(run_dir / "scores.json").items()
            },
            filter_results=[
                FilterResult.model_validate(f) for f in self._read(run_dir / "filter_results.json")
            ],
            rankings=[Ranking.model_validate(r) for r in self._read(run_dir / "rankings.json")],
            selections=[
                DiversitySelection.model_validate(s) for s in self._read(run_dir / "selections.json")
            ],
            manifest=[ManifestEntry.model_validate(m) for m in self._read(run_dir / "manifest.json")],
        )

    def list_runs(self) -> list[str]:
        """Run ids with a summary file, oldest first by directory name."""
        if not self.runs_dir.exists():
            return []
        return sorted(p.name for p in self.runs_dir.iterdir() if (p / SUMMARY_FILE).exists())

    def _write(self, path: Path, data: object) -> None:
        path.write_text(json.dumps(data, indent=2))

    def _read(self, path: Path):
        return json.loads(path.read_text())
