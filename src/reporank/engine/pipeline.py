"""End-to-end ranking run over a batch of repositories."""

from __future__ import annotations

import logging
import signal
import statistics
import threading
import time
import uuid
from collections.abc import Mapping, Sequence
from concurrent.futures import ALL_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from reporank.engine.aggregator import Aggregator
from reporank.engine.context import build_run_context
from reporank.engine.diversity import DiversityBalancer
from reporank.engine.filter import classify
from reporank.engine.ranker import Candidate, Ranker
from reporank.engine.scorer import Scorer
from reporank.errors import NoSourceData, ReporankError, RunTimedOut, UnknownCategory
from reporank.models.config import EngineConfig
from reporank.models.enums import FilterStatus, RankingScope, RunStatus, Severity
from reporank.models.schemas import (
    DataQualitySummary,
    DiversitySelection,
    FilterResult,
    ManifestEntry,
    Ranking,
    RunResult,
    ScoreBreakdown,
    SourceRecord,
    UnifiedRecord,
    ensure_utc,
)
from reporank.monitoring.metrics import MetricsCollector, StageTimer
from reporank.store.artifacts import ArtifactStore

logger = logging.getLogger(__name__)


def new_run_id(started_at: datetime) -> str:
    """Sortable, unique run identifier."""
    return f"{started_at.strftime('%Y%m%dT%H%M%SZ')}-{uuid.uuid4().hex[:8]}"


@dataclass
class RepositoryOutcome:
    """Result of one repository's aggregate, score and filter stages."""

    repository_id: str
    record: UnifiedRecord | None = None
    score: ScoreBreakdown | None = None
    filter_result: FilterResult | None = None
    error: ManifestEntry | None = None
    skipped: bool = False  # not started because the run was cancelled


class RankingPipeline:
    """Orchestrates a full ranking run.

    Pipeline stages:
    1. Freeze the population snapshot for normalization
    2. Per repository, on a worker pool: aggregate, score, filter
    3. Barrier: wait for every repository (or the time budget)
    4. Rank passed and warning repositories
    5. Apply diversity quotas
    6. Save artifacts

    A failing repository is reported in the manifest and never aborts the
    run. ``cancel()`` stops the run between repositories; repositories
    already finished are kept.

    Usage:
        pipeline = RankingPipeline(config, data_dir=Path("data"))
        result = pipeline.run(store.snapshot(), categories)
    """

    def __init__(
        self,
        config: EngineConfig,
        data_dir: Path | None = None,
        metrics: MetricsCollector | None = None,
        max_workers: int | None = None,
        time_budget: float | None = None,
        save: bool = True,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config: Validated engine configuration.
            data_dir: Directory for run artifacts and metrics. Nothing is
                written when omitted.
            metrics: Metrics collector. Defaults to one writing
                ``<data_dir>/.metrics.json``.
            max_workers: Worker threads; overrides the config.
            time_budget: Seconds to wait at the ranking barrier; overrides the config.
            save: Whether to save artifacts when data_dir is set.
        """
        self.config = config
        self.data_dir = data_dir
        self.max_workers = max_workers or config.max_workers
        self.time_budget = time_budget if time_budget is not None else config.time_budget_seconds
        self.artifacts = ArtifactStore(data_dir) if data_dir is not None and save else None

        if metrics is None:
            metrics_file = data_dir / ".metrics.json" if data_dir is not None else None
            metrics = MetricsCollector(metrics_file, persist=data_dir is not None)
        self.metrics = metrics

        self.scorer = Scorer()
        self.ranker = Ranker(config)
        self._cancel = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Stop the run before the next repository starts."""
        if not self._cancel.is_set():
            logger.info("Cancellation requested, finishing in-flight repositories")
        self._cancel.set()

    def install_signal_handlers(self) -> None:
        """Cancel on SIGINT/SIGTERM. Call from the main thread."""

        def handle_shutdown(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, cancelling run")
            self.cancel()

        signal.signal(signal.SIGINT, handle_shutdown)
        signal.signal(signal.SIGTERM, handle_shutdown)

    def run(
        self,
        records_by_repo: Mapping[str, Sequence[SourceRecord]],
        categories: Mapping[str, str],
        as_of: datetime | None = None,
        run_id: str | None = None,
    ) -> RunResult:
        """Run the pipeline.

        Every repository named in ``categories`` or ``records_by_repo`` is
        processed; one without records fails with NoSourceData, one without
        a category with UnknownCategory.

        Args:
            records_by_repo: Source records keyed by repository id.
            categories: Repository id to category name.
            as_of: Reference time for freshness. Defaults to now.
            run_id: Run identifier. Generated when omitted.

        Returns:
            RunResult with status ``completed`` or ``cancelled``.

        Raises:
            RunTimedOut: If the time budget ran out at the ranking barrier.
        """
        try:
            return self._run(records_by_repo, categories, as_of, run_id)
        finally:
            # A cancellation or timeout ends this run only
            self._cancel.clear()

    def _run(
        self,
        records_by_repo: Mapping[str, Sequence[SourceRecord]],
        categories: Mapping[str, str],
        as_of: datetime | None,
        run_id: str | None,
    ) -> RunResult:
        clock_start = time.monotonic()
        started_at = datetime.now(timezone.utc)
        as_of = ensure_utc(as_of) if as_of else started_at
        run_id = run_id or new_run_id(started_at)

        repository_ids = sorted(set(categories) | set(records_by_repo))
        records = {repo_id: list(records_by_repo.get(repo_id, [])) for repo_id in repository_ids}

        logger.info(f"Starting run {run_id}: {len(repository_ids)} repositories")
        self.metrics.start_run(run_id, len(repository_ids))

        context = build_run_context(records, run_id, as_of)
        aggregator = Aggregator(self.config, context)

        outcomes, pending = self._process_all(aggregator, records, categories, clock_start)

        result = RunResult(
            run_id=run_id,
            started_at=started_at,
            as_of=as_of,
            algorithm=self.config.ranking,
        )

        if pending:
            partial = self._finish(result, outcomes, RunStatus.TIMED_OUT, pending)
            logger.warning(f"Run {run_id} timed out with {len(pending)} repositories pending")
            raise RunTimedOut(pending, partial)

        skipped = [o.repository_id for o in outcomes.values() if o.skipped]
        if skipped:
            logger.warning(f"Run {run_id} cancelled, {len(skipped)} repositories not processed")
            return self._finish(result, outcomes, RunStatus.CANCELLED, skipped)

        candidates = [
            Candidate(record=o.record, score=o.score, filter_result=o.filter_result)
            for o in outcomes.values()
            if o.error is None
        ]
        with StageTimer(self.metrics, "rank"):
            rankings = self.ranker.rank_all(run_id, candidates)
        with StageTimer(self.metrics, "select"):
            unified = {c.repository_id: c.record for c in candidates}
            selections = [self._select(ranking, unified) for ranking in rankings]

        return self._finish(result, outcomes, RunStatus.COMPLETED, [], rankings, selections)

    def _process_all(
        self,
        aggregator: Aggregator,
        records: dict[str, list[SourceRecord]],
        categories: Mapping[str, str],
        clock_start: float,
    ) -> tuple[dict[str, RepositoryOutcome], list[str]]:
        """Run per-repository stages on the worker pool and wait at the barrier.

        Returns:
            Finished outcomes by repository id, and ids still pending when
            the time budget ran out.
        """
        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="reporank")
        futures: dict[Future, str] = {
            executor.submit(
                self._process_repository, aggregator, repo_id, categories.get(repo_id), records[repo_id]
            ): repo_id
            for repo_id in records
        }

        timeout = None
        if self.time_budget is not None:
            timeout = max(0.0, self.time_budget - (time.monotonic() - clock_start))

        done, not_done = wait(futures, timeout=timeout, return_when=ALL_COMPLETED)

        if not_done:
            # Drop queued repositories; running ones finish in the background
            executor.shutdown(wait=False, cancel_futures=True)
        else:
            executor.shutdown(wait=True)

        outcomes = {}
        for future in done:
            outcome = future.result()
            outcomes[outcome.repository_id] = outcome
        pending = sorted(futures[f] for f in not_done)
        return dict(sorted(outcomes.items())), pending

    def _process_repository(
        self,
        aggregator: Aggregator,
        repo_id: str,
        category: str | None,
        records: list[SourceRecord],
    ) -> RepositoryOutcome:
        """Aggregate, score and filter one repository. Never raises."""
        if self._cancel.is_set():
            return RepositoryOutcome(repository_id=repo_id, skipped=True)

        stage = "aggregate"
        try:
            if not records:
                raise NoSourceData(repo_id)
            if category is None:
                raise UnknownCategory(repo_id, None)

            with StageTimer(self.metrics, "aggregate"):
                record = aggregator.aggregate(repo_id, category, records)

            stage = "score"
            with StageTimer(self.metrics, "score"):
                score = self.scorer.score(record, self.config.weights_for(category))

            stage = "filter"
            with StageTimer(self.metrics, "filter"):
                filter_result = classify(record, score, self.config.thresholds_for(category))
        except ReporankError as e:
            return self._failed(repo_id, stage, e)
        except Exception as e:
            logger.exception(f"Unexpected error processing {repo_id}")
            return self._failed(repo_id, stage, e)

        self.metrics.complete_repository(
            repo_id,
            filter_result.status.value,
            score=score.overall,
            grade=score.grade,
            message=filter_result.reason.evidence if filter_result.reason else None,
        )
        return RepositoryOutcome(
            repository_id=repo_id,
            record=record,
            score=score,
            filter_result=filter_result,
        )

    def _failed(self, repo_id: str, stage: str, error: Exception) -> RepositoryOutcome:
        error_type = type(error).__name__
        logger.warning(f"{repo_id} failed at {stage}: {error}")
        self.metrics.record_error(repo_id, error_type, str(error))
        self.metrics.complete_repository(repo_id, "error", message=str(error))
        return RepositoryOutcome(
            repository_id=repo_id,
            error=ManifestEntry(
                repository_id=repo_id,
                severity=Severity.ERROR,
                stage=stage,
                error_type=error_type,
                message=str(error),
            ),
        )

    def _select(self, ranking: Ranking, records: dict[str, UnifiedRecord]) -> DiversitySelection:
        category = ranking.scope if self.config.ranking_scope == RankingScope.PER_CATEGORY else None
        return DiversityBalancer(self.config.diversity_for(category)).select(ranking, records)

    def _finish(
        self,
        result: RunResult,
        outcomes: dict[str, RepositoryOutcome],
        status: RunStatus,
        incomplete: list[str],
        rankings: list[Ranking] | None = None,
        selections: list[DiversitySelection] | None = None,
    ) -> RunResult:
        """Assemble, save and report the run result."""
        finished = [o for o in outcomes.values() if not o.skipped]
        succeeded = [o for o in finished if o.error is None]

        result = result.model_copy(
            update={
                "status": status,
                "finished_at": datetime.now(timezone.utc),
                "unified_records": [o.record for o in succeeded],
                "scores": {o.repository_id: o.score for o in succeeded},
                "filter_results": [o.filter_result for o in succeeded],
                "rankings": rankings or [],
                "selections": selections or [],
                "manifest": self._manifest(finished),
                "data_quality": self._data_quality(finished, len(set(outcomes) | set(incomplete))),
                "incomplete": sorted(incomplete),
            }
        )

        if self.artifacts is not None:
            with StageTimer(self.metrics, "save"):
                self.artifacts.save_run(result)

        self.metrics.finish_run(status.value, shortlist_size=len(result.shortlist))
        logger.info(
            f"Run {result.run_id} {status.value}: {len(succeeded)} scored, "
            f"{len(result.errors)} errors, {len(result.shortlist)} shortlisted"
        )
        return result

    @staticmethod
    def _manifest(outcomes: list[RepositoryOutcome]) -> list[ManifestEntry]:
        """Errors of failed repositories plus warnings of scored ones."""
        manifest: list[ManifestEntry] = []
        for outcome in outcomes:
            if outcome.error is not None:
                manifest.append(outcome.error)
                continue

            for issue in outcome.record.issues:
                manifest.append(
                    ManifestEntry(
                        repository_id=outcome.repository_id,
                        severity=Severity.WARNING,
                        stage="aggregate",
                        error_type=issue.error,
                        message=issue.message,
                    )
                )

            if outcome.filter_result.status == FilterStatus.WARNING:
                evidence = "; ".join(c.evidence for c in outcome.filter_result.violations)
                manifest.append(
                    ManifestEntry(
                        repository_id=outcome.repository_id,
                        severity=Severity.WARNING,
                        stage="filter",
                        error_type="QualityThreshold",
                        message=evidence,
                    )
                )
        return sorted(manifest, key=lambda m: (m.repository_id, m.severity.value, m.stage))

    def _data_quality(self, outcomes: list[RepositoryOutcome], total: int) -> DataQualitySummary:
        records = [o.record for o in outcomes if o.record is not None]
        if not records:
            return DataQualitySummary(
                repositories=total,
                failed=sum(1 for o in outcomes if o.error is not None),
            )

        return DataQualitySummary(
            repositories=total,
            aggregated=len(records),
            failed=sum(1 for o in outcomes if o.error is not None),
            mean_completeness=statistics.fmean(r.quality.completeness for r in records),
            mean_consistency=statistics.fmean(r.quality.consistency for r in records),
            mean_freshness=statistics.fmean(r.quality.freshness for r in records),
            low_quality=sorted(
                r.repository_id
                for r in records
                if r.quality.completeness < self.config.low_quality_completeness
            ),
        )
