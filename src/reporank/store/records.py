"""Append-only store of per-source repository observations."""

import json
import logging
import threading
from collections import defaultdict
from collections.abc import Iterable
from pathlib import Path

from pydantic import ValidationError

from reporank.models.enums import Source
from reporank.models.schemas import SourceObservation, SourceRecord

logger = logging.getLogger(__name__)


def group_observations(observations: Iterable[SourceObservation]) -> list[SourceRecord]:
    """Group observations into SourceRecords.

    Observations sharing (repository, source, observed_at) form one record.
    A field observed twice at the same instant keeps the last value.
    """
    grouped: dict[tuple, dict] = {}
    for obs in observations:
        key = (obs.repository_id, obs.source, obs.observed_at)
        grouped.setdefault(key, {})[obs.field] = obs.value

    return [
        SourceRecord(repository_id=repo_id, source=source, fields=fields, observed_at=observed_at)
        for (repo_id, source, observed_at), fields in grouped.items()
    ]


class SourceRecordStore:
    """Holds raw SourceRecords keyed by repository identifier.

    Records are never modified or removed. When a path is given, every added
    record is appended to a JSON Lines file and ``load`` replays it.

    Usage:
        store = SourceRecordStore(path=Path("data/records.jsonl"))
        store.load()
        store.add_observations(observations)
        latest = store.latest_by_source("rust-lang/regex")
    """

    def __init__(self, path: Path | None = None) -> None:
        """Initialize the store.

        Args:
            path: Optional JSON Lines file for durable storage.
        """
        self.path = path
        self._lock = threading.Lock()
        self._records: dict[str, list[SourceRecord]] = defaultdict(list)

    def __len__(self) -> int:
        return sum(len(records) for records in self._records.values())

    def __contains__(self, repository_id: str) -> bool:
        return repository_id in self._records

    def add(self, record: SourceRecord) -> None:
        """Append a single record."""
        self.add_many([record])

    def add_many(self, records: Iterable[SourceRecord]) -> int:
        """Append records, persisting them if the store has a path.

        Returns:
            Number of records added.
        """
        records = list(records)
        if not records:
            return 0

        with self._lock:
            for record in records:
                self._records[record.repository_id].append(record)
            if self.path is not None:
                self._append_to_file(records)

        logger.debug(f"Stored {len(records)} source records")
        return len(records)

    def add_observations(self, observations: Iterable[SourceObservation]) -> int:
        """Group observations into records and append them."""
        return self.add_many(group_observations(observations))

    def repository_ids(self) -> list[str]:
        """All repository identifiers with at least one record, sorted."""
        return sorted(self._records)

    def records_for(self, repository_id: str) -> list[SourceRecord]:
        """Every record of a repository, oldest first."""
        return sorted(self._records.get(repository_id, []), key=lambda r: r.observed_at)

    def latest_by_source(self, repository_id: str) -> dict[Source, SourceRecord]:
        """The most recent record per source for a repository."""
        return latest_by_source(self._records.get(repository_id, []))

    def snapshot(self) -> dict[str, list[SourceRecord]]:
        """A copy of all records, keyed by repository, oldest first."""
        with self._lock:
            return {repo_id: self.records_for(repo_id) for repo_id in sorted(self._records)}

    def load(self) -> int:
        """Replay the JSON Lines file into memory.

        Malformed lines are skipped with a warning.

        Returns:
            Number of records loaded.
        """
        if self.path is None or not self.path.exists():
            return 0

        loaded = 0
        with self._lock, open(self.path) as f:
            for line_no, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = SourceRecord.model_validate(json.loads(line))
                except (json.JSONDecodeError, ValidationError) as e:
                    logger.warning(f"Skipping malformed record at {self.path}:{line_no}: {e}")
                    continue
                self._records[record.repository_id].append(record)
                loaded += 1

        logger.info(f"Loaded {loaded} source records from {self.path}")
        return loaded

    def _append_to_file(self, records: list[SourceRecord]) -> None:
        """Append records to the JSON Lines file (lock held)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a") as f:
            for record in records:
                f.write(json.dumps(record.model_dump(mode="json")) + "\n")


def latest_by_source(records: Iterable[SourceRecord]) -> dict[Source, SourceRecord]:
    """Pick the most recent record per source.

    Equal timestamps keep the record added last.
    """
    latest: dict[Source, SourceRecord] = {}
    for record in records:
        current = latest.get(record.source)
        if current is None or record.observed_at >= current.observed_at:
            latest[record.source] = record
    return latest


def read_input_file(path: Path) -> list[SourceRecord]:
    """Read SourceRecords from a JSON Lines or JSON array file.

    Each entry may be a full record (with ``fields``) or a single observation
    (with ``field``/``value``); observations are grouped into records.
    """
    text = path.read_text()
    stripped = text.lstrip()
    if stripped.startswith("["):
        entries = json.loads(text)
    else:
        entries = [json.loads(line) for line in text.splitlines() if line.strip()]

    records: list[SourceRecord] = []
    observations: list[SourceObservation] = []
    for entry in entries:
        if "fields" in entry:
            records.append(SourceRecord.model_validate(entry))
        else:
            observations.append(SourceObservation.model_validate(entry))

    records.extend(group_observations(observations))
    return records
