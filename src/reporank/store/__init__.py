"""Source record and artifact storage."""

from reporank.store.artifacts import ArtifactStore
from reporank.store.records import SourceRecordStore, group_observations, latest_by_source

__all__ = ["ArtifactStore", "SourceRecordStore", "group_observations", "latest_by_source"]
