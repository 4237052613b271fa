"""Diversity-constrained shortlist selection."""

import logging
from collections.abc import Mapping

from reporank.models.config import DiversityQuota, QuotaBucket
from reporank.models.enums import BucketDimension, SelectionReason
from reporank.models.schemas import (
    DiversitySelection,
    RankedEntry,
    Ranking,
    SelectionEntry,
    UnifiedRecord,
    is_numeric,
)

logger = logging.getLogger(__name__)


class DiversityBalancer:
    """Greedy quota filling over a fixed ranking.

    Entries are walked in rank order. Each goes into the first bucket, in
    declared order, that it matches and that still has room. An entry whose
    matching buckets are all full is excluded as ``quota_exhausted``; one
    that matches no bucket at all as ``no_matching_bucket``. Once
    ``max_selected`` entries are in, the cap acts as a quota over the whole
    shortlist and the rest are ``quota_exhausted`` too.
    """

    def __init__(self, quota: DiversityQuota) -> None:
        self.quota = quota

    def matches(self, bucket: QuotaBucket, entry: RankedEntry, record: UnifiedRecord | None) -> bool:
        """Whether an entry is eligible for a bucket."""
        if bucket.dimension == BucketDimension.CATEGORY:
            return entry.category == bucket.match
        if record is None:
            return False
        if bucket.dimension == BucketDimension.SCALE:
            value = record.value(self.quota.scale_metric)
            return is_numeric(value) and self.quota.scale_bucket(value) == bucket.match
        value = record.value(bucket.field)
        return value is not None and str(value) == bucket.match

    def select(self, ranking: Ranking, records: Mapping[str, UnifiedRecord]) -> DiversitySelection:
        """Apply the quota to a ranking.

        Args:
            ranking: Ranking to walk, best first.
            records: Unified records by repository id (scale and field buckets).

        Returns:
            DiversitySelection with one decision per ranked entry.
        """
        counts = {bucket.name: 0 for bucket in self.quota.buckets}
        selected = 0
        decisions: list[SelectionEntry] = []

        for entry in ranking.entries:
            record = records.get(entry.repository_id)
            eligible = [b for b in self.quota.buckets if self.matches(b, entry, record)]

            bucket = None
            if not eligible:
                reason = SelectionReason.NO_MATCHING_BUCKET
                detail = "no bucket accepts this repository"
            elif self.quota.max_selected is not None and selected >= self.quota.max_selected:
                reason = SelectionReason.QUOTA_EXHAUSTED
                detail = f"shortlist full: {selected}/{self.quota.max_selected}"
            else:
                bucket = next((b for b in eligible if counts[b.name] < b.quota), None)
                if bucket is None:
                    reason = SelectionReason.QUOTA_EXHAUSTED
                    full = ", ".join(f"{b.name} {counts[b.name]}/{b.quota}" for b in eligible)
                    detail = f"buckets full: {full}"
                else:
                    counts[bucket.name] += 1
                    selected += 1
                    reason = SelectionReason.SELECTED
                    detail = f"bucket {bucket.name} ({counts[bucket.name]}/{bucket.quota})"

            decisions.append(
                SelectionEntry(
                    repository_id=entry.repository_id,
                    rank=entry.rank,
                    category=entry.category,
                    status=entry.status,
                    scores=entry.scores,
                    included=bucket is not None,
                    bucket=bucket.name if bucket else None,
                    reason=reason,
                    detail=detail,
                )
            )

        logger.debug(f"Selected {selected} of {len(ranking.entries)} for scope {ranking.scope}")
        return DiversitySelection(
            run_id=ranking.run_id,
            scope=ranking.scope,
            ranking=ranking,
            quota=self.quota,
            entries=decisions,
            bucket_counts=counts,
        )
