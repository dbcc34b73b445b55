"""In-memory transition log (TransitionLogStore) for tests and local runs."""

from datetime import datetime
from typing import List

from recommender.models.track import as_utc
from recommender.models.transition import TransitionRecord


class InMemoryTransitionStore:
    """Append-only list of TransitionRecord; duplicates are kept."""

    def __init__(self):
        self._records: List[TransitionRecord] = []

    async def append(self, record: TransitionRecord) -> None:
        self._records.append(record)

    async def find_from(
        self,
        from_track_id: str,
        since: datetime,
        *,
        completed_only: bool = True,
        exclude_skipped: bool = False,
    ) -> List[TransitionRecord]:
        since = as_utc(since)
        return [
            r for r in self._records
            if r.from_track_id == from_track_id
            and as_utc(r.timestamp) >= since
            and (r.completed or not completed_only)
            and not (exclude_skipped and r.skipped)
        ]

    async def find_since(
        self, since: datetime, *, completed_only: bool = False
    ) -> List[TransitionRecord]:
        since = as_utc(since)
        return [
            r for r in self._records
            if as_utc(r.timestamp) >= since and (r.completed or not completed_only)
        ]

    async def purge_before(self, cutoff: datetime) -> int:
        cutoff = as_utc(cutoff)
        kept = [r for r in self._records if as_utc(r.timestamp) >= cutoff]
        removed = len(self._records) - len(kept)
        self._records = kept
        return removed

    def __len__(self) -> int:
        return len(self._records)
