"""
Transition graph — collaborative-filtering backbone over the append-only transition log.

Every read applies the retention cut-off, so records older than the window never
influence aggregation even before purge_expired() removes them.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from .models.config import RecommendationConfig, resolve_config
from .models.transition import (
    TransitionProbability,
    TransitionRecord,
    TransitionSource,
    TrendingTransition,
)
from .ports import TransitionLogStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_probabilities(records: List[TransitionRecord], limit: int) -> List[TransitionProbability]:
    counts = Counter(r.to_track_id for r in records)
    total = sum(counts.values())
    if total == 0:
        return []
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [
        TransitionProbability(to_track_id=to_id, probability=count / total, count=count)
        for to_id, count in ranked[:limit]
    ]


class TransitionGraph:
    """Records transitions and answers aggregation queries over the retention window."""

    def __init__(
        self,
        store: TransitionLogStore,
        config: Optional[RecommendationConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self._store = store
        self._config = resolve_config(config)
        self._clock = clock or utc_now

    def retention_cutoff(self) -> datetime:
        return self._clock() - timedelta(days=self._config.transition_retention_days)

    async def record(
        self,
        from_track_id: str,
        to_track_id: str,
        session_id: str,
        user_id: Optional[str] = None,
        completed: bool = True,
        skipped: bool = False,
        source: TransitionSource = TransitionSource.AUTO,
    ) -> TransitionRecord:
        """Append one transition. No idempotence: duplicates strengthen the edge."""
        record = TransitionRecord(
            from_track_id=from_track_id,
            to_track_id=to_track_id,
            session_id=session_id,
            user_id=user_id,
            timestamp=self._clock(),
            completed=completed,
            skipped=skipped,
            source=source,
        )
        await self._store.append(record)
        return record

    async def probabilities(self, from_track_id: str, limit: int = 10) -> List[TransitionProbability]:
        """
        Completed transitions out of from_track_id, grouped by destination.

        probability = count / total count out of the node, so the returned set sums to <= 1.
        An unseen node yields [].
        """
        records = await self._store.find_from(
            from_track_id, self.retention_cutoff(), completed_only=True
        )
        return _to_probabilities(records, limit)

    async def top_next(self, from_track_id: str, limit: int = 10) -> List[TransitionProbability]:
        """Like probabilities() but ignoring transitions where the next track was skipped."""
        records = await self._store.find_from(
            from_track_id, self.retention_cutoff(), completed_only=True, exclude_skipped=True
        )
        return _to_probabilities(records, limit)

    async def trending(self, window_hours: int = 24, limit: int = 10) -> List[TrendingTransition]:
        """Most frequent (from, to) pairs within the last window_hours."""
        since = max(self._clock() - timedelta(hours=window_hours), self.retention_cutoff())
        records = await self._store.find_since(since)
        pairs = Counter((r.from_track_id, r.to_track_id) for r in records)
        ranked = sorted(pairs.items(), key=lambda item: item[1], reverse=True)
        return [
            TrendingTransition(from_track_id=pair[0], to_track_id=pair[1], count=count)
            for pair, count in ranked[:limit]
        ]

    async def purge_expired(self) -> int:
        removed = await self._store.purge_before(self.retention_cutoff())
        if removed:
            logger.info("[transitions] purged %d records older than %d days",
                        removed, self._config.transition_retention_days)
        return removed
