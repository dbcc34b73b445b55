"""
Post-commit events.

The hot paths (resolution, play recording) never do slow cache back-fill or archival I/O
themselves; they emit one of these events and return. BackgroundWorker consumes them.
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel

from recommender.models.track import Track

from ..models.resolution import ResolutionTier

logger = logging.getLogger(__name__)


class AudioResolved(BaseModel):
    """An audio URL was served from source_tier; back-fill the faster tiers above it."""

    track_id: str
    url: str
    expires_at: datetime
    format: Optional[str] = None
    source_tier: ResolutionTier


class SearchResolved(BaseModel):
    key: str
    tracks: List[Track]
    expires_at: datetime
    source_tier: ResolutionTier


class PlayRecorded(BaseModel):
    track_id: str
    play_count: int
    user_id: Optional[str] = None


class CachePurge(BaseModel):
    """Remove a stale entry. track_id purges the audio tiers; search_key the search tiers."""

    track_id: Optional[str] = None
    search_key: Optional[str] = None


Event = Union[AudioResolved, SearchResolved, PlayRecorded, CachePurge]


class EventBus:
    """Unbounded asyncio queue. emit() never blocks or raises into the caller."""

    def __init__(self):
        self._queue: "asyncio.Queue[Event]" = asyncio.Queue()

    def emit(self, event: Event) -> None:
        self._queue.put_nowait(event)
        logger.debug("[events] emitted %s", type(event).__name__)

    async def get(self) -> Event:
        return await self._queue.get()

    def get_nowait(self) -> Optional[Event]:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def task_done(self) -> None:
        self._queue.task_done()

    def pending(self) -> int:
        return self._queue.qsize()
