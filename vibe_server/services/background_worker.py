"""
Background worker: consumes post-commit events off the hot path.

- AudioResolved  -> back-fill tier 2 (and tier 3 when the URL came from upstream)
- SearchResolved -> back-fill the Redis and datastore search caches
- PlayRecorded   -> archive to the object store once a track crosses the play threshold
- CachePurge     -> delete stale entries

Handlers never raise into the loop: each failure is logged and the event dropped.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Set

from ..models.resolution import CachedResolution, ResolutionTier
from .distributed_cache import AUDIO, SEARCH, DistributedCache
from .events import AudioResolved, CachePurge, Event, EventBus, PlayRecorded, SearchResolved
from .object_store import ObjectStore
from .track_store import TrackStore
from .upstream_provider import UpstreamProvider

logger = logging.getLogger(__name__)

DEFAULT_ARCHIVE_THRESHOLD = 10

# Tiers strictly faster than each source tier; back-fill only writes these.
_TIER_ORDER = [
    ResolutionTier.OBJECT_STORE,
    ResolutionTier.DISTRIBUTED_CACHE,
    ResolutionTier.DATASTORE,
    ResolutionTier.UPSTREAM,
]


def _is_below(source: ResolutionTier, tier: ResolutionTier) -> bool:
    """True when tier sits above (is faster than) source in the chain."""
    if source not in _TIER_ORDER:
        return False
    return _TIER_ORDER.index(tier) < _TIER_ORDER.index(source)


def _remaining_seconds(expires_at: datetime, now: datetime) -> int:
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return int((expires_at - now).total_seconds())


class BackgroundWorker:
    def __init__(
        self,
        events: EventBus,
        store: TrackStore,
        cache: Optional[DistributedCache] = None,
        object_store: Optional[ObjectStore] = None,
        upstream: Optional[UpstreamProvider] = None,
        archive_threshold: int = DEFAULT_ARCHIVE_THRESHOLD,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.events = events
        self.store = store
        self.cache = cache
        self.object_store = object_store
        self.upstream = upstream
        self.archive_threshold = archive_threshold
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._task: Optional[asyncio.Task] = None
        self._archiving: Set[str] = set()
        self.processed = 0

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _on_audio_resolved(self, event: AudioResolved) -> None:
        ttl = _remaining_seconds(event.expires_at, self._clock())
        if ttl <= 0:
            return
        if self.cache is not None and _is_below(event.source_tier, ResolutionTier.DISTRIBUTED_CACHE):
            entry = CachedResolution(
                resource_id=event.track_id,
                payload=event.url,
                expires_at=event.expires_at,
                tier=ResolutionTier.DISTRIBUTED_CACHE,
                format=event.format,
            )
            await self.cache.set(AUDIO, event.track_id, entry, ttl)
        if event.source_tier == ResolutionTier.UPSTREAM:
            await self.store.set_cached_audio(
                event.track_id, event.url, event.expires_at, event.format
            )
        logger.debug("[worker] back-filled audio for %s from %s",
                     event.track_id, event.source_tier.value)

    async def _on_search_resolved(self, event: SearchResolved) -> None:
        ttl = _remaining_seconds(event.expires_at, self._clock())
        if ttl <= 0:
            return
        payload = [t.model_dump(mode="json") for t in event.tracks]
        if self.cache is not None and _is_below(event.source_tier, ResolutionTier.DISTRIBUTED_CACHE):
            await self.cache.set(
                SEARCH,
                event.key,
                CachedResolution(
                    resource_id=event.key,
                    payload=payload,
                    expires_at=event.expires_at,
                    tier=ResolutionTier.DISTRIBUTED_CACHE,
                ),
                ttl,
            )
        if event.source_tier == ResolutionTier.UPSTREAM:
            await self.store.put_search_cache(
                event.key,
                CachedResolution(
                    resource_id=event.key,
                    payload=payload,
                    expires_at=event.expires_at,
                    tier=ResolutionTier.DATASTORE,
                ),
            )

    async def _on_play_recorded(self, event: PlayRecorded) -> None:
        if event.play_count < self.archive_threshold:
            return
        if self.object_store is None or self.upstream is None:
            return
        if event.track_id in self._archiving:
            return
        track = await self.store.find_by_external_id(event.track_id)
        if track is None or track.archived_format:
            return
        self._archiving.add(event.track_id)
        try:
            body, fmt = await self.upstream.download_audio(event.track_id)
            await self.object_store.put(event.track_id, fmt, body)
            await self.store.mark_archived(event.track_id, fmt)
            logger.info("[archive] %s archived as %s after %d plays",
                        event.track_id, fmt, event.play_count)
        finally:
            self._archiving.discard(event.track_id)

    async def _on_cache_purge(self, event: CachePurge) -> None:
        if event.track_id:
            if self.cache is not None:
                await self.cache.delete(AUDIO, event.track_id)
            await self.store.clear_cached_audio(event.track_id)
        if event.search_key:
            if self.cache is not None:
                await self.cache.delete(SEARCH, event.search_key)
            await self.store.delete_search_cache(event.search_key)

    async def handle(self, event: Event) -> None:
        try:
            if isinstance(event, AudioResolved):
                await self._on_audio_resolved(event)
            elif isinstance(event, SearchResolved):
                await self._on_search_resolved(event)
            elif isinstance(event, PlayRecorded):
                await self._on_play_recorded(event)
            elif isinstance(event, CachePurge):
                await self._on_cache_purge(event)
            else:
                logger.warning("[worker] unknown event %r", event)
        except Exception:
            logger.exception("[worker] %s handler failed", type(event).__name__)
        finally:
            self.processed += 1

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def drain(self) -> int:
        """Process every pending event now; returns how many were handled."""
        handled = 0
        while True:
            event = self.events.get_nowait()
            if event is None:
                return handled
            try:
                await self.handle(event)
            finally:
                self.events.task_done()
            handled += 1

    async def _run(self) -> None:
        while True:
            event = await self.events.get()
            inflight = asyncio.ensure_future(self.handle(event))
            try:
                await asyncio.shield(inflight)
            except asyncio.CancelledError:
                # Cancellation stops the loop, never a running handler.
                logger.info("[worker] stopping; finishing in-flight %s first", type(event).__name__)
                await inflight
                raise
            finally:
                self.events.task_done()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="vibe-background-worker")
            logger.info("[worker] started")

    async def stop(self) -> None:
        """Cancel the loop once the in-flight event is handled, then drain the queue."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        await self.drain()
        logger.info("[worker] stopped (%d events processed)", self.processed)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
