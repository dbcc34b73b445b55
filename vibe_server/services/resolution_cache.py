"""
Resource resolution cache.

Turns a track id into a time-bounded playable URL, or a query into a ranked track list,
through an ordered tier chain that stops at the first hit:

  1. object store (archived copy)   -> short-lived signed URL
  2. distributed cache (Redis)      -> unexpired entry
  3. primary datastore field        -> unexpired audio_url / search cache document
  4. upstream provider              -> quota-checked, retried with backoff

Every tier is optional and every tier error falls through to the next. Entries read with
expires_at <= now are purged and treated as misses. Back-fill of tiers 2-3 after a hit
lower in the chain is emitted as an event and done by the background worker.
"""

import asyncio
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

from recommender.errors import DataIntegrityError, TransientProviderError, validate_external_id
from recommender.models.track import Track, as_utc, needs_audio_refresh
from recommender.utils.inference import apply_inference

from ..models.resolution import AudioResolution, ResolutionTier, SearchResolution
from .distributed_cache import AUDIO, SEARCH, DistributedCache
from .events import AudioResolved, CachePurge, EventBus, SearchResolved
from .object_store import ObjectStore
from .quota_tracker import PriorityLevel, QuotaOperation, QuotaTracker
from .track_store import TrackStore
from .upstream_provider import UpstreamProvider, embed_url

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_SIGNED_URL_TTL = 6 * 3600
DEFAULT_SEARCH_TTL = 3600

RETRY_ATTEMPTS = 3
RETRY_BASE_DELAY = 1.0

# Database fallback search: popular tracks need more than this many views,
# and at least this many of them, before upstream trending is tried.
FALLBACK_MIN_VIEWS = 100_000
FALLBACK_MIN_RESULTS = 5


def normalize_query(query: str) -> str:
    """Lower-case, trim and collapse whitespace: the search cache key."""
    return re.sub(r"\s+", " ", (query or "").strip().lower())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ResolutionCache:
    def __init__(
        self,
        store: TrackStore,
        quota: QuotaTracker,
        events: EventBus,
        cache: Optional[DistributedCache] = None,
        object_store: Optional[ObjectStore] = None,
        upstream: Optional[UpstreamProvider] = None,
        signed_url_ttl: int = DEFAULT_SIGNED_URL_TTL,
        search_ttl: int = DEFAULT_SEARCH_TTL,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        retry_attempts: int = RETRY_ATTEMPTS,
        retry_base_delay: float = RETRY_BASE_DELAY,
    ):
        self.store = store
        self.quota = quota
        self.events = events
        self.cache = cache
        self.object_store = object_store
        self.upstream = upstream
        self.signed_url_ttl = signed_url_ttl
        self.search_ttl = search_ttl
        self._clock = clock or _utc_now
        self._sleep = sleep
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay

    # ------------------------------------------------------------------
    # Upstream retry
    # ------------------------------------------------------------------

    async def _with_retry(self, label: str, call: Callable[[], Awaitable[T]]) -> T:
        """Retry TransientProviderError with delays of base, 2*base, ...; re-raise the last one."""
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return await call()
            except TransientProviderError as exc:
                if attempt >= self.retry_attempts:
                    raise
                delay = self.retry_base_delay * (2 ** (attempt - 1))
                logger.warning("[resolve] %s attempt %d/%d failed (%s); retrying in %.1fs",
                               label, attempt, self.retry_attempts, exc, delay)
                await self._sleep(delay)
        raise TransientProviderError(f"{label}: no attempts made")

    # ------------------------------------------------------------------
    # Audio
    # ------------------------------------------------------------------

    async def _load_track(self, track_id: str) -> Optional[Track]:
        try:
            return await self.store.find_by_external_id(track_id)
        except Exception:
            logger.warning("[resolve] datastore unavailable for %s", track_id, exc_info=True)
            return None

    async def _from_object_store(self, track: Optional[Track]) -> Optional[AudioResolution]:
        if self.object_store is None or track is None or not track.archived_format:
            return None
        try:
            url = await self.object_store.signed_url(
                track.track_id, track.archived_format, self.signed_url_ttl
            )
        except Exception:
            logger.warning("[resolve] object store failed for %s", track.track_id, exc_info=True)
            return None
        return AudioResolution(
            track_id=track.track_id,
            url=url,
            tier=ResolutionTier.OBJECT_STORE,
            expires_at=self._clock() + timedelta(seconds=self.signed_url_ttl),
            format=track.archived_format,
        )

    async def _from_distributed_cache(self, track_id: str) -> Optional[AudioResolution]:
        if self.cache is None:
            return None
        try:
            entry = await self.cache.get(AUDIO, track_id)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                await self.cache.delete(AUDIO, track_id)
                return None
        except Exception:
            logger.warning("[resolve] distributed cache failed for %s", track_id, exc_info=True)
            return None
        return AudioResolution(
            track_id=track_id,
            url=entry.payload,
            tier=ResolutionTier.DISTRIBUTED_CACHE,
            expires_at=entry.expires_at,
            format=entry.format,
        )

    async def _from_datastore(self, track: Optional[Track]) -> Optional[AudioResolution]:
        if track is None or not track.audio_url:
            return None
        if needs_audio_refresh(track, self._clock()):
            self.events.emit(CachePurge(track_id=track.track_id))
            return None
        resolution = AudioResolution(
            track_id=track.track_id,
            url=track.audio_url,
            tier=ResolutionTier.DATASTORE,
            expires_at=as_utc(track.audio_url_expiry),
            format=track.audio_format,
        )
        self.events.emit(
            AudioResolved(
                track_id=track.track_id,
                url=resolution.url,
                expires_at=resolution.expires_at,
                format=resolution.format,
                source_tier=ResolutionTier.DATASTORE,
            )
        )
        return resolution

    async def _from_upstream(self, track_id: str) -> Optional[AudioResolution]:
        if self.upstream is None:
            return None
        try:
            stream = await self._with_retry(
                f"audio {track_id}", lambda: self.upstream.audio_stream(track_id)
            )
        except Exception:
            logger.warning("[resolve] upstream extraction failed for %s", track_id, exc_info=True)
            return None
        self.events.emit(
            AudioResolved(
                track_id=track_id,
                url=stream.url,
                expires_at=stream.expires_at,
                format=stream.format,
                source_tier=ResolutionTier.UPSTREAM,
            )
        )
        return AudioResolution(
            track_id=track_id,
            url=stream.url,
            tier=ResolutionTier.UPSTREAM,
            expires_at=stream.expires_at,
            format=stream.format,
        )

    async def resolve_audio(self, track_id: str) -> Optional[AudioResolution]:
        """
        Resolve a playable URL for track_id.

        Returns None only for a malformed id. Otherwise always returns a resolution,
        degrading to the embeddable player URL when every tier misses.
        """
        try:
            validate_external_id(track_id)
        except DataIntegrityError as exc:
            logger.warning("[resolve] %s", exc)
            return None

        track = await self._load_track(track_id)

        resolution = await self._from_object_store(track)
        if resolution is None:
            resolution = await self._from_distributed_cache(track_id)
        if resolution is None:
            resolution = await self._from_datastore(track)
        if resolution is None:
            resolution = await self._from_upstream(track_id)
        if resolution is None:
            logger.info("[resolve] %s: all tiers missed, serving embed fallback", track_id)
            return AudioResolution(
                track_id=track_id,
                url=embed_url(track_id),
                tier=ResolutionTier.EMBED_FALLBACK,
                format="embed",
                is_fallback=True,
            )
        logger.info("[resolve] %s served from %s", track_id, resolution.tier.value)
        return resolution

    async def invalidate(self, track_id: str) -> None:
        """Purge the cached audio for one track from tiers 2 and 3."""
        if self.cache is not None:
            try:
                await self.cache.delete(AUDIO, track_id)
            except Exception:
                logger.warning("[resolve] could not purge tier 2 for %s", track_id, exc_info=True)
        try:
            await self.store.clear_cached_audio(track_id)
        except Exception:
            logger.warning("[resolve] could not purge tier 3 for %s", track_id, exc_info=True)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def _search_from_cache(self, key: str) -> Optional[SearchResolution]:
        if self.cache is None:
            return None
        try:
            entry = await self.cache.get(SEARCH, key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                await self.cache.delete(SEARCH, key)
                return None
        except Exception:
            logger.warning("[resolve] distributed cache failed for search %r", key, exc_info=True)
            return None
        tracks = [Track.model_validate(t) for t in entry.payload]
        return SearchResolution(
            query=key, tracks=tracks, tier=ResolutionTier.DISTRIBUTED_CACHE, from_cache=True
        )

    async def _search_from_datastore(self, key: str) -> Optional[SearchResolution]:
        try:
            entry = await self.store.get_search_cache(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                await self.store.delete_search_cache(key)
                return None
        except Exception:
            logger.warning("[resolve] search cache read failed for %r", key, exc_info=True)
            return None
        tracks = [Track.model_validate(t) for t in entry.payload]
        self.events.emit(
            SearchResolved(
                key=key,
                tracks=tracks,
                expires_at=entry.expires_at,
                source_tier=ResolutionTier.DATASTORE,
            )
        )
        return SearchResolution(
            query=key, tracks=tracks, tier=ResolutionTier.DATASTORE, from_cache=True
        )

    async def store_discovered(self, tracks: List[Track]) -> List[Track]:
        stored = []
        for track in tracks:
            try:
                validate_external_id(track.external_id)
                stored.append(await self.store.upsert_discovered(apply_inference(track)))
            except DataIntegrityError as exc:
                logger.warning("[resolve] skipping upstream result: %s", exc)
            except Exception:
                logger.warning("[resolve] upsert failed for %s", track.external_id, exc_info=True)
                stored.append(apply_inference(track))
        return stored

    async def _search_upstream(self, key: str, max_results: int) -> Optional[SearchResolution]:
        if self.upstream is None:
            return None
        limit = self.quota.scaled_limit(max_results)
        if limit == 0 or not self.quota.can_afford(QuotaOperation.SEARCH):
            logger.info("[quota] search %r skipped upstream (priority %s)",
                        key, self.quota.priority_level().value)
            return None
        async def metered_search() -> Optional[List[Track]]:
            # Every attempt is a billed upstream call.
            if not self.quota.can_afford(QuotaOperation.SEARCH):
                return None
            try:
                return await self.upstream.search(key, limit)
            finally:
                self.quota.record(QuotaOperation.SEARCH)

        try:
            results = await self._with_retry(f"search {key!r}", metered_search)
        except Exception:
            logger.warning("[resolve] upstream search failed for %r", key, exc_info=True)
            return None
        if results is None:
            logger.info("[quota] search %r: budget exhausted between retries", key)
            return None
        self.quota.record(QuotaOperation.DETAIL, len(results))

        tracks = await self.store_discovered(results)
        self.events.emit(
            SearchResolved(
                key=key,
                tracks=tracks,
                expires_at=self._clock() + timedelta(seconds=self.search_ttl),
                source_tier=ResolutionTier.UPSTREAM,
            )
        )
        return SearchResolution(query=key, tracks=tracks, tier=ResolutionTier.UPSTREAM)

    async def _search_database_fallback(self, key: str, max_results: int) -> SearchResolution:
        """Catalogue text match, then popular tracks, then upstream trending, then anything."""
        tracks: List[Track] = []
        try:
            tracks = await self.store.search_text(key, max_results)
            if not tracks:
                popular = await self.store.find_popular((), None, max_results * 2)
                popular = [t for t in popular if t.view_count > FALLBACK_MIN_VIEWS]
                if len(popular) >= FALLBACK_MIN_RESULTS:
                    tracks = popular[:max_results]
        except Exception:
            logger.warning("[resolve] database fallback search failed", exc_info=True)

        if not tracks and self.upstream is not None:
            affordable = self.quota.can_afford(QuotaOperation.TRENDING)
            if affordable and self.quota.priority_level() != PriorityLevel.CRITICAL:
                try:
                    trending = await self.upstream.trending(max_results)
                    self.quota.record(QuotaOperation.TRENDING)
                    tracks = await self.store_discovered(trending)
                except Exception:
                    logger.warning("[resolve] upstream trending failed", exc_info=True)

        if not tracks:
            try:
                tracks = await self.store.find_popular((), None, max_results)
            except Exception:
                logger.warning("[resolve] catalogue unavailable", exc_info=True)

        return SearchResolution(
            query=key, tracks=tracks[:max_results], tier=ResolutionTier.DATABASE_FALLBACK
        )

    async def search(self, query: str, max_results: int = 20) -> SearchResolution:
        key = normalize_query(query)
        if not key:
            return SearchResolution(query=key, tracks=[], tier=ResolutionTier.DATABASE_FALLBACK)

        resolution = await self._search_from_cache(key)
        if resolution is None:
            resolution = await self._search_from_datastore(key)
        if resolution is None:
            resolution = await self._search_upstream(key, max_results)
        if resolution is None:
            resolution = await self._search_database_fallback(key, max_results)
        resolution.tracks = resolution.tracks[:max_results]
        logger.info("[resolve] search %r: %d results from %s",
                    key, len(resolution.tracks), resolution.tier.value)
        return resolution

    # ------------------------------------------------------------------
    # Administrative surface
    # ------------------------------------------------------------------

    async def cache_status(self) -> Dict:
        status: Dict = {
            "object_store": self.object_store is not None,
            "distributed_cache": None,
            "datastore": True,
            "upstream": self.upstream is not None,
            "pending_events": self.events.pending(),
        }
        if self.cache is not None:
            try:
                status["distributed_cache"] = await self.cache.stats()
            except Exception as exc:
                status["distributed_cache"] = {"error": str(exc)}
        try:
            status["tracks"] = await self.store.count()
        except Exception:
            status["datastore"] = False
        return status

    async def clear(self, namespace: Optional[str] = None) -> int:
        """Clear tier 2 (optionally one namespace) and, for search, the tier 3 search cache."""
        removed = 0
        if self.cache is not None:
            removed += await self.cache.clear(namespace)
        if namespace in (None, SEARCH):
            removed += await self.store.clear_search_cache()
        return removed
