"""
Track Store abstraction.

Extends the pipeline's read-only TrackCatalog with the writes the service layer needs:
discovery upserts, atomic play-count increments, the tier-3 cached audio field, archival
markers, and the tier-3 search cache. Implementations: in-memory (tests, local runs) and
Firestore (production). Swap via DATA_SOURCE.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Protocol

from recommender.errors import NotFoundError
from recommender.models.track import Track, as_utc, popularity_key
from recommender.ports import TrackCatalog
from recommender.utils.inference import ensure_inferred

from ..models.resolution import CachedResolution

logger = logging.getLogger(__name__)

# Fields owned by the store, never overwritten by a discovery upsert.
STORE_OWNED_FIELDS = (
    "play_count",
    "last_played",
    "audio_url",
    "audio_url_expiry",
    "audio_format",
    "archived_format",
    "archived_at",
)


class TrackStore(TrackCatalog, Protocol):
    """Full track store used by the resolution cache, playback and admin routes."""

    async def find_by_id(self, internal_id: str) -> Optional[Track]:
        ...

    async def upsert_discovered(self, track: Track) -> Track:
        """Insert or refresh metadata for a track seen upstream; returns the stored track."""
        ...

    async def increment_play_count(self, external_id: str) -> int:
        """Atomically add one play; returns the new count. NotFoundError for unknown ids."""
        ...

    async def search_text(self, query: str, limit: int = 20) -> List[Track]:
        ...

    async def set_cached_audio(
        self, external_id: str, url: str, expires_at: datetime, fmt: Optional[str] = None
    ) -> None:
        ...

    async def clear_cached_audio(self, external_id: str) -> None:
        ...

    async def mark_archived(self, external_id: str, fmt: str) -> None:
        ...

    async def get_search_cache(self, key: str) -> Optional[CachedResolution]:
        ...

    async def put_search_cache(self, key: str, entry: CachedResolution) -> None:
        ...

    async def delete_search_cache(self, key: str) -> None:
        ...

    async def clear_search_cache(self) -> int:
        ...

    async def count(self) -> int:
        ...


def merge_discovered(existing: Optional[Track], incoming: Track) -> Track:
    """Incoming metadata wins; store-owned fields are kept from the existing record."""
    if existing is None:
        return ensure_inferred(incoming.model_copy(update={"id": incoming.id or incoming.external_id}))
    update = {name: getattr(existing, name) for name in STORE_OWNED_FIELDS}
    update["id"] = existing.id or incoming.id or incoming.external_id
    # Keep the richer view count when the incoming payload has none.
    update["view_count"] = max(existing.view_count, incoming.view_count)
    merged = incoming.model_copy(update=update)
    if not merged.genres:
        merged = ensure_inferred(merged)
    return merged


def matches_genres(track: Track, genres: Iterable[str]) -> bool:
    """Inferred genre overlap, or a genre named in the title or tags."""
    genres = [g.lower() for g in genres]
    if set(genres) & set(track.genres):
        return True
    haystack = " ".join([track.title, *track.tags]).lower()
    return any(g in haystack for g in genres)


def matches_text(track: Track, query: str) -> bool:
    terms = query.lower().split()
    haystack = " ".join([track.title, track.artist, track.channel_title or "", *track.tags]).lower()
    return bool(terms) and all(term in haystack for term in terms)


class InMemoryTrackStore:
    """Dict-backed store. Single event loop, so each method is atomic."""

    def __init__(self, tracks: Optional[Iterable[Track]] = None):
        self._tracks: Dict[str, Track] = {}
        self._search_cache: Dict[str, CachedResolution] = {}
        for track in tracks or []:
            self._tracks[track.external_id] = merge_discovered(None, track)

    def _require(self, external_id: str) -> Track:
        track = self._tracks.get(external_id)
        if track is None:
            raise NotFoundError(f"unknown track {external_id}")
        return track

    async def find_by_external_id(self, external_id: str) -> Optional[Track]:
        return self._tracks.get(external_id)

    async def find_by_id(self, internal_id: str) -> Optional[Track]:
        for track in self._tracks.values():
            if track.id == internal_id:
                return track
        return None

    async def find_by_external_ids(self, external_ids: Iterable[str]) -> List[Track]:
        return [self._tracks[i] for i in external_ids if i in self._tracks]

    async def upsert_discovered(self, track: Track) -> Track:
        stored = merge_discovered(self._tracks.get(track.external_id), track)
        self._tracks[track.external_id] = stored
        return stored

    async def increment_play_count(self, external_id: str) -> int:
        track = self._require(external_id)
        updated = track.model_copy(
            update={"play_count": track.play_count + 1, "last_played": datetime.now(timezone.utc)}
        )
        self._tracks[external_id] = updated
        return updated.play_count

    async def find_trending(
        self, published_since: datetime, min_views: int, limit: int
    ) -> List[Track]:
        since = as_utc(published_since)
        matched = [
            t for t in self._tracks.values()
            if t.published_at is not None
            and as_utc(t.published_at) >= since
            and t.view_count >= min_views
        ]
        matched.sort(key=lambda t: (t.view_count, t.play_count), reverse=True)
        return matched[:limit]

    async def find_related(
        self,
        channel_id: Optional[str],
        artist: Optional[str],
        exclude_id: str,
        limit: int,
    ) -> List[Track]:
        matched = [
            t for t in self._tracks.values()
            if t.external_id != exclude_id
            and ((channel_id and t.channel_id == channel_id) or (artist and t.artist == artist))
        ]
        matched.sort(key=lambda t: t.play_count, reverse=True)
        return matched[:limit]

    async def find_popular(
        self,
        exclude_ids: Iterable[str] = (),
        genres: Optional[Iterable[str]] = None,
        limit: int = 20,
    ) -> List[Track]:
        excluded = set(exclude_ids)
        genres = list(genres) if genres else None
        matched = [
            t for t in self._tracks.values()
            if t.external_id not in excluded and (genres is None or matches_genres(t, genres))
        ]
        matched.sort(key=popularity_key, reverse=True)
        return matched[:limit]

    async def search_text(self, query: str, limit: int = 20) -> List[Track]:
        matched = [t for t in self._tracks.values() if matches_text(t, query)]
        matched.sort(key=popularity_key, reverse=True)
        return matched[:limit]

    async def set_cached_audio(
        self, external_id: str, url: str, expires_at: datetime, fmt: Optional[str] = None
    ) -> None:
        track = self._require(external_id)
        self._tracks[external_id] = track.model_copy(
            update={"audio_url": url, "audio_url_expiry": expires_at, "audio_format": fmt}
        )

    async def clear_cached_audio(self, external_id: str) -> None:
        track = self._tracks.get(external_id)
        if track is not None:
            self._tracks[external_id] = track.model_copy(
                update={"audio_url": None, "audio_url_expiry": None, "audio_format": None}
            )

    async def mark_archived(self, external_id: str, fmt: str) -> None:
        track = self._require(external_id)
        self._tracks[external_id] = track.model_copy(
            update={"archived_format": fmt, "archived_at": datetime.now(timezone.utc)}
        )

    async def get_search_cache(self, key: str) -> Optional[CachedResolution]:
        return self._search_cache.get(key)

    async def put_search_cache(self, key: str, entry: CachedResolution) -> None:
        self._search_cache[key] = entry

    async def delete_search_cache(self, key: str) -> None:
        self._search_cache.pop(key, None)

    async def clear_search_cache(self) -> int:
        n = len(self._search_cache)
        self._search_cache.clear()
        return n

    async def count(self) -> int:
        return len(self._tracks)
