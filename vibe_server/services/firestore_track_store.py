"""
Firestore track store: tracks/{external_id} plus search_cache/{sha1(key)}.

Used when DATA_SOURCE=firebase. Play counts use firestore.Increment so concurrent plays
from several processes never lose an update.
"""

import hashlib
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from google.api_core.exceptions import NotFound
from google.cloud import firestore
from google.cloud.firestore import AsyncClient
from google.cloud.firestore_v1.base_query import FieldFilter

from recommender.errors import NotFoundError
from recommender.models.track import Track, as_utc, popularity_key

from ..models.resolution import CachedResolution
from .track_store import matches_genres, matches_text, merge_discovered

logger = logging.getLogger(__name__)

TRACKS = "tracks"
SEARCH_CACHE = "search_cache"

# Firestore caps array_contains_any at 30 values.
MAX_ANY_VALUES = 30
# Over-fetch factor for queries filtered again in Python.
OVERFETCH = 3
TRENDING_SCAN_LIMIT = 500

_WORD_RE = re.compile(r"[\w&']+", re.UNICODE)


def search_keywords(track: Track) -> List[str]:
    """Lower-cased words of title, artist and channel, for array_contains lookups."""
    text = " ".join([track.title, track.artist, track.channel_title or ""]).lower()
    return sorted(set(_WORD_RE.findall(text)))


def _cache_doc_id(key: str) -> str:
    return hashlib.sha1(key.encode("utf-8")).hexdigest()


def _to_track(data: Optional[Dict[str, Any]]) -> Optional[Track]:
    if not data:
        return None
    return Track.model_validate(data)


class FirestoreTrackStore:
    def __init__(self, client: AsyncClient):
        self._db = client
        self._tracks = client.collection(TRACKS)
        self._search_cache = client.collection(SEARCH_CACHE)

    async def _stream(self, query) -> List[Track]:
        out = []
        async for doc in query.stream():
            track = _to_track(doc.to_dict())
            if track is not None:
                out.append(track)
        return out

    async def find_by_external_id(self, external_id: str) -> Optional[Track]:
        doc = await self._tracks.document(external_id).get()
        return _to_track(doc.to_dict()) if doc.exists else None

    async def find_by_id(self, internal_id: str) -> Optional[Track]:
        query = self._tracks.where(filter=FieldFilter("id", "==", internal_id)).limit(1)
        found = await self._stream(query)
        return found[0] if found else None

    async def find_by_external_ids(self, external_ids: Iterable[str]) -> List[Track]:
        ids = list(dict.fromkeys(external_ids))
        if not ids:
            return []
        refs = [self._tracks.document(i) for i in ids]
        by_id: Dict[str, Track] = {}
        async for doc in self._db.get_all(refs):
            if doc.exists:
                by_id[doc.id] = _to_track(doc.to_dict())
        return [by_id[i] for i in ids if i in by_id]

    async def upsert_discovered(self, track: Track) -> Track:
        existing = await self.find_by_external_id(track.external_id)
        stored = merge_discovered(existing, track)
        data = stored.model_dump()
        data["keywords"] = search_keywords(stored)
        await self._tracks.document(stored.external_id).set(data)
        return stored

    async def increment_play_count(self, external_id: str) -> int:
        ref = self._tracks.document(external_id)
        try:
            await ref.update(
                {"play_count": firestore.Increment(1), "last_played": datetime.now(timezone.utc)}
            )
        except NotFound as exc:
            raise NotFoundError(f"unknown track {external_id}") from exc
        doc = await ref.get()
        return int((doc.to_dict() or {}).get("play_count", 0))

    async def find_trending(
        self, published_since: datetime, min_views: int, limit: int
    ) -> List[Track]:
        # Single range filter; the view threshold and ordering are applied here.
        query = self._tracks.where(
            filter=FieldFilter("published_at", ">=", as_utc(published_since))
        ).limit(TRENDING_SCAN_LIMIT)
        tracks = [t for t in await self._stream(query) if t.view_count >= min_views]
        tracks.sort(key=lambda t: (t.view_count, t.play_count), reverse=True)
        return tracks[:limit]

    async def find_related(
        self,
        channel_id: Optional[str],
        artist: Optional[str],
        exclude_id: str,
        limit: int,
    ) -> List[Track]:
        found: Dict[str, Track] = {}
        for field, value in (("channel_id", channel_id), ("artist", artist)):
            if not value:
                continue
            query = (
                self._tracks.where(filter=FieldFilter(field, "==", value))
                .order_by("play_count", direction=firestore.Query.DESCENDING)
                .limit(limit + 1)
            )
            for track in await self._stream(query):
                if track.external_id != exclude_id:
                    found.setdefault(track.external_id, track)
        related = sorted(found.values(), key=lambda t: t.play_count, reverse=True)
        return related[:limit]

    async def find_popular(
        self,
        exclude_ids: Iterable[str] = (),
        genres: Optional[Iterable[str]] = None,
        limit: int = 20,
    ) -> List[Track]:
        excluded = set(exclude_ids)
        genres = list(genres) if genres else None
        query = self._tracks
        if genres:
            query = query.where(
                filter=FieldFilter("genres", "array_contains_any", genres[:MAX_ANY_VALUES])
            )
        query = (
            query.order_by("play_count", direction=firestore.Query.DESCENDING)
            .order_by("view_count", direction=firestore.Query.DESCENDING)
            .limit(limit * OVERFETCH + len(excluded))
        )
        tracks = [
            t for t in await self._stream(query)
            if t.external_id not in excluded and (genres is None or matches_genres(t, genres))
        ]
        tracks.sort(key=popularity_key, reverse=True)
        return tracks[:limit]

    async def search_text(self, query: str, limit: int = 20) -> List[Track]:
        terms = _WORD_RE.findall(query.lower())
        if not terms:
            return []
        firestore_query = (
            self._tracks.where(filter=FieldFilter("keywords", "array_contains", terms[0]))
            .limit(limit * OVERFETCH)
        )
        tracks = [t for t in await self._stream(firestore_query) if matches_text(t, query)]
        tracks.sort(key=popularity_key, reverse=True)
        return tracks[:limit]

    async def set_cached_audio(
        self, external_id: str, url: str, expires_at: datetime, fmt: Optional[str] = None
    ) -> None:
        await self._tracks.document(external_id).update(
            {"audio_url": url, "audio_url_expiry": as_utc(expires_at), "audio_format": fmt}
        )

    async def clear_cached_audio(self, external_id: str) -> None:
        try:
            await self._tracks.document(external_id).update(
                {"audio_url": None, "audio_url_expiry": None, "audio_format": None}
            )
        except NotFound:
            logger.debug("[resolve] clear_cached_audio: %s not stored", external_id)

    async def mark_archived(self, external_id: str, fmt: str) -> None:
        await self._tracks.document(external_id).update(
            {"archived_format": fmt, "archived_at": datetime.now(timezone.utc)}
        )

    async def get_search_cache(self, key: str) -> Optional[CachedResolution]:
        doc = await self._search_cache.document(_cache_doc_id(key)).get()
        if not doc.exists:
            return None
        return CachedResolution.model_validate(doc.to_dict())

    async def put_search_cache(self, key: str, entry: CachedResolution) -> None:
        await self._search_cache.document(_cache_doc_id(key)).set(entry.model_dump(mode="json"))

    async def delete_search_cache(self, key: str) -> None:
        await self._search_cache.document(_cache_doc_id(key)).delete()

    async def clear_search_cache(self) -> int:
        removed = 0
        batch_size = 500
        while True:
            docs = [doc async for doc in self._search_cache.limit(batch_size).stream()]
            if not docs:
                break
            batch = self._db.batch()
            for doc in docs:
                batch.delete(doc.reference)
            await batch.commit()
            removed += len(docs)
        return removed

    async def count(self) -> int:
        result = await self._tracks.count().get()
        return int(result[0][0].value)
