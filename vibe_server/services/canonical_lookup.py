"""
Canonical metadata lookup ("golden record") via the iTunes Search API.

Free and unmetered. Any failure is logged and returns None; the caller then falls back
to a raw search.
"""

import logging
from typing import Optional, Protocol

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)

ITUNES_SEARCH_URL = "https://itunes.apple.com/search"


class CanonicalRecord(BaseModel):
    title: str
    artist: str
    duration_ms: int
    album: Optional[str] = None
    artwork_url: Optional[str] = None


class CanonicalLookup(Protocol):
    async def lookup(self, free_text: str) -> Optional[CanonicalRecord]:
        ...


class ITunesLookup:
    def __init__(self, client: Optional[httpx.AsyncClient] = None, country: str = "US"):
        self._client = client or httpx.AsyncClient(
            timeout=8.0,
            headers={"Accept": "application/json", "User-Agent": "vibeshuffle/1.0"},
        )
        self._country = country

    async def close(self) -> None:
        await self._client.aclose()

    async def lookup(self, free_text: str) -> Optional[CanonicalRecord]:
        params = {
            "term": free_text,
            "media": "music",
            "entity": "song",
            "limit": 1,
            "country": self._country,
        }
        try:
            response = await self._client.get(ITUNES_SEARCH_URL, params=params)
            response.raise_for_status()
            results = response.json().get("results") or []
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("[best-match] iTunes lookup failed for %r: %s", free_text, exc)
            return None
        if not results:
            logger.info("[best-match] no iTunes record for %r", free_text)
            return None
        top = results[0]
        return CanonicalRecord(
            title=top.get("trackName") or "",
            artist=top.get("artistName") or "",
            duration_ms=int(top.get("trackTimeMillis") or 0),
            album=top.get("collectionName"),
            artwork_url=top.get("artworkUrl100"),
        )
