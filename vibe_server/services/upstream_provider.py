"""
Upstream metadata/audio provider (YouTube).

Metadata comes from the YouTube Data API v3 over httpx.AsyncClient; audio stream URLs
and archival downloads come from yt-dlp, run in a worker thread. This module does not
meter quota: callers check QuotaTracker.can_afford() before calling and record after.

Failures that are worth retrying (transport errors, 429/5xx, quota/rate-limit 403s,
yt-dlp download errors) raise TransientProviderError.
"""

import asyncio
import logging
import re
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

import httpx
import yt_dlp
from pydantic import BaseModel
from yt_dlp.utils import YoutubeDLError

from recommender.errors import ConfigurationError, TransientProviderError
from recommender.models.track import Track

logger = logging.getLogger(__name__)

API_BASE_URL = "https://www.googleapis.com/youtube/v3"
WATCH_URL = "https://www.youtube.com/watch?v={id}"
EMBED_URL = "https://www.youtube.com/embed/{id}"
MUSIC_CATEGORY_ID = "10"

# Results outside (MIN, MAX) seconds are not songs.
MIN_DURATION_SECONDS = 30
MAX_DURATION_SECONDS = 1200

STREAM_URL_TTL = timedelta(hours=6)

_DURATION_RE = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")
_TITLE_NOISE = [
    re.compile(r"\[.*?\]"),
    re.compile(r"\(.*?\)"),
    re.compile(r"【.*?】"),
    re.compile(r"Official.*?Video", re.IGNORECASE),
    re.compile(r"Official.*?Audio", re.IGNORECASE),
    re.compile(r"Music.*?Video", re.IGNORECASE),
    re.compile(r"\b(?:HD|4K|1080p|720p)\b", re.IGNORECASE),
]
_ARTIST_PATTERNS = [
    re.compile(r"^([^-]+)\s*-\s*"),
    re.compile(r"^([^–]+)\s*–\s*"),
    re.compile(r"by\s+([^(]+)", re.IGNORECASE),
]


def embed_url(track_id: str) -> str:
    return EMBED_URL.format(id=track_id)


def clean_title(title: str) -> str:
    for pattern in _TITLE_NOISE:
        title = pattern.sub("", title)
    return re.sub(r"\s+", " ", title).strip()


def extract_artist(title: str, channel_title: str) -> str:
    """Artist from "Artist - Song" / "Artist – Song" / "by Artist", else the channel."""
    for pattern in _ARTIST_PATTERNS:
        match = pattern.search(title)
        if match:
            return match.group(1).strip()
    return channel_title or "Unknown Artist"


def parse_duration(duration: str) -> int:
    """ISO-8601 duration (PT#H#M#S) to seconds; 0 if unparseable."""
    match = _DURATION_RE.match(duration or "")
    if not match:
        return 0
    hours, minutes, seconds = (int(g or 0) for g in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def is_song_length(duration: int) -> bool:
    return MIN_DURATION_SECONDS < duration < MAX_DURATION_SECONDS


def _parse_published(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _thumb(thumbnails: Dict, *names: str) -> Optional[str]:
    for name in names:
        url = (thumbnails.get(name) or {}).get("url")
        if url:
            return url
    return None


def video_to_track(item: Dict[str, Any], details: Optional[Dict[str, Any]] = None) -> Track:
    """Build a Track from a search/videos item plus an optional videos.list detail item."""
    details = details or item
    snippet = item.get("snippet") or {}
    raw_id = item.get("id")
    video_id = raw_id.get("videoId") if isinstance(raw_id, dict) else raw_id
    raw_title = snippet.get("title") or ""
    channel_title = snippet.get("channelTitle") or ""
    thumbnails = snippet.get("thumbnails") or {}
    statistics = details.get("statistics") or {}
    return Track(
        external_id=video_id,
        id=video_id,
        title=clean_title(raw_title),
        artist=extract_artist(raw_title, channel_title),
        channel_id=snippet.get("channelId"),
        channel_title=channel_title or None,
        description=snippet.get("description") or None,
        tags=snippet.get("tags") or [],
        duration=parse_duration((details.get("contentDetails") or {}).get("duration", "")),
        thumbnail=_thumb(thumbnails, "medium", "default") or "",
        thumbnail_hd=_thumb(thumbnails, "high", "maxres"),
        view_count=int(statistics.get("viewCount") or 0),
        published_at=_parse_published(snippet.get("publishedAt")),
    )


class AudioStream(BaseModel):
    url: str
    format: str
    expires_at: datetime
    bitrate: Optional[float] = None
    codec: Optional[str] = None


def pick_best_audio(formats: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Highest-bitrate audio-only format, or None."""
    audio_only = [
        f for f in formats
        if f.get("url") and f.get("vcodec") in (None, "none") and f.get("acodec") not in (None, "none")
    ]
    if not audio_only:
        return None
    return max(audio_only, key=lambda f: f.get("abr") or f.get("tbr") or 0)


class UpstreamProvider(Protocol):
    async def search(self, query: str, max_results: int = 20) -> List[Track]:
        ...

    async def trending(self, max_results: int = 20) -> List[Track]:
        ...

    async def detail(self, ids: List[str]) -> List[Track]:
        ...

    async def related_by(self, track_id: str, max_results: int = 10) -> List[Track]:
        ...

    async def audio_stream(self, track_id: str) -> AudioStream:
        ...

    async def download_audio(self, track_id: str) -> Tuple[bytes, str]:
        ...


class YouTubeProvider:
    """YouTube Data API + yt-dlp. Requires an API key (ConfigurationError otherwise)."""

    def __init__(
        self,
        api_key: Optional[str],
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        stream_ttl: timedelta = STREAM_URL_TTL,
    ):
        if not api_key:
            raise ConfigurationError("YOUTUBE_API_KEY is not set")
        self._api_key = api_key
        self._stream_ttl = stream_ttl
        self._client = client or httpx.AsyncClient(base_url=API_BASE_URL, timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client.get(path, params={**params, "key": self._api_key})
        except httpx.TransportError as exc:
            raise TransientProviderError(f"YouTube {path}: {exc}") from exc
        if response.status_code == 429 or response.status_code >= 500:
            raise TransientProviderError(f"YouTube {path}: HTTP {response.status_code}")
        if response.status_code == 403 and "quota" in response.text.lower():
            raise TransientProviderError(f"YouTube {path}: quota exceeded")
        response.raise_for_status()
        return response.json()

    async def _video_items(self, ids: List[str], parts: str) -> List[Dict[str, Any]]:
        if not ids:
            return []
        data = await self._get("/videos", {"part": parts, "id": ",".join(ids), "maxResults": 50})
        return data.get("items") or []

    async def search(self, query: str, max_results: int = 20) -> List[Track]:
        data = await self._get(
            "/search",
            {
                "part": "snippet",
                "q": query,
                "type": "video",
                "videoCategoryId": MUSIC_CATEGORY_ID,
                "maxResults": max_results,
                "order": "relevance",
                "videoEmbeddable": "true",
            },
        )
        items = [i for i in data.get("items") or [] if (i.get("id") or {}).get("videoId")]
        ids = [i["id"]["videoId"] for i in items]
        details = {d["id"]: d for d in await self._video_items(ids, "contentDetails,statistics")}
        tracks = [video_to_track(i, details.get(i["id"]["videoId"])) for i in items]
        return [t for t in tracks if is_song_length(t.duration)]

    async def trending(self, max_results: int = 20) -> List[Track]:
        data = await self._get(
            "/videos",
            {
                "part": "snippet,contentDetails,statistics",
                "chart": "mostPopular",
                "videoCategoryId": MUSIC_CATEGORY_ID,
                "maxResults": max_results,
                "regionCode": "US",
            },
        )
        tracks = [video_to_track(i) for i in data.get("items") or []]
        return [t for t in tracks if is_song_length(t.duration)]

    async def detail(self, ids: List[str]) -> List[Track]:
        items = await self._video_items(ids, "snippet,contentDetails,statistics")
        return [video_to_track(i) for i in items]

    async def related_by(self, track_id: str, max_results: int = 10) -> List[Track]:
        """Search "<artist> music" for the given video's artist."""
        found = await self.detail([track_id])
        if not found:
            return []
        return await self.search(f"{found[0].artist} music", max_results)

    def _extract_info(self, track_id: str) -> Dict[str, Any]:
        opts = {"format": "bestaudio/best", "noplaylist": True, "quiet": True, "skip_download": True}
        with yt_dlp.YoutubeDL(opts) as ydl:
            return ydl.extract_info(WATCH_URL.format(id=track_id), download=False)

    async def audio_stream(self, track_id: str) -> AudioStream:
        try:
            info = await asyncio.to_thread(self._extract_info, track_id)
        except YoutubeDLError as exc:
            raise TransientProviderError(f"audio extraction failed for {track_id}: {exc}") from exc
        best = pick_best_audio(info.get("formats") or [])
        if best is None:
            raise TransientProviderError(f"no audio-only stream for {track_id}")
        return AudioStream(
            url=best["url"],
            format=best.get("ext") or "webm",
            expires_at=datetime.now(timezone.utc) + self._stream_ttl,
            bitrate=best.get("abr"),
            codec=best.get("acodec"),
        )

    def _download(self, track_id: str) -> Tuple[bytes, str]:
        with tempfile.TemporaryDirectory() as tmp:
            opts = {
                "format": "bestaudio[ext=m4a]/bestaudio/best",
                "noplaylist": True,
                "quiet": True,
                "outtmpl": str(Path(tmp) / f"{track_id}.%(ext)s"),
            }
            with yt_dlp.YoutubeDL(opts) as ydl:
                ydl.download([WATCH_URL.format(id=track_id)])
            files = list(Path(tmp).glob(f"{track_id}.*"))
            if not files:
                raise FileNotFoundError(f"download produced no file for {track_id}")
            return files[0].read_bytes(), files[0].suffix.lstrip(".")

    async def download_audio(self, track_id: str) -> Tuple[bytes, str]:
        """Download the best audio for archival; returns (bytes, format)."""
        try:
            return await asyncio.to_thread(self._download, track_id)
        except (YoutubeDLError, FileNotFoundError) as exc:
            raise TransientProviderError(f"download failed for {track_id}: {exc}") from exc
