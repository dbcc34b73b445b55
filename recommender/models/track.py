"""
Track model — typed representation of a track for the recommendation pipeline
and the resolution cache.

Plain data only. Mutations (play-count increments, cached audio fields, archival)
go through the store interfaces; the helpers below are free functions over Track.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Track(BaseModel):
    """
    Track payload used across the pipeline stages and the resolution tiers.

    external_id is the provider's stable id (the key used everywhere in the pipeline);
    id is the datastore's internal id and may equal external_id for in-memory stores.
    """

    model_config = ConfigDict(extra="ignore")

    external_id: str
    id: Optional[str] = None
    title: str = ""
    artist: str = ""
    channel_id: Optional[str] = None
    channel_title: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    duration: int = 0
    thumbnail: str = ""
    thumbnail_hd: Optional[str] = None
    view_count: int = 0
    play_count: int = 0
    published_at: Optional[datetime] = None
    last_played: Optional[datetime] = None

    # Inferred vibe metadata
    genres: List[str] = Field(default_factory=list)
    language: str = "unknown"
    culture_tags: List[str] = Field(default_factory=list)

    # Tier 3 cached audio reference
    audio_url: Optional[str] = None
    audio_url_expiry: Optional[datetime] = None
    audio_format: Optional[str] = None

    # Tier 1 archived copy (format of the object-store copy, None when not archived)
    archived_format: Optional[str] = None
    archived_at: Optional[datetime] = None

    @property
    def track_id(self) -> str:
        return self.external_id

    def inference_text(self) -> str:
        """Concatenated free text fed to genre/language/culture inference."""
        return " ".join(
            [
                self.title or "",
                self.artist or "",
                self.channel_title or "",
                self.description or "",
                *(self.tags or []),
            ]
        )


def as_utc(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def needs_audio_refresh(track: Track, now: Optional[datetime] = None) -> bool:
    """True when the cached audio field is missing or expired (expiry <= now)."""
    if not track.audio_url or not track.audio_url_expiry:
        return True
    now = now or datetime.now(timezone.utc)
    return as_utc(track.audio_url_expiry) <= as_utc(now)


def has_archived_audio(track: Optional[Track]) -> bool:
    return bool(track is not None and track.archived_format)


def popularity_key(track: Track):
    """Sort key for "most popular first": play count, then view count."""
    return (track.play_count, track.view_count)


def ensure_list(tracks: List[Union[Dict[str, Any], "Track"]]) -> List["Track"]:
    """Convert list of dicts or Tracks to list of Track models for use in the pipeline."""
    return [Track.model_validate(t) if isinstance(t, dict) else t for t in tracks]
