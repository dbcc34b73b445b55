"""Music search, audio resolution and play-count models."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from .common import TrackCard


class SearchResponse(BaseModel):
    query: str
    tracks: List[TrackCard]
    source: str
    from_cache: bool = False


class BestMatchResponse(BaseModel):
    track: Optional[TrackCard] = None
    is_best_match: bool
    match_score: Optional[float] = None
    duration_delta: Optional[float] = None


class AudioResponse(BaseModel):
    track_id: str
    url: str
    source: str
    expires_at: Optional[datetime] = None
    format: Optional[str] = None
    is_fallback: bool = False


class PlayRequest(BaseModel):
    user_id: Optional[str] = None


class PlayResponse(BaseModel):
    track_id: str
    play_count: int
