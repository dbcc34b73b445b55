"""Common Pydantic models shared across routes."""

from typing import List, Optional

from pydantic import BaseModel

from recommender.models.track import Track


class TrackCard(BaseModel):
    id: str
    title: str
    artist: str
    channel_title: Optional[str] = None
    duration: int = 0
    thumbnail: str = ""
    view_count: int = 0
    play_count: int = 0
    genres: List[str] = []
    language: str = "unknown"
    culture_tags: List[str] = []


def to_track_card(track: Track) -> TrackCard:
    """Public view of a Track: no cached audio or archival fields."""
    return TrackCard(
        id=track.track_id,
        title=track.title,
        artist=track.artist,
        channel_title=track.channel_title,
        duration=track.duration,
        thumbnail=track.thumbnail,
        view_count=track.view_count,
        play_count=track.play_count,
        genres=list(track.genres),
        language=track.language,
        culture_tags=list(track.culture_tags),
    )
