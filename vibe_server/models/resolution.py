"""Resolution cache models: cached entries, tiers, and resolved results."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel

from recommender.models.track import Track


class ResolutionTier(str, Enum):
    OBJECT_STORE = "object_store"
    DISTRIBUTED_CACHE = "distributed_cache"
    DATASTORE = "datastore"
    UPSTREAM = "upstream"
    # Degraded outcomes
    EMBED_FALLBACK = "embed_fallback"
    DATABASE_FALLBACK = "database_fallback"


class CachedResolution(BaseModel):
    """
    One cached entry. Any entry read with expires_at <= now is treated as absent
    and purged.
    """

    resource_id: str
    payload: Any
    expires_at: datetime
    tier: ResolutionTier
    format: Optional[str] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= now


class AudioResolution(BaseModel):
    track_id: str
    url: str
    tier: ResolutionTier
    expires_at: Optional[datetime] = None
    format: Optional[str] = None
    # True when upstream extraction failed and url is the embeddable player.
    is_fallback: bool = False


class SearchResolution(BaseModel):
    query: str
    tracks: List[Track]
    tier: ResolutionTier
    from_cache: bool = False
