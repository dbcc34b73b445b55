"""
Session models — the per-call listening context, the listener profile it is built
from, and the result returned by the pipeline.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field

from .scoring import ScoredCandidate, SelectionMethod
from .track import Track


class ListenerProfile(BaseModel):
    """Durable listener data read from the library collaborator."""

    user_id: str
    liked_track_ids: Set[str] = Field(default_factory=set)
    blocked_track_ids: Set[str] = Field(default_factory=set)
    listen_counts: Dict[str, int] = Field(default_factory=dict)
    followed_channel_ids: Set[str] = Field(default_factory=set)
    # Most recent first
    recently_played_ids: List[str] = Field(default_factory=list)


class SessionContext(BaseModel):
    """
    Everything the pipeline needs for one recommendation call.

    Built fresh per call (see stages.context.build_session_context); never persisted.
    recent_history is most recent first and already bounded by the builder.
    """

    current_track: Track
    user_id: Optional[str] = None
    recent_history: List[str] = Field(default_factory=list)
    liked_track_ids: Set[str] = Field(default_factory=set)
    blocked_track_ids: Set[str] = Field(default_factory=set)
    listen_counts: Dict[str, int] = Field(default_factory=dict)
    followed_channel_ids: Set[str] = Field(default_factory=set)
    # Favorites + recently played, used by the user_history candidate source.
    affinity_track_ids: List[str] = Field(default_factory=list)
    is_anonymous: bool = True
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def listen_count(self, track_id: str) -> int:
        return self.listen_counts.get(track_id, 0)

    def is_followed(self, channel_id: Optional[str]) -> bool:
        return bool(channel_id) and channel_id in self.followed_channel_ids


class FilterStats(BaseModel):
    initial: int = 0
    after_vibe_filter: int = 0
    after_dedup: int = 0
    final: int = 0


class RecommendationDebug(BaseModel):
    candidate_count: int
    filter_stats: FilterStats
    top_scores: List[ScoredCandidate] = Field(default_factory=list)
    selection_method: Optional[SelectionMethod] = None
    used_fallback: bool = False
    fallback_rung: Optional[int] = None


class RecommendationResult(BaseModel):
    """Selected next track, the method used, and the top-N alternatives."""

    next_track: Track
    method: SelectionMethod
    alternatives: List[Track] = Field(default_factory=list)
    debug: Optional[RecommendationDebug] = None
