"""Recommendation and transition request/response models."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from recommender.models.transition import TransitionSource

from .common import TrackCard


class RecommendRequest(BaseModel):
    current_track_id: str
    user_id: Optional[str] = None
    # Most recent first; when omitted the listener's recently played list is used.
    recent_history: Optional[List[str]] = None
    debug: bool = False


class RecommendDebugInfo(BaseModel):
    candidate_count: int
    filter_stats: Dict[str, int]
    top_scores: List[Dict] = []
    used_fallback: bool = False
    fallback_rung: Optional[int] = None


class RecommendResponse(BaseModel):
    next_track: TrackCard
    method: str
    alternatives: List[TrackCard]
    debug: Optional[RecommendDebugInfo] = None


class TransitionRequest(BaseModel):
    from_track_id: str
    to_track_id: str
    session_id: str = Field(min_length=1)
    user_id: Optional[str] = None
    completed: bool = True
    skipped: bool = False
    source: TransitionSource = TransitionSource.AUTO


class TransitionResponse(BaseModel):
    recorded: bool
