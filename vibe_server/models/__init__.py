"""Pydantic request/response models for the API."""

from .admin import CacheClearRequest, CacheClearResponse
from .common import TrackCard, to_track_card
from .music import AudioResponse, BestMatchResponse, PlayRequest, PlayResponse, SearchResponse
from .recommend import (
    RecommendDebugInfo,
    RecommendRequest,
    RecommendResponse,
    TransitionRequest,
    TransitionResponse,
)
from .resolution import AudioResolution, CachedResolution, ResolutionTier, SearchResolution

__all__ = [
    "AudioResolution",
    "AudioResponse",
    "BestMatchResponse",
    "CacheClearRequest",
    "CacheClearResponse",
    "CachedResolution",
    "PlayRequest",
    "PlayResponse",
    "RecommendDebugInfo",
    "RecommendRequest",
    "RecommendResponse",
    "ResolutionTier",
    "SearchResolution",
    "SearchResponse",
    "TrackCard",
    "TransitionRequest",
    "TransitionResponse",
    "to_track_card",
]
