"""Data models for the recommendation pipeline."""

from .config import DEFAULT_CONFIG, RecommendationConfig, resolve_config
from .scoring import (
    SOURCE_PRECEDENCE,
    Candidate,
    CandidateSource,
    ScoreBreakdown,
    ScoredCandidate,
    SelectionMethod,
)
from .session import (
    FilterStats,
    ListenerProfile,
    RecommendationDebug,
    RecommendationResult,
    SessionContext,
)
from .track import Track, ensure_list, has_archived_audio, needs_audio_refresh, popularity_key
from .transition import (
    TransitionProbability,
    TransitionRecord,
    TransitionSource,
    TrendingTransition,
)

__all__ = [
    "DEFAULT_CONFIG",
    "Candidate",
    "CandidateSource",
    "FilterStats",
    "ListenerProfile",
    "RecommendationConfig",
    "RecommendationDebug",
    "RecommendationResult",
    "SOURCE_PRECEDENCE",
    "ScoreBreakdown",
    "ScoredCandidate",
    "SelectionMethod",
    "SessionContext",
    "Track",
    "TransitionProbability",
    "TransitionRecord",
    "TransitionSource",
    "TrendingTransition",
    "ensure_list",
    "has_archived_audio",
    "needs_audio_refresh",
    "popularity_key",
    "resolve_config",
]
