"""
VibeShuffle recommendation core — endless-session next-track recommendation.

Single entry point for the recommender package:
- models/: Track, TransitionRecord, SessionContext, ScoredCandidate, RecommendationConfig
- stages/: candidate_pool, vibe_filter, dedup, ranking, selection, fallback, orchestrator
- transition_graph: collaborative-filtering aggregation over the transition log
- utils/: rule-based genre / language / culture inference
- ports: collaborator protocols implemented by the service layer
"""

from .errors import (
    ConfigurationError,
    DataIntegrityError,
    ExhaustionError,
    NotFoundError,
    TransientProviderError,
    VibeShuffleError,
)
from .models.config import DEFAULT_CONFIG, RecommendationConfig, resolve_config
from .models.scoring import CandidateSource, ScoredCandidate, SelectionMethod
from .models.session import ListenerProfile, RecommendationResult, SessionContext
from .models.track import Track
from .models.transition import TransitionRecord, TransitionSource
from .stages import WeightedPicker, build_session_context, recommend_next
from .transition_graph import TransitionGraph
from .utils.inference import apply_inference, infer_vibe

__all__ = [
    "CandidateSource",
    "ConfigurationError",
    "DEFAULT_CONFIG",
    "DataIntegrityError",
    "ExhaustionError",
    "ListenerProfile",
    "NotFoundError",
    "RecommendationConfig",
    "RecommendationResult",
    "ScoredCandidate",
    "SelectionMethod",
    "SessionContext",
    "Track",
    "TransientProviderError",
    "TransitionGraph",
    "TransitionRecord",
    "TransitionSource",
    "VibeShuffleError",
    "WeightedPicker",
    "apply_inference",
    "build_session_context",
    "infer_vibe",
    "recommend_next",
    "resolve_config",
]
