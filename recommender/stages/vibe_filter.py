"""
Stage 2: Vibe Filter — hard filters applied before deduplication.

Language lock: when the current track is in a distinct language (neither the default
locale nor "unknown"), only same-language, "instrumental" or "unknown" candidates survive.
Blocked tracks are always dropped.
"""

from typing import List

from ..models.config import RecommendationConfig, DEFAULT_CONFIG
from ..models.scoring import Candidate
from ..models.session import SessionContext
from ..utils.vocabulary import INSTRUMENTAL_LANGUAGE, UNKNOWN_LANGUAGE


def is_distinct_language(language: str, config: RecommendationConfig = DEFAULT_CONFIG) -> bool:
    return bool(language) and language not in (config.default_locale, UNKNOWN_LANGUAGE)


def passes_vibe_filter(
    candidate: Candidate,
    context: SessionContext,
    config: RecommendationConfig = DEFAULT_CONFIG,
) -> bool:
    current_language = context.current_track.language
    if is_distinct_language(current_language, config):
        language = candidate.track.language
        if language not in (current_language, INSTRUMENTAL_LANGUAGE, UNKNOWN_LANGUAGE):
            return False
    if candidate.track.track_id in context.blocked_track_ids:
        return False
    return True


def apply_vibe_filter(
    candidates: List[Candidate],
    context: SessionContext,
    config: RecommendationConfig = DEFAULT_CONFIG,
) -> List[Candidate]:
    return [c for c in candidates if passes_vibe_filter(c, context, config)]
