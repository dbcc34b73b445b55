"""
Stage 4 ranking: score every surviving candidate and sort by composite score.

composite = similarity + familiarity + continuity + discovery + popularity - penalties,
clamped to [0, 100]. Submodule used: breakdown.
"""

import logging
from typing import Dict, List, Optional

from ...models.config import RecommendationConfig, DEFAULT_CONFIG
from ...models.scoring import Candidate, ScoredCandidate
from ...models.session import SessionContext
from .breakdown import compute_breakdown

logger = logging.getLogger(__name__)

MIN_SCORE = 0.0
MAX_SCORE = 100.0


def is_familiar(track_id: str, context: SessionContext, config: RecommendationConfig) -> bool:
    """Liked, or listened to more than the familiar threshold."""
    return (
        track_id in context.liked_track_ids
        or context.listen_count(track_id) > config.familiar_listen_threshold
    )


def score_candidate(
    candidate: Candidate,
    context: SessionContext,
    continuity: Dict[str, float],
    config: RecommendationConfig = DEFAULT_CONFIG,
) -> ScoredCandidate:
    breakdown = compute_breakdown(candidate.track, context, continuity, config)
    familiar = is_familiar(candidate.track.track_id, context, config)
    return ScoredCandidate(
        track=candidate.track,
        breakdown=breakdown,
        score=max(MIN_SCORE, min(MAX_SCORE, breakdown.raw_total)),
        source=candidate.source,
        is_familiar=familiar,
        is_discovery=not familiar,
    )


def rank_candidates(
    candidates: List[Candidate],
    context: SessionContext,
    continuity: Optional[Dict[str, float]] = None,
    config: RecommendationConfig = DEFAULT_CONFIG,
) -> List[ScoredCandidate]:
    """
    Score candidates and sort descending by composite score.

    continuity maps candidate id -> transition probability from the current track;
    a missing or empty map means "no continuity signal" (0 points).
    """
    continuity = continuity or {}
    scored = [score_candidate(c, context, continuity, config) for c in candidates]
    scored.sort(key=lambda s: s.score, reverse=True)
    if scored:
        logger.debug(
            "[recommend] top score %.1f (%s) of %d",
            scored[0].score, scored[0].track.track_id, len(scored),
        )
    return scored
