"""
Per-candidate subscores. Each function returns a non-negative value already capped
at its configured maximum; penalties are returned separately and subtracted.
"""

from typing import Dict

from ...models.config import RecommendationConfig
from ...models.scoring import ScoreBreakdown
from ...models.session import SessionContext
from ...models.track import Track


def similarity_score(track: Track, context: SessionContext, config: RecommendationConfig) -> float:
    current = context.current_track
    shared_genres = len(set(track.genres) & set(current.genres))
    shared_cultures = len(set(track.culture_tags) & set(current.culture_tags))
    score = shared_genres * config.points_per_shared_genre
    score += shared_cultures * config.points_per_shared_culture
    if track.language == current.language:
        score += config.points_language_match
    return min(config.similarity_cap, score)


def familiarity_score(track: Track, context: SessionContext, config: RecommendationConfig) -> float:
    score = 0.0
    if track.track_id in context.liked_track_ids:
        score += config.points_liked
    else:
        listens = context.listen_count(track.track_id)
        for threshold, points in config.familiarity_bands:
            if listens > threshold:
                score += points
                break
    if context.is_followed(track.channel_id):
        score += config.points_followed_publisher
    return min(config.familiarity_cap, score)


def continuity_score(
    track: Track, continuity: Dict[str, float], config: RecommendationConfig
) -> float:
    """Transition probability from the current track, scaled; 0 when there is no signal."""
    probability = continuity.get(track.track_id, 0.0)
    return min(config.continuity_cap, probability * config.continuity_multiplier)


def discovery_score(track: Track, context: SessionContext, config: RecommendationConfig) -> float:
    if context.listen_count(track.track_id) != 0:
        return 0.0
    score = config.points_unplayed
    if context.is_followed(track.channel_id):
        score += config.points_unplayed_followed
    return min(config.discovery_cap, score)


def popularity_score(track: Track, config: RecommendationConfig) -> float:
    for threshold, points in config.popularity_bands:
        if track.view_count > threshold:
            return min(config.popularity_cap, points)
    return 0.0


def artist_repetition_penalty(track: Track, context: SessionContext) -> float:
    """
    Penalty for an artist repeated in recent history.

    Not implemented: recent history carries ids only, and no formula has been
    agreed on. Always 0.
    """
    return 0.0


def penalties(track: Track, context: SessionContext, config: RecommendationConfig) -> float:
    total = 0.0
    # Dedup should already have removed these.
    if track.track_id in context.recent_history:
        total += config.recent_history_penalty
    total += artist_repetition_penalty(track, context)
    return total


def compute_breakdown(
    track: Track,
    context: SessionContext,
    continuity: Dict[str, float],
    config: RecommendationConfig,
) -> ScoreBreakdown:
    return ScoreBreakdown(
        similarity=similarity_score(track, context, config),
        familiarity=familiarity_score(track, context, config),
        continuity=continuity_score(track, continuity, config),
        discovery=discovery_score(track, context, config),
        popularity=popularity_score(track, config),
        penalties=penalties(track, context, config),
    )
