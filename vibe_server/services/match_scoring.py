"""
Match scoring: how well a search result matches a canonical (title, artist, duration) record.

Every threshold is a heuristic with no documented derivation, so all of them live in
MatchScoringConfig and can be overridden.
"""

from typing import List, Optional

from pydantic import BaseModel, Field
from rapidfuzz.distance import Levenshtein

from recommender.models.track import Track

from .canonical_lookup import CanonicalRecord


class MatchScoringConfig(BaseModel):
    base_score: float = 100.0

    # Duration gate: a delta above this many seconds costs the gate penalty
    # (and the result is discarded before scoring by BestMatchService).
    duration_gate_seconds: float = 10.0
    duration_gate_penalty: float = 50.0
    penalty_per_second: float = 2.0

    dirty_keywords: List[str] = Field(
        default_factory=lambda: [
            "cover",
            "live",
            "reaction",
            "review",
            "guitar hero",
            "nightcore",
            "slowed",
            "sped up",
            "reverb",
            "1 hour",
            "10 hours",
            "extended",
            "mashup",
            "compilation",
        ]
    )
    dirty_keyword_penalty: float = 50.0

    authority_keywords: List[str] = Field(default_factory=lambda: ["topic", "vevo", "official"])
    authority_bonus: float = 20.0

    title_similarity_threshold: float = 0.8
    low_similarity_penalty: float = 30.0
    similarity_bonus_multiplier: float = 10.0

    artist_match_bonus: float = 15.0

    pass_threshold: float = 50.0
    candidates_examined: int = 5


DEFAULT_MATCH_CONFIG = MatchScoringConfig()


class MatchScore(BaseModel):
    score: float
    duration_delta: float
    title_similarity: float


def title_similarity(a: str, b: str) -> float:
    """Normalised Levenshtein similarity in [0, 1], case-insensitive."""
    s1, s2 = a.lower().strip(), b.lower().strip()
    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0
    return Levenshtein.normalized_similarity(s1, s2)


def duration_delta_seconds(track: Track, record: CanonicalRecord) -> float:
    return abs(track.duration * 1000 - record.duration_ms) / 1000


def has_dirty_keywords(title: str, config: MatchScoringConfig = DEFAULT_MATCH_CONFIG) -> bool:
    lower = title.lower()
    return any(kw in lower for kw in config.dirty_keywords)


def has_channel_authority(
    channel_title: Optional[str], artist: str, config: MatchScoringConfig = DEFAULT_MATCH_CONFIG
) -> bool:
    if not channel_title:
        return False
    channel = channel_title.lower()
    if any(kw in channel for kw in config.authority_keywords):
        return True
    return bool(artist) and artist.lower() in channel


def score_match(
    track: Track,
    record: CanonicalRecord,
    config: MatchScoringConfig = DEFAULT_MATCH_CONFIG,
) -> MatchScore:
    score = config.base_score
    delta = duration_delta_seconds(track, record)
    if delta > config.duration_gate_seconds:
        score -= config.duration_gate_penalty
    else:
        score -= delta * config.penalty_per_second

    if has_dirty_keywords(track.title, config):
        score -= config.dirty_keyword_penalty

    if has_channel_authority(track.channel_title, record.artist, config):
        score += config.authority_bonus

    similarity = title_similarity(record.title, track.title)
    if similarity < config.title_similarity_threshold:
        score -= config.low_similarity_penalty
    else:
        score += similarity * config.similarity_bonus_multiplier

    artist = record.artist.lower()
    if artist and (artist in track.title.lower() or artist in (track.channel_title or "").lower()):
        score += config.artist_match_bonus

    return MatchScore(score=max(0.0, score), duration_delta=delta, title_similarity=similarity)
