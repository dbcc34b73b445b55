"""
Scoring model — ScoredCandidate and the closed tags used by the pipeline.

Contains:
- CandidateSource: which candidate stream produced a track
- SelectionMethod: how the selection policy picked the winner
- ScoreBreakdown: the five subscores and the penalty
- ScoredCandidate: a track with its breakdown and composite score
"""

from enum import Enum

from pydantic import BaseModel

from .track import Track


class CandidateSource(str, Enum):
    """Candidate streams, in dedup precedence order."""

    GRAPH = "graph"
    USER_HISTORY = "user_history"
    TRENDING = "trending"
    RELATED = "related"


# Lower rank wins when the same id appears in several streams.
SOURCE_PRECEDENCE = {
    CandidateSource.GRAPH: 0,
    CandidateSource.USER_HISTORY: 1,
    CandidateSource.TRENDING: 2,
    CandidateSource.RELATED: 3,
}


class SelectionMethod(str, Enum):
    FAMILIAR = "familiar"
    DISCOVERY = "discovery"
    RANDOM = "random"


class Candidate(BaseModel):
    """A track tagged with the stream that produced it."""

    track: Track
    source: CandidateSource


class ScoreBreakdown(BaseModel):
    """Non-negative subscores (each already capped) and the penalty to subtract."""

    similarity: float = 0.0
    familiarity: float = 0.0
    continuity: float = 0.0
    discovery: float = 0.0
    popularity: float = 0.0
    penalties: float = 0.0

    @property
    def raw_total(self) -> float:
        return (
            self.similarity
            + self.familiarity
            + self.continuity
            + self.discovery
            + self.popularity
            - self.penalties
        )


class ScoredCandidate(BaseModel):
    """A candidate with all its scoring components. score is clamped to [0, 100]."""

    track: Track
    breakdown: ScoreBreakdown
    score: float
    source: CandidateSource
    is_familiar: bool
    is_discovery: bool
