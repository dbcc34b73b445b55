"""
Transition models — one listener moving from one track to the next, plus the
aggregates the transition graph derives from the log.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class TransitionSource(str, Enum):
    """How the next track was chosen."""

    AUTO = "auto"
    MANUAL = "manual"
    SHUFFLE = "shuffle"


class TransitionRecord(BaseModel):
    """
    A single from -> to transition. Append-only; duplicates are edge strength.

    completed: the listener finished the first track (listened > 80%).
    skipped: the second track was skipped quickly.
    """

    from_track_id: str
    to_track_id: str
    session_id: str
    user_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed: bool = True
    skipped: bool = False
    source: TransitionSource = TransitionSource.AUTO


class TransitionProbability(BaseModel):
    """Outgoing edge from a node, weighted by how often listeners took it."""

    to_track_id: str
    probability: float
    count: int


class TrendingTransition(BaseModel):
    from_track_id: str
    to_track_id: str
    count: int
