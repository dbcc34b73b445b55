"""
Algorithm configuration — candidate generation, scoring, selection, and fallback parameters.

RecommendationConfig defaults are defined here. The server may pass a dict
(e.g. from RECOMMENDER_CONFIG_PATH); from_dict() merges it with these defaults.
"""

from typing import Dict, Optional

from pydantic import BaseModel, model_validator


class RecommendationConfig(BaseModel):
    """Configuration for the next-track recommendation pipeline."""

    # -------------------------------------------------------------------------
    # Candidate Generation
    # -------------------------------------------------------------------------

    # Max candidates per source. Each source is fetched concurrently.
    graph_limit: int = 20
    user_history_limit: int = 20
    trending_limit: int = 10
    related_limit: int = 10

    # Trending source: only tracks published within this many days and above this view count.
    trending_window_days: int = 30
    trending_min_views: int = 10_000

    # Transition records older than this never influence aggregation.
    transition_retention_days: int = 90

    # -------------------------------------------------------------------------
    # Vibe Filter
    # -------------------------------------------------------------------------

    # Languages other than this (and "unknown") trigger the language lock.
    default_locale: str = "en"

    # -------------------------------------------------------------------------
    # Session Context
    # -------------------------------------------------------------------------

    # Max recent-history ids kept in a session context (most recent first).
    recent_history_limit: int = 20

    # -------------------------------------------------------------------------
    # Scoring (composite clamped to [0, 100])
    # -------------------------------------------------------------------------

    similarity_cap: float = 40.0
    points_per_shared_genre: float = 10.0
    points_per_shared_culture: float = 5.0
    points_language_match: float = 10.0

    familiarity_cap: float = 30.0
    points_liked: float = 30.0
    # (listen count strictly greater than, points); checked in order.
    familiarity_bands: tuple = ((10, 25.0), (5, 20.0), (0, 10.0))
    points_followed_publisher: float = 10.0

    # continuity = probability * multiplier, capped
    continuity_cap: float = 20.0
    continuity_multiplier: float = 100.0
    # How many transitions to fetch when looking up continuity for the current track.
    continuity_lookup_limit: int = 50

    discovery_cap: float = 10.0
    points_unplayed: float = 5.0
    points_unplayed_followed: float = 5.0

    popularity_cap: float = 10.0
    # (view count strictly greater than, points); checked in order.
    popularity_bands: tuple = (
        (10_000_000, 10.0),
        (1_000_000, 7.0),
        (100_000, 5.0),
        (10_000, 3.0),
    )

    recent_history_penalty: float = 50.0

    # -------------------------------------------------------------------------
    # Selection (80/20 familiar/discovery split)
    # -------------------------------------------------------------------------

    selection_top_n: int = 5
    # A candidate is familiar when liked or listened to more than this many times.
    familiar_listen_threshold: int = 3
    # roll > this and familiar non-empty -> familiar pick.
    discovery_roll_threshold: float = 0.2

    # -------------------------------------------------------------------------
    # Fallback Ladder
    # -------------------------------------------------------------------------

    fallback_pool_size: int = 20
    # Final pick is uniform among this many most popular tracks of the winning rung.
    fallback_pick_window: int = 10

    @model_validator(mode="after")
    def limits_positive(self):
        for name in (
            "graph_limit",
            "user_history_limit",
            "trending_limit",
            "related_limit",
            "selection_top_n",
            "fallback_pick_window",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if not 0.0 <= self.discovery_roll_threshold <= 1.0:
            raise ValueError(
                f"discovery_roll_threshold must be in [0, 1], got {self.discovery_roll_threshold}"
            )
        return self

    @classmethod
    def from_dict(cls, config_dict: Dict) -> "RecommendationConfig":
        """Create config from dictionary (e.g., loaded from JSON)."""
        flat = {}
        for section in ("candidates", "scoring", "selection", "fallback", "session"):
            if section in config_dict:
                flat.update(config_dict[section])
        if "familiarity_bands" in flat:
            flat["familiarity_bands"] = tuple(tuple(b) for b in flat["familiarity_bands"])
        if "popularity_bands" in flat:
            flat["popularity_bands"] = tuple(tuple(b) for b in flat["popularity_bands"])
        # Top-level keys are accepted as well as sectioned ones.
        flat.update({k: v for k, v in config_dict.items() if not isinstance(v, dict)})
        allowed = set(cls.model_fields)
        filtered = {k: v for k, v in flat.items() if k in allowed}
        return cls.model_validate(filtered)


DEFAULT_CONFIG = RecommendationConfig()


def resolve_config(config: Optional["RecommendationConfig"]) -> "RecommendationConfig":
    """Return config or DEFAULT_CONFIG when none is provided."""
    return config if config is not None else DEFAULT_CONFIG
