"""Pipeline stages: candidates, vibe filter, dedup, ranking, selection, fallback, orchestration."""

from .candidate_pool import generate_candidates
from .context import build_session_context
from .dedup import deduplicate
from .fallback import fallback_pick
from .orchestrator import recommend_next
from .ranking import rank_candidates
from .selection import RandomSource, WeightedPicker, smart_select
from .vibe_filter import apply_vibe_filter, passes_vibe_filter

__all__ = [
    "RandomSource",
    "WeightedPicker",
    "apply_vibe_filter",
    "build_session_context",
    "deduplicate",
    "fallback_pick",
    "generate_candidates",
    "passes_vibe_filter",
    "rank_candidates",
    "recommend_next",
    "smart_select",
]
