"""
Stage 4 ranking: five capped subscores minus penalties, clamped to [0, 100].

Public API: rank_candidates, score_candidate.
- core: main orchestration (rank_candidates).
- breakdown: the individual subscores and penalties.
"""

from .core import is_familiar, rank_candidates, score_candidate

__all__ = [
    "is_familiar",
    "rank_candidates",
    "score_candidate",
]
