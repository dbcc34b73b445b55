"""
Stage 3: Deduplication

Drops the current track, anything in recent history, and cross-stream duplicates.
When the same id appears in several streams the highest-precedence source wins
(graph > user_history > trending > related).
"""

import logging
from typing import List, Set

from ..errors import DataIntegrityError, validate_external_id
from ..models.scoring import SOURCE_PRECEDENCE, Candidate
from ..models.session import SessionContext

logger = logging.getLogger(__name__)


def deduplicate(candidates: List[Candidate], context: SessionContext) -> List[Candidate]:
    seen: Set[str] = {context.current_track.track_id, *context.recent_history}
    # Stable: preserves within-stream order.
    ordered = sorted(candidates, key=lambda c: SOURCE_PRECEDENCE[c.source])
    kept: List[Candidate] = []
    for candidate in ordered:
        track_id = candidate.track.track_id
        try:
            validate_external_id(track_id)
        except DataIntegrityError as exc:
            logger.warning("[recommend] skipping candidate: %s", exc)
            continue
        if track_id in seen:
            continue
        seen.add(track_id)
        kept.append(candidate)
    return kept
