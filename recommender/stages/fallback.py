"""
Fallback ladder — used when the pipeline fails or leaves no candidates.

Rungs, stopping at the first that yields anything:
  1. popular tracks matching a current genre, excluding current + recent history
     (topped up with rung 2 when fewer than 5 are found)
  2. any popular tracks, same exclusions
  3. any tracks at all, repeats allowed
The pick is uniform among the most popular fallback_pick_window tracks of the result.
Raises ExhaustionError when the catalogue is empty or unreachable.
"""

import logging
from typing import List, Tuple

from ..errors import ExhaustionError
from ..models.config import RecommendationConfig, DEFAULT_CONFIG
from ..models.session import SessionContext
from ..models.track import Track
from ..ports import TrackCatalog
from .selection import WeightedPicker

logger = logging.getLogger(__name__)

# Rung 1 is topped up from rung 2 below this size.
MIN_GENRE_MATCHES = 5


async def _collect_fallback_pool(
    context: SessionContext,
    catalog: TrackCatalog,
    config: RecommendationConfig,
) -> Tuple[List[Track], int]:
    exclude = [context.current_track.track_id, *context.recent_history]
    pool: List[Track] = []
    rung = 0

    genres = context.current_track.genres
    if genres:
        pool = await catalog.find_popular(exclude, genres, config.fallback_pool_size)
        if pool:
            rung = 1

    if len(pool) < MIN_GENRE_MATCHES:
        logger.info("[recommend] fallback: topping up with popular tracks")
        popular = await catalog.find_popular(exclude, None, config.fallback_pool_size)
        known = {t.track_id for t in pool}
        for track in popular:
            if len(pool) >= config.fallback_pool_size:
                break
            if track.track_id not in known:
                pool.append(track)
                known.add(track.track_id)
                rung = rung or 2

    if not pool:
        logger.info("[recommend] fallback: allowing repeats")
        pool = await catalog.find_popular((), None, config.fallback_pool_size)
        rung = 3 if pool else 0

    return pool, rung


async def fallback_pick(
    context: SessionContext,
    catalog: TrackCatalog,
    picker: WeightedPicker,
    config: RecommendationConfig = DEFAULT_CONFIG,
) -> Tuple[Track, List[Track], int]:
    """Return (selected, alternatives, rung)."""
    try:
        pool, rung = await _collect_fallback_pool(context, catalog, config)
    except Exception as exc:
        logger.exception("[recommend] fallback: catalogue unavailable")
        raise ExhaustionError("catalogue unavailable for fallback") from exc
    if not pool:
        raise ExhaustionError("no tracks available for recommendation")
    window = min(config.fallback_pick_window, len(pool))
    selected = pool[picker.pick_index(window)]
    logger.info("[recommend] fallback rung %d selected %s", rung, selected.track_id)
    return selected, pool[: config.selection_top_n], rung
