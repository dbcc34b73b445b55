"""
Pipeline orchestrator — candidates → vibe filter → dedup → ranking → selection,
with the fallback ladder behind it.

The main entry point is recommend_next. Any failure inside the pipeline, or an empty
candidate set after filtering, routes to the fallback ladder; the only exception that
escapes is ExhaustionError (empty catalogue).
"""

import logging
import time
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from ..models.config import RecommendationConfig, resolve_config
from ..models.scoring import ScoredCandidate, SelectionMethod
from ..models.session import (
    FilterStats,
    RecommendationDebug,
    RecommendationResult,
    SessionContext,
)
from ..ports import RelatedDiscovery, TrackCatalog
from ..transition_graph import TransitionGraph
from .candidate_pool import generate_candidates
from .dedup import deduplicate
from .fallback import fallback_pick
from .ranking import rank_candidates
from .selection import WeightedPicker, smart_select
from .vibe_filter import apply_vibe_filter

logger = logging.getLogger(__name__)


async def _continuity_map(
    context: SessionContext,
    graph: TransitionGraph,
    config: RecommendationConfig,
) -> Dict[str, float]:
    """Transition probabilities out of the current track; {} on any failure."""
    try:
        transitions = await graph.probabilities(
            context.current_track.track_id, config.continuity_lookup_limit
        )
    except Exception:
        logger.warning("[recommend] continuity lookup failed; scoring without it", exc_info=True)
        return {}
    return {t.to_track_id: t.probability for t in transitions}


async def _run_pipeline(
    context: SessionContext,
    catalog: TrackCatalog,
    graph: TransitionGraph,
    config: RecommendationConfig,
    discovery: Optional[RelatedDiscovery],
    now: Optional[datetime],
) -> Tuple[List[ScoredCandidate], FilterStats]:
    # Phase 1: candidates (four concurrent sources)
    candidates = await generate_candidates(context, catalog, graph, config, discovery, now)
    stats = FilterStats(initial=len(candidates))

    # Phase 2: hard filters
    filtered = apply_vibe_filter(candidates, context, config)
    stats.after_vibe_filter = len(filtered)

    # Phase 3: dedup
    deduped = deduplicate(filtered, context)
    stats.after_dedup = len(deduped)

    # Phase 4: scoring
    continuity = await _continuity_map(context, graph, config)
    scored = rank_candidates(deduped, context, continuity, config)
    stats.final = len(scored)

    logger.info(
        "[recommend] %s: initial=%d vibe=%d dedup=%d scored=%d",
        context.current_track.track_id,
        stats.initial, stats.after_vibe_filter, stats.after_dedup, stats.final,
    )
    return scored, stats


async def recommend_next(
    context: SessionContext,
    catalog: TrackCatalog,
    graph: TransitionGraph,
    config: Optional[RecommendationConfig] = None,
    picker: Optional[WeightedPicker] = None,
    discovery: Optional[RelatedDiscovery] = None,
    now: Optional[datetime] = None,
) -> RecommendationResult:
    """
    Recommend the next track for the session.

    Returns the selected track, the selection method and the top-N alternatives.
    Raises ExhaustionError only when the fallback ladder finds no track at all.
    """
    config = resolve_config(config)
    picker = picker or WeightedPicker()
    started = time.perf_counter()

    stats = FilterStats()
    try:
        scored, stats = await _run_pipeline(context, catalog, graph, config, discovery, now)
    except Exception:
        logger.exception("[recommend] pipeline failed; using fallback")
        scored = []

    if scored:
        selected, method, alternatives = smart_select(scored, picker, config)
        logger.info(
            "[recommend] selected %s (%s) in %.0fms",
            selected.track.track_id, method.value, (time.perf_counter() - started) * 1000,
        )
        return RecommendationResult(
            next_track=selected.track,
            method=method,
            alternatives=[s.track for s in alternatives],
            debug=RecommendationDebug(
                candidate_count=stats.initial,
                filter_stats=stats,
                top_scores=scored[: config.selection_top_n],
                selection_method=method,
            ),
        )

    track, alternatives, rung = await fallback_pick(context, catalog, picker, config)
    return RecommendationResult(
        next_track=track,
        method=SelectionMethod.RANDOM,
        alternatives=alternatives,
        debug=RecommendationDebug(
            candidate_count=stats.initial,
            filter_stats=stats,
            selection_method=SelectionMethod.RANDOM,
            used_fallback=True,
            fallback_rung=rung,
        ),
    )
