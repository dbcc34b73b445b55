"""
Stage 1: Candidate Generation

Fetches four bounded candidate streams concurrently:
  graph        — collaborative filtering over the transition graph
  user_history — the listener's favorites + recents that match the current vibe
  trending     — recent high-view tracks sharing a genre or culture tag
  related      — same channel or same artist

Each source is isolated: a failing source is logged and yields [] without
affecting the others. The public entry point is generate_candidates.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Dict, List, Optional

from ..models.config import RecommendationConfig, DEFAULT_CONFIG
from ..models.scoring import Candidate, CandidateSource
from ..models.session import SessionContext
from ..models.track import Track
from ..ports import RelatedDiscovery, TrackCatalog
from ..transition_graph import TransitionGraph, utc_now
from ..utils.inference import ensure_inferred
from ..utils.vocabulary import UNKNOWN_LANGUAGE

logger = logging.getLogger(__name__)


def _shares_any(a: List[str], b: List[str]) -> bool:
    return bool(set(a) & set(b))


async def _graph_source(
    context: SessionContext,
    catalog: TrackCatalog,
    graph: TransitionGraph,
    config: RecommendationConfig,
) -> List[Track]:
    transitions = await graph.probabilities(context.current_track.track_id, config.graph_limit)
    if not transitions:
        return []
    return await catalog.find_by_external_ids([t.to_track_id for t in transitions])


async def _user_history_source(
    context: SessionContext,
    catalog: TrackCatalog,
    config: RecommendationConfig,
) -> List[Track]:
    if context.is_anonymous or not context.user_id or not context.affinity_track_ids:
        return []
    current = context.current_track
    tracks = await catalog.find_by_external_ids(context.affinity_track_ids)
    matched = []
    for track in tracks:
        track = ensure_inferred(track)
        genre_overlap = _shares_any(track.genres, current.genres)
        language_match = track.language in (current.language, UNKNOWN_LANGUAGE)
        if genre_overlap or language_match:
            matched.append(track)
    return matched[: config.user_history_limit]


async def _trending_source(
    context: SessionContext,
    catalog: TrackCatalog,
    config: RecommendationConfig,
    now: datetime,
) -> List[Track]:
    current = context.current_track
    since = now - timedelta(days=config.trending_window_days)
    # Over-fetch, then keep only tracks sharing a genre or culture with the current track.
    trending = await catalog.find_trending(since, config.trending_min_views, config.trending_limit * 2)
    matched = []
    for track in trending:
        track = ensure_inferred(track)
        if _shares_any(track.genres, current.genres) or _shares_any(
            track.culture_tags, current.culture_tags
        ):
            matched.append(track)
    return matched[: config.trending_limit]


async def _related_source(
    context: SessionContext,
    catalog: TrackCatalog,
    config: RecommendationConfig,
    discovery: Optional[RelatedDiscovery],
) -> List[Track]:
    current = context.current_track
    related = await catalog.find_related(
        current.channel_id, current.artist or None, current.track_id, config.related_limit
    )
    if discovery is not None and len(related) < config.related_limit:
        extra = await discovery.related(current, config.related_limit - len(related))
        known = {t.track_id for t in related} | {current.track_id}
        related.extend(t for t in extra if t.track_id not in known)
    return related[: config.related_limit]


async def _isolated(source: CandidateSource, call: Awaitable[List[Track]]) -> List[Candidate]:
    try:
        tracks = await call
    except Exception:
        logger.exception("[recommend] candidate source %s failed", source.value)
        return []
    return [Candidate(track=ensure_inferred(t), source=source) for t in tracks]


async def generate_candidates(
    context: SessionContext,
    catalog: TrackCatalog,
    graph: TransitionGraph,
    config: RecommendationConfig = DEFAULT_CONFIG,
    discovery: Optional[RelatedDiscovery] = None,
    now: Optional[datetime] = None,
) -> List[Candidate]:
    """
    Fan out to all four sources and concatenate the results in precedence order
    (graph, user_history, trending, related).
    """
    now = now or utc_now()
    streams = await asyncio.gather(
        _isolated(CandidateSource.GRAPH, _graph_source(context, catalog, graph, config)),
        _isolated(CandidateSource.USER_HISTORY, _user_history_source(context, catalog, config)),
        _isolated(CandidateSource.TRENDING, _trending_source(context, catalog, config, now)),
        _isolated(
            CandidateSource.RELATED, _related_source(context, catalog, config, discovery)
        ),
    )
    counts: Dict[str, int] = {}
    candidates: List[Candidate] = []
    for stream in streams:
        for c in stream:
            counts[c.source.value] = counts.get(c.source.value, 0) + 1
        candidates.extend(stream)
    logger.debug("[recommend] candidates per source: %s", counts)
    return candidates
