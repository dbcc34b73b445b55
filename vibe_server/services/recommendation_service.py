"""
Recommendation service: wires the recommender core to the stores and the upstream provider.

Resolves the current track (catalogue first, upstream detail lookup when quota allows),
builds the session context and runs recommend_next. An unknown track returns None.
"""

import logging
from typing import List, Optional

from recommender.errors import DataIntegrityError, validate_external_id
from recommender.models.config import RecommendationConfig, resolve_config
from recommender.models.session import RecommendationResult
from recommender.models.track import Track
from recommender.ports import ListenerLibrary
from recommender.stages import WeightedPicker, build_session_context, recommend_next
from recommender.transition_graph import TransitionGraph
from recommender.utils.inference import apply_inference

from .quota_tracker import PriorityLevel, QuotaOperation, QuotaTracker
from .track_store import TrackStore
from .upstream_provider import UpstreamProvider

logger = logging.getLogger(__name__)


class QuotaAwareRelatedDiscovery:
    """
    Tops up the related-tracks stream from upstream, but only while quota use is in the
    LOW band. Discovered tracks are stored so later calls find them in the catalogue.
    """

    def __init__(self, upstream: UpstreamProvider, quota: QuotaTracker, store: TrackStore):
        self.upstream = upstream
        self.quota = quota
        self.store = store

    async def related(self, track: Track, limit: int) -> List[Track]:
        if self.quota.priority_level() != PriorityLevel.LOW:
            return []
        # related_by is one detail lookup plus one search.
        if not self.quota.can_afford(QuotaOperation.SEARCH) or not self.quota.can_afford(
            QuotaOperation.DETAIL, limit + 1
        ):
            return []
        results: List[Track] = []
        try:
            results = await self.upstream.related_by(track.track_id, limit)
        finally:
            # Billed even when the lookup fails partway.
            self.quota.record(QuotaOperation.DETAIL, 1 + len(results))
            self.quota.record(QuotaOperation.SEARCH)
        stored = []
        for found in results:
            stored.append(await self.store.upsert_discovered(apply_inference(found)))
        logger.debug("[recommend] upstream related added %d tracks", len(stored))
        return stored


class RecommendationService:
    def __init__(
        self,
        store: TrackStore,
        graph: TransitionGraph,
        quota: QuotaTracker,
        library: Optional[ListenerLibrary] = None,
        upstream: Optional[UpstreamProvider] = None,
        config: Optional[RecommendationConfig] = None,
        picker: Optional[WeightedPicker] = None,
    ):
        self.store = store
        self.graph = graph
        self.quota = quota
        self.library = library
        self.upstream = upstream
        self.config = resolve_config(config)
        self.picker = picker or WeightedPicker()
        self.discovery = (
            QuotaAwareRelatedDiscovery(upstream, quota, store) if upstream is not None else None
        )

    async def load_track(self, track_id: str) -> Optional[Track]:
        """Catalogue lookup, then an upstream detail lookup (stored on success)."""
        try:
            track = await self.store.find_by_external_id(track_id)
        except Exception:
            logger.exception("[recommend] catalogue lookup failed for %s", track_id)
            return None
        if track is not None:
            return track
        if self.upstream is None or not self.quota.can_afford(QuotaOperation.DETAIL):
            return None
        try:
            found = await self.upstream.detail([track_id])
        except Exception:
            logger.warning("[recommend] upstream detail lookup failed for %s", track_id, exc_info=True)
            return None
        finally:
            self.quota.record(QuotaOperation.DETAIL)
        if not found:
            return None
        discovered = apply_inference(found[0])
        try:
            return await self.store.upsert_discovered(discovered)
        except Exception:
            logger.warning("[recommend] could not store %s", track_id, exc_info=True)
            return discovered

    async def recommend(
        self,
        current_track_id: str,
        user_id: Optional[str] = None,
        recent_history: Optional[List[str]] = None,
    ) -> Optional[RecommendationResult]:
        try:
            validate_external_id(current_track_id)
        except DataIntegrityError as exc:
            logger.warning("[recommend] %s", exc)
            return None

        current = await self.load_track(current_track_id)
        if current is None:
            logger.info("[recommend] unknown track %s", current_track_id)
            return None

        context = await build_session_context(
            current,
            user_id=user_id,
            recent_history=recent_history,
            library=self.library,
            config=self.config,
        )
        return await recommend_next(
            context,
            self.store,
            self.graph,
            config=self.config,
            picker=self.picker,
            discovery=self.discovery,
        )
