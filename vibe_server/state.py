"""Application state: stores, cache tiers, quota tracker and services, wired from ServerConfig."""

import logging
from datetime import timedelta
from typing import Optional

from recommender.errors import ConfigurationError
from recommender.models.config import RecommendationConfig
from recommender.transition_graph import TransitionGraph

from .config import ServerConfig, get_config
from .services import (
    BackgroundWorker,
    BestMatchService,
    DistributedCache,
    EventBus,
    FirestoreLibraryStore,
    FirestoreTrackStore,
    FirestoreTransitionStore,
    InMemoryLibraryStore,
    InMemoryTrackStore,
    InMemoryTransitionStore,
    ITunesLookup,
    ObjectStore,
    PlaybackService,
    QuotaConfig,
    QuotaTracker,
    RecommendationService,
    RedisCache,
    ResolutionCache,
    S3ObjectStore,
    UpstreamProvider,
    YouTubeProvider,
    create_async_client,
)

logger = logging.getLogger(__name__)


class AppState:
    """Global application state. Every optional tier is None when its credentials are missing."""

    def __init__(self, config: ServerConfig):
        self.config = config
        self.recommendation_config: RecommendationConfig = config.load_recommendation_config()

        self._create_stores(config)
        self.cache: Optional[DistributedCache] = self._create_cache(config)
        self.object_store: Optional[ObjectStore] = self._create_object_store(config)
        self.upstream: Optional[UpstreamProvider] = self._create_upstream(config)
        self.canonical = ITunesLookup()

        self.quota = QuotaTracker(QuotaConfig(daily_budget=config.quota_daily_budget))
        self.events = EventBus()
        self.graph = TransitionGraph(self.transition_store, self.recommendation_config)

        self.resolution = ResolutionCache(
            self.track_store,
            self.quota,
            self.events,
            cache=self.cache,
            object_store=self.object_store,
            upstream=self.upstream,
            signed_url_ttl=config.signed_url_ttl_seconds,
            search_ttl=config.search_cache_ttl_seconds,
        )
        self.best_match = BestMatchService(
            self.resolution, self.quota, canonical=self.canonical, upstream=self.upstream
        )
        self.playback = PlaybackService(
            self.track_store, self.graph, self.events, library=self.library_store
        )
        self.recommendations = RecommendationService(
            self.track_store,
            self.graph,
            self.quota,
            library=self.library_store,
            upstream=self.upstream,
            config=self.recommendation_config,
        )
        self.worker = BackgroundWorker(
            self.events,
            self.track_store,
            cache=self.cache,
            object_store=self.object_store,
            upstream=self.upstream,
            archive_threshold=config.archive_play_threshold,
        )

    def _create_stores(self, config: ServerConfig) -> None:
        """Firestore stores when DATA_SOURCE=firebase and credentials load, else in-memory."""
        if config.data_source == "firebase":
            try:
                client = create_async_client(
                    project_id=config.firebase_project_id,
                    credentials_path=config.firebase_credentials_path,
                )
            except ConfigurationError as e:
                logger.warning("[startup] Firestore disabled (%s); using in-memory stores", e)
            else:
                self.track_store = FirestoreTrackStore(client)
                self.transition_store = FirestoreTransitionStore(client)
                self.library_store = FirestoreLibraryStore(client)
                logger.info("[startup] Stores: Firestore")
                return
        self.track_store = InMemoryTrackStore()
        self.transition_store = InMemoryTransitionStore()
        self.library_store = InMemoryLibraryStore()
        logger.info("[startup] Stores: in-memory")

    def _create_cache(self, config: ServerConfig) -> Optional[DistributedCache]:
        try:
            cache = RedisCache(config.redis_url)
        except ConfigurationError as e:
            logger.info("[startup] Distributed cache disabled: %s", e)
            return None
        logger.info("[startup] Distributed cache: Redis")
        return cache

    def _create_object_store(self, config: ServerConfig) -> Optional[ObjectStore]:
        try:
            store = S3ObjectStore(
                config.s3_bucket,
                region=config.aws_region,
                access_key_id=config.aws_access_key_id,
                secret_access_key=config.aws_secret_access_key,
            )
        except ConfigurationError as e:
            logger.info("[startup] Object store disabled: %s", e)
            return None
        logger.info("[startup] Object store: s3://%s", config.s3_bucket)
        return store

    def _create_upstream(self, config: ServerConfig) -> Optional[UpstreamProvider]:
        try:
            provider = YouTubeProvider(
                config.youtube_api_key,
                stream_ttl=timedelta(seconds=config.audio_url_ttl_seconds),
            )
        except ConfigurationError as e:
            logger.info("[startup] Upstream provider disabled: %s", e)
            return None
        logger.info("[startup] Upstream provider: YouTube")
        return provider

    async def close(self) -> None:
        for client in (self.upstream, self.canonical, self.cache):
            close = getattr(client, "close", None)
            if close is not None:
                try:
                    await close()
                except Exception:
                    logger.warning("[shutdown] close failed for %s", type(client).__name__,
                                   exc_info=True)


_state: Optional[AppState] = None


def get_state() -> AppState:
    global _state
    if _state is None:
        config = get_config()
        _state = AppState(config)
    return _state


def set_state(state: Optional[AppState]) -> None:
    """Replace the global state (tests inject a pre-built AppState)."""
    global _state
    _state = state
