"""Backing logic: stores, cache tiers, upstream clients, and the services built on them."""

from .background_worker import BackgroundWorker
from .best_match import BestMatchResult, BestMatchService
from .canonical_lookup import CanonicalLookup, CanonicalRecord, ITunesLookup
from .distributed_cache import DistributedCache, MemoryCache, RedisCache
from .events import AudioResolved, CachePurge, EventBus, PlayRecorded, SearchResolved
from .firestore_client import create_async_client
from .firestore_library_store import FirestoreLibraryStore
from .firestore_track_store import FirestoreTrackStore
from .firestore_transition_store import FirestoreTransitionStore
from .library_store import InMemoryLibraryStore
from .match_scoring import MatchScore, MatchScoringConfig, score_match
from .object_store import ObjectStore, S3ObjectStore
from .playback import PlaybackService
from .quota_tracker import PriorityLevel, QuotaConfig, QuotaOperation, QuotaSnapshot, QuotaTracker
from .recommendation_service import QuotaAwareRelatedDiscovery, RecommendationService
from .resolution_cache import ResolutionCache, normalize_query
from .track_store import InMemoryTrackStore, TrackStore
from .transition_store import InMemoryTransitionStore
from .upstream_provider import AudioStream, UpstreamProvider, YouTubeProvider

__all__ = [
    "AudioResolved",
    "AudioStream",
    "BackgroundWorker",
    "BestMatchResult",
    "BestMatchService",
    "CachePurge",
    "CanonicalLookup",
    "CanonicalRecord",
    "DistributedCache",
    "EventBus",
    "FirestoreLibraryStore",
    "FirestoreTrackStore",
    "FirestoreTransitionStore",
    "ITunesLookup",
    "InMemoryLibraryStore",
    "InMemoryTrackStore",
    "InMemoryTransitionStore",
    "MatchScore",
    "MatchScoringConfig",
    "MemoryCache",
    "ObjectStore",
    "PlayRecorded",
    "PlaybackService",
    "PriorityLevel",
    "QuotaAwareRelatedDiscovery",
    "QuotaConfig",
    "QuotaOperation",
    "QuotaSnapshot",
    "QuotaTracker",
    "RecommendationService",
    "RedisCache",
    "ResolutionCache",
    "S3ObjectStore",
    "SearchResolved",
    "TrackStore",
    "UpstreamProvider",
    "YouTubeProvider",
    "create_async_client",
    "normalize_query",
    "score_match",
]
