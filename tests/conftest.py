"""
Shared fixtures: deterministic random source, controllable clock, track factory,
in-memory stores and a scripted upstream provider.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from recommender.errors import TransientProviderError
from recommender.models.track import Track
from recommender.stages.selection import WeightedPicker
from recommender.transition_graph import TransitionGraph
from vibe_server.services.events import EventBus
from vibe_server.services.library_store import InMemoryLibraryStore
from vibe_server.services.quota_tracker import QuotaTracker
from vibe_server.services.track_store import InMemoryTrackStore
from vibe_server.services.transition_store import InMemoryTransitionStore
from vibe_server.services.upstream_provider import AudioStream

NOW = datetime(2025, 6, 15, 18, 0, tzinfo=timezone.utc)


def tid(name: str) -> str:
    """Pad a short name to a valid 11-char provider id (e.g. "A" -> "A__________")."""
    return (name + "_" * 11)[:11]


def make_track(
    name: str,
    genres: Sequence[str] = ("pop",),
    language: str = "en",
    culture_tags: Sequence[str] = (),
    **fields,
) -> Track:
    fields.setdefault("title", f"Song {name}")
    fields.setdefault("artist", f"Artist {name}")
    return Track(
        external_id=tid(name),
        genres=list(genres),
        language=language,
        culture_tags=list(culture_tags),
        **fields,
    )


class FixedRandom:
    """Returns the given values in order, then repeats the last one."""

    def __init__(self, *values: float):
        self.values = list(values) or [0.0]
        self.calls = 0

    def random(self) -> float:
        value = self.values[min(self.calls, len(self.values) - 1)]
        self.calls += 1
        return value


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeUpstream:
    """Scripted UpstreamProvider. Failures are raised from *_failures counters first."""

    def __init__(self):
        self.search_results: List[Track] = []
        self.trending_results: List[Track] = []
        self.detail_results: Dict[str, Track] = {}
        self.related_results: List[Track] = []
        self.audio_failures = 0
        self.search_failures = 0
        self.audio_calls = 0
        self.search_calls: List[Tuple[str, int]] = []
        self.download_calls = 0
        self.stream_ttl = timedelta(hours=6)
        self.clock: Optional[FakeClock] = None

    async def search(self, query: str, max_results: int = 20) -> List[Track]:
        self.search_calls.append((query, max_results))
        if self.search_failures:
            self.search_failures -= 1
            raise TransientProviderError("search unavailable")
        return self.search_results[:max_results]

    async def trending(self, max_results: int = 20) -> List[Track]:
        return self.trending_results[:max_results]

    async def detail(self, ids: List[str]) -> List[Track]:
        return [self.detail_results[i] for i in ids if i in self.detail_results]

    async def related_by(self, track_id: str, max_results: int = 10) -> List[Track]:
        return self.related_results[:max_results]

    async def audio_stream(self, track_id: str) -> AudioStream:
        self.audio_calls += 1
        if self.audio_failures:
            self.audio_failures -= 1
            raise TransientProviderError("extraction failed")
        now = self.clock() if self.clock else datetime.now(timezone.utc)
        return AudioStream(
            url=f"https://stream.example/{track_id}.webm",
            format="webm",
            expires_at=now + self.stream_ttl,
        )

    async def download_audio(self, track_id: str) -> Tuple[bytes, str]:
        self.download_calls += 1
        return b"audio-bytes", "m4a"


class FakeObjectStore:
    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.signed: List[str] = []

    async def put(self, track_id: str, fmt: str, body: bytes) -> str:
        key = f"audio/{track_id}.{fmt}"
        self.objects[key] = body
        return key

    async def get(self, track_id: str, fmt: str) -> Optional[bytes]:
        return self.objects.get(f"audio/{track_id}.{fmt}")

    async def head(self, track_id: str, fmt: str) -> Optional[Dict]:
        body = self.objects.get(f"audio/{track_id}.{fmt}")
        return {"size": len(body)} if body is not None else None

    async def delete(self, track_id: str, fmt: str) -> None:
        self.objects.pop(f"audio/{track_id}.{fmt}", None)

    async def signed_url(self, track_id: str, fmt: str, expires_in: int) -> str:
        self.signed.append(track_id)
        return f"https://bucket.example/audio/{track_id}.{fmt}?X-Amz-Expires={expires_in}"


async def no_sleep(_delay: float) -> None:
    return None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def track_store() -> InMemoryTrackStore:
    return InMemoryTrackStore()


@pytest.fixture
def transition_store() -> InMemoryTransitionStore:
    return InMemoryTransitionStore()


@pytest.fixture
def library() -> InMemoryLibraryStore:
    return InMemoryLibraryStore()


@pytest.fixture
def graph(transition_store, clock) -> TransitionGraph:
    return TransitionGraph(transition_store, clock=clock)


@pytest.fixture
def quota(clock) -> QuotaTracker:
    return QuotaTracker(clock=clock)


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def upstream(clock) -> FakeUpstream:
    provider = FakeUpstream()
    provider.clock = clock
    return provider


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def picker() -> WeightedPicker:
    return WeightedPicker(FixedRandom(0.5))
