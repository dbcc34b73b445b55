"""
Collaborator protocols consumed by the recommendation pipeline.

The pipeline only reads through these; the service layer provides in-memory and
Firestore implementations (vibe_server.services). All methods are async.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Protocol

from .models.session import ListenerProfile
from .models.track import Track
from .models.transition import TransitionRecord


class TrackCatalog(Protocol):
    """Read side of the track store used by candidate generation and the fallback ladder."""

    async def find_by_external_id(self, external_id: str) -> Optional[Track]:
        ...

    async def find_by_external_ids(self, external_ids: Iterable[str]) -> List[Track]:
        """Tracks for the given ids, in input order; unknown ids are skipped."""
        ...

    async def find_trending(
        self, published_since: datetime, min_views: int, limit: int
    ) -> List[Track]:
        """Tracks published since the cutoff with at least min_views, by views then plays."""
        ...

    async def find_related(
        self,
        channel_id: Optional[str],
        artist: Optional[str],
        exclude_id: str,
        limit: int,
    ) -> List[Track]:
        """Same channel OR same artist, excluding exclude_id, most played first."""
        ...

    async def find_popular(
        self,
        exclude_ids: Iterable[str] = (),
        genres: Optional[Iterable[str]] = None,
        limit: int = 20,
    ) -> List[Track]:
        """Most popular tracks (plays, then views); optionally restricted to any of genres."""
        ...


class TransitionLogStore(Protocol):
    """Append-only persistence for TransitionRecord plus time-filtered reads."""

    async def append(self, record: TransitionRecord) -> None:
        ...

    async def find_from(
        self,
        from_track_id: str,
        since: datetime,
        *,
        completed_only: bool = True,
        exclude_skipped: bool = False,
    ) -> List[TransitionRecord]:
        ...

    async def find_since(
        self, since: datetime, *, completed_only: bool = False
    ) -> List[TransitionRecord]:
        ...

    async def purge_before(self, cutoff: datetime) -> int:
        """Delete records older than cutoff; return how many were removed."""
        ...


class ListenerLibrary(Protocol):
    """Durable per-listener data: likes, blocks, listen counts, follows, recents."""

    async def get_profile(self, user_id: str) -> ListenerProfile:
        ...

    async def record_listen(self, user_id: str, track_id: str) -> None:
        ...


class RelatedDiscovery(Protocol):
    """Optional extra source of related tracks (e.g. the upstream provider)."""

    async def related(self, track: Track, limit: int) -> List[Track]:
        ...
