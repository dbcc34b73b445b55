"""
Listener library (ListenerLibrary) — in-memory implementation.

Library CRUD (favorites, blocks, follows) is owned by another service; this store only
needs to read a profile and count listens. The seed helpers exist for tests and local runs.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Set

from recommender.models.session import ListenerProfile

# Max recently played ids kept per listener.
RECENTLY_PLAYED_LIMIT = 50


class InMemoryLibraryStore:
    def __init__(self):
        self._liked: Dict[str, Set[str]] = defaultdict(set)
        self._blocked: Dict[str, Set[str]] = defaultdict(set)
        self._followed: Dict[str, Set[str]] = defaultdict(set)
        self._counts: Dict[str, Dict[str, int]] = defaultdict(dict)
        self._recent: Dict[str, List[str]] = defaultdict(list)

    def seed(
        self,
        user_id: str,
        liked: Iterable[str] = (),
        blocked: Iterable[str] = (),
        followed_channels: Iterable[str] = (),
        listen_counts: Dict[str, int] = None,
        recently_played: Iterable[str] = (),
    ) -> None:
        self._liked[user_id].update(liked)
        self._blocked[user_id].update(blocked)
        self._followed[user_id].update(followed_channels)
        self._counts[user_id].update(listen_counts or {})
        self._recent[user_id] = list(recently_played)[:RECENTLY_PLAYED_LIMIT]

    async def get_profile(self, user_id: str) -> ListenerProfile:
        return ListenerProfile(
            user_id=user_id,
            liked_track_ids=set(self._liked[user_id]),
            blocked_track_ids=set(self._blocked[user_id]),
            listen_counts=dict(self._counts[user_id]),
            followed_channel_ids=set(self._followed[user_id]),
            recently_played_ids=list(self._recent[user_id]),
        )

    async def record_listen(self, user_id: str, track_id: str) -> None:
        counts = self._counts[user_id]
        counts[track_id] = counts.get(track_id, 0) + 1
        recent = [t for t in self._recent[user_id] if t != track_id]
        self._recent[user_id] = [track_id, *recent][:RECENTLY_PLAYED_LIMIT]
