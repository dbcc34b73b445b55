"""
Firestore listener library: users/{user_id} document plus users/{user_id}/listens.

The user document carries liked_track_ids, blocked_track_ids, followed_channel_ids and
recently_played_ids (most recent first); each listens/{track_id} document holds a count.
"""

from typing import Dict

from google.cloud import firestore
from google.cloud.firestore import AsyncClient

from recommender.models.session import ListenerProfile

from .library_store import RECENTLY_PLAYED_LIMIT

USERS = "users"
LISTENS = "listens"


class FirestoreLibraryStore:
    def __init__(self, client: AsyncClient):
        self._db = client
        self._users = client.collection(USERS)

    async def get_profile(self, user_id: str) -> ListenerProfile:
        user_ref = self._users.document(user_id)
        doc = await user_ref.get()
        data = doc.to_dict() if doc.exists else {}
        counts: Dict[str, int] = {}
        async for listen in user_ref.collection(LISTENS).stream():
            counts[listen.id] = int((listen.to_dict() or {}).get("count", 0))
        return ListenerProfile(
            user_id=user_id,
            liked_track_ids=set(data.get("liked_track_ids") or []),
            blocked_track_ids=set(data.get("blocked_track_ids") or []),
            listen_counts=counts,
            followed_channel_ids=set(data.get("followed_channel_ids") or []),
            recently_played_ids=list(data.get("recently_played_ids") or []),
        )

    async def record_listen(self, user_id: str, track_id: str) -> None:
        user_ref = self._users.document(user_id)
        await user_ref.collection(LISTENS).document(track_id).set(
            {"count": firestore.Increment(1), "last_played": firestore.SERVER_TIMESTAMP},
            merge=True,
        )
        doc = await user_ref.get()
        recent = list((doc.to_dict() or {}).get("recently_played_ids") or []) if doc.exists else []
        recent = [track_id, *[t for t in recent if t != track_id]][:RECENTLY_PLAYED_LIMIT]
        await user_ref.set({"recently_played_ids": recent}, merge=True)
