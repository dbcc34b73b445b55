"""
Firestore transition log: transitions/{auto-id}, one document per TransitionRecord.

Used when DATA_SOURCE=firebase. Reads filter on from_track_id + timestamp in Firestore
and on completed/skipped in Python.
"""

import logging
from datetime import datetime
from typing import List

from google.cloud.firestore import AsyncClient
from google.cloud.firestore_v1.base_query import FieldFilter

from recommender.models.track import as_utc
from recommender.models.transition import TransitionRecord

logger = logging.getLogger(__name__)

TRANSITIONS = "transitions"
PURGE_BATCH_SIZE = 500


class FirestoreTransitionStore:
    def __init__(self, client: AsyncClient):
        self._db = client
        self._col = client.collection(TRANSITIONS)

    async def append(self, record: TransitionRecord) -> None:
        data = record.model_dump()
        data["source"] = record.source.value
        await self._col.add(data)

    async def _collect(self, query) -> List[TransitionRecord]:
        out = []
        async for doc in query.stream():
            out.append(TransitionRecord.model_validate(doc.to_dict()))
        return out

    async def find_from(
        self,
        from_track_id: str,
        since: datetime,
        *,
        completed_only: bool = True,
        exclude_skipped: bool = False,
    ) -> List[TransitionRecord]:
        query = self._col.where(filter=FieldFilter("from_track_id", "==", from_track_id)).where(
            filter=FieldFilter("timestamp", ">=", as_utc(since))
        )
        records = await self._collect(query)
        return [
            r for r in records
            if (r.completed or not completed_only) and not (exclude_skipped and r.skipped)
        ]

    async def find_since(
        self, since: datetime, *, completed_only: bool = False
    ) -> List[TransitionRecord]:
        query = self._col.where(filter=FieldFilter("timestamp", ">=", as_utc(since)))
        records = await self._collect(query)
        return [r for r in records if r.completed or not completed_only]

    async def purge_before(self, cutoff: datetime) -> int:
        removed = 0
        query = self._col.where(filter=FieldFilter("timestamp", "<", as_utc(cutoff)))
        while True:
            docs = [doc async for doc in query.limit(PURGE_BATCH_SIZE).stream()]
            if not docs:
                break
            batch = self._db.batch()
            for doc in docs:
                batch.delete(doc.reference)
            await batch.commit()
            removed += len(docs)
        return removed
