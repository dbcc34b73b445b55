"""Play and transition recording."""

import logging
from typing import Optional

from recommender.errors import DataIntegrityError, NotFoundError, validate_external_id
from recommender.models.transition import TransitionRecord, TransitionSource
from recommender.ports import ListenerLibrary
from recommender.transition_graph import TransitionGraph

from .events import EventBus, PlayRecorded
from .track_store import TrackStore

logger = logging.getLogger(__name__)


class PlaybackService:
    def __init__(
        self,
        store: TrackStore,
        graph: TransitionGraph,
        events: EventBus,
        library: Optional[ListenerLibrary] = None,
    ):
        self.store = store
        self.graph = graph
        self.events = events
        self.library = library

    async def record_play(self, track_id: str, user_id: Optional[str] = None) -> Optional[int]:
        """
        Count one play. Returns the new play count, or None for an unknown track.

        The listen is added to the listener's library when a user is given; a library
        failure is logged and does not undo the play.
        """
        try:
            play_count = await self.store.increment_play_count(track_id)
        except NotFoundError:
            logger.info("[playback] play for unknown track %s ignored", track_id)
            return None

        if user_id and self.library is not None:
            try:
                await self.library.record_listen(user_id, track_id)
            except Exception:
                logger.warning("[playback] could not record listen for %s", user_id, exc_info=True)

        self.events.emit(PlayRecorded(track_id=track_id, play_count=play_count, user_id=user_id))
        return play_count

    async def record_transition(
        self,
        from_track_id: str,
        to_track_id: str,
        session_id: str,
        user_id: Optional[str] = None,
        completed: bool = True,
        skipped: bool = False,
        source: TransitionSource = TransitionSource.AUTO,
    ) -> Optional[TransitionRecord]:
        try:
            validate_external_id(from_track_id)
            validate_external_id(to_track_id)
        except DataIntegrityError as exc:
            logger.warning("[transitions] skipped: %s", exc)
            return None
        return await self.graph.record(
            from_track_id,
            to_track_id,
            session_id,
            user_id=user_id,
            completed=completed,
            skipped=skipped,
            source=source,
        )
