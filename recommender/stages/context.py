"""
Session context builder — assembles a fresh SessionContext per recommendation call
from the request plus durable listener data.
"""

import logging
from typing import Iterable, List, Optional

from ..models.config import RecommendationConfig, DEFAULT_CONFIG
from ..models.session import ListenerProfile, SessionContext
from ..models.track import Track
from ..ports import ListenerLibrary
from ..utils.inference import ensure_inferred

logger = logging.getLogger(__name__)


def _bounded_history(ids: Iterable[str], limit: int) -> List[str]:
    """Most-recent-first history, duplicates removed, at most limit entries."""
    history: List[str] = []
    for track_id in ids:
        if track_id and track_id not in history:
            history.append(track_id)
        if len(history) >= limit:
            break
    return history


async def build_session_context(
    current_track: Track,
    user_id: Optional[str] = None,
    recent_history: Optional[List[str]] = None,
    library: Optional[ListenerLibrary] = None,
    config: RecommendationConfig = DEFAULT_CONFIG,
) -> SessionContext:
    """
    Build the context for one call.

    recent_history from the request (most recent first) takes priority; otherwise the
    listener's recently played list is used. Library failures degrade to an anonymous-like
    context rather than failing the call.
    """
    profile: Optional[ListenerProfile] = None
    if user_id and library is not None:
        try:
            profile = await library.get_profile(user_id)
        except Exception:
            logger.exception("[recommend] listener profile unavailable for %s", user_id)

    history_source = recent_history if recent_history is not None else (
        profile.recently_played_ids if profile else []
    )
    history = _bounded_history(history_source, config.recent_history_limit)

    if profile is None:
        return SessionContext(
            current_track=ensure_inferred(current_track),
            user_id=user_id,
            recent_history=history,
            is_anonymous=user_id is None,
        )

    affinity = list(dict.fromkeys([*sorted(profile.liked_track_ids), *profile.recently_played_ids]))
    return SessionContext(
        current_track=ensure_inferred(current_track),
        user_id=user_id,
        recent_history=history,
        liked_track_ids=set(profile.liked_track_ids),
        blocked_track_ids=set(profile.blocked_track_ids),
        listen_counts=dict(profile.listen_counts),
        followed_channel_ids=set(profile.followed_channel_ids),
        affinity_track_ids=affinity,
        is_anonymous=False,
    )
