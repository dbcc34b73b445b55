"""Next-track recommendation and transition recording endpoints."""

import logging

from fastapi import APIRouter, HTTPException

from recommender.errors import ExhaustionError

from ..models import (
    RecommendDebugInfo,
    RecommendRequest,
    RecommendResponse,
    TransitionRequest,
    TransitionResponse,
    to_track_card,
)
from ..state import get_state

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/next", response_model=RecommendResponse)
async def next_track(request: RecommendRequest):
    state = get_state()
    try:
        result = await state.recommendations.recommend(
            request.current_track_id,
            user_id=request.user_id,
            recent_history=request.recent_history,
        )
    except ExhaustionError as e:
        logger.error("[recommend] %s", e)
        raise HTTPException(status_code=503, detail="No tracks available to recommend")
    if result is None:
        raise HTTPException(status_code=404, detail=f"Unknown track: {request.current_track_id}")

    debug = None
    if request.debug and result.debug is not None:
        debug = RecommendDebugInfo(
            candidate_count=result.debug.candidate_count,
            filter_stats=result.debug.filter_stats.model_dump(),
            top_scores=[
                {
                    "id": s.track.track_id,
                    "score": round(s.score, 2),
                    "source": s.source.value,
                    "breakdown": s.breakdown.model_dump(),
                }
                for s in result.debug.top_scores
            ],
            used_fallback=result.debug.used_fallback,
            fallback_rung=result.debug.fallback_rung,
        )
    return RecommendResponse(
        next_track=to_track_card(result.next_track),
        method=result.method.value,
        alternatives=[to_track_card(t) for t in result.alternatives],
        debug=debug,
    )


@router.post("/transition", response_model=TransitionResponse)
async def record_transition(request: TransitionRequest):
    state = get_state()
    record = await state.playback.record_transition(
        request.from_track_id,
        request.to_track_id,
        request.session_id,
        user_id=request.user_id,
        completed=request.completed,
        skipped=request.skipped,
        source=request.source,
    )
    if record is None:
        raise HTTPException(status_code=422, detail="Malformed track id")
    return TransitionResponse(recorded=True)
