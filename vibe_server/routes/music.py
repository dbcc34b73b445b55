"""Search, best-match, audio resolution and play recording endpoints."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from ..models import (
    AudioResponse,
    BestMatchResponse,
    PlayRequest,
    PlayResponse,
    SearchResponse,
    to_track_card,
)
from ..state import get_state

router = APIRouter()


@router.get("/search", response_model=SearchResponse)
async def search(q: str = Query(..., min_length=1), limit: int = Query(20, ge=1, le=50)):
    state = get_state()
    result = await state.resolution.search(q, limit)
    return SearchResponse(
        query=result.query,
        tracks=[to_track_card(t) for t in result.tracks],
        source=result.tier.value,
        from_cache=result.from_cache,
    )


@router.get("/best-match", response_model=BestMatchResponse)
async def best_match(q: str = Query(..., min_length=1)):
    state = get_state()
    result = await state.best_match.find_best_match(q)
    return BestMatchResponse(
        track=to_track_card(result.track) if result.track else None,
        is_best_match=result.is_best_match,
        match_score=result.match_score,
        duration_delta=result.duration_delta,
    )


@router.get("/{track_id}/audio", response_model=AudioResponse)
async def audio(track_id: str):
    state = get_state()
    resolution = await state.resolution.resolve_audio(track_id)
    if resolution is None:
        raise HTTPException(status_code=422, detail=f"Malformed track id: {track_id}")
    return AudioResponse(
        track_id=resolution.track_id,
        url=resolution.url,
        source=resolution.tier.value,
        expires_at=resolution.expires_at,
        format=resolution.format,
        is_fallback=resolution.is_fallback,
    )


@router.post("/{track_id}/play", response_model=PlayResponse)
async def play(track_id: str, request: Optional[PlayRequest] = None):
    state = get_state()
    user_id = request.user_id if request else None
    play_count = await state.playback.record_play(track_id, user_id)
    if play_count is None:
        raise HTTPException(status_code=404, detail=f"Unknown track: {track_id}")
    return PlayResponse(track_id=track_id, play_count=play_count)
