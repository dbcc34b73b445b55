"""Administrative surface: quota snapshot and cache tiers."""

from fastapi import APIRouter

from ..models import CacheClearRequest, CacheClearResponse
from ..services import QuotaSnapshot
from ..state import get_state

router = APIRouter()


@router.get("/quota", response_model=QuotaSnapshot)
def quota():
    return get_state().quota.snapshot()


@router.get("/cache")
async def cache_status():
    return await get_state().resolution.cache_status()


@router.post("/cache/clear", response_model=CacheClearResponse)
async def clear_cache(request: CacheClearRequest):
    removed = await get_state().resolution.clear(request.namespace)
    return CacheClearResponse(removed=removed)
