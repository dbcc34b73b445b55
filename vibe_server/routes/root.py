"""Root and health endpoints."""

from fastapi import APIRouter

from ..state import get_state

router = APIRouter()


@router.get("/")
def root():
    state = get_state()
    return {
        "name": "VibeShuffle Music API",
        "version": "1.0.0",
        "data_source": state.config.data_source,
        "endpoints": {
            "recommend": ["/api/recommend/next", "/api/recommend/transition"],
            "music": [
                "/api/music/search",
                "/api/music/best-match",
                "/api/music/{track_id}/audio",
                "/api/music/{track_id}/play",
            ],
            "admin": ["/api/admin/quota", "/api/admin/cache", "/api/admin/cache/clear"],
        },
    }


@router.get("/api/health")
def health():
    state = get_state()
    return {
        "status": "healthy",
        "tiers": {
            "object_store": state.object_store is not None,
            "distributed_cache": state.cache is not None,
            "upstream": state.upstream is not None,
        },
        "quota": {
            "priority": state.quota.priority_level().value,
            "percent_used": round(state.quota.fraction_used() * 100, 2),
        },
        "worker_running": state.worker.running,
    }
