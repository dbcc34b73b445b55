"""Register all route modules on the FastAPI app."""

from fastapi import FastAPI

from .root import router as root_router
from .recommend import router as recommend_router
from .music import router as music_router
from .admin import router as admin_router


def register_routes(app: FastAPI) -> None:
    """Attach all API routers to the app."""
    app.include_router(root_router)
    app.include_router(recommend_router, prefix="/api/recommend", tags=["recommend"])
    app.include_router(music_router, prefix="/api/music", tags=["music"])
    app.include_router(admin_router, prefix="/api/admin", tags=["admin"])
