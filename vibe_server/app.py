"""
VibeShuffle Music API — FastAPI app factory.

Use: uvicorn vibe_server.app:app
Or:  from vibe_server import app
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routes import register_routes
from .state import get_state

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    state = get_state()
    ok, errors = state.config.validate()
    for error in errors:
        logger.warning("[startup] config: %s", error)
    state.worker.start()
    logger.info("[startup] VibeShuffle API ready (data source: %s, config ok: %s)",
                state.config.data_source, ok)
    try:
        yield
    finally:
        await state.worker.stop()
        await state.close()


def create_app() -> FastAPI:
    """Build FastAPI app with CORS, routes, and the background worker lifespan."""
    app = FastAPI(
        title="VibeShuffle Music API",
        description="Endless-session next-track recommendation and tiered audio resolution",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_routes(app)
    return app


app = create_app()
