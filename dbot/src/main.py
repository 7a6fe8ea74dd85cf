"""
D-BOT - Application Entry Point
================================
FastAPI application factory.  The lifespan builds the shared
``EventStore`` and ``EventRAGManager`` once, parks the engine on
``app.state.rag`` for the route dependencies, and closes the MongoDB
singleton on shutdown.

Usage:
    uvicorn dbot.src.main:create_app --factory --port 5000
    python -m dbot.src.main
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from dbot.config.settings import settings
from dbot.src.api.routes import router
from dbot.src.core.rag_engine import EventRAGManager
from dbot.src.database.event_store import EventStore, close_mongo_client
from dbot.src.utils.logger import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    t_start = time.perf_counter()
    store = EventStore()
    app.state.rag = EventRAGManager(store)
    logger.info("D-BOT ready: %r, backend=%s (%.1fms)", store, settings.AI_BACKEND, (time.perf_counter() - t_start) * 1000)
    try:
        yield
    finally:
        close_mongo_client()
        logger.info("D-BOT shut down.")


def create_app() -> FastAPI:
    app = FastAPI(title="D-BOT Event Assistant", lifespan=lifespan)
    app.include_router(router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "env": settings.ENV}

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host=settings.API_HOST, port=settings.API_PORT)
