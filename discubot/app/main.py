"""
Discubot - turns team discussions into tracked tasks.

FastAPI application entry point. Run with::

    uvicorn discubot.app.main:app
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from discubot import __version__
from discubot.adapters import registered_source_types
from discubot.app.api import discussions_router, figma_router, notion_router, slack_router
from discubot.app.dependencies import get_ai_service, get_settings, initialize_services, shutdown_services

API_PREFIX = "/api/v1"

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the store and shared clients on startup; close them on shutdown."""
    logger.info(f"[app] Starting Discubot {__version__} (storage={settings.storage})")
    await initialize_services()

    yield

    try:
        await shutdown_services()
    except Exception as e:
        logger.error(f"[app] Shutdown did not complete cleanly: {e}", exc_info=True)
    else:
        logger.info("[app] Discubot stopped")


def create_app() -> FastAPI:
    application = FastAPI(
        title="Discubot",
        description="Turns Slack, Figma and Notion discussions into Notion tasks",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    for router in (slack_router, figma_router, notion_router, discussions_router):
        application.include_router(router, prefix=API_PREFIX)
    return application


app = create_app()


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    return {"service": settings.service_name, "version": __version__}


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, Any]:
    """Storage mode, accepted sources and analysis cache usage."""
    report: dict[str, Any] = {
        "status": "healthy",
        "environment": settings.environment,
        "storage": settings.storage,
        "sources": [s.value for s in registered_source_types()],
    }
    try:
        report["analysis_cache"] = get_ai_service().cache_stats()
    except Exception as e:
        logger.warning(f"[app] Analysis service unavailable: {e}")
        report["status"] = "degraded"
        report["analysis_cache"] = None
    return report


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("discubot.app.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
