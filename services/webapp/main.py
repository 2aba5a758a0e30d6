"""
Entrypoint for the Furon scanner web service.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from services.jobs.scheduler import shutdown_scheduler, start_scheduler
from services.webapp import routes
from services.webapp.dependencies import get_orchestrator

try:  # pragma: no cover - config is optional for tests
    from config import SCAN_INTERVAL_SECONDS
except ImportError:  # pragma: no cover
    SCAN_INTERVAL_SECONDS = 0


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if SCAN_INTERVAL_SECONDS > 0:
        start_scheduler(get_orchestrator(), SCAN_INTERVAL_SECONDS)
    try:
        yield
    finally:
        shutdown_scheduler()
        if get_orchestrator.cache_info().currsize:
            try:
                await get_orchestrator().aclose()
            except Exception as exc:
                logger.warning("Failed to close scanner clients cleanly: %s", exc)


app = FastAPI(
    title="furon-scanner",
    description="LLM-assisted NSE market scanner",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(routes.router)
