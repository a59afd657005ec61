"""MatchSync API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map MatchSyncError -> structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Runtime (queue, executor, monitor) started and stopped by the lifespan

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Error handlers in api/error_handlers.py keep this module's imports small
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from matchsync.api.error_handlers import register_error_handlers
from matchsync.api.routes import actions, connectivity, events, health, matches, queue
from matchsync.config import get_settings
from matchsync.infrastructure.observability import setup_logging
from matchsync.runtime import init_runtime, shutdown_runtime

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    rt = await init_runtime(settings)
    await rt.monitor.check()
    logger.info("MatchSync API started")
    yield
    logger.info("MatchSync API shutting down")
    await shutdown_runtime()


app = FastAPI(title="MatchSync API", version="1.0.0", lifespan=lifespan)

# CORS — configured from settings, not hardcoded
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes — explicit registration
app.include_router(health.router)
app.include_router(actions.router)
app.include_router(queue.router)
app.include_router(connectivity.router)
app.include_router(matches.router)
app.include_router(events.router)

register_error_handlers(app)
