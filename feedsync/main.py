"""
FastAPI application entry point.
"""

import logging
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from feedsync import __version__
from feedsync.api.files import router as files_router
from feedsync.api.v1.router import router as v1_router
from feedsync.config import get_settings
from feedsync.core.scheduler import ACTION_FEED_GENERATION, ACTION_HANDLE_SYNC, RedisScheduler, SchedulerWorker
from feedsync.deps import build_product_sync, close_clients, close_redis, get_redis
from feedsync.schemas.common import HealthResponse

logger = logging.getLogger(__name__)


async def start_worker() -> Optional[SchedulerWorker]:
    """Initialize the sync schedule and start the background worker."""
    settings = get_settings()
    try:
        sync = await build_product_sync()
    except ValueError as e:
        logger.warning(f"Feed sync disabled: {e}")
        return None

    try:
        await sync.maybe_init()
    except Exception as e:
        # Redis may not be reachable yet
        logger.error(f"Could not initialize feed sync schedule: {e}")

    worker = SchedulerWorker(
        RedisScheduler(await get_redis(), prefix=settings.key_prefix),
        handlers={
            ACTION_HANDLE_SYNC: sync.handle_sync,
            ACTION_FEED_GENERATION: sync.handle_feed_generation,
        },
        poll_interval=settings.worker_poll_seconds,
        lock_ttl=settings.lock_ttl_seconds,
        prefix=settings.key_prefix
    )
    worker.start()
    return worker


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown."""
    # Startup
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    worker = await start_worker()
    yield
    # Shutdown
    if worker is not None:
        await worker.stop()
    await close_clients()
    await close_redis()


app = FastAPI(
    title="Feed Sync API",
    description="Resumable product feed generation and registration",
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(v1_router, prefix="/api/v1")
app.include_router(files_router)


@app.get("/api/v1/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(ok=True)


@app.get("/api/v1/health/redis", tags=["health"])
async def health_check_redis():
    """Check Redis connection health."""
    try:
        redis = await get_redis()
        await redis.ping()
        return {"ok": True, "redis": "connected"}
    except Exception as e:
        return {"ok": False, "redis": "disconnected", "error": str(e)}


@app.get("/", tags=["root"])
async def root():
    """Root endpoint."""
    return {
        "message": "Feed Sync API",
        "version": __version__,
        "docs": "/docs"
    }
