"""
TuitionHub API - Main Application Entry Point

This module initializes and configures the FastAPI application including:
- Database and Redis connections
- Real-time relay (WebSocket rooms, Redis fan-out)
- Background job scheduler
- CORS middleware
- API routing
- Health check endpoints
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware

from tuitionhub.api import api_router
from tuitionhub.core import redis as redis_module
from tuitionhub.core.config import settings
from tuitionhub.core.database import DatabaseManager
from tuitionhub.core.redis import close_redis, init_redis
from tuitionhub.core.scheduler import (
    list_registered_jobs,
    start_scheduler,
    stop_scheduler,
    trigger_job_manually,
)
from tuitionhub.modules.realtime import RealtimeRelay
from tuitionhub.modules.realtime import router as realtime_router
from tuitionhub.modules.tuition_posts import register_tuition_post_jobs

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events including:
    - Redis connection
    - Database connection and its reconnect supervisor
    - Real-time relay
    - Background job scheduler
    """
    # Startup
    logger.info(f"Starting TuitionHub API in {settings.python_env} mode...")

    # Initialize Redis
    try:
        await init_redis()
        logger.info("[OK] Redis connected")
    except Exception as e:
        logger.error(f"[FAIL] Redis connection failed: {e}")
        if settings.is_production:
            raise

    # Initialize Database
    database = DatabaseManager(settings)
    app.state.database = database
    try:
        await database.init()
        logger.info("[OK] Database connected")
    except Exception as e:
        logger.error(f"[FAIL] Database connection failed: {e}")
        if settings.is_production:
            raise
    database.start_supervisor()

    # Real-time relay, fanned out through Redis when it is available
    relay = RealtimeRelay(
        redis_module.redis_client, reconnect_interval=settings.realtime_reconnect_interval
    )
    app.state.relay = relay
    relay.start_listener()

    # Initialize Background Job Scheduler
    try:
        register_tuition_post_jobs(database)
        await start_scheduler()
        logger.info("[OK] Background scheduler started")
    except Exception as e:
        logger.error(f"[FAIL] Background scheduler failed to start: {e}")
        if settings.is_production:
            raise

    yield  # Application runs here

    # Shutdown
    logger.info("Shutting down TuitionHub API...")

    # Stop the scheduler first (wait for running jobs)
    await stop_scheduler()
    logger.info("[OK] Background scheduler stopped")

    await relay.close()
    await close_redis()
    await database.close()
    logger.info("[OK] Cleanup complete")


app = FastAPI(
    title="TuitionHub API",
    description="Tuition marketplace: guardians post tuition jobs, tutors apply",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api")
app.include_router(realtime_router, tags=["Real-time"])

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint - API welcome message."""
    return {
        "message": "Welcome to TuitionHub API",
        "status": "running",
        "environment": settings.python_env,
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Liveness check endpoint for container orchestration."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check(request: Request) -> dict[str, str]:
    """
    Readiness check endpoint.

    Returns 503 while the database is unreachable.
    """
    database: DatabaseManager = request.app.state.database
    if not await database.health_check():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "STORAGE_UNAVAILABLE",
                "message": "Database temporarily unavailable.",
            },
        )
    return {"status": "ready"}


# ============================================
# Background Job Debug Endpoints
# ============================================
# Development only. In production, jobs run on their schedule.

if settings.is_development:

    @app.get("/debug/jobs", tags=["Debug"])
    async def list_jobs():
        """List all registered background jobs and their next run time."""
        return {"jobs": list_registered_jobs()}

    @app.post("/debug/jobs/{job_id}/trigger", tags=["Debug"])
    async def trigger_job(job_id: str):
        """
        Manually trigger a background job.

        Args:
            job_id: The ID of the job to trigger. Available jobs:
                - tuition_posts_expire_posts

        Raises:
            HTTPException 400: If job_id is not found.
        """
        try:
            return await trigger_job_manually(job_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
