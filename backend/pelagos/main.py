"""
Pelagos Payments API - Main Application Entry Point

Reconciles water-sports bookings with the payment gateway:
- Signed webhook and client-verification entry points
- Idempotent payment/booking transitions guarded by conditional writes
- Seat ledger and hold cleanup through a retried outbox
- Structured logging with request correlation, Prometheus metrics
"""

import asyncio
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pelagos.core.config import get_settings
from pelagos.core.logging import setup_logging, get_logger
from pelagos.core.metrics import metrics_endpoint
from pelagos.api.router import api_router
from pelagos.api.middleware import RequestLoggingMiddleware
from pelagos.api.deps import close_payment_gateway
from pelagos.db.session import AsyncSessionLocal
from pelagos.services import cleanup_queue
from pelagos.services.cache_service import get_redis, close_redis, get_cache_stats

settings = get_settings()
logger = get_logger(__name__)


async def _cleanup_drain_loop() -> None:
    """Background task: retry pending seat decrements and hold releases."""
    while True:
        try:
            async with AsyncSessionLocal() as db:
                await cleanup_queue.drain_pending(
                    db,
                    limit=settings.CLEANUP_BATCH_SIZE,
                    max_attempts=settings.CLEANUP_MAX_ATTEMPTS,
                )
        except Exception as e:
            logger.error("cleanup_drain_error", error=str(e))
        await asyncio.sleep(settings.CLEANUP_INTERVAL_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    drain_task = None
    if settings.CLEANUP_WORKER_ENABLED:
        drain_task = asyncio.create_task(_cleanup_drain_loop())

    yield

    if drain_task:
        drain_task.cancel()
        try:
            await drain_task
        except asyncio.CancelledError:
            pass
    await close_payment_gateway()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Payment verification and seat reconciliation for bookings",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
