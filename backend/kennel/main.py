"""
Kennel Booking API - Main Application Entry Point

Booking core for a dog daycare and boarding facility:
- Overbooking-proof capacity holds via atomic conditional updates
- Time-limited holds released by a background sweeper
- Payment webhooks reconciled idempotently against the hold ledger
- Calendar-day pricing
- Redis-cached capacity overview, structured logging, Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kennel.core.config import get_settings
from kennel.core.logging import setup_logging, get_logger
from kennel.core.metrics import metrics_endpoint
from kennel.api.router import api_router
from kennel.api.middleware import RequestLoggingMiddleware
from kennel.jobs.sweeper import ReservationSweeper
from kennel.services.cache_service import get_redis, close_redis, get_cache_stats

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    # Initialize Redis connection
    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without overview cache")

    sweeper = None
    if settings.SWEEPER_ENABLED:
        sweeper = ReservationSweeper()
        sweeper.start()
    app.state.sweeper = sweeper

    yield

    # Cleanup
    if sweeper:
        await sweeper.stop()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Kennel booking API with overbooking-proof capacity holds",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

# Routes
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    sweeper = getattr(app.state, "sweeper", None)
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
        "sweeper": "running" if sweeper and sweeper.running else "disabled",
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_endpoint()
