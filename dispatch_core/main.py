"""
Booking Dispatch Core - Main Application Entry Point

Coordinates the booking / dispatch lifecycle and booking analytics:
- Two coupled state machines guarded by optimistic version checks
- One-directional dispatch -> booking propagation
- Single-pass, partition-parallel analytics with Redis report caching
- Structured logging with request correlation, Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dispatch_core.core.config import get_settings
from dispatch_core.core.exceptions import AppException
from dispatch_core.core.logging import setup_logging, get_logger
from dispatch_core.core.metrics import metrics_endpoint
from dispatch_core.api.router import api_router
from dispatch_core.api.middleware import RequestLoggingMiddleware
from dispatch_core.db.session import dispose_engine
from dispatch_core.services.cache_service import get_redis, close_redis, get_cache_stats
from dispatch_core.store.factory import get_entity_store, reset_entity_store

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
        store_backend=settings.ENTITY_STORE_BACKEND,
    )

    get_entity_store()

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without report cache")

    yield

    await close_redis()
    await get_entity_store().close()
    reset_entity_store()
    await dispose_engine()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Booking and dispatch lifecycle coordination with booking analytics",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=exc.headers,
    )


# CORS
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
        "store": settings.ENTITY_STORE_BACKEND,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"])
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
