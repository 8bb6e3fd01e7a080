"""
washQ API - Main Application Entry Point

Laundry machine booking for shared laundry rooms:
- Book a free machine or join the queue of a busy one
- One active booking per user, serialized per user and per machine
- "Machine ready" notifications when a wash finishes
- Redis caching of the machine list with invalidation on every change
- Structured logging with request correlation
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from washq.core.config import get_settings
from washq.core.exceptions import AuthError, WashQError
from washq.core.logging import setup_logging, get_logger
from washq.core.metrics import metrics_endpoint
from washq.api.router import api_router
from washq.api.middleware import RequestLoggingMiddleware
from washq.infrastructure.redis_client import get_redis, close_redis
from washq.services.app_state import WashQ, build_store
from washq.services.cache_service import get_cache_stats

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        store=settings.STORE_BACKEND,
        locks=settings.LOCK_STRATEGY,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    washq = WashQ(build_store(settings), settings=settings)
    app.state.washq = washq
    await washq.startup()

    yield

    await washq.shutdown()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Laundry machine booking with per-user and per-machine serialization",
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

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.exception_handler(WashQError)
async def washq_error_handler(request: Request, exc: WashQError):
    """Expected failures: the detail plus a machine-readable code."""
    content = {"detail": exc.detail, "code": exc.code}
    if isinstance(exc, AuthError):
        content["reason"] = exc.reason
    logger.info("request_rejected", code=exc.code, status_code=exc.status_code, detail=exc.detail)
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


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
