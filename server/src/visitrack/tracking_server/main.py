"""Visitrack ingestion server - FastAPI application."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from psycopg_pool import AsyncConnectionPool
from redis.asyncio import Redis
from starlette.exceptions import HTTPException as StarletteHTTPException

from visitrack.tracking_server.config import Settings, settings
from visitrack.tracking_server.models import ErrorResponse, RateLimitError
from visitrack.tracking_server.routes import router
from visitrack.tracking_server.services.counters import MemoryCounterStore, RedisCounterStore
from visitrack.tracking_server.services.forwarding import (
    EventForwarder,
    LogForwarder,
    PostgresForwarder,
    QueueForwarder,
)
from visitrack.tracking_server.services.ratelimit import (
    RateLimiter,
    RateLimitExceeded,
    build_policies,
)

logger = logging.getLogger(__name__)


def build_forwarder(config: Settings, pool: AsyncConnectionPool | None = None) -> EventForwarder:
    """Build the configured downstream forwarder."""
    if config.forwarder == "queue":
        return QueueForwarder(maxsize=config.forward_queue_size)
    if config.forwarder == "postgres":
        if pool is None:
            raise ValueError("The postgres forwarder needs a connection pool")
        return PostgresForwarder(pool)
    return LogForwarder()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage server lifecycle."""
    logging.basicConfig(level=settings.log_level)
    app.state.settings = settings

    # Rate limit counters
    store: MemoryCounterStore | RedisCounterStore
    if settings.redis_url:
        redis = Redis.from_url(settings.redis_url)
        await redis.ping()
        store = RedisCounterStore(redis)
        logger.info("Rate limit counters in Redis")
    else:
        store = MemoryCounterStore()
        logger.info("Rate limit counters in process memory")
    app.state.rate_limiter = RateLimiter(store, build_policies(settings))

    # Downstream forwarding
    pool = None
    if settings.forwarder == "postgres":
        pool = AsyncConnectionPool(
            settings.database_url,
            open=False,
            min_size=1,
            max_size=10,
        )
        await pool.open(wait=True, timeout=10)
        logger.info("Database pool initialized")
    app.state.forwarder = build_forwarder(settings, pool)

    yield

    # Cleanup
    if pool is not None:
        await pool.close()
    if isinstance(store, RedisCounterStore):
        await store.close()
    logger.info("Server shutdown complete")


app = FastAPI(
    title="Visitrack Ingestion Server",
    description="Event ingestion and session correlation for Visitrack trackers",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url, settings.api_url],
    allow_origin_regex=settings.cors_origin_regex,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)

app.include_router(router)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_exceeded(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    body = RateLimitError(error=exc.policy.message, retry_after=exc.retry_after)
    return JSONResponse(
        status_code=429,
        content=body.model_dump(by_alias=True),
        headers={"Retry-After": str(exc.retry_after)},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=str(exc.detail)).model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'][1:]) or 'body'}: {err['msg']}"
        for err in exc.errors()
    )
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error=f"Invalid request: {problems}").model_dump(),
    )


@app.exception_handler(Exception)
async def internal_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    if request.url.path.startswith("/track"):
        message = "Failed to track event"
    else:
        message = "Internal server error"
    return JSONResponse(status_code=500, content=ErrorResponse(error=message).model_dump())


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}


@app.get("/live")
async def live() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "alive", "timestamp": datetime.now(UTC).isoformat()}


def run() -> None:
    """Run the server with uvicorn (``visitrack-server``)."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_level=settings.log_level.lower())
