"""FastAPI application with lifespan management."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import structlog
from arq import create_pool
from arq.connections import RedisSettings
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from shop_gateway.api.deps import delivery_ledger, get_session_store
from shop_gateway.api.errors import gateway_error_handler
from shop_gateway.api.middleware import RateLimitMiddleware, RequestLoggingMiddleware
from shop_gateway.api.routes.auth import router as auth_router
from shop_gateway.api.routes.proxy import router as proxy_router
from shop_gateway.api.routes.webhooks import router as webhooks_router
from shop_gateway.auth.rate_limiter import FixedWindowRateLimiter
from shop_gateway.auth.sessions import InMemorySessionStore
from shop_gateway.config import settings
from shop_gateway.errors import GatewayError
from shop_gateway.logging_config import configure_logging
from shop_gateway.storage.database import async_session, engine
from shop_gateway.storage.shop_repository import AuditSink

logger = structlog.get_logger()

CLEANUP_INTERVAL_SECONDS = 300

# Global rate limiter instance (single-process)
rate_limiter = FixedWindowRateLimiter(
    window_seconds=settings.rate_limit_window_seconds,
    max_requests=settings.rate_limit_max_requests,
)


async def _cleanup_loop() -> None:
    """Periodic cleanup of expired rate limit buckets, deliveries and sessions."""
    while True:
        await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
        try:
            buckets = await asyncio.to_thread(rate_limiter.cleanup)
            deliveries = await asyncio.to_thread(delivery_ledger.cleanup)
            sessions = 0
            store = get_session_store()
            if isinstance(store, InMemorySessionStore):
                sessions = await asyncio.to_thread(store.purge_expired)
            if buckets or deliveries or sessions:
                logger.debug(
                    "housekeeping_cleanup",
                    buckets_removed=buckets,
                    deliveries_removed=deliveries,
                    sessions_removed=sessions,
                )
        except Exception:
            logger.exception("housekeeping_cleanup_error")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application startup and shutdown.

    Startup:
        - Configure logging with the platform secret and base URL scrubbed.
        - Open the ARQ Redis pool used for post-install jobs.
        - Start the housekeeping task.
    Shutdown:
        - Cancel housekeeping.
        - Close Redis and dispose the database engine.
    """
    configure_logging(
        environment=str(settings.environment),
        log_level=settings.log_level,
        secrets=(
            settings.platform_api_secret.get_secret_value(),
            settings.base_url,
        ),
    )
    app.state.audit_sink = AuditSink(async_session)

    arq_redis = await create_pool(RedisSettings.from_dsn(settings.redis_url))
    app.state.arq_redis = arq_redis

    cleanup_task = asyncio.create_task(_cleanup_loop())

    logger.info(
        "app_started",
        environment=str(settings.environment),
        session_backend=str(settings.session_backend),
    )
    yield

    cleanup_task.cancel()
    await arq_redis.aclose()
    await engine.dispose()
    logger.info("app_stopped")


app = FastAPI(
    title="Shop Gateway",
    description="Authorization, session, webhook and proxy gateway for a commerce platform app",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.is_dev,
)

app.add_middleware(RateLimitMiddleware, limiter=rate_limiter)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allowed_methods,
    allow_headers=settings.cors_allowed_headers,
)


HEALTH_CHECK_TIMEOUT = 5.0


@app.get("/health")
async def health() -> JSONResponse:
    """Deep health check: verifies DB and Redis connectivity."""
    checks: dict[str, str] = {}
    overall = "ok"

    # DB check
    try:
        async with async_session() as session:
            await asyncio.wait_for(
                session.execute(text("SELECT 1")),
                timeout=HEALTH_CHECK_TIMEOUT,
            )
        checks["db"] = "ok"
    except (TimeoutError, OperationalError, SQLAlchemyError) as e:
        logger.warning("health_check_db_error", error=type(e).__name__)
        checks["db"] = f"error: {type(e).__name__}"
        overall = "degraded"
    except Exception as e:
        logger.error("health_check_db_unexpected", error=str(e), exc_info=True)
        checks["db"] = f"error: {type(e).__name__}"
        overall = "degraded"

    # Redis check
    arq_redis = getattr(app.state, "arq_redis", None)
    if arq_redis is not None:
        try:
            await asyncio.wait_for(arq_redis.ping(), timeout=HEALTH_CHECK_TIMEOUT)
            checks["redis"] = "ok"
        except (TimeoutError, ConnectionError, OSError) as e:
            logger.warning("health_check_redis_error", error=type(e).__name__)
            checks["redis"] = f"error: {type(e).__name__}"
            overall = "degraded"
        except Exception as e:
            logger.error("health_check_redis_unexpected", error=str(e), exc_info=True)
            checks["redis"] = f"error: {type(e).__name__}"
            overall = "degraded"

    status_code = 200 if overall == "ok" else 503
    return JSONResponse(
        status_code=status_code,
        content={
            "status": overall,
            "checks": checks,
            "timestamp": datetime.now(UTC).isoformat(timespec="seconds"),
        },
    )


app.add_exception_handler(GatewayError, gateway_error_handler)  # type: ignore[arg-type]


@app.exception_handler(Exception)
async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Catch-all handler for unhandled exceptions."""
    logger.error("unhandled_exception", exc_info=exc, path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


app.include_router(auth_router)
app.include_router(webhooks_router)
app.include_router(proxy_router)
