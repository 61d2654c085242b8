"""ARQ worker configuration and lifecycle hooks.

Run with::

    arq shop_gateway.worker.WorkerSettings

Or in Docker::

    python -m arq shop_gateway.worker.WorkerSettings
"""

from typing import Any, ClassVar

import structlog
from arq.connections import RedisSettings

from shop_gateway.api.tasks import arq_register_webhooks
from shop_gateway.config import get_settings
from shop_gateway.logging_config import configure_logging

WorkerCtx = dict[str, Any]


async def startup(ctx: WorkerCtx) -> None:
    """Initialize worker resources on startup.

    Creates an async engine and session factory, and wires the session
    store, shop repository and platform client into the worker context.
    """
    from sqlalchemy.ext.asyncio import (
        AsyncSession,
        async_sessionmaker,
        create_async_engine,
    )

    from shop_gateway.platform.client import PlatformClient
    from shop_gateway.storage.session_repository import SqlSessionStore
    from shop_gateway.storage.shop_repository import ShopRepository

    s = get_settings()
    configure_logging(
        environment=str(s.environment),
        log_level=s.log_level,
        secrets=(s.platform_api_secret.get_secret_value(), s.base_url),
    )

    engine = create_async_engine(
        s.database_url,
        pool_size=5,
        max_overflow=10,
    )
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    ctx["engine"] = engine
    ctx["session_store"] = SqlSessionStore(session_factory)
    ctx["shop_repository"] = ShopRepository(session_factory)
    ctx["platform_client"] = PlatformClient(
        api_key=s.platform_api_key,
        api_secret=s.platform_api_secret.get_secret_value(),
        api_version=s.platform_api_version,
        timeout=s.token_exchange_timeout_seconds,
    )
    ctx["base_url"] = s.base_url

    log = structlog.get_logger()
    log.info("worker_started", max_jobs=s.worker_max_jobs)


async def shutdown(ctx: WorkerCtx) -> None:
    """Clean up worker resources on shutdown."""
    log = structlog.get_logger()

    engine = ctx.get("engine")
    if engine is not None:
        await engine.dispose()

    log.info("worker_stopped")


class WorkerSettings:
    """ARQ worker settings, consumed by the ``arq`` CLI."""

    _settings = get_settings()

    redis_settings: RedisSettings = RedisSettings.from_dsn(
        _settings.redis_url,
    )
    functions: ClassVar[list[Any]] = [arq_register_webhooks]
    on_startup = startup
    on_shutdown = shutdown

    max_jobs: int = _settings.worker_max_jobs
    job_timeout: int = _settings.worker_job_timeout
    max_tries: int = _settings.worker_max_tries

    keep_result: int = 3600
    poll_delay: float = 0.5
