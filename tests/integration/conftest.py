"""Shared fixtures for integration tests requiring live PostgreSQL."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator

import pytest
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from shop_gateway.config import get_settings
from shop_gateway.storage.orm import ErrorLog, PlatformSession, Shop

# ── Engine ─────────────────────────────────────────────────────────


@pytest.fixture()
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an async engine from settings."""
    engine = create_async_engine(
        get_settings().database_url,
        pool_size=5,
        max_overflow=0,
    )
    yield engine
    await engine.dispose()


# ── Session factory ────────────────────────────────────────────────


@pytest.fixture()
def session_factory(
    async_engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the test engine."""
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ── Unique shop with DELETE cleanup ────────────────────────────────


@pytest.fixture()
async def shop_domain(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[str]:
    """A shop domain unique to the test; its rows are deleted afterwards.

    Repositories commit, so savepoint rollback does not apply here.
    """
    shop = f"it-{uuid.uuid4().hex[:12]}.myshopify.com"
    yield shop

    async with session_factory() as session:
        await session.execute(
            delete(PlatformSession).where(PlatformSession.shop == shop)
        )
        await session.execute(delete(Shop).where(Shop.shop == shop))
        await session.execute(delete(ErrorLog).where(ErrorLog.shop == shop))
        await session.commit()
