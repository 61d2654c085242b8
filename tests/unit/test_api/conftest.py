"""Fixtures for API tests: in-memory sessions and mocked collaborators."""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from shop_gateway.api.app import app, rate_limiter
from shop_gateway.api.deps import (
    delivery_ledger,
    get_platform_client,
    get_session_store,
    get_shop_repository,
)
from shop_gateway.auth.sessions import InMemorySessionStore
from shop_gateway.platform.client import PlatformClient
from shop_gateway.storage.shop_repository import ShopRepository

SHOP = "cool-store.myshopify.com"


@pytest.fixture()
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture()
def shops() -> AsyncMock:
    shops = AsyncMock(spec=ShopRepository)
    shops.mark_uninstalled.return_value = True
    return shops


@pytest.fixture()
def platform_client() -> AsyncMock:
    return AsyncMock(spec=PlatformClient)


@pytest.fixture()
async def client(
    store: InMemorySessionStore,
    shops: AsyncMock,
    platform_client: AsyncMock,
) -> AsyncGenerator[AsyncClient]:
    """AsyncClient that skips the real database and platform."""
    rate_limiter._buckets.clear()
    delivery_ledger._seen.clear()
    app.dependency_overrides[get_session_store] = lambda: store
    app.dependency_overrides[get_shop_repository] = lambda: shops
    app.dependency_overrides[get_platform_client] = lambda: platform_client
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
    rate_limiter._buckets.clear()
