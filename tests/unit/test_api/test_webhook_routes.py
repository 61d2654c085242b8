"""Tests for /webhooks routes."""

import json
from unittest.mock import AsyncMock

import httpx
import pytest
from httpx import AsyncClient

from shop_gateway.auth.sessions import InMemorySessionStore
from shop_gateway.platform.client import WebhookSubscription

SHOP = "cool-store.myshopify.com"
BODY = b'{"id": 9, "myshopify_domain": "cool-store.myshopify.com"}'


def _headers(sign_body, body: bytes = BODY, topic: str = "app/uninstalled") -> dict:
    return {
        "X-Shopify-Hmac-Sha256": sign_body(body),
        "X-Shopify-Topic": topic,
        "X-Shopify-Shop-Domain": SHOP,
        "X-Shopify-Webhook-Id": "d-1",
        "Content-Type": "application/json",
    }


class TestReceiveWebhook:
    async def test_uninstall_revokes_session(
        self,
        client: AsyncClient,
        store: InMemorySessionStore,
        shops: AsyncMock,
        sign_body,
    ) -> None:
        session = await store.issue(SHOP, "shpat_x", [], 3600)

        response = await client.post(
            "/webhooks/app/uninstalled", content=BODY, headers=_headers(sign_body)
        )

        assert response.status_code == 200
        assert await store.validate(session.token) is None
        shops.mark_uninstalled.assert_awaited_once_with(SHOP)

        # The revoked token no longer authenticates
        token_response = await client.post(
            "/auth/token", headers={"Authorization": f"Bearer {session.token}"}
        )
        assert token_response.status_code == 401

    async def test_uninstall_with_mixed_case_shop_header(
        self,
        client: AsyncClient,
        store: InMemorySessionStore,
        shops: AsyncMock,
        sign_body,
    ) -> None:
        session = await store.issue(SHOP, "shpat_x", [], 3600)
        headers = _headers(sign_body)
        headers["X-Shopify-Shop-Domain"] = "Cool-Store.myshopify.com"

        response = await client.post(
            "/webhooks/app/uninstalled", content=BODY, headers=headers
        )

        assert response.status_code == 200
        assert await store.validate(session.token) is None
        shops.mark_uninstalled.assert_awaited_once_with(SHOP)

    async def test_bad_signature(
        self, client: AsyncClient, shops: AsyncMock, sign_body
    ) -> None:
        headers = _headers(sign_body)
        headers["X-Shopify-Hmac-Sha256"] = "bm9wZQ=="

        response = await client.post(
            "/webhooks/app/uninstalled", content=BODY, headers=headers
        )

        assert response.status_code == 401
        assert response.json()["error"] == "Authentication failed"
        shops.mark_uninstalled.assert_not_awaited()

    async def test_reserialized_body_rejected(
        self, client: AsyncClient, sign_body
    ) -> None:
        headers = _headers(sign_body)
        reserialized = json.dumps(json.loads(BODY), separators=(",", ":")).encode()
        response = await client.post(
            "/webhooks/app/uninstalled", content=reserialized, headers=headers
        )
        assert response.status_code == 401

    @pytest.mark.parametrize(
        "header",
        ["X-Shopify-Hmac-Sha256", "X-Shopify-Topic", "X-Shopify-Shop-Domain"],
    )
    async def test_missing_header(
        self, client: AsyncClient, sign_body, header: str
    ) -> None:
        headers = _headers(sign_body)
        del headers[header]
        response = await client.post(
            "/webhooks/app/uninstalled", content=BODY, headers=headers
        )
        assert response.status_code == 401

    async def test_topic_header_must_match_path(
        self, client: AsyncClient, sign_body
    ) -> None:
        response = await client.post(
            "/webhooks/app/uninstalled",
            content=BODY,
            headers=_headers(sign_body, topic="discounts/create"),
        )
        assert response.status_code == 401

    async def test_unknown_topic(self, client: AsyncClient, sign_body) -> None:
        response = await client.post(
            "/webhooks/orders/create",
            content=BODY,
            headers=_headers(sign_body, topic="orders/create"),
        )
        assert response.status_code == 404
        assert response.json()["error"] == "Unknown webhook topic"

    async def test_discount_event(self, client: AsyncClient, sign_body) -> None:
        body = b'{"admin_graphql_api_id": "gid://shopify/DiscountNode/1"}'
        response = await client.post(
            "/webhooks/discounts/update",
            content=body,
            headers=_headers(sign_body, body, topic="discounts/update"),
        )
        assert response.status_code == 200

    async def test_handler_failure_returns_500(
        self, client: AsyncClient, shops: AsyncMock, sign_body
    ) -> None:
        shops.mark_uninstalled.side_effect = RuntimeError("db down")
        response = await client.post(
            "/webhooks/app/uninstalled", content=BODY, headers=_headers(sign_body)
        )
        assert response.status_code == 500
        assert "db down" not in response.text

    async def test_duplicate_delivery(
        self, client: AsyncClient, shops: AsyncMock, sign_body
    ) -> None:
        for _ in range(2):
            response = await client.post(
                "/webhooks/app/uninstalled", content=BODY, headers=_headers(sign_body)
            )
            assert response.status_code == 200
        shops.mark_uninstalled.assert_awaited_once()


class TestRegisterWebhooks:
    async def test_registers_for_session_shop(
        self,
        client: AsyncClient,
        store: InMemorySessionStore,
        platform_client: AsyncMock,
    ) -> None:
        session = await store.issue(SHOP, "shpat_x", ["write_discounts"], 3600)
        platform_client.register_webhooks.return_value = [
            WebhookSubscription("app/uninstalled", "https://x/webhooks/app/uninstalled")
        ]

        response = await client.post(
            "/webhooks/register",
            headers={"Authorization": f"Bearer {session.token}"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["created"] == ["app/uninstalled"]
        assert "discounts/create" in data["topics"]
        shop, token, _subs = platform_client.register_webhooks.call_args.args
        assert (shop, token) == (SHOP, "shpat_x")

    async def test_requires_scope(
        self, client: AsyncClient, store: InMemorySessionStore
    ) -> None:
        session = await store.issue(SHOP, "shpat_x", ["read_products"], 3600)
        response = await client.post(
            "/webhooks/register",
            headers={"Authorization": f"Bearer {session.token}"},
        )
        assert response.status_code == 403
        assert "read_discounts" in response.json()["detail"]

    async def test_requires_session(self, client: AsyncClient) -> None:
        response = await client.post("/webhooks/register")
        assert response.status_code == 401

    async def test_platform_error(
        self,
        client: AsyncClient,
        store: InMemorySessionStore,
        platform_client: AsyncMock,
    ) -> None:
        session = await store.issue(SHOP, "shpat_x", ["read_discounts"], 3600)
        platform_client.register_webhooks.side_effect = httpx.ConnectError("down")
        response = await client.post(
            "/webhooks/register",
            headers={"Authorization": f"Bearer {session.token}"},
        )
        assert response.status_code == 502
