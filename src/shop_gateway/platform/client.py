"""HTTP client for the commerce platform's OAuth and Admin REST endpoints."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from shop_gateway.auth.scopes import parse_scopes
from shop_gateway.errors import UpstreamExchangeFailure

logger = structlog.get_logger()

ACCESS_TOKEN_HEADER = "X-Shopify-Access-Token"


@dataclass(frozen=True)
class AccessGrant:
    """Result of a successful authorization code exchange."""

    access_token: str
    scopes: tuple[str, ...]

    def __repr__(self) -> str:
        return f"AccessGrant(access_token=***, scopes={self.scopes!r})"


@dataclass(frozen=True)
class WebhookSubscription:
    topic: str
    address: str


class PlatformClient:
    """Thin async wrapper over the platform endpoints the gateway calls.

    The underlying ``httpx.AsyncClient`` may be injected (tests pass one
    built on ``httpx.MockTransport``); otherwise one is created per call.
    """

    def __init__(
        self,
        *,
        api_key: str,
        api_secret: str,
        api_version: str,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_secret = api_secret
        self._api_version = api_version
        self._timeout = timeout
        self._http_client = http_client

    def __repr__(self) -> str:
        return f"PlatformClient(api_key={self._api_key!r}, api_secret=***)"

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.request(method, url, **kwargs)

    # -- OAuth ----------------------------------------------------------

    async def exchange_code(self, shop: str, code: str) -> AccessGrant:
        """Trade a one-time authorization code for an access credential.

        Raises:
            UpstreamExchangeFailure: ``retryable`` is True for network
                errors and 5xx responses, False for 4xx and malformed
                payloads.
        """
        url = f"https://{shop}/admin/oauth/access_token"
        payload = {
            "client_id": self._api_key,
            "client_secret": self._api_secret,
            "code": code,
        }
        try:
            response = await self._request(
                "POST", url, json=payload, headers={"Accept": "application/json"}
            )
        except httpx.HTTPError as exc:
            raise UpstreamExchangeFailure(
                f"token exchange transport error: {type(exc).__name__}",
                retryable=True,
                shop=shop,
            ) from exc

        if response.status_code >= 500:
            raise UpstreamExchangeFailure(
                "token exchange upstream error",
                retryable=True,
                status_code=response.status_code,
                shop=shop,
            )
        if response.status_code >= 400:
            raise UpstreamExchangeFailure(
                "token exchange rejected",
                status_code=response.status_code,
                shop=shop,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamExchangeFailure(
                "token exchange returned invalid JSON", shop=shop
            ) from exc

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            raise UpstreamExchangeFailure(
                "token exchange response missing access_token", shop=shop
            )
        return AccessGrant(
            access_token=access_token, scopes=parse_scopes(data.get("scope"))
        )

    # -- Webhook registration -------------------------------------------

    def _admin_url(self, shop: str, resource: str) -> str:
        return f"https://{shop}/admin/api/{self._api_version}/{resource}"

    async def list_webhooks(
        self, shop: str, access_token: str
    ) -> list[WebhookSubscription]:
        response = await self._request(
            "GET",
            self._admin_url(shop, "webhooks.json"),
            headers={ACCESS_TOKEN_HEADER: access_token},
        )
        response.raise_for_status()
        return [
            WebhookSubscription(topic=item["topic"], address=item["address"])
            for item in response.json().get("webhooks", [])
        ]

    async def register_webhooks(
        self,
        shop: str,
        access_token: str,
        subscriptions: Sequence[WebhookSubscription],
    ) -> list[WebhookSubscription]:
        """Ensure each subscription exists. Safe to call repeatedly.

        Existing topic/address pairs are skipped; a 422 "already taken"
        answer for a concurrent registration counts as success.

        Returns:
            Subscriptions created by this call.

        Raises:
            httpx.HTTPStatusError: on any other non-2xx response.
        """
        existing = set(await self.list_webhooks(shop, access_token))
        created: list[WebhookSubscription] = []

        for sub in subscriptions:
            if sub in existing:
                continue
            response = await self._request(
                "POST",
                self._admin_url(shop, "webhooks.json"),
                headers={ACCESS_TOKEN_HEADER: access_token},
                json={
                    "webhook": {
                        "topic": sub.topic,
                        "address": sub.address,
                        "format": "json",
                    }
                },
            )
            if response.status_code == 422 and "taken" in response.text:
                logger.debug("webhook_already_registered", shop=shop, topic=sub.topic)
                continue
            response.raise_for_status()
            created.append(sub)

        logger.info(
            "webhooks_registered",
            shop=shop,
            created=[s.topic for s in created],
            skipped=len(subscriptions) - len(created),
        )
        return created
