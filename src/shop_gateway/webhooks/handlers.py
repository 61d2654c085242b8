"""Topic handlers for platform webhooks."""

from __future__ import annotations

from typing import Any

import structlog

from shop_gateway.auth.tenants import normalize_shop
from shop_gateway.webhooks.dispatcher import (
    WebhookContext,
    WebhookEvent,
    WebhookHandler,
)

logger = structlog.get_logger()

APP_UNINSTALLED = "app/uninstalled"
DISCOUNT_TOPICS: tuple[str, ...] = (
    "discounts/create",
    "discounts/update",
    "discounts/delete",
)


def _payload(event: WebhookEvent) -> dict[str, Any]:
    data = event.json()
    return data if isinstance(data, dict) else {}


async def handle_app_uninstalled(event: WebhookEvent, ctx: WebhookContext) -> None:
    """Revoke the shop's session, then mark the install record inactive.

    Revocation comes first and completes before the delivery is
    acknowledged. Both steps are idempotent, so a failure here is safe
    to redeliver.

    Raises:
        InvalidTenant: if neither the signed payload nor the header names
            a well-formed shop.
    """
    if not event.shop:
        raise ValueError("uninstall webhook without shop domain")

    # The shop header is not covered by the signature; the body is.
    signed_domain = _payload(event).get("myshopify_domain")
    if not isinstance(signed_domain, str) or not signed_domain.strip():
        signed_domain = None
    shop = normalize_shop(signed_domain or event.shop)
    if event.shop.strip().lower() != shop:
        logger.warning(
            "webhook_shop_mismatch",
            header_shop=event.shop,
            payload_shop=shop,
        )
        return

    revoked = await ctx.sessions.revoke(shop)
    updated = await ctx.shops.mark_uninstalled(shop)
    logger.info(
        "shop_uninstalled",
        shop=shop,
        session_revoked=revoked,
        record_updated=updated,
    )


async def handle_discount_event(event: WebhookEvent, ctx: WebhookContext) -> None:
    """Log discount changes for the analytics pipeline."""
    payload = _payload(event)
    logger.info(
        "discount_event",
        topic=event.topic,
        shop=event.shop,
        discount_id=payload.get("admin_graphql_api_id") or payload.get("id"),
        status=payload.get("status"),
    )


def default_handlers() -> dict[str, WebhookHandler]:
    handlers = {
        APP_UNINSTALLED: WebhookHandler(
            topic=APP_UNINSTALLED,
            func=handle_app_uninstalled,
            redeliver_on_failure=True,
        ),
    }
    for topic in DISCOUNT_TOPICS:
        handlers[topic] = WebhookHandler(topic=topic, func=handle_discount_event)
    return handlers
