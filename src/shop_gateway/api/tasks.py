"""Background tasks run by the ARQ worker."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from shop_gateway.webhooks.registration import webhook_subscriptions

if TYPE_CHECKING:
    from shop_gateway.auth.sessions import SessionStore
    from shop_gateway.platform.client import PlatformClient
    from shop_gateway.storage.shop_repository import ShopRepository


async def arq_register_webhooks(ctx: dict[str, Any], shop: str) -> list[str]:
    """Register the app's webhook subscriptions for ``shop``.

    Skipped when the shop has uninstalled or holds no active session by
    the time the job runs. Registration itself is idempotent, so ARQ
    retries are safe.

    Returns:
        Topics created by this run.
    """
    log = structlog.get_logger().bind(shop=shop, job_id=ctx.get("job_id"))
    sessions: SessionStore = ctx["session_store"]
    shops: ShopRepository = ctx["shop_repository"]
    client: PlatformClient = ctx["platform_client"]

    record = await shops.find_by_tenant(shop)
    if record is not None and not record.is_active:
        log.info("webhook_registration_skipped", reason="uninstalled")
        return []

    session = await sessions.get_active(shop)
    if session is None:
        log.info("webhook_registration_skipped", reason="no_active_session")
        return []

    created = await client.register_webhooks(
        shop,
        session.access_token,
        webhook_subscriptions(ctx["base_url"]),
    )
    return [s.topic for s in created]
