"""Webhook subscriptions the app needs on every shop."""

from __future__ import annotations

from collections.abc import Iterable

from shop_gateway.platform.client import WebhookSubscription
from shop_gateway.webhooks.handlers import APP_UNINSTALLED, DISCOUNT_TOPICS

WEBHOOK_PATH_PREFIX = "/webhooks"


def webhook_subscriptions(
    base_url: str,
    topics: Iterable[str] = (APP_UNINSTALLED, *DISCOUNT_TOPICS),
) -> list[WebhookSubscription]:
    """Map each topic to its delivery address under ``base_url``.

    ``app/uninstalled`` under ``https://app.example.com`` is delivered to
    ``https://app.example.com/webhooks/app/uninstalled``.
    """
    root = base_url.rstrip("/")
    return [
        WebhookSubscription(topic=topic, address=f"{root}{WEBHOOK_PATH_PREFIX}/{topic}")
        for topic in topics
    ]
