"""Platform webhook verification, dispatch and registration."""

from shop_gateway.webhooks.dispatcher import (
    DeliveryLedger,
    WebhookContext,
    WebhookDispatcher,
    WebhookEvent,
    WebhookHandler,
    WebhookOutcome,
)

__all__ = [
    "DeliveryLedger",
    "WebhookContext",
    "WebhookDispatcher",
    "WebhookEvent",
    "WebhookHandler",
    "WebhookOutcome",
]
