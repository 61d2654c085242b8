"""Webhook verification and topic dispatch.

Flow for one delivery:

1. Verify the base64 HMAC over the raw, unparsed body. Anything else
   (missing headers, bad signature) is REJECTED before the body is read
   as JSON.
2. Skip deliveries already accepted (platform retries reuse the
   delivery id).
3. Route by topic. An unknown topic is NOT_FOUND, not a security event.
4. Run the handler. A failure is FAILED (platform redelivers) only when
   the handler is registered as safe to redeliver; otherwise it is logged
   and the delivery is acknowledged.
"""

from __future__ import annotations

import json
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from threading import Lock
from typing import TYPE_CHECKING, Any

import structlog

from shop_gateway.auth.signature import SignatureEngine

if TYPE_CHECKING:
    from shop_gateway.auth.sessions import SessionStore
    from shop_gateway.storage.shop_repository import ShopRepository

logger = structlog.get_logger()


class WebhookOutcome(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass
class WebhookEvent:
    """A single delivery attempt as received."""

    topic: str | None
    shop: str | None
    raw_body: bytes = field(repr=False)
    signature: str | None = field(repr=False)
    webhook_id: str | None = None
    received_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    outcome: WebhookOutcome = WebhookOutcome.PENDING

    def json(self) -> Any:
        """Parse the body. Only call after the signature has been verified."""
        return json.loads(self.raw_body)


@dataclass(frozen=True)
class WebhookContext:
    """Collaborators available to topic handlers."""

    sessions: SessionStore
    shops: ShopRepository


HandlerFunc = Callable[[WebhookEvent, WebhookContext], Awaitable[None]]


@dataclass(frozen=True)
class WebhookHandler:
    """Topic handler registration.

    ``redeliver_on_failure`` must only be set for idempotent handlers:
    their failures surface as non-2xx so the platform delivers again.
    """

    topic: str
    func: HandlerFunc
    redeliver_on_failure: bool = False


class DeliveryLedger:
    """Remember accepted delivery ids for ``ttl_seconds``.

    Thread-safe via Lock. Single-instance only; a miss only means the
    handler runs again, which every handler tolerates.
    """

    def __init__(self, ttl_seconds: int = 3600) -> None:
        self._ttl = ttl_seconds
        self._seen: dict[str, float] = {}
        self._lock = Lock()

    def seen(self, webhook_id: str) -> bool:
        now = time.monotonic()
        with self._lock:
            accepted_at = self._seen.get(webhook_id)
            if accepted_at is None:
                return False
            if now - accepted_at >= self._ttl:
                del self._seen[webhook_id]
                return False
            return True

    def mark(self, webhook_id: str) -> None:
        with self._lock:
            self._seen[webhook_id] = time.monotonic()

    def cleanup(self) -> int:
        now = time.monotonic()
        with self._lock:
            expired = [k for k, t in self._seen.items() if now - t >= self._ttl]
            for key in expired:
                del self._seen[key]
        return len(expired)


class WebhookDispatcher:
    """Authenticate webhook deliveries and route them to topic handlers."""

    def __init__(
        self,
        engine: SignatureEngine,
        handlers: Mapping[str, WebhookHandler],
        ledger: DeliveryLedger | None = None,
    ) -> None:
        self._engine = engine
        self._handlers = dict(handlers)
        self._ledger = ledger or DeliveryLedger()

    @property
    def topics(self) -> list[str]:
        return sorted(self._handlers)

    def verify(self, event: WebhookEvent) -> bool:
        """Check headers are present and the HMAC matches the raw body."""
        if not event.signature or not event.topic or not event.shop:
            return False
        return self._engine.verify_base64(event.raw_body, event.signature)

    async def handle(
        self, event: WebhookEvent, context: WebhookContext
    ) -> WebhookOutcome:
        log = logger.bind(
            topic=event.topic, shop=event.shop, webhook_id=event.webhook_id
        )

        if not self.verify(event):
            event.outcome = WebhookOutcome.REJECTED
            log.warning(
                "webhook_rejected",
                has_signature=bool(event.signature),
                has_topic=bool(event.topic),
                has_shop=bool(event.shop),
                body_bytes=len(event.raw_body),
            )
            return event.outcome

        if event.webhook_id and self._ledger.seen(event.webhook_id):
            event.outcome = WebhookOutcome.ACCEPTED
            log.info("webhook_duplicate_skipped")
            return event.outcome

        handler = self._handlers.get(event.topic or "")
        if handler is None:
            event.outcome = WebhookOutcome.NOT_FOUND
            log.info("webhook_unknown_topic")
            return event.outcome

        try:
            await handler.func(event, context)
        except Exception:
            if handler.redeliver_on_failure:
                event.outcome = WebhookOutcome.FAILED
                log.exception("webhook_handler_failed", redeliver=True)
                return event.outcome
            log.exception("webhook_handler_failed", redeliver=False)
        else:
            log.info("webhook_handled")

        if event.webhook_id:
            self._ledger.mark(event.webhook_id)
        event.outcome = WebhookOutcome.ACCEPTED
        return event.outcome
