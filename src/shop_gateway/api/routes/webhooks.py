"""Webhook endpoints.

- ``POST /webhooks/register``: (re)register the app's subscriptions
- ``POST /webhooks/{topic}``: receive a platform delivery
"""

from __future__ import annotations

from typing import Annotated

import httpx
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from shop_gateway.api.deps import (
    get_platform_client,
    get_session_store,
    get_shop_repository,
    get_webhook_dispatcher,
    require_scopes,
)
from shop_gateway.api.schemas import WebhookRegistrationResponse
from shop_gateway.auth.sessions import Session, SessionStore
from shop_gateway.config import settings
from shop_gateway.errors import InvalidSignature, UnknownTopic
from shop_gateway.platform.client import PlatformClient
from shop_gateway.storage.shop_repository import ShopRepository
from shop_gateway.webhooks.dispatcher import (
    WebhookContext,
    WebhookDispatcher,
    WebhookEvent,
    WebhookOutcome,
)
from shop_gateway.webhooks.registration import webhook_subscriptions

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

HMAC_HEADER = "X-Shopify-Hmac-Sha256"
TOPIC_HEADER = "X-Shopify-Topic"
SHOP_HEADER = "X-Shopify-Shop-Domain"
WEBHOOK_ID_HEADER = "X-Shopify-Webhook-Id"

DispatcherDep = Annotated[WebhookDispatcher, Depends(get_webhook_dispatcher)]
StoreDep = Annotated[SessionStore, Depends(get_session_store)]
ShopsDep = Annotated[ShopRepository, Depends(get_shop_repository)]
ClientDep = Annotated[PlatformClient, Depends(get_platform_client)]
DiscountSessionDep = Annotated[Session, Depends(require_scopes("read_discounts"))]


@router.post("/register")
async def register_webhooks(
    session: DiscountSessionDep,
    client: ClientDep,
) -> WebhookRegistrationResponse:
    """Ensure every subscription exists for the session's shop."""
    subscriptions = webhook_subscriptions(settings.base_url)
    try:
        created = await client.register_webhooks(
            session.shop, session.access_token, subscriptions
        )
    except httpx.HTTPError as exc:
        logger.error(
            "webhook_registration_failed",
            shop=session.shop,
            error=type(exc).__name__,
        )
        raise HTTPException(
            status_code=502, detail="Webhook registration failed"
        ) from exc
    return WebhookRegistrationResponse(
        created=[s.topic for s in created],
        topics=[s.topic for s in subscriptions],
    )


@router.post("/{topic:path}")
async def receive_webhook(
    topic: str,
    request: Request,
    dispatcher: DispatcherDep,
    sessions: StoreDep,
    shops: ShopsDep,
) -> Response:
    """Verify and dispatch one delivery.

    200 accepted, 401 unauthenticated, 404 unknown topic, 500 handler
    failure the platform should redeliver.
    """
    header_topic = request.headers.get(TOPIC_HEADER)
    if header_topic is not None and header_topic != topic:
        raise InvalidSignature(
            f"topic header {header_topic!r} does not match path {topic!r}"
        )

    event = WebhookEvent(
        topic=header_topic,
        shop=request.headers.get(SHOP_HEADER),
        raw_body=await request.body(),
        signature=request.headers.get(HMAC_HEADER),
        webhook_id=request.headers.get(WEBHOOK_ID_HEADER),
    )
    outcome = await dispatcher.handle(
        event, WebhookContext(sessions=sessions, shops=shops)
    )

    if outcome == WebhookOutcome.REJECTED:
        raise InvalidSignature("webhook verification failed", shop=event.shop)
    if outcome == WebhookOutcome.NOT_FOUND:
        raise UnknownTopic(f"no handler for {topic!r}", shop=event.shop)
    if outcome == WebhookOutcome.FAILED:
        return JSONResponse(
            status_code=500, content={"error": "Webhook processing failed"}
        )
    return Response(status_code=200)
