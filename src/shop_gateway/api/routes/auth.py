"""Authorization flow and session endpoints.

- ``GET  /auth/login?shop=``: start the install/login flow (302)
- ``GET  /auth/callback``: finish it and open a session (302)
- ``POST /auth/token``: validate the current session
- ``GET  /auth/scopes``: granted vs. required scopes
"""

from __future__ import annotations

from typing import Annotated
from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from shop_gateway.api.deps import (
    get_authorization_flow,
    get_current_session,
    get_shop_repository,
)
from shop_gateway.api.schemas import ScopeStatusResponse, TokenResponse
from shop_gateway.auth.oauth import AuthorizationFlow
from shop_gateway.auth.scopes import feature_scopes, missing_scopes, plan_scopes
from shop_gateway.auth.sessions import Session
from shop_gateway.config import settings
from shop_gateway.enqueue import enqueue_webhook_registration
from shop_gateway.storage.shop_repository import ShopRepository

logger = structlog.get_logger()

router = APIRouter(prefix="/auth", tags=["auth"])

FlowDep = Annotated[AuthorizationFlow, Depends(get_authorization_flow)]
SessionDep = Annotated[Session, Depends(get_current_session)]
ShopsDep = Annotated[ShopRepository, Depends(get_shop_repository)]

STATE_COOKIE_MAX_AGE = 600


@router.get("/login")
async def login(flow: FlowDep, shop: str | None = None) -> RedirectResponse:
    """Redirect the merchant to the platform consent screen.

    The anti-forgery nonce travels in the ``state`` query parameter and
    in an HttpOnly cookie; the callback requires both to match.
    """
    auth_request = flow.begin(shop)
    response = RedirectResponse(auth_request.url, status_code=302)
    response.set_cookie(
        settings.state_cookie_name,
        auth_request.nonce,
        max_age=STATE_COOKIE_MAX_AGE,
        path="/auth",
        httponly=True,
        secure=not settings.is_dev,
        samesite="lax",
    )
    return response


@router.get("/callback")
async def callback(
    request: Request,
    flow: FlowDep,
    shops: ShopsDep,
) -> RedirectResponse:
    """Verify the callback, exchange the code and open a session."""
    params = dict(request.query_params)
    result = await flow.complete(
        params, request.cookies.get(settings.state_cookie_name)
    )
    session = result.session

    await shops.upsert(session.shop, session.scopes)

    arq_redis = getattr(request.app.state, "arq_redis", None)
    if arq_redis is not None:
        try:
            await enqueue_webhook_registration(arq_redis, session.shop)
        except Exception:
            # Registration is retried on the next install or via the API.
            logger.exception("webhook_registration_enqueue_failed", shop=session.shop)

    target = f"{settings.base_url}/?{urlencode({'shop': session.shop})}"
    response = RedirectResponse(target, status_code=302)
    response.delete_cookie(settings.state_cookie_name, path="/auth")
    response.set_cookie(
        settings.session_cookie_name,
        session.token or "",
        max_age=max(settings.session_ttl_seconds, 0),
        httponly=True,
        secure=not settings.is_dev,
        samesite="lax",
    )
    return response


@router.post("/token")
async def token(session: SessionDep) -> TokenResponse:
    """Confirm the presented session is active and return its token."""
    return TokenResponse(
        access_token=session.token or "",
        expires_at=session.expires_at,
    )


@router.get("/scopes")
async def scope_status(
    session: SessionDep,
    plan: str = "basic",
    feature: str | None = None,
) -> ScopeStatusResponse:
    """Report which scopes a plan (and optional feature) still needs."""
    required = list(plan_scopes(plan))
    if feature:
        required.extend(s for s in feature_scopes(feature) if s not in required)
    return ScopeStatusResponse(
        shop=session.shop,
        granted=list(session.scopes),
        required=required,
        missing=missing_scopes(session.scopes, required),
    )
