"""FastAPI dependency injection."""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from functools import lru_cache
from typing import Any

from fastapi import Depends, HTTPException, Request

from shop_gateway.auth.oauth import AuthorizationFlow
from shop_gateway.auth.proxy import ProxyRequestVerifier
from shop_gateway.auth.scopes import missing_scopes
from shop_gateway.auth.sessions import InMemorySessionStore, Session, SessionStore
from shop_gateway.auth.signature import SignatureEngine
from shop_gateway.config import SessionBackend, settings
from shop_gateway.errors import ExpiredOrRevokedSession
from shop_gateway.platform.client import PlatformClient
from shop_gateway.storage.database import async_session
from shop_gateway.storage.session_repository import SqlSessionStore
from shop_gateway.storage.shop_repository import ShopRepository
from shop_gateway.webhooks.dispatcher import DeliveryLedger, WebhookDispatcher
from shop_gateway.webhooks.handlers import default_handlers

__all__ = [
    "get_authorization_flow",
    "get_current_session",
    "get_platform_client",
    "get_proxy_verifier",
    "get_session_store",
    "get_shop_repository",
    "get_signature_engine",
    "get_webhook_dispatcher",
    "require_scopes",
]

BEARER_PREFIX = "bearer "

# Process-wide: accepted delivery ids survive across requests
delivery_ledger = DeliveryLedger(ttl_seconds=settings.webhook_ledger_ttl_seconds)


@lru_cache(maxsize=1)
def get_signature_engine() -> SignatureEngine:
    return SignatureEngine(settings.platform_api_secret.get_secret_value())


@lru_cache(maxsize=1)
def get_platform_client() -> PlatformClient:
    return PlatformClient(
        api_key=settings.platform_api_key,
        api_secret=settings.platform_api_secret.get_secret_value(),
        api_version=settings.platform_api_version,
        timeout=settings.token_exchange_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_session_store() -> SessionStore:
    """Session backend selected by ``SESSION_BACKEND``.

    ``database`` (default) is shared by every instance; ``memory`` is
    for single-process development only.
    """
    if settings.session_backend == SessionBackend.MEMORY:
        return InMemorySessionStore()
    return SqlSessionStore(async_session)


@lru_cache(maxsize=1)
def get_shop_repository() -> ShopRepository:
    return ShopRepository(async_session)


_engine_dep = Depends(get_signature_engine)
_client_dep = Depends(get_platform_client)
_store_dep = Depends(get_session_store)


async def get_authorization_flow(
    engine: SignatureEngine = _engine_dep,
    client: PlatformClient = _client_dep,
    store: SessionStore = _store_dep,
) -> AuthorizationFlow:
    return AuthorizationFlow(
        engine=engine,
        client=client,
        store=store,
        api_key=settings.platform_api_key,
        scopes=settings.platform_scopes,
        redirect_uri=f"{settings.base_url}/auth/callback",
        session_ttl=settings.session_ttl_seconds,
        retry_backoff=settings.token_exchange_retry_backoff_seconds,
    )


async def get_webhook_dispatcher(
    engine: SignatureEngine = _engine_dep,
) -> WebhookDispatcher:
    return WebhookDispatcher(engine, default_handlers(), delivery_ledger)


async def get_proxy_verifier(
    engine: SignatureEngine = _engine_dep,
) -> ProxyRequestVerifier:
    return ProxyRequestVerifier(engine)


def extract_session_token(request: Request) -> str | None:
    """Bearer token from ``Authorization``, falling back to the session cookie."""
    header = request.headers.get("authorization", "")
    if header.lower().startswith(BEARER_PREFIX):
        token = header[len(BEARER_PREFIX) :].strip()
        if token:
            return token
    return request.cookies.get(settings.session_cookie_name) or None


async def get_current_session(
    request: Request,
    store: SessionStore = _store_dep,
) -> Session:
    """Authenticate the request by its gateway session token.

    Raises:
        ExpiredOrRevokedSession: missing, unknown, expired or revoked token.
    """
    session = await store.validate(extract_session_token(request))
    if session is None:
        raise ExpiredOrRevokedSession("no active session for presented token")
    return session


_session_dep = Depends(get_current_session)


def require_scopes(
    *required_scopes: str,
) -> Callable[..., Coroutine[Any, Any, Session]]:
    """Dependency factory: require every listed scope on the current session.

    Usage as parameter dependency (returns Session)::

        async def endpoint(
            session: Session = Depends(require_scopes("read_discounts")),
        ): ...

    Raises:
        ExpiredOrRevokedSession: if there is no active session.
        HTTPException 403: if the session lacks any of the scopes.
    """

    async def _check_scopes(session: Session = _session_dep) -> Session:
        missing = missing_scopes(session.scopes, required_scopes)
        if missing:
            raise HTTPException(
                status_code=403,
                detail=f"Requires scope: {', '.join(missing)}",
            )
        return session

    return _check_scopes
