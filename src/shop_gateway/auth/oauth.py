"""Authorization code flow: grant → access credential → gateway session.

States::

    START → REDIRECTED → EXCHANGING → ESTABLISHED
      └──────────┴────────────┴──────────→ FAILED

``begin`` covers START → REDIRECTED and persists nothing but the
anti-forgery nonce, which the HTTP layer binds to the browser in a
cookie. ``complete`` runs on the callback and is the only place a
session is created, so an abandoned flow leaves nothing behind.
"""

from __future__ import annotations

import asyncio
import hmac
import secrets
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from enum import StrEnum
from urllib.parse import urlencode

import structlog

from shop_gateway.auth.scopes import missing_scopes
from shop_gateway.auth.sessions import Session, SessionStore
from shop_gateway.auth.signature import SignatureEngine
from shop_gateway.auth.tenants import normalize_shop
from shop_gateway.errors import (
    GatewayError,
    InvalidSignature,
    StateMismatch,
    UpstreamExchangeFailure,
)
from shop_gateway.platform.client import AccessGrant, PlatformClient

logger = structlog.get_logger()


class AuthFlowState(StrEnum):
    START = "start"
    REDIRECTED = "redirected"
    EXCHANGING = "exchanging"
    ESTABLISHED = "established"
    FAILED = "failed"


# Valid flow transitions
FLOW_TRANSITIONS: dict[AuthFlowState, set[AuthFlowState]] = {
    AuthFlowState.START: {AuthFlowState.REDIRECTED, AuthFlowState.FAILED},
    AuthFlowState.REDIRECTED: {AuthFlowState.EXCHANGING, AuthFlowState.FAILED},
    AuthFlowState.EXCHANGING: {AuthFlowState.ESTABLISHED, AuthFlowState.FAILED},
    AuthFlowState.ESTABLISHED: set(),
    AuthFlowState.FAILED: set(),
}

# One retry after the first attempt
MAX_EXCHANGE_ATTEMPTS = 2


@dataclass
class AuthFlowAttempt:
    """Tracks one pass through the state machine."""

    shop: str | None = None
    state: AuthFlowState = AuthFlowState.START
    history: list[AuthFlowState] = field(default_factory=list)

    def advance(self, target: AuthFlowState) -> None:
        allowed = FLOW_TRANSITIONS[self.state]
        if target not in allowed:
            raise ValueError(
                f"Invalid auth flow transition: '{self.state}' → '{target}'"
            )
        self.history.append(self.state)
        self.state = target


@dataclass(frozen=True)
class AuthorizationRequest:
    """Redirect target produced by ``begin``."""

    shop: str
    nonce: str = field(repr=False)
    url: str
    state: AuthFlowState = AuthFlowState.REDIRECTED


@dataclass(frozen=True)
class AuthFlowResult:
    session: Session
    granted_scopes: tuple[str, ...]
    state: AuthFlowState = AuthFlowState.ESTABLISHED


class AuthorizationFlow:
    """Drive the install/login sequence for one shop.

    Args:
        engine: Signature engine bound to the platform secret.
        client: Platform client used for the code exchange.
        store: Session store receiving the established session.
        api_key: Public platform app key (``client_id``).
        scopes: Capability set requested on every authorization.
        redirect_uri: Absolute callback URL.
        session_ttl: Lifetime of issued gateway sessions.
        retry_backoff: Delay before the single exchange retry, seconds.
    """

    def __init__(
        self,
        *,
        engine: SignatureEngine,
        client: PlatformClient,
        store: SessionStore,
        api_key: str,
        scopes: Sequence[str],
        redirect_uri: str,
        session_ttl: timedelta | int,
        retry_backoff: float = 0.5,
    ) -> None:
        self._engine = engine
        self._client = client
        self._store = store
        self._api_key = api_key
        self._scopes = tuple(scopes)
        self._redirect_uri = redirect_uri
        self._session_ttl = session_ttl
        self._retry_backoff = retry_backoff

    def begin(self, shop: str | None) -> AuthorizationRequest:
        """Build the consent-screen URL for ``shop``.

        Raises:
            InvalidTenant: if the shop is absent or malformed.
        """
        attempt = AuthFlowAttempt()
        try:
            attempt.shop = normalize_shop(shop)
        except GatewayError:
            attempt.advance(AuthFlowState.FAILED)
            raise

        nonce = secrets.token_urlsafe(24)
        query = urlencode(
            {
                "client_id": self._api_key,
                "scope": ",".join(self._scopes),
                "redirect_uri": self._redirect_uri,
                "state": nonce,
            }
        )
        attempt.advance(AuthFlowState.REDIRECTED)
        logger.info("auth_flow_redirected", shop=attempt.shop)
        return AuthorizationRequest(
            shop=attempt.shop,
            nonce=nonce,
            url=f"https://{attempt.shop}/admin/oauth/authorize?{query}",
        )

    async def complete(
        self,
        params: Mapping[str, str],
        expected_nonce: str | None,
    ) -> AuthFlowResult:
        """Verify the callback, exchange the code and issue a session.

        Args:
            params: Callback query parameters, including ``signature``.
            expected_nonce: Nonce from the browser-bound state cookie.

        Raises:
            InvalidTenant: shop parameter absent or malformed.
            StateMismatch: nonce missing or different from the cookie, or
                no authorization code in a signed callback.
            InvalidSignature: callback signature does not verify.
            UpstreamExchangeFailure: exchange failed after the retry.
        """
        attempt = AuthFlowAttempt(state=AuthFlowState.REDIRECTED)
        log = logger.bind(flow="callback")
        try:
            attempt.shop = normalize_shop(params.get("shop"))
            log = log.bind(shop=attempt.shop)

            supplied_nonce = params.get("state")
            if not expected_nonce or not supplied_nonce or not hmac.compare_digest(
                supplied_nonce.encode(), expected_nonce.encode()
            ):
                raise StateMismatch("callback state does not match cookie")

            if not self._engine.verify_query(params):
                raise InvalidSignature("callback signature mismatch")

            code = params.get("code")
            if not code:
                raise StateMismatch("callback carries no authorization code")

            attempt.advance(AuthFlowState.EXCHANGING)
            grant = await self._exchange_with_retry(attempt.shop, code)

            missing = missing_scopes(grant.scopes, self._scopes)
            if missing:
                log.warning("auth_flow_scopes_incomplete", missing=missing)

            session = await self._store.issue(
                attempt.shop,
                grant.access_token,
                grant.scopes or self._scopes,
                self._session_ttl,
            )
            attempt.advance(AuthFlowState.ESTABLISHED)
        except GatewayError as exc:
            exc.shop = exc.shop or attempt.shop
            failed_in = attempt.state
            attempt.advance(AuthFlowState.FAILED)
            log.warning(
                "auth_flow_failed",
                failed_in=str(failed_in),
                error_kind=exc.kind,
                error=exc.detail,
            )
            raise

        log.info("auth_flow_established", scopes=list(session.scopes))
        return AuthFlowResult(session=session, granted_scopes=grant.scopes)

    async def _exchange_with_retry(self, shop: str, code: str) -> AccessGrant:
        """Exchange the code, retrying once on transient upstream errors."""
        for attempt in range(1, MAX_EXCHANGE_ATTEMPTS + 1):
            try:
                return await self._client.exchange_code(shop, code)
            except UpstreamExchangeFailure as exc:
                if not exc.retryable or attempt == MAX_EXCHANGE_ATTEMPTS:
                    raise
                logger.warning(
                    "token_exchange_retry",
                    shop=shop,
                    attempt=attempt,
                    status_code=exc.status_code,
                    error=exc.detail,
                )
                await asyncio.sleep(self._retry_backoff * attempt)
        raise AssertionError("unreachable")  # pragma: no cover
