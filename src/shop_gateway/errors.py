"""Domain-specific exceptions for the gateway.

Messages carry internal diagnostic detail for logs. Clients never see
them: the API boundary maps each error kind to a generic response
(see ``shop_gateway.api.errors``).
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for every authentication, authorization or throttling failure."""

    kind: str = "gateway_error"

    def __init__(self, detail: str = "", *, shop: str | None = None) -> None:
        self.detail = detail
        self.shop = shop
        super().__init__(detail or self.kind)


class InvalidTenant(GatewayError):
    """Shop identifier is absent or malformed."""

    kind = "invalid_tenant"


class StateMismatch(GatewayError):
    """Round-tripped anti-forgery nonce does not match the browser cookie."""

    kind = "state_mismatch"


class InvalidSignature(GatewayError):
    """HMAC signature is missing or does not verify."""

    kind = "invalid_signature"


class ExpiredOrRevokedSession(GatewayError):
    """Session token is unknown, expired or revoked."""

    kind = "expired_or_revoked_session"


class RateLimited(GatewayError):
    """Request budget for the key is exhausted in the current window."""

    kind = "rate_limited"

    def __init__(
        self,
        detail: str = "",
        *,
        retry_after: int,
        limit: int,
        window_seconds: int,
        shop: str | None = None,
    ) -> None:
        self.retry_after = retry_after
        self.limit = limit
        self.window_seconds = window_seconds
        super().__init__(detail, shop=shop)


class UpstreamExchangeFailure(GatewayError):
    """Token exchange with the platform failed.

    ``retryable`` is True for network errors and 5xx responses.
    """

    kind = "upstream_exchange_failure"

    def __init__(
        self,
        detail: str = "",
        *,
        retryable: bool = False,
        status_code: int | None = None,
        shop: str | None = None,
    ) -> None:
        self.retryable = retryable
        self.status_code = status_code
        super().__init__(detail, shop=shop)


class UnknownTopic(GatewayError):
    """No webhook handler is registered for the topic."""

    kind = "unknown_topic"
