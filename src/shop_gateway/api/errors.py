"""Error kind → client response mapping.

Clients get a generic message plus an ``action`` telling the frontend
what to do next (e.g. restart the login flow). Which check failed is
only ever logged, never returned.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse

from shop_gateway.errors import (
    ExpiredOrRevokedSession,
    GatewayError,
    InvalidSignature,
    InvalidTenant,
    RateLimited,
    StateMismatch,
    UnknownTopic,
    UpstreamExchangeFailure,
)
from shop_gateway.storage.shop_repository import FailureRecord

logger = structlog.get_logger()

AUTH_FAILED_MESSAGE = "Authentication failed"
RATE_LIMITED_MESSAGE = "Too many requests, please try again later."


class ClientAction(StrEnum):
    NONE = "none"
    REAUTHENTICATE = "reauthenticate"
    RETRY_LATER = "retry_later"


@dataclass(frozen=True)
class ErrorAction:
    status_code: int
    message: str
    action: ClientAction = ClientAction.NONE


ERROR_ACTIONS: dict[type[GatewayError], ErrorAction] = {
    InvalidTenant: ErrorAction(400, "Invalid shop"),
    StateMismatch: ErrorAction(401, AUTH_FAILED_MESSAGE, ClientAction.REAUTHENTICATE),
    InvalidSignature: ErrorAction(401, AUTH_FAILED_MESSAGE),
    ExpiredOrRevokedSession: ErrorAction(
        401, "Invalid session", ClientAction.REAUTHENTICATE
    ),
    RateLimited: ErrorAction(429, RATE_LIMITED_MESSAGE, ClientAction.RETRY_LATER),
    UpstreamExchangeFailure: ErrorAction(
        502, AUTH_FAILED_MESSAGE, ClientAction.REAUTHENTICATE
    ),
    UnknownTopic: ErrorAction(404, "Unknown webhook topic"),
}

_FALLBACK = ErrorAction(400, "Request rejected")


def action_for(exc: GatewayError) -> ErrorAction:
    for cls in type(exc).__mro__:
        if cls in ERROR_ACTIONS:
            return ERROR_ACTIONS[cls]  # type: ignore[index]
    return _FALLBACK


def error_response(exc: GatewayError) -> JSONResponse:
    """Render a gateway error without any internal detail."""
    mapped = action_for(exc)
    content: dict[str, object] = {
        "error": mapped.message,
        "action": str(mapped.action),
    }
    headers: dict[str, str] = {}

    if isinstance(exc, RateLimited):
        content["rateLimitInfo"] = {
            "windowMs": exc.window_seconds * 1000,
            "maxRequests": exc.limit,
        }
        headers["Retry-After"] = str(exc.retry_after)

    return JSONResponse(
        status_code=mapped.status_code, content=content, headers=headers
    )


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """Log and audit a gateway error, then answer generically."""
    logger.warning(
        "gateway_error",
        error_kind=exc.kind,
        error=exc.detail,
        shop=exc.shop,
        path=request.url.path,
    )

    audit_sink = getattr(request.app.state, "audit_sink", None)
    if audit_sink is not None and not isinstance(exc, RateLimited):
        await audit_sink.record(
            FailureRecord(
                kind=exc.kind,
                shop=exc.shop,
                path=request.url.path,
                detail=exc.detail,
            )
        )

    return error_response(exc)
