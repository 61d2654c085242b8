"""Error mapping, audit and generic-response hardening."""

from unittest.mock import AsyncMock

import pytest
from fastapi import Request
from httpx import AsyncClient

from shop_gateway.api.app import app, unhandled_exception_handler
from shop_gateway.api.errors import (
    AUTH_FAILED_MESSAGE,
    ERROR_ACTIONS,
    ClientAction,
    action_for,
    error_response,
)
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


class TestErrorActions:
    @pytest.mark.parametrize(
        ("exc", "status", "action"),
        [
            (InvalidTenant("x"), 400, ClientAction.NONE),
            (StateMismatch("x"), 401, ClientAction.REAUTHENTICATE),
            (InvalidSignature("x"), 401, ClientAction.NONE),
            (ExpiredOrRevokedSession("x"), 401, ClientAction.REAUTHENTICATE),
            (
                RateLimited("x", retry_after=1, limit=1, window_seconds=1),
                429,
                ClientAction.RETRY_LATER,
            ),
            (UpstreamExchangeFailure("x"), 502, ClientAction.REAUTHENTICATE),
            (UnknownTopic("x"), 404, ClientAction.NONE),
        ],
    )
    def test_mapping(
        self, exc: GatewayError, status: int, action: ClientAction
    ) -> None:
        mapped = action_for(exc)
        assert mapped.status_code == status
        assert mapped.action == action

    def test_every_kind_mapped(self) -> None:
        assert set(ERROR_ACTIONS) == set(GatewayError.__subclasses__())

    def test_signature_and_state_indistinguishable(self) -> None:
        a = error_response(StateMismatch("nonce differs"))
        b = error_response(InvalidSignature("hmac differs"))
        assert a.status_code == b.status_code == 401
        assert b"nonce" not in a.body
        assert b"hmac" not in b.body
        assert AUTH_FAILED_MESSAGE.encode() in a.body
        assert AUTH_FAILED_MESSAGE.encode() in b.body

    def test_rate_limited_body(self) -> None:
        response = error_response(
            RateLimited("x", retry_after=42, limit=100, window_seconds=900)
        )
        assert response.headers["Retry-After"] == "42"
        assert b'"windowMs":900000' in response.body
        assert b'"maxRequests":100' in response.body


class TestAudit:
    async def test_failure_recorded(self, client: AsyncClient) -> None:
        sink = AsyncMock()
        app.state.audit_sink = sink
        try:
            response = await client.post("/auth/token")
        finally:
            del app.state.audit_sink

        assert response.status_code == 401
        record: FailureRecord = sink.record.call_args.args[0]
        assert record.kind == "expired_or_revoked_session"
        assert record.path == "/auth/token"


class TestCORSRestriction:
    async def test_cors_restricted_by_default(self, client: AsyncClient) -> None:
        """Empty CORS origins (default) → preflight rejected."""
        response = await client.options(
            "/auth/token",
            headers={
                "Origin": "http://evil.com",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert "access-control-allow-origin" not in response.headers


class TestErrorNoStacktrace:
    async def test_error_no_stacktrace(self) -> None:
        """Unhandled exception returns generic message without stack trace."""
        mock_request = Request(
            scope={"type": "http", "method": "GET", "path": "/test", "headers": []}
        )
        response = await unhandled_exception_handler(
            mock_request, RuntimeError("sensitive db error")
        )
        assert response.status_code == 500
        body = response.body.decode()
        assert "Internal server error" in body
        assert "sensitive" not in body
        assert "Traceback" not in body
