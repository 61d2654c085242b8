"""Shared pytest fixtures."""

import base64
import hashlib
import hmac
import os
from collections.abc import Callable

import pytest

# Settings are read at import time; the platform credentials are required.
os.environ.setdefault("PLATFORM_API_KEY", "test-api-key")
os.environ.setdefault("PLATFORM_API_SECRET", "test-api-secret")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("SESSION_BACKEND", "memory")
os.environ.setdefault("APP_BASE_URL", "https://app.example.com")

TEST_SECRET = os.environ["PLATFORM_API_SECRET"]


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-db",
        action="store_true",
        default=False,
        help="Run tests that require a live PostgreSQL instance",
    )


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    if config.getoption("--run-db"):
        return
    skip_db = pytest.mark.skip(reason="needs --run-db flag")
    for item in items:
        if "requires_db" in item.keywords:
            item.add_marker(skip_db)


SignQuery = Callable[[dict[str, str]], dict[str, str]]
SignBody = Callable[[bytes], str]


@pytest.fixture()
def platform_secret() -> str:
    return TEST_SECRET


@pytest.fixture()
def sign_query(platform_secret: str) -> SignQuery:
    """Return ``params`` plus a hex ``signature`` the way the platform signs them."""

    def _sign(params: dict[str, str]) -> dict[str, str]:
        message = "".join(f"{k}={params[k]}" for k in sorted(params))
        digest = hmac.new(
            platform_secret.encode(), message.encode(), hashlib.sha256
        ).hexdigest()
        return {**params, "signature": digest}

    return _sign


@pytest.fixture()
def sign_body(platform_secret: str) -> SignBody:
    """Base64 HMAC of a raw webhook body."""

    def _sign(body: bytes) -> str:
        digest = hmac.new(platform_secret.encode(), body, hashlib.sha256).digest()
        return base64.b64encode(digest).decode()

    return _sign
