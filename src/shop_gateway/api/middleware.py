"""HTTP middleware: request logging and per-shop rate limiting."""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from shop_gateway.api.errors import error_response
from shop_gateway.auth.rate_limiter import FixedWindowRateLimiter
from shop_gateway.errors import RateLimited

logger = structlog.get_logger()

SHOP_DOMAIN_HEADER = "X-Shopify-Shop-Domain"
SKIP_PATHS: frozenset[str] = frozenset({"/health", "/docs", "/openapi.json", "/redoc"})


def rate_limit_key(request: Request) -> str:
    """Shop domain header if present, otherwise the client address."""
    shop = request.headers.get(SHOP_DOMAIN_HEADER, "").strip().lower()
    if shop:
        return f"shop:{shop}"
    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log HTTP requests with method, path, status code, and latency."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request and log timing information."""
        if request.url.path in SKIP_PATHS:
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        latency_ms = int((time.perf_counter() - start) * 1000)

        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            latency_ms=latency_ms,
        )
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Admit or reject each request before it reaches any route.

    Denied requests get a 429 with ``Retry-After`` and the window/limit
    so clients can back off. Every response carries ``RateLimit-*``
    headers.
    """

    def __init__(self, app: ASGIApp, limiter: FixedWindowRateLimiter) -> None:
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in SKIP_PATHS:
            return await call_next(request)

        key = rate_limit_key(request)
        decision = self.limiter.admit(key)

        if not decision.allowed:
            logger.warning(
                "rate_limited",
                key=key,
                limit=decision.limit,
                retry_after=decision.retry_after,
            )
            response: Response = error_response(
                RateLimited(
                    f"rate limit exceeded for {key}",
                    retry_after=decision.retry_after,
                    limit=decision.limit,
                    window_seconds=decision.window_seconds,
                )
            )
        else:
            response = await call_next(request)

        response.headers["RateLimit-Limit"] = str(decision.limit)
        response.headers["RateLimit-Remaining"] = str(decision.remaining)
        response.headers["RateLimit-Reset"] = str(decision.reset_after)
        return response
