"""Signatures, sessions, rate limiting and the authorization flow.

Note: ``require_scopes`` lives in ``api.deps`` (it needs the session
dependency) and is NOT re-exported here.
"""

from shop_gateway.auth.proxy import ProxyRequestVerifier
from shop_gateway.auth.rate_limiter import FixedWindowRateLimiter, RateLimitDecision
from shop_gateway.auth.sessions import InMemorySessionStore, Session, SessionStore
from shop_gateway.auth.signature import SignatureEngine, canonical_query, sign, verify

__all__ = [
    "FixedWindowRateLimiter",
    "InMemorySessionStore",
    "ProxyRequestVerifier",
    "RateLimitDecision",
    "Session",
    "SessionStore",
    "SignatureEngine",
    "canonical_query",
    "sign",
    "verify",
]
