"""Gateway session tokens and the in-memory session store.

A session wraps the platform access credential for one shop. Callers
only ever see an opaque random token; stores keep its SHA-256 hash.
At most one session per shop is active: issuing a new one replaces the
previous session in a single critical section.
"""

from __future__ import annotations

import hashlib
import secrets
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from threading import Lock
from typing import Protocol

TOKEN_PREFIX = "sgw_"


def generate_session_token() -> tuple[str, str]:
    """Generate a session token, return (token, token_hash).

    The token is returned to the browser once; only the hash is stored.
    """
    token = f"{TOKEN_PREFIX}{secrets.token_urlsafe(32)}"
    return token, hash_session_token(token)


def hash_session_token(token: str) -> str:
    """SHA-256 hex digest of a session token, used as the lookup key."""
    return hashlib.sha256(token.encode()).hexdigest()


@dataclass(frozen=True)
class Session:
    """One authenticated shop context."""

    shop: str
    access_token: str = field(repr=False)
    scopes: tuple[str, ...]
    issued_at: datetime
    expires_at: datetime
    token_hash: str = field(repr=False)
    revoked: bool = False
    token: str | None = field(default=None, repr=False, compare=False)

    def is_active(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(UTC)
        return not self.revoked and now < self.expires_at


def build_session(
    shop: str,
    access_token: str,
    scopes: Sequence[str],
    ttl: timedelta | int,
    *,
    now: datetime | None = None,
) -> Session:
    """Compute a new session record. Nothing is stored yet.

    A non-positive ttl yields a session that is already expired.
    """
    if isinstance(ttl, int):
        ttl = timedelta(seconds=ttl)
    issued_at = now or datetime.now(UTC)
    token, token_hash = generate_session_token()
    return Session(
        shop=shop,
        access_token=access_token,
        scopes=tuple(scopes),
        issued_at=issued_at,
        expires_at=issued_at + max(ttl, timedelta(0)),
        token_hash=token_hash,
        token=token,
    )


class SessionStore(Protocol):
    """Storage contract shared by the memory and database backends."""

    async def issue(
        self,
        shop: str,
        access_token: str,
        scopes: Sequence[str],
        ttl: timedelta | int,
    ) -> Session:
        """Create the shop's session, replacing any previous one atomically."""
        ...

    async def validate(self, token: str | None) -> Session | None:
        """Return the session for ``token`` if it is active, else None."""
        ...

    async def revoke(self, shop: str) -> bool:
        """Deactivate the shop's session. Return True if one was active."""
        ...

    async def get_active(self, shop: str) -> Session | None:
        """Return the shop's active session, if any."""
        ...


class InMemorySessionStore:
    """Process-local session store.

    Thread-safe via Lock. Single-instance only: revocations are not
    visible to other processes. Use ``SqlSessionStore`` for multi-instance
    deployments.
    """

    def __init__(self) -> None:
        self._by_hash: dict[str, Session] = {}
        self._active_by_shop: dict[str, str] = {}
        self._lock = Lock()

    async def issue(
        self,
        shop: str,
        access_token: str,
        scopes: Sequence[str],
        ttl: timedelta | int,
    ) -> Session:
        session = build_session(shop, access_token, scopes, ttl)

        with self._lock:
            previous = self._active_by_shop.get(shop)
            if previous is not None:
                self._by_hash.pop(previous, None)
            self._by_hash[session.token_hash] = session
            self._active_by_shop[shop] = session.token_hash

        return session

    async def validate(self, token: str | None) -> Session | None:
        if not token:
            return None
        token_hash = hash_session_token(token)

        with self._lock:
            session = self._by_hash.get(token_hash)
            current = None if session is None else self._active_by_shop.get(
                session.shop
            )

        if session is None or current != token_hash or not session.is_active():
            return None
        return replace(session, token=token)

    async def revoke(self, shop: str) -> bool:
        with self._lock:
            token_hash = self._active_by_shop.pop(shop, None)
            if token_hash is None:
                return False
            session = self._by_hash.get(token_hash)
            if session is not None:
                self._by_hash[token_hash] = replace(session, revoked=True)
        return session is not None and session.is_active()

    async def get_active(self, shop: str) -> Session | None:
        with self._lock:
            token_hash = self._active_by_shop.get(shop)
            session = None if token_hash is None else self._by_hash.get(token_hash)
        if session is None or not session.is_active():
            return None
        return session

    def purge_expired(self) -> int:
        """Drop expired and revoked sessions. Call periodically.

        Returns:
            Number of sessions removed.
        """
        now = datetime.now(UTC)
        with self._lock:
            stale = [h for h, s in self._by_hash.items() if not s.is_active(now)]
            for token_hash in stale:
                session = self._by_hash.pop(token_hash)
                if self._active_by_shop.get(session.shop) == token_hash:
                    del self._active_by_shop[session.shop]
        return len(stale)
