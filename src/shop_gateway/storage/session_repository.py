"""PostgreSQL-backed session store.

The default backend for multi-instance deployments. There is no local
cache: every ``validate`` reads the shared table, so a revoke committed
by one instance is visible to the next request on any other instance.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

import structlog
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shop_gateway.auth.sessions import Session, build_session, hash_session_token
from shop_gateway.storage.orm import PlatformSession

logger = structlog.get_logger()


def _to_session(row: PlatformSession, token: str | None = None) -> Session:
    return Session(
        shop=row.shop,
        access_token=row.access_token,
        scopes=tuple(row.scopes or ()),
        issued_at=row.issued_at,
        expires_at=row.expires_at,
        token_hash=row.token_hash,
        revoked=row.revoked_at is not None,
        token=token,
    )


class SqlSessionStore:
    """Session store over the ``platform_sessions`` table.

    Issuance is a single ``INSERT ... ON CONFLICT (shop) DO UPDATE``: the
    new token hash replaces the old one in one statement, so no reader can
    see two active sessions for the same shop.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def issue(
        self,
        shop: str,
        access_token: str,
        scopes: Sequence[str],
        ttl: timedelta | int,
    ) -> Session:
        session = build_session(shop, access_token, scopes, ttl)
        values = {
            "shop": session.shop,
            "token_hash": session.token_hash,
            "access_token": session.access_token,
            "scopes": list(session.scopes),
            "issued_at": session.issued_at,
            "expires_at": session.expires_at,
            "revoked_at": None,
        }
        stmt = insert(PlatformSession).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[PlatformSession.shop],
            set_={k: stmt.excluded[k] for k in values if k != "shop"},
        )

        async with self._session_factory() as db:
            await db.execute(stmt)
            await db.commit()

        logger.info("session_issued", shop=shop, expires_at=session.expires_at)
        return session

    async def validate(self, token: str | None) -> Session | None:
        if not token:
            return None
        now = datetime.now(UTC)
        stmt = select(PlatformSession).where(
            PlatformSession.token_hash == hash_session_token(token),
            PlatformSession.revoked_at.is_(None),
            PlatformSession.expires_at > now,
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            row = result.scalar_one_or_none()

        if row is None:
            return None
        return _to_session(row, token)

    async def revoke(self, shop: str) -> bool:
        now = datetime.now(UTC)
        stmt = (
            update(PlatformSession)
            .where(
                PlatformSession.shop == shop,
                PlatformSession.revoked_at.is_(None),
            )
            .values(revoked_at=now)
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            await db.commit()

        revoked = bool(result.rowcount)
        logger.info("session_revoked", shop=shop, found=revoked)
        return revoked

    async def get_active(self, shop: str) -> Session | None:
        now = datetime.now(UTC)
        stmt = select(PlatformSession).where(
            PlatformSession.shop == shop,
            PlatformSession.revoked_at.is_(None),
            PlatformSession.expires_at > now,
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            row = result.scalar_one_or_none()
        return None if row is None else _to_session(row)
