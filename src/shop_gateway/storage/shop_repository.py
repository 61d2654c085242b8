"""Shop install records and the failure audit sink."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shop_gateway.storage.orm import ErrorLog, Shop

logger = structlog.get_logger()


class ShopRepository:
    """Install state per shop.

    Each method is its own unit of work: it opens a session from the
    factory and commits before returning.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_by_tenant(self, shop: str) -> Shop | None:
        async with self._session_factory() as db:
            result = await db.execute(select(Shop).where(Shop.shop == shop))
            return result.scalar_one_or_none()

    async def upsert(self, shop: str, scopes: Sequence[str]) -> None:
        """Record an install (or reinstall) with the granted scopes."""
        stmt = insert(Shop).values(shop=shop, scopes=list(scopes), is_active=True)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Shop.shop],
            set_={
                "scopes": stmt.excluded.scopes,
                "is_active": True,
                "uninstalled_at": None,
                "installed_at": datetime.now(UTC),
            },
        )
        async with self._session_factory() as db:
            await db.execute(stmt)
            await db.commit()

    async def mark_uninstalled(self, shop: str) -> bool:
        """Flag the shop inactive. Safe to call repeatedly.

        Returns:
            True if a record was updated.
        """
        stmt = (
            update(Shop)
            .where(Shop.shop == shop)
            .values(is_active=False, uninstalled_at=datetime.now(UTC))
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            await db.commit()
        return bool(result.rowcount)


@dataclass(frozen=True)
class FailureRecord:
    """Structured description of a rejected request."""

    kind: str
    shop: str | None = None
    path: str | None = None
    detail: str | None = None


class AuditSink:
    """Persist failure records to the ``error_logs`` table.

    A failing write is logged and dropped: auditing never changes the
    response the client receives.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record(self, failure: FailureRecord) -> None:
        try:
            async with self._session_factory() as db:
                db.add(
                    ErrorLog(
                        kind=failure.kind,
                        shop=failure.shop,
                        path=failure.path,
                        detail=failure.detail,
                    )
                )
                await db.commit()
        except Exception:
            logger.exception("audit_record_failed", kind=failure.kind)
