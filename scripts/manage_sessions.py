"""CLI for operator inspection of shops and gateway sessions.

Usage::

    uv run python -m scripts.manage_sessions <command> [options]

Commands:
    list-shops        List installed and uninstalled shops
    list-sessions     List sessions with their status
    revoke-session    Revoke the active session of a shop
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Callable
from datetime import UTC, datetime

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from shop_gateway.auth.tenants import normalize_shop
from shop_gateway.config import settings
from shop_gateway.errors import InvalidTenant
from shop_gateway.storage.orm import PlatformSession, Shop


def get_sync_session() -> Session:
    """Create sync session for CLI operations.

    Uses the same database URL as the async app (psycopg v3
    handles both sync and async natively).
    """
    engine = create_engine(settings.database_url)
    return Session(engine)


def _session_status(row: PlatformSession, now: datetime) -> str:
    if row.revoked_at is not None:
        return "revoked"
    if row.expires_at <= now:
        return "expired"
    return "active"


def list_shops(_args: argparse.Namespace) -> None:
    """List all shop install records."""
    with get_sync_session() as session:
        shops = session.execute(select(Shop).order_by(Shop.shop)).scalars().all()

        if not shops:
            print("No shops found.")
            return

        print("Shops:")
        for i, shop in enumerate(shops, 1):
            status = "installed" if shop.is_active else "uninstalled"
            scopes = ",".join(shop.scopes) if shop.scopes else "none"
            print(f"  {i}. {shop.shop} ({status}) scopes={scopes}")


def list_sessions(args: argparse.Namespace) -> None:
    """List sessions, optionally for one shop. Tokens are never printed."""
    now = datetime.now(UTC)
    stmt = select(PlatformSession).order_by(PlatformSession.issued_at.desc())
    if args.shop:
        stmt = stmt.where(PlatformSession.shop == args.shop)

    with get_sync_session() as session:
        rows = session.execute(stmt).scalars().all()

        if not rows:
            print("No sessions found.")
            return

        print("Sessions:")
        for i, row in enumerate(rows, 1):
            status = _session_status(row, now)
            print(
                f"  {i}. {row.shop} {status} "
                f"expires={row.expires_at.isoformat(timespec='seconds')}"
            )


def revoke_session(args: argparse.Namespace) -> None:
    """Revoke the active session of a shop."""
    try:
        shop = normalize_shop(args.shop)
    except InvalidTenant:
        print(f"Invalid shop domain: {args.shop}", file=sys.stderr)
        sys.exit(1)

    with get_sync_session() as session:
        row = session.execute(
            select(PlatformSession).where(PlatformSession.shop == shop)
        ).scalar_one_or_none()
        if row is None:
            print(f"No session for shop: {shop}", file=sys.stderr)
            sys.exit(1)

        if row.revoked_at is not None:
            print(f"Session already revoked: {shop}", file=sys.stderr)
            sys.exit(1)

        row.revoked_at = datetime.now(UTC)
        session.commit()
        print(f"Session revoked: {shop}")


def main() -> None:
    """Parse arguments and dispatch to command handler."""
    parser = argparse.ArgumentParser(description="Shop session management CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    # list-shops
    sub.add_parser("list-shops", help="List shop install records")

    # list-sessions
    p = sub.add_parser("list-sessions", help="List gateway sessions")
    p.add_argument("--shop", default=None, help="Only this shop domain")

    # revoke-session
    p = sub.add_parser("revoke-session", help="Revoke a shop's session")
    p.add_argument("--shop", required=True, help="Shop domain")

    args = parser.parse_args()
    commands: dict[str, Callable[[argparse.Namespace], None]] = {
        "list-shops": list_shops,
        "list-sessions": list_sessions,
        "revoke-session": revoke_session,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
