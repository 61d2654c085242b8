"""Tests for the session management CLI."""

from __future__ import annotations

import argparse
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from scripts.manage_sessions import list_sessions, list_shops, revoke_session

from shop_gateway.storage.orm import PlatformSession, Shop

SHOP = "cool-store.myshopify.com"


@pytest.fixture()
def mock_session() -> MagicMock:
    """Create a mock sync Session."""
    session = MagicMock()
    session.__enter__ = MagicMock(return_value=session)
    session.__exit__ = MagicMock(return_value=False)
    return session


@pytest.fixture()
def _patch_session(mock_session: MagicMock) -> MagicMock:
    """Patch get_sync_session to return mock."""
    with patch(
        "scripts.manage_sessions.get_sync_session", return_value=mock_session
    ):
        yield mock_session


def _session_row(**overrides: object) -> MagicMock:
    row = MagicMock(spec=PlatformSession)
    row.shop = SHOP
    row.access_token = "shpat_never_printed"
    row.expires_at = datetime.now(UTC) + timedelta(hours=1)
    row.revoked_at = None
    for key, value in overrides.items():
        setattr(row, key, value)
    return row


class TestListShops:
    def test_lists(
        self,
        _patch_session: MagicMock,
        mock_session: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        shop = MagicMock(spec=Shop)
        shop.shop = SHOP
        shop.is_active = False
        shop.scopes = ["read_products"]
        mock_session.execute.return_value.scalars.return_value.all.return_value = [
            shop
        ]

        list_shops(argparse.Namespace())

        out = capsys.readouterr().out
        assert f"{SHOP} (uninstalled) scopes=read_products" in out

    def test_empty(
        self,
        _patch_session: MagicMock,
        mock_session: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        mock_session.execute.return_value.scalars.return_value.all.return_value = []
        list_shops(argparse.Namespace())
        assert "No shops found." in capsys.readouterr().out


class TestListSessions:
    def test_statuses_without_tokens(
        self,
        _patch_session: MagicMock,
        mock_session: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        rows = [
            _session_row(),
            _session_row(revoked_at=datetime.now(UTC)),
            _session_row(expires_at=datetime.now(UTC) - timedelta(seconds=1)),
        ]
        mock_session.execute.return_value.scalars.return_value.all.return_value = rows

        list_sessions(argparse.Namespace(shop=None))

        out = capsys.readouterr().out
        assert " active " in out
        assert " revoked " in out
        assert " expired " in out
        assert "shpat_never_printed" not in out


class TestRevokeSession:
    def test_revokes(
        self,
        _patch_session: MagicMock,
        mock_session: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        row = _session_row()
        mock_session.execute.return_value.scalar_one_or_none.return_value = row

        revoke_session(argparse.Namespace(shop=" Cool-Store.myshopify.com"))

        assert row.revoked_at is not None
        mock_session.commit.assert_called_once()
        assert f"Session revoked: {SHOP}" in capsys.readouterr().out

    def test_not_found(
        self,
        _patch_session: MagicMock,
        mock_session: MagicMock,
    ) -> None:
        mock_session.execute.return_value.scalar_one_or_none.return_value = None
        with pytest.raises(SystemExit) as exc_info:
            revoke_session(argparse.Namespace(shop=SHOP))
        assert exc_info.value.code == 1

    def test_already_revoked(
        self,
        _patch_session: MagicMock,
        mock_session: MagicMock,
    ) -> None:
        row = _session_row(revoked_at=datetime.now(UTC))
        mock_session.execute.return_value.scalar_one_or_none.return_value = row
        with pytest.raises(SystemExit):
            revoke_session(argparse.Namespace(shop=SHOP))
        mock_session.commit.assert_not_called()

    def test_invalid_shop(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit):
            revoke_session(argparse.Namespace(shop="evil.com"))
        assert "Invalid shop domain" in capsys.readouterr().err
