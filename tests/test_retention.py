"""Unit and integration tests for the expired refresh-token reaper."""

import unittest
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

from sqlalchemy import select

from app.models import RefreshToken
from app.services.retention import purge_expired_refresh_tokens
from tests.support import add_user, make_session_factory, make_settings


class TestReaperDisabled(unittest.TestCase):
    """When REFRESH_TOKEN_REAPER_ENABLED is False, nothing is deleted."""

    def test_returns_zero_and_does_not_query(self) -> None:
        settings = MagicMock()
        settings.REFRESH_TOKEN_REAPER_ENABLED = False
        session = MagicMock()
        self.assertEqual(purge_expired_refresh_tokens(session, settings), 0)
        session.query.assert_not_called()


class TestReaperNoExpiredTokens(unittest.TestCase):
    def test_returns_zero(self) -> None:
        settings = MagicMock()
        settings.REFRESH_TOKEN_REAPER_ENABLED = True
        session = MagicMock()
        session.query.return_value.filter.return_value.delete.return_value = 0
        self.assertEqual(purge_expired_refresh_tokens(session, settings), 0)
        session.commit.assert_called_once()


class TestReaperDeletesExpiredTokens(unittest.TestCase):
    def test_returns_deleted_count(self) -> None:
        settings = MagicMock()
        settings.REFRESH_TOKEN_REAPER_ENABLED = True
        session = MagicMock()
        session.query.return_value.filter.return_value.delete.return_value = 3
        self.assertEqual(purge_expired_refresh_tokens(session, settings), 3)
        session.add.assert_not_called()
        session.commit.assert_called_once()


class TestReaperIntegration(unittest.TestCase):
    """Against a real SQLite database: expired rows go, live rows stay."""

    def test_only_expired_tokens_deleted(self) -> None:
        db = make_session_factory()()
        try:
            user = add_user(db, "alice")
            now = datetime.now(UTC)
            db.add_all(
                [
                    RefreshToken(user_id=user.id, token="e" * 43, expires_at=now - timedelta(hours=2)),
                    RefreshToken(user_id=user.id, token="f" * 43, expires_at=now - timedelta(seconds=5)),
                    RefreshToken(user_id=user.id, token="l" * 43, expires_at=now + timedelta(hours=1)),
                ]
            )
            db.commit()

            deleted = purge_expired_refresh_tokens(db, make_settings())

            self.assertEqual(deleted, 2)
            remaining = db.execute(select(RefreshToken.token)).scalars().all()
            self.assertEqual(remaining, ["l" * 43])
            self.assertEqual(purge_expired_refresh_tokens(db, make_settings()), 0)
        finally:
            db.close()


if __name__ == "__main__":
    unittest.main()
