"""Tests for DatabaseAuthService: registration, login and refresh rotation."""

import os
import tempfile
import threading
import unittest
from unittest.mock import patch

from sqlalchemy import func, select

from app.core.errors import (
    AuthenticationError,
    ConflictError,
    MalformedTokenError,
    RefreshTokenInvalidError,
    ValidationError,
)
from app.core.security import decode_access_token
from app.models import RefreshToken, User
from app.models.base import utcnow
from app.services.auth import DatabaseAuthService
from app.services.tokens import TokenIssuer
from tests.support import make_session_factory, make_settings


def _refresh_rows(db) -> int:
    return db.execute(select(func.count()).select_from(RefreshToken)).scalar_one()


class AuthServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.settings = make_settings()
        self.db = make_session_factory()()
        self.auth = DatabaseAuthService(TokenIssuer(self.settings))

    def tearDown(self) -> None:
        self.db.close()


class TestRegister(AuthServiceTestCase):
    def test_register_assigns_user_role(self) -> None:
        user = self.auth.register(self.db, "alice", "alice@x.com", "secret1")
        pair = self.auth.login(self.db, "alice", "secret1")
        claims = decode_access_token(pair.access_token, self.settings)
        self.assertEqual(claims["sub"], str(user.id))
        self.assertEqual(claims["roles"], ["user"])

    def test_six_character_password_accepted(self) -> None:
        self.auth.register(self.db, "alice", "alice@x.com", "abcdef")

    def test_five_character_password_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            self.auth.register(self.db, "alice", "alice@x.com", "abcde")
        self.assertIsNone(self.db.execute(select(User)).scalars().first())

    def test_duplicate_username_conflicts(self) -> None:
        self.auth.register(self.db, "alice", "alice@x.com", "secret1")
        with self.assertRaises(ConflictError):
            self.auth.register(self.db, "alice", "other@x.com", "secret1")

    def test_duplicate_email_conflicts(self) -> None:
        self.auth.register(self.db, "alice", "alice@x.com", "secret1")
        with self.assertRaises(ConflictError):
            self.auth.register(self.db, "alice2", "alice@x.com", "secret1")

    def test_username_equal_to_existing_email_conflicts(self) -> None:
        self.auth.register(self.db, "carol", "carol@x.com", "secret1")
        with self.assertRaises(ConflictError):
            self.auth.register(self.db, "carol@x.com", "mallory@x.com", "secret1")

    def test_email_equal_to_existing_username_conflicts(self) -> None:
        self.auth.register(self.db, "dave@x.com", "dave@y.com", "secret1")
        with self.assertRaises(ConflictError):
            self.auth.register(self.db, "mallory", "dave@x.com", "secret1")

    def test_email_identifier_logs_into_its_owner(self) -> None:
        carol = self.auth.register(self.db, "carol", "carol@x.com", "secret1")
        with self.assertRaises(ConflictError):
            self.auth.register(self.db, "carol@x.com", "mallory@x.com", "other1")
        pair = self.auth.login(self.db, "carol@x.com", "secret1")
        self.assertEqual(decode_access_token(pair.access_token, self.settings)["sub"], str(carol.id))

    def test_password_is_not_stored_in_plain_text(self) -> None:
        user = self.auth.register(self.db, "alice", "alice@x.com", "secret1")
        self.assertNotEqual(user.password_hash, "secret1")
        self.assertTrue(user.password_hash.startswith("$2"))


class TestLogin(AuthServiceTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.user = self.auth.register(self.db, "alice", "alice@x.com", "secret1")

    def test_login_by_username(self) -> None:
        pair = self.auth.login(self.db, "alice", "secret1")
        self.assertEqual(pair.expires_in, 3600)
        self.assertEqual(_refresh_rows(self.db), 1)

    def test_login_by_email(self) -> None:
        pair = self.auth.login(self.db, "alice@x.com", "secret1")
        claims = decode_access_token(pair.access_token, self.settings)
        self.assertEqual(claims["username"], "alice")

    def test_wrong_password_writes_no_refresh_token(self) -> None:
        with self.assertRaises(AuthenticationError) as ctx:
            self.auth.login(self.db, "alice", "wrongpass")
        self.assertEqual(ctx.exception.message, "Invalid credentials")
        self.assertEqual(_refresh_rows(self.db), 0)

    def test_unknown_user_still_runs_one_hash_check(self) -> None:
        with patch("app.services.auth.verify_password", return_value=False) as verify:
            with self.assertRaises(AuthenticationError) as ctx:
                self.auth.login(self.db, "nobody", "secret1")
        verify.assert_called_once()
        self.assertEqual(ctx.exception.message, "Invalid credentials")

    def test_soft_deleted_user_cannot_login(self) -> None:
        self.user.deleted_at = utcnow()
        self.db.commit()
        with self.assertRaises(AuthenticationError):
            self.auth.login(self.db, "alice", "secret1")


class TestRefresh(AuthServiceTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.user = self.auth.register(self.db, "alice", "alice@x.com", "secret1")
        self.pair = self.auth.login(self.db, "alice", "secret1")

    def test_refresh_rotates_token(self) -> None:
        new_pair = self.auth.refresh(self.db, self.pair.refresh_token)
        self.assertNotEqual(new_pair.refresh_token, self.pair.refresh_token)
        claims = decode_access_token(new_pair.access_token, self.settings)
        self.assertEqual(claims["sub"], str(self.user.id))
        self.assertEqual(_refresh_rows(self.db), 1)

    def test_replayed_token_rejected(self) -> None:
        self.auth.refresh(self.db, self.pair.refresh_token)
        with self.assertRaises(RefreshTokenInvalidError):
            self.auth.refresh(self.db, self.pair.refresh_token)

    def test_malformed_token_rejected(self) -> None:
        with self.assertRaises(MalformedTokenError):
            self.auth.refresh(self.db, "garbage")

    def test_lost_race_is_rejected(self) -> None:
        with patch.object(self.auth.rotator, "invalidate", return_value=False):
            with self.assertRaises(RefreshTokenInvalidError):
                self.auth.refresh(self.db, self.pair.refresh_token)

    def test_soft_deleted_user_cannot_refresh(self) -> None:
        self.user.deleted_at = utcnow()
        self.db.commit()
        with self.assertRaises(RefreshTokenInvalidError):
            self.auth.refresh(self.db, self.pair.refresh_token)


class TestConcurrentRefresh(unittest.TestCase):
    """Two requests refreshing the same token against a file-backed database."""

    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        path = os.path.join(tmp.name, "race.db")
        self.factory = make_session_factory(f"sqlite:///{path}")
        self.addCleanup(self.factory.kw["bind"].dispose)
        self.auth = DatabaseAuthService(TokenIssuer(make_settings()))
        with self.factory() as db:
            self.auth.register(db, "alice", "alice@x.com", "secret1")

    def race(self, token: str) -> tuple[list[str], list[Exception]]:
        barrier = threading.Barrier(2)
        winners: list[str] = []
        losers: list[Exception] = []
        lock = threading.Lock()

        def attempt() -> None:
            db = self.factory()
            try:
                barrier.wait()
                pair = self.auth.refresh(db, token)
                with lock:
                    winners.append(pair.refresh_token)
            except RefreshTokenInvalidError as e:
                with lock:
                    losers.append(e)
            finally:
                db.close()

        threads = [threading.Thread(target=attempt) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)
        return winners, losers

    def test_exactly_one_refresh_wins(self) -> None:
        for _ in range(5):
            with self.factory() as db:
                token = self.auth.login(db, "alice", "secret1").refresh_token

            winners, losers = self.race(token)

            self.assertEqual(len(winners), 1)
            self.assertEqual(len(losers), 1)
            with self.factory() as db:
                stored = set(db.execute(select(RefreshToken.token)).scalars())
            self.assertNotIn(token, stored)
            self.assertIn(winners[0], stored)


if __name__ == "__main__":
    unittest.main()
