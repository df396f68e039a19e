"""Account registration, credential login and refresh-token rotation."""

import logging
import uuid
from typing import Protocol

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import (
    AuthenticationError,
    ConflictError,
    PersistenceError,
    RefreshTokenInvalidError,
    StorageLookupError,
    ValidationError,
)
from app.core.security import (
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    dummy_password_hash,
    hash_password,
    verify_password,
)
from app.models import USER_ROLE, Role, User, UserRole
from app.services.tokens import RefreshRotator, TokenIssuer, TokenPair

logger = logging.getLogger(__name__)


class AuthService(Protocol):
    def login(self, db: Session, username_or_email: str, password: str) -> TokenPair: ...

    def register(self, db: Session, username: str, email: str, password: str) -> User: ...

    def refresh(self, db: Session, refresh_token: str) -> TokenPair: ...


class DatabaseAuthService:
    """AuthService backed by the users/roles tables and the token services."""

    def __init__(self, issuer: TokenIssuer, rotator: RefreshRotator | None = None) -> None:
        self.issuer = issuer
        self.rotator = rotator or RefreshRotator()

    def login(self, db: Session, username_or_email: str, password: str) -> TokenPair:
        """
        Check credentials and issue a token pair.

        Unknown user and wrong password are indistinguishable to the caller: both
        run one bcrypt check and raise AuthenticationError("Invalid credentials").
        """
        try:
            user = db.execute(
                select(User).where(
                    or_(User.username == username_or_email, User.email == username_or_email),
                    User.deleted_at.is_(None),
                )
            ).scalars().first()
        except SQLAlchemyError as e:
            raise StorageLookupError("Failed to look up user", cause=e) from e

        if user is None:
            verify_password(password, dummy_password_hash())
            logger.info("Login failed: unknown account")
            raise AuthenticationError("Invalid credentials")
        if not verify_password(password, user.password_hash):
            logger.info("Login failed: bad password for user_id=%s", user.id)
            raise AuthenticationError("Invalid credentials")

        return self.issuer.issue_token_pair(db, user.id)

    def register(self, db: Session, username: str, email: str, password: str) -> User:
        """Create an account with the default 'user' role. Raises ValidationError or ConflictError."""
        username = username.strip()
        email = email.strip()
        if not username:
            raise ValidationError("Username is required")
        if not (PASSWORD_MIN_LEN <= len(password) <= PASSWORD_MAX_LEN):
            raise ValidationError(
                f"Password must be {PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} characters"
            )

        # Usernames and emails share one namespace; login accepts either.
        identifiers = (username, email)
        try:
            taken = db.execute(
                select(User.id).where(
                    or_(User.username.in_(identifiers), User.email.in_(identifiers))
                )
            ).first()
        except SQLAlchemyError as e:
            raise StorageLookupError("Failed to look up user", cause=e) from e
        if taken is not None:
            raise ConflictError("User already exists")

        user = User(
            id=uuid.uuid4(),
            username=username,
            email=email,
            password_hash=hash_password(password),
        )
        try:
            db.add(user)
            role_id = db.execute(select(Role.id).where(Role.name == USER_ROLE)).scalar_one_or_none()
            if role_id is None:
                logger.warning("Role %r missing; user_id=%s registered without roles", USER_ROLE, user.id)
            else:
                db.add(UserRole(user_id=user.id, role_id=role_id))
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise ConflictError("User already exists", cause=e) from e
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError("Failed to create user", cause=e) from e

        logger.info("Registered user_id=%s", user.id)
        return user

    def refresh(self, db: Session, refresh_token: str) -> TokenPair:
        """
        Rotate a refresh token: validate, consume, then issue a new pair.

        The old token is consumed before the new pair is issued; of two concurrent
        refreshes with the same token exactly one gets a pair.
        """
        row = self.rotator.validate(db, refresh_token)
        user_id = row.user_id
        if not self.rotator.invalidate(db, refresh_token):
            logger.warning("Refresh token for user_id=%s already consumed", user_id)
            raise RefreshTokenInvalidError("Invalid or expired refresh token")

        try:
            user = db.get(User, user_id)
        except SQLAlchemyError as e:
            raise StorageLookupError("Failed to load user", cause=e) from e
        if user is None or user.deleted_at is not None:
            raise RefreshTokenInvalidError("Invalid or expired refresh token")

        logger.info("Rotated refresh token for user_id=%s", user_id)
        return self.issuer.issue_token_pair(db, user_id)
