"""Access/refresh token issuance and single-use refresh-token validation."""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings as default_settings
from app.core.errors import (
    MalformedTokenError,
    PersistenceError,
    RefreshTokenInvalidError,
    StorageLookupError,
)
from app.core.security import (
    encode_access_token,
    generate_refresh_token,
    is_well_formed_refresh_token,
)
from app.models import RefreshToken, User
from app.services.permissions import ResolvedPermissions, resolve_permissions

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int


def build_access_claims(
    user_id: uuid.UUID,
    username: str,
    resolved: ResolvedPermissions,
    now: datetime,
    ttl_seconds: int,
    issuer: str,
) -> dict[str, Any]:
    """Claims payload for an access token; timestamps are integer epoch seconds."""
    issued_at = int(now.timestamp())
    return {
        "user_id": str(user_id),
        "username": username,
        "roles": list(resolved.roles),
        "is_admin": resolved.is_admin,
        "permissions": resolved.as_claims(),
        "iat": issued_at,
        "nbf": issued_at,
        "exp": issued_at + ttl_seconds,
        "sub": str(user_id),
        "iss": issuer,
    }


class TokenIssuer:
    """Mints a signed access token and a persisted refresh token as one unit."""

    def __init__(self, settings: "Settings" = default_settings) -> None:
        self.settings = settings

    def issue_token_pair(self, db: Session, user_id: uuid.UUID) -> TokenPair:
        """
        Resolve permissions, sign the access token and persist a refresh token.

        All-or-nothing: if the refresh token cannot be stored, no tokens are returned.
        Raises StorageLookupError, SigningError or PersistenceError.
        """
        resolved = resolve_permissions(db, user_id)
        username = self._load_username(db, user_id)

        now = datetime.now(UTC)
        claims = build_access_claims(
            user_id,
            username,
            resolved,
            now,
            ttl_seconds=self.settings.ACCESS_TOKEN_TTL_SECONDS,
            issuer=self.settings.JWT_ISSUER,
        )
        access_token = encode_access_token(claims, self.settings)

        refresh_value = generate_refresh_token()
        row = RefreshToken(
            user_id=user_id,
            token=refresh_value,
            expires_at=now + timedelta(seconds=self.settings.REFRESH_TOKEN_TTL_SECONDS),
        )
        try:
            db.add(row)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Refresh token write failed for user_id=%s", user_id)
            raise PersistenceError("Failed to persist refresh token", cause=e) from e

        logger.info("Issued token pair for user_id=%s roles=%s", user_id, resolved.roles)
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_value,
            expires_in=self.settings.ACCESS_TOKEN_TTL_SECONDS,
        )

    @staticmethod
    def _load_username(db: Session, user_id: uuid.UUID) -> str:
        try:
            user = db.get(User, user_id)
        except SQLAlchemyError as e:
            raise StorageLookupError("Failed to load user", cause=e) from e
        if user is None or user.deleted_at is not None:
            raise StorageLookupError(f"User {user_id} not found")
        return user.username


class RefreshRotator:
    """Validates refresh tokens and consumes them exactly once."""

    def validate(self, db: Session, value: str) -> RefreshToken:
        """
        Return the live RefreshToken row for value.

        Raises MalformedTokenError before any lookup if value is not a token we
        could have issued, and RefreshTokenInvalidError if it is unknown or expired.
        """
        if not is_well_formed_refresh_token(value):
            raise MalformedTokenError("Invalid refresh token format")
        now = datetime.now(UTC)
        try:
            row = db.execute(
                select(RefreshToken).where(
                    RefreshToken.token == value,
                    RefreshToken.expires_at > now,
                )
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageLookupError("Failed to look up refresh token", cause=e) from e
        if row is None:
            raise RefreshTokenInvalidError("Invalid or expired refresh token")
        return row

    def invalidate(self, db: Session, value: str) -> bool:
        """
        Delete the row holding value in one statement; True if a row was deleted.

        Idempotent. Two concurrent callers for the same value see exactly one True.
        """
        try:
            result = db.execute(delete(RefreshToken).where(RefreshToken.token == value))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError("Failed to invalidate refresh token", cause=e) from e
        return result.rowcount > 0
