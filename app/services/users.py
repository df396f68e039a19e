"""User profiles (cached), admin listing and soft deletion."""

import logging
import uuid
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, PersistenceError, StorageLookupError
from app.models import RefreshToken, User
from app.models.base import utcnow
from app.schemas.user import UserProfile
from app.services.cache import CacheService

logger = logging.getLogger(__name__)


class UserService(Protocol):
    def get_profile(self, db: Session, user_id: uuid.UUID) -> UserProfile: ...

    def list_users(self, db: Session) -> list[UserProfile]: ...

    def delete_user(self, db: Session, user_id: uuid.UUID) -> None: ...


class DatabaseUserService:
    def __init__(self, cache: CacheService) -> None:
        self.cache = cache

    def get_profile(self, db: Session, user_id: uuid.UUID) -> UserProfile:
        cached = self.cache.get_user_profile(user_id)
        if cached is not None:
            return cached
        user = self._load_active(db, user_id)
        profile = UserProfile.model_validate(user)
        self.cache.set_user_profile(profile)
        return profile

    def list_users(self, db: Session) -> list[UserProfile]:
        try:
            users = db.execute(
                select(User).where(User.deleted_at.is_(None)).order_by(User.created_at, User.username)
            ).scalars().all()
        except SQLAlchemyError as e:
            raise StorageLookupError("Failed to list users", cause=e) from e
        return [UserProfile.model_validate(u) for u in users]

    def delete_user(self, db: Session, user_id: uuid.UUID) -> None:
        """
        Soft-delete the account and revoke its refresh tokens.

        Access tokens already issued stay valid until they expire.
        """
        user = self._load_active(db, user_id)
        try:
            user.deleted_at = utcnow()
            revoked = db.execute(
                delete(RefreshToken).where(RefreshToken.user_id == user_id)
            ).rowcount
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError("Failed to delete user", cause=e) from e

        self.cache.invalidate_user_cache(user_id)
        logger.info("Soft-deleted user_id=%s refresh_tokens_revoked=%s", user_id, revoked)

    @staticmethod
    def _load_active(db: Session, user_id: uuid.UUID) -> User:
        try:
            user = db.get(User, user_id)
        except SQLAlchemyError as e:
            raise StorageLookupError("Failed to load user", cause=e) from e
        if user is None or user.deleted_at is not None:
            raise NotFoundError("User not found")
        return user
