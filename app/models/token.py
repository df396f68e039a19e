"""ORM model for persisted refresh tokens."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Uuid, func

from app.models.base import Base, utcnow


class RefreshToken(Base):
    """
    Opaque refresh token issued alongside an access token.

    A row is valid until expires_at and is deleted when consumed by a refresh,
    so each token value can be exchanged at most once.
    """

    __tablename__ = "refresh_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(64), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
