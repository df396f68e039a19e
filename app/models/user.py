"""ORM model for application users."""

import uuid

from sqlalchemy import Column, DateTime, String, Uuid, func

from app.models.base import Base, utcnow


class User(Base):
    """
    User account for authentication and task ownership.

    Roles are assigned through user_roles. deleted_at marks a soft-deleted
    account: it keeps its rows but can no longer log in or refresh.
    """

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    username = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)
