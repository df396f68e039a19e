"""ORM models for roles and the user-role join table."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Uuid, func

from app.models.base import Base, utcnow

ADMIN_ROLE = "admin"
USER_ROLE = "user"


class Role(Base):
    """Named role. The name 'admin' grants the admin flag in access claims."""

    __tablename__ = "roles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(64), nullable=False, unique=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )


class UserRole(Base):
    __tablename__ = "user_roles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = Column(Uuid, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
