"""ORM models for permissions and the role-permission join table."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Uuid, func

from app.models.base import Base, utcnow


class Permission(Base):
    """
    A (resource, action) pair such as ('task', 'create').

    Not unique beyond id; duplicate pairs collapse when permissions are resolved.
    """

    __tablename__ = "permissions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    resource = Column(String(64), nullable=False)
    action = Column(String(64), nullable=False)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )


class RolePermission(Base):
    __tablename__ = "role_permissions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    role_id = Column(Uuid, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    permission_id = Column(
        Uuid, ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
