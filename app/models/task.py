"""ORM model for tasks."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid, func

from app.models.base import Base, utcnow


class Task(Base):
    """
    A task owned by exactly one user.

    user_id is set at creation and never updated; admins may act on any task.
    """

    __tablename__ = "tasks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(String(32), nullable=False, default="pending", index=True)
    priority = Column(String(32), nullable=False, default="medium", index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
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
