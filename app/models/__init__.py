"""SQLAlchemy ORM models."""

from app.models.base import Base
from app.models.permission import Permission, RolePermission
from app.models.role import ADMIN_ROLE, USER_ROLE, Role, UserRole
from app.models.task import Task
from app.models.token import RefreshToken
from app.models.user import User

__all__ = [
    "ADMIN_ROLE",
    "Base",
    "Permission",
    "RefreshToken",
    "Role",
    "RolePermission",
    "Task",
    "USER_ROLE",
    "User",
    "UserRole",
]
