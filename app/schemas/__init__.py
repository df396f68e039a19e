"""Pydantic request/response schemas."""

from app.schemas.auth import (
    AccessClaims,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
)
from app.schemas.health import HealthResponse
from app.schemas.task import (
    Pagination,
    TaskCreate,
    TaskList,
    TaskMessageResponse,
    TaskPage,
    TaskRead,
    TaskResponse,
    TaskUpdate,
)
from app.schemas.user import UserProfile, UserProfileResponse, UsersListResponse

__all__ = [
    "AccessClaims",
    "HealthResponse",
    "LoginRequest",
    "MessageResponse",
    "Pagination",
    "RefreshRequest",
    "RegisterRequest",
    "TaskCreate",
    "TaskList",
    "TaskMessageResponse",
    "TaskPage",
    "TaskRead",
    "TaskResponse",
    "TaskUpdate",
    "TokenResponse",
    "UserProfile",
    "UserProfileResponse",
    "UsersListResponse",
]
