"""User profile routes and admin user management."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.api.v1.auth import get_task_service, get_user_service, require_admin, require_permission
from app.core.database import get_db
from app.core.errors import AuthorizationError
from app.schemas.auth import AccessClaims
from app.schemas.task import TaskList
from app.schemas.user import UserProfileResponse, UsersListResponse
from app.services.tasks import TaskService
from app.services.users import UserService

router = APIRouter()

Db = Annotated[Session, Depends(get_db)]
Users = Annotated[UserService, Depends(get_user_service)]


def _require_self_or_admin(claims: AccessClaims, user_id: uuid.UUID) -> None:
    if not claims.is_admin and claims.user_id != user_id:
        raise AuthorizationError("Access denied")


@router.get("/profile", response_model=UserProfileResponse)
def get_own_profile(
    claims: Annotated[AccessClaims, Depends(require_permission("profile", "read"))],
    db: Db,
    users: Users,
) -> UserProfileResponse:
    return UserProfileResponse(user=users.get_profile(db, claims.user_id))


@router.get("/profile/{user_id}", response_model=UserProfileResponse)
def get_profile(
    user_id: uuid.UUID,
    claims: Annotated[AccessClaims, Depends(require_permission("profile", "read"))],
    db: Db,
    users: Users,
) -> UserProfileResponse:
    """Another user's profile; only for that user or an admin."""
    _require_self_or_admin(claims, user_id)
    return UserProfileResponse(user=users.get_profile(db, user_id))


@router.get("/{user_id}/tasks", response_model=TaskList)
def get_user_tasks(
    user_id: uuid.UUID,
    claims: Annotated[AccessClaims, Depends(require_permission("task", "read"))],
    db: Db,
    tasks: Annotated[TaskService, Depends(get_task_service)],
) -> TaskList:
    _require_self_or_admin(claims, user_id)
    return tasks.list_user_tasks(db, user_id)


@router.get("", response_model=UsersListResponse)
def list_users(
    _admin: Annotated[AccessClaims, Depends(require_admin)],
    db: Db,
    users: Users,
) -> UsersListResponse:
    """List all active users (admin only)."""
    return UsersListResponse(users=users.list_users(db))


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: uuid.UUID,
    _admin: Annotated[AccessClaims, Depends(require_admin)],
    db: Db,
    users: Users,
) -> Response:
    """Soft-delete a user and revoke their refresh tokens (admin only)."""
    users.delete_user(db, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
