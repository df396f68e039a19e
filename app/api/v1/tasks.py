"""Task CRUD routes. Non-admins see and modify only their own tasks."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.api.v1.auth import get_task_service, require_permission
from app.core.database import get_db
from app.schemas.auth import AccessClaims
from app.schemas.task import (
    TaskCreate,
    TaskMessageResponse,
    TaskPage,
    TaskResponse,
    TaskUpdate,
)
from app.services.tasks import TaskQuery, TaskService

router = APIRouter()

Db = Annotated[Session, Depends(get_db)]
Tasks = Annotated[TaskService, Depends(get_task_service)]


@router.post("", response_model=TaskMessageResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    body: TaskCreate,
    claims: Annotated[AccessClaims, Depends(require_permission("task", "create"))],
    db: Db,
    tasks: Tasks,
) -> TaskMessageResponse:
    task = tasks.create_task(db, claims.user_id, body)
    return TaskMessageResponse(message="Task created successfully", task=task)


@router.get("", response_model=TaskPage)
def list_tasks(
    claims: Annotated[AccessClaims, Depends(require_permission("task", "read"))],
    db: Db,
    tasks: Tasks,
    page: int | None = None,
    page_size: int | None = None,
    search: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    priority: str | None = None,
    user_id: uuid.UUID | None = None,
) -> TaskPage:
    """
    Paginated task listing. Out-of-range page/page_size and unknown sort fields fall
    back to defaults instead of failing. Admins may also filter and sort by user_id.
    """
    query = TaskQuery.normalize(
        claims.is_admin,
        page=page,
        page_size=page_size,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        filters={
            "status": status_filter,
            "priority": priority,
            "user_id": str(user_id) if user_id else None,
        },
    )
    return tasks.list_tasks(db, claims.user_id, claims.is_admin, query)


@router.get("/{task_id}", response_model=TaskResponse)
def get_task(
    task_id: uuid.UUID,
    claims: Annotated[AccessClaims, Depends(require_permission("task", "read"))],
    db: Db,
    tasks: Tasks,
) -> TaskResponse:
    return TaskResponse(task=tasks.get_task(db, task_id, claims.user_id, claims.is_admin))


@router.put("/{task_id}", response_model=TaskMessageResponse)
def update_task(
    task_id: uuid.UUID,
    body: TaskUpdate,
    claims: Annotated[AccessClaims, Depends(require_permission("task", "write"))],
    db: Db,
    tasks: Tasks,
) -> TaskMessageResponse:
    task = tasks.update_task(db, task_id, claims.user_id, claims.is_admin, body)
    return TaskMessageResponse(message="Task updated successfully", task=task)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: uuid.UUID,
    claims: Annotated[AccessClaims, Depends(require_permission("task", "delete"))],
    db: Db,
    tasks: Tasks,
) -> Response:
    tasks.delete_task(db, task_id, claims.user_id, claims.is_admin)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
