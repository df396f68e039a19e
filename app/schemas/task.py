"""Request/response schemas for tasks and paginated task listings."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

TaskStatus = Literal["pending", "in_progress", "completed"]
TaskPriority = Literal["low", "medium", "high"]


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", max_length=10_000)
    status: TaskStatus = "pending"
    priority: TaskPriority = "medium"


class TaskUpdate(BaseModel):
    """Partial update; owner (user_id) is deliberately absent."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=10_000)
    status: TaskStatus | None = None
    priority: TaskPriority | None = None


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    description: str
    status: str
    priority: str
    user_id: uuid.UUID
    created_at: datetime
    updated_at: datetime


class TaskList(BaseModel):
    """All tasks of one user (cached as the user's aggregate task list)."""

    tasks: list[TaskRead]


class Pagination(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class TaskPage(BaseModel):
    data: list[TaskRead]
    pagination: Pagination


class TaskResponse(BaseModel):
    task: TaskRead


class TaskMessageResponse(BaseModel):
    message: str
    task: TaskRead
