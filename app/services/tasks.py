"""Task CRUD with ownership checks, pagination and read-through caching."""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import (
    AuthorizationError,
    NotFoundError,
    PersistenceError,
    StorageLookupError,
)
from app.models import Task
from app.schemas.task import (
    Pagination,
    TaskCreate,
    TaskList,
    TaskPage,
    TaskRead,
    TaskUpdate,
)
from app.services.cache import CacheService, task_page_key

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
SORT_FIELDS = ("title", "status", "priority", "created_at", "updated_at")
ADMIN_SORT_FIELDS = SORT_FIELDS + ("user_id",)
FILTER_FIELDS = ("status", "priority")
ADMIN_FILTER_FIELDS = FILTER_FIELDS + ("user_id",)


@dataclass(frozen=True)
class TaskQuery:
    """Normalized listing parameters; build with TaskQuery.normalize()."""

    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    search: str = ""
    sort_by: str = "created_at"
    sort_order: str = "desc"
    filters: dict[str, str] = field(default_factory=dict)

    @classmethod
    def normalize(
        cls,
        is_admin: bool,
        page: int | None = None,
        page_size: int | None = None,
        search: str | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
        filters: dict[str, str | None] | None = None,
    ) -> "TaskQuery":
        """Clamp out-of-range values to defaults and drop fields the caller may not use."""
        allowed_sorts = ADMIN_SORT_FIELDS if is_admin else SORT_FIELDS
        allowed_filters = ADMIN_FILTER_FIELDS if is_admin else FILTER_FIELDS
        order = (sort_order or "").lower()
        return cls(
            page=page if page and page >= 1 else 1,
            page_size=page_size if page_size and 1 <= page_size <= MAX_PAGE_SIZE else DEFAULT_PAGE_SIZE,
            search=(search or "").strip(),
            sort_by=sort_by if sort_by in allowed_sorts else "created_at",
            sort_order=order if order in ("asc", "desc") else "desc",
            filters={
                name: value
                for name, value in (filters or {}).items()
                if name in allowed_filters and value
            },
        )


class TaskService(Protocol):
    def create_task(self, db: Session, owner_id: uuid.UUID, data: TaskCreate) -> TaskRead: ...

    def update_task(
        self, db: Session, task_id: uuid.UUID, caller_id: uuid.UUID, is_admin: bool, data: TaskUpdate
    ) -> TaskRead: ...

    def delete_task(
        self, db: Session, task_id: uuid.UUID, caller_id: uuid.UUID, is_admin: bool
    ) -> None: ...

    def get_task(
        self, db: Session, task_id: uuid.UUID, caller_id: uuid.UUID, is_admin: bool
    ) -> TaskRead: ...

    def list_tasks(
        self, db: Session, caller_id: uuid.UUID, is_admin: bool, query: TaskQuery
    ) -> TaskPage: ...

    def list_user_tasks(self, db: Session, owner_id: uuid.UUID) -> TaskList: ...


def _check_access(owner_id: uuid.UUID, caller_id: uuid.UUID, is_admin: bool) -> None:
    if not is_admin and owner_id != caller_id:
        raise AuthorizationError("Access denied")


class DatabaseTaskService:
    """TaskService over the tasks table; the cache is consulted before storage."""

    def __init__(self, cache: CacheService) -> None:
        self.cache = cache

    def create_task(self, db: Session, owner_id: uuid.UUID, data: TaskCreate) -> TaskRead:
        task = Task(
            id=uuid.uuid4(),
            title=data.title,
            description=data.description,
            status=data.status,
            priority=data.priority,
            user_id=owner_id,
        )
        try:
            db.add(task)
            db.commit()
            db.refresh(task)
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError("Failed to create task", cause=e) from e

        result = TaskRead.model_validate(task)
        self.cache.set_task(result)
        self.cache.invalidate_user_cache(owner_id)
        logger.info("Created task_id=%s for user_id=%s", result.id, owner_id)
        return result

    def update_task(
        self, db: Session, task_id: uuid.UUID, caller_id: uuid.UUID, is_admin: bool, data: TaskUpdate
    ) -> TaskRead:
        task = self._load(db, task_id)
        _check_access(task.user_id, caller_id, is_admin)

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        try:
            for name, value in changes.items():
                setattr(task, name, value)
            db.commit()
            db.refresh(task)
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError("Failed to update task", cause=e) from e

        result = TaskRead.model_validate(task)
        self.cache.set_task(result)
        self.cache.invalidate_user_cache(result.user_id)
        logger.info("Updated task_id=%s fields=%s", task_id, sorted(changes))
        return result

    def delete_task(
        self, db: Session, task_id: uuid.UUID, caller_id: uuid.UUID, is_admin: bool
    ) -> None:
        task = self._load(db, task_id)
        _check_access(task.user_id, caller_id, is_admin)
        owner_id = task.user_id
        try:
            db.delete(task)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError("Failed to delete task", cause=e) from e

        self.cache.invalidate_task_cache(task_id)
        self.cache.invalidate_user_cache(owner_id)
        logger.info("Deleted task_id=%s", task_id)

    def get_task(
        self, db: Session, task_id: uuid.UUID, caller_id: uuid.UUID, is_admin: bool
    ) -> TaskRead:
        cached = self.cache.get_task(task_id)
        if cached is not None:
            _check_access(cached.user_id, caller_id, is_admin)
            return cached

        task = self._load(db, task_id)
        _check_access(task.user_id, caller_id, is_admin)
        result = TaskRead.model_validate(task)
        self.cache.set_task(result)
        return result

    def list_tasks(
        self, db: Session, caller_id: uuid.UUID, is_admin: bool, query: TaskQuery
    ) -> TaskPage:
        """One page of tasks visible to the caller (all tasks for admins)."""
        key = task_page_key(
            caller_id,
            is_admin,
            query.page,
            query.page_size,
            query.search,
            query.sort_by,
            query.sort_order,
            query.filters,
        )
        cached = self.cache.get_task_page(key)
        if cached is not None:
            return cached

        conditions = []
        if not is_admin:
            conditions.append(Task.user_id == caller_id)
        if query.search:
            conditions.append(
                Task.title.icontains(query.search, autoescape=True)
                | Task.description.icontains(query.search, autoescape=True)
            )
        for name, value in query.filters.items():
            column = getattr(Task, name)
            conditions.append(column == (uuid.UUID(value) if name == "user_id" else value))

        sort_column = getattr(Task, query.sort_by)
        ordering = sort_column.asc() if query.sort_order == "asc" else sort_column.desc()
        try:
            total = db.execute(
                select(func.count()).select_from(Task).where(*conditions)
            ).scalar_one()
            rows = db.execute(
                select(Task)
                .where(*conditions)
                .order_by(ordering, Task.id)
                .offset((query.page - 1) * query.page_size)
                .limit(query.page_size)
            ).scalars().all()
        except SQLAlchemyError as e:
            raise StorageLookupError("Failed to list tasks", cause=e) from e

        total_pages = (total + query.page_size - 1) // query.page_size
        result = TaskPage(
            data=[TaskRead.model_validate(row) for row in rows],
            pagination=Pagination(
                page=query.page,
                page_size=query.page_size,
                total=total,
                total_pages=total_pages,
                has_next=query.page < total_pages,
                has_prev=query.page > 1,
            ),
        )
        self.cache.set_task_page(key, result)
        return result

    def list_user_tasks(self, db: Session, owner_id: uuid.UUID) -> TaskList:
        """All tasks of one user, newest first."""
        cached = self.cache.get_user_tasks(owner_id)
        if cached is not None:
            return cached
        try:
            rows = db.execute(
                select(Task).where(Task.user_id == owner_id).order_by(Task.created_at.desc(), Task.id)
            ).scalars().all()
        except SQLAlchemyError as e:
            raise StorageLookupError("Failed to list user tasks", cause=e) from e
        result = TaskList(tasks=[TaskRead.model_validate(row) for row in rows])
        self.cache.set_user_tasks(owner_id, result)
        return result

    @staticmethod
    def _load(db: Session, task_id: uuid.UUID) -> Task:
        try:
            task = db.get(Task, task_id)
        except SQLAlchemyError as e:
            raise StorageLookupError("Failed to load task", cause=e) from e
        if task is None:
            raise NotFoundError("Task not found")
        return task
