"""Shared FastAPI dependencies for the taskboard routers."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from taskboard.calendars.aggregator import CalendarAggregator
from taskboard.config import Settings, get_settings
from taskboard.repository import TaskRepository, User
from taskboard.tasks.models import TaskPriority
from taskboard.tasks.service import TaskService


def get_repository(request: Request) -> TaskRepository:
    """Return the repository opened by the application lifespan."""
    repository = getattr(request.app.state, "repository", None)
    if repository is None:
        raise HTTPException(status_code=500, detail="Task store is not configured")
    return repository


async def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    repository: TaskRepository = Depends(get_repository),
) -> User:
    """Resolve the caller from the ``X-User-Id`` header set by the auth proxy."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    user = await repository.get_user(x_user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden")
    return user


def get_task_service(
    repository: TaskRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> TaskService:
    return TaskService(
        repository,
        default_priority=TaskPriority(settings.default_task_priority),
    )


def get_aggregator(
    request: Request,
    repository: TaskRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> CalendarAggregator:
    return CalendarAggregator(
        repository,
        timeout=settings.feed_fetch_timeout,
        transport=getattr(request.app.state, "feed_transport", None),
    )


__all__ = [
    "get_aggregator",
    "get_current_user",
    "get_repository",
    "get_task_service",
    "require_admin",
]
