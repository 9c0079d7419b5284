"""REST API endpoints for task management."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from taskboard.repository import User
from taskboard.schemas.tasks import TaskCreate, TaskUpdate
from taskboard.tasks.service import (
    TaskAuthorizationError,
    TaskNotFoundError,
    TaskService,
)

from .dependencies import get_current_user, get_task_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


def _service_error(exc: Exception) -> HTTPException:
    if isinstance(exc, TaskNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=403, detail=str(exc))


@router.get("")
async def list_tasks(
    user_id: Optional[str] = Query(default=None),
    user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> dict[str, Any]:
    """List the caller's tasks; admins may pass ``user_id`` to view another user."""
    try:
        tasks = await service.list_tasks(user, user_id)
    except (TaskNotFoundError, TaskAuthorizationError) as exc:
        raise _service_error(exc) from exc
    return {"tasks": [task.to_dict() for task in tasks]}


@router.post("", status_code=201)
async def create_task(
    body: TaskCreate,
    user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> dict[str, Any]:
    try:
        task = await service.create_task(
            user,
            title=body.title,
            description=body.description,
            priority=body.priority,
            due_date=body.due_date,
            is_recurring=body.is_recurring,
            recurrence_pattern=(
                body.recurrence_pattern.model_dump() if body.recurrence_pattern else None
            ),
            user_id=body.user_id,
        )
    except (TaskNotFoundError, TaskAuthorizationError) as exc:
        raise _service_error(exc) from exc
    return {"task": task.to_dict()}


@router.patch("/{task_id}")
async def update_task(
    task_id: str,
    body: TaskUpdate,
    user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> dict[str, Any]:
    """Update a task. Completing a recurring task schedules its next occurrence."""
    try:
        result = await service.update_task(user, task_id, body.to_changes())
    except (TaskNotFoundError, TaskAuthorizationError) as exc:
        raise _service_error(exc) from exc

    payload: dict[str, Any] = {"task": result.task.to_dict()}
    if result.recurrence_error:
        payload["recurrence_error"] = result.recurrence_error
    return payload


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> dict[str, Any]:
    try:
        await service.delete_task(user, task_id)
    except (TaskNotFoundError, TaskAuthorizationError) as exc:
        raise _service_error(exc) from exc
    logger.info("Task %s deleted by user %s", task_id, user.id)
    return {"success": True}


__all__ = ["router"]
