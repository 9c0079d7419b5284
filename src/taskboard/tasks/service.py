"""Service layer coordinating task ownership rules and recurrence."""

from __future__ import annotations

import datetime
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from taskboard.repository import StoreError, TaskRepository, User

from .models import Task, TaskPriority, TaskStatus
from .recurrence import build_successor, next_due_date, should_spawn_successor

logger = logging.getLogger(__name__)

_IMMUTABLE_FIELDS = frozenset({"id", "created_at", "updated_at"})


class TaskServiceError(RuntimeError):
    """Raised when a task operation cannot be completed."""


class TaskNotFoundError(TaskServiceError):
    """Raised when the referenced task does not exist."""


class TaskAuthorizationError(TaskServiceError):
    """Raised when the actor may not act on the referenced task or user."""


@dataclass(slots=True)
class TaskUpdateResult:
    """Outcome of an update, including any recurrence side effect."""

    task: Task
    successor: Optional[Task] = None
    recurrence_error: Optional[str] = None


class TaskService:
    """Apply ownership checks and the completion transition on top of the store."""

    def __init__(
        self,
        repository: TaskRepository,
        *,
        default_priority: TaskPriority = TaskPriority.MEDIUM,
    ):
        self._repository = repository
        self._default_priority = default_priority

    @staticmethod
    def _ensure_can_act_for(actor: User, owner_id: str) -> None:
        if owner_id != actor.id and not actor.is_admin:
            raise TaskAuthorizationError("Forbidden")

    async def _owned_task(self, actor: User, task_id: str) -> Task:
        task = await self._repository.get_task(task_id)
        if task is None:
            raise TaskNotFoundError("Task not found")
        self._ensure_can_act_for(actor, task.user_id)
        return task

    async def list_tasks(self, actor: User, user_id: Optional[str] = None) -> list[Task]:
        """List the actor's tasks, or another user's when the actor is an admin."""

        target = user_id or actor.id
        self._ensure_can_act_for(actor, target)
        return await self._repository.list_tasks(target)

    async def create_task(
        self,
        actor: User,
        *,
        title: str,
        description: Optional[str] = None,
        priority: Optional[TaskPriority] = None,
        due_date: Optional[datetime.datetime] = None,
        is_recurring: bool = False,
        recurrence_pattern: Optional[dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> Task:
        owner_id = user_id or actor.id
        if owner_id != actor.id:
            if not actor.is_admin:
                raise TaskAuthorizationError("Forbidden: Cannot assign tasks to others")
            if await self._repository.get_user(owner_id) is None:
                raise TaskNotFoundError("Assignee not found")

        task = Task(
            id=str(uuid.uuid4()),
            user_id=owner_id,
            title=title,
            description=description,
            priority=priority or self._default_priority,
            due_date=due_date,
            is_recurring=is_recurring,
            recurrence_pattern=recurrence_pattern,
        )
        await self._repository.insert_task(task)
        logger.info("Task %s created for user %s", task.id, owner_id)
        return task

    async def update_task(
        self,
        actor: User,
        task_id: str,
        changes: Mapping[str, Any],
    ) -> TaskUpdateResult:
        """Apply ``changes``; spawn the next occurrence on a genuine completion.

        The completion is persisted first through a conditional update, so only
        one of several concurrent completions sees the transition. Successor
        creation failures are reported on the result and never undo the
        completion.
        """

        current = await self._owned_task(actor, task_id)

        updates = {k: v for k, v in changes.items() if k not in _IMMUTABLE_FIELDS}
        new_owner = updates.get("user_id")
        if new_owner is not None and new_owner != current.user_id:
            if not actor.is_admin:
                updates.pop("user_id")
            elif await self._repository.get_user(new_owner) is None:
                raise TaskNotFoundError("Assignee not found")

        new_status = updates.get("status")
        if new_status is not None:
            new_status = TaskStatus(new_status)
            updates["status"] = new_status

        transitioned = False
        if new_status is TaskStatus.COMPLETED and current.status is not TaskStatus.COMPLETED:
            transitioned = await self._repository.update_task(
                task_id, updates, unless_status=TaskStatus.COMPLETED
            )
            if not transitioned:
                # Another request completed it first; still apply the other fields.
                updates.pop("status")
                await self._repository.update_task(task_id, updates)
        else:
            await self._repository.update_task(task_id, updates)

        updated = await self._repository.get_task(task_id)
        if updated is None:
            raise TaskNotFoundError("Task not found")

        result = TaskUpdateResult(task=updated)
        if transitioned and should_spawn_successor(
            current.status, new_status, updated.is_recurring
        ):
            await self._spawn_successor(updated, result)
        return result

    async def _spawn_successor(
        self,
        completed: Task,
        result: TaskUpdateResult,
    ) -> None:
        try:
            due = next_due_date(completed.due_date, completed.recurrence)
            successor = build_successor(completed, due)
            await self._repository.insert_task(successor)
        except (StoreError, OverflowError, ValueError) as exc:
            logger.error(
                "Failed to create next occurrence of recurring task %s: %s",
                completed.id,
                exc,
            )
            result.recurrence_error = f"Failed to create next occurrence: {exc}"
            return

        logger.info(
            "Recurring task %s completed; next occurrence %s due %s",
            completed.id,
            successor.id,
            due.isoformat(),
        )
        result.successor = successor

    async def delete_task(self, actor: User, task_id: str) -> None:
        await self._owned_task(actor, task_id)
        await self._repository.delete_task(task_id)


__all__ = [
    "TaskNotFoundError",
    "TaskAuthorizationError",
    "TaskService",
    "TaskServiceError",
    "TaskUpdateResult",
]
