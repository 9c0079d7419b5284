"""Task request schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from taskboard.tasks.models import TaskPriority, TaskStatus
from taskboard.utils.datetime_utils import ensure_utc


class RecurrencePatternIn(BaseModel):
    """How a recurring task advances once completed."""

    type: Literal["daily", "weekly", "monthly"]
    interval: int = Field(default=1, ge=1, le=365)


class _DueDateMixin(BaseModel):
    @field_validator("due_date", check_fields=False)
    @classmethod
    def _normalize_due_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None


class TaskCreate(_DueDateMixin):
    """Body for creating a task; admins may assign it via ``user_id``."""

    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = Field(
        default=None, description="Due timestamp (ISO 8601); naive values are UTC"
    )
    is_recurring: bool = False
    recurrence_pattern: Optional[RecurrencePatternIn] = None
    user_id: Optional[str] = None


class TaskUpdate(_DueDateMixin):
    """Partial update for a task. Only fields that are sent are applied."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    is_recurring: Optional[bool] = None
    recurrence_pattern: Optional[RecurrencePatternIn] = None
    user_id: Optional[str] = None

    def to_changes(self) -> dict[str, object]:
        """Return the sent fields, dropping nulls for non-nullable columns."""

        changes = self.model_dump(exclude_unset=True)
        for column in ("title", "status", "priority", "is_recurring", "user_id"):
            if column in changes and changes[column] is None:
                changes.pop(column)
        return changes


__all__ = ["RecurrencePatternIn", "TaskCreate", "TaskUpdate"]
