"""Domain models representing tasks and their recurrence metadata."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from taskboard.utils.datetime_utils import normalize_rfc3339


class TaskStatus(str, Enum):
    """Lifecycle states for a task."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskPriority(str, Enum):
    """Priority levels; the calendar UI derives colors from these."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class RecurrenceType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(slots=True, frozen=True)
class RecurrencePattern:
    """Parsed view of a stored recurrence pattern.

    Stored patterns are loosely typed JSON. ``type`` is ``None`` when the stored
    value names no known frequency, and ``interval`` always holds a positive
    integer.
    """

    type: Optional[RecurrenceType]
    interval: int = 1

    @classmethod
    def parse(cls, raw: Any) -> Optional["RecurrencePattern"]:
        """Interpret ``raw`` as stored on a task; return None when absent."""

        if raw is None:
            return None
        if isinstance(raw, str):
            # Older rows stored the bare frequency name.
            raw = {"type": raw}
        if not isinstance(raw, dict):
            return None

        try:
            kind: Optional[RecurrenceType] = RecurrenceType(
                str(raw.get("type", "")).strip().lower()
            )
        except ValueError:
            kind = None

        return cls(type=kind, interval=_parse_interval(raw.get("interval")))


def _parse_interval(value: Any) -> int:
    if isinstance(value, bool):
        return 1
    try:
        interval = int(str(value).strip())
    except (TypeError, ValueError):
        return 1
    return interval if interval >= 1 else 1


@dataclass(slots=True)
class Task:
    """A user-owned work item."""

    id: str
    user_id: str
    title: str
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    description: Optional[str] = None
    due_date: Optional[datetime.datetime] = None
    is_recurring: bool = False
    recurrence_pattern: Optional[dict[str, Any]] = None
    created_at: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )
    updated_at: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    @property
    def recurrence(self) -> Optional[RecurrencePattern]:
        if not self.is_recurring:
            return None
        return RecurrencePattern.parse(self.recurrence_pattern)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "due_date": normalize_rfc3339(self.due_date) if self.due_date else None,
            "is_recurring": self.is_recurring,
            "recurrence_pattern": self.recurrence_pattern,
            "created_at": normalize_rfc3339(self.created_at),
            "updated_at": normalize_rfc3339(self.updated_at),
        }


__all__ = [
    "RecurrencePattern",
    "RecurrenceType",
    "Task",
    "TaskPriority",
    "TaskStatus",
]
