"""Task domain package consolidating task models and recurrence logic."""

from .models import RecurrencePattern, RecurrenceType, Task, TaskPriority, TaskStatus
from .recurrence import build_successor, next_due_date, should_spawn_successor

__all__ = [
    "RecurrencePattern",
    "RecurrenceType",
    "Task",
    "TaskPriority",
    "TaskStatus",
    "build_successor",
    "next_due_date",
    "should_spawn_successor",
]
