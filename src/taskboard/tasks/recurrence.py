"""Next-occurrence computation for recurring tasks.

Completing a recurring task produces exactly one pending successor whose due
date is advanced by the task's pattern. Monthly steps use calendar-month
arithmetic via ``relativedelta``, which clamps to the last valid day of the
target month (Jan 31 + 1 month lands on Feb 28/29).
"""

from __future__ import annotations

import dataclasses
import datetime
import uuid
from typing import Optional

from dateutil.relativedelta import relativedelta

from .models import RecurrencePattern, RecurrenceType, Task, TaskStatus


def next_due_date(
    current_due: Optional[datetime.datetime],
    pattern: Optional[RecurrencePattern],
    *,
    now: Optional[datetime.datetime] = None,
) -> datetime.datetime:
    """Return the due date of the occurrence following ``current_due``."""

    base = current_due
    if base is None:
        base = now or datetime.datetime.now(datetime.timezone.utc)

    if pattern is None or pattern.type is None:
        return base + datetime.timedelta(days=1)

    if pattern.type is RecurrenceType.DAILY:
        return base + datetime.timedelta(days=pattern.interval)
    if pattern.type is RecurrenceType.WEEKLY:
        return base + datetime.timedelta(weeks=pattern.interval)
    return base + relativedelta(months=pattern.interval)


def build_successor(
    task: Task,
    due_date: datetime.datetime,
    *,
    now: Optional[datetime.datetime] = None,
) -> Task:
    """Copy ``task`` into a fresh pending instance due at ``due_date``."""

    timestamp = now or datetime.datetime.now(datetime.timezone.utc)
    pattern = dict(task.recurrence_pattern) if task.recurrence_pattern else None
    return dataclasses.replace(
        task,
        id=str(uuid.uuid4()),
        status=TaskStatus.PENDING,
        due_date=due_date,
        recurrence_pattern=pattern,
        created_at=timestamp,
        updated_at=timestamp,
    )


def should_spawn_successor(
    previous_status: TaskStatus,
    new_status: Optional[TaskStatus],
    is_recurring: bool,
) -> bool:
    """Return True for a genuine transition of a recurring task into completed."""

    return (
        new_status is TaskStatus.COMPLETED
        and previous_status is not TaskStatus.COMPLETED
        and is_recurring
    )


__all__ = ["build_successor", "next_due_date", "should_spawn_successor"]
