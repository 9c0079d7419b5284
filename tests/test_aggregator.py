"""Tests for merging tasks and external feeds into calendar events."""

from __future__ import annotations

import asyncio
import datetime
import logging
import time

import httpx
import pytest

from taskboard.calendars.aggregator import (
    TASK_EVENT_DURATION,
    CalendarAggregator,
    task_to_event,
)
from taskboard.repository import TaskRepository
from taskboard.tasks.models import Task, TaskPriority, TaskStatus

UTC = datetime.timezone.utc

FEED_TEMPLATE = (
    "BEGIN:VCALENDAR\r\n"
    "VERSION:2.0\r\n"
    "PRODID:-//taskboard//tests//EN\r\n"
    "BEGIN:VEVENT\r\n"
    "UID:{uid}\r\n"
    "SUMMARY:{summary}\r\n"
    "DTSTART:20240715T090000\r\n"
    "DTEND:20240715T100000\r\n"
    "END:VEVENT\r\n"
    "END:VCALENDAR\r\n"
)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


async def _open_repository(path, *, provision: bool = True) -> TaskRepository:
    repo = TaskRepository(path, provision_calendar_sources=provision)
    await repo.initialize()
    return repo


@pytest.fixture
async def repository(tmp_path):
    repo = await _open_repository(tmp_path / "taskboard.db")
    try:
        yield repo
    finally:
        await repo.close()


async def _add_task(repo: TaskRepository, user_id: str, **overrides) -> Task:
    fields = {
        "id": overrides.pop("id", "task-1"),
        "user_id": user_id,
        "title": "Write report",
        "priority": TaskPriority.HIGH,
        "due_date": datetime.datetime(2024, 7, 15, 15, 0, tzinfo=UTC),
    }
    fields.update(overrides)
    return await repo.insert_task(Task(**fields))


def test_task_to_event_spans_one_hour():
    due = datetime.datetime(2024, 7, 15, 15, 0, tzinfo=UTC)
    task = Task(id="t1", user_id="u1", title="Call", due_date=due, status=TaskStatus.IN_PROGRESS)

    event = task_to_event(task)

    assert event.start == due
    assert event.end == due + TASK_EVENT_DURATION
    assert event.all_day is False
    assert event.resource == {"type": "task", "priority": "medium", "status": "in_progress"}


def test_task_to_event_requires_due_date():
    with pytest.raises(ValueError):
        task_to_event(Task(id="t1", user_id="u1", title="Someday"))


@pytest.mark.anyio
async def test_failing_source_is_isolated(repository, caplog):
    user = await repository.create_user("ada@example.com")
    await _add_task(repository, user.id)
    await _add_task(repository, user.id, id="task-undated", due_date=None)
    first = await repository.create_calendar_source(
        user.id, name="Work", url="https://feeds.test/work.ics", color="#111111"
    )
    await repository.create_calendar_source(
        user.id, name="Broken", url="https://feeds.test/broken.ics"
    )
    third = await repository.create_calendar_source(
        user.id, name="Home", url="webcal://feeds.test/home.ics", color="#222222"
    )

    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        path = request.url.path
        if path == "/broken.ics":
            return httpx.Response(500, text="boom")
        if path == "/work.ics":
            return httpx.Response(200, text=FEED_TEMPLATE.format(uid="w1", summary="Review"))
        return httpx.Response(200, text=FEED_TEMPLATE.format(uid="h1", summary="Dinner"))

    aggregator = CalendarAggregator(repository, transport=httpx.MockTransport(handler))

    with caplog.at_level(logging.WARNING, logger="taskboard.calendars.aggregator"):
        events = await aggregator.list_events(user.id)

    assert "https://feeds.test/home.ics" in requested
    assert not any(url.startswith("webcal") for url in requested)
    assert "Broken" in caplog.text

    by_id = {event.id: event for event in events}
    assert [event.id for event in events] == ["task-1", f"{first.id}-w1", f"{third.id}-h1"]

    review = by_id[f"{first.id}-w1"]
    assert review.title == "Review"
    assert review.start == datetime.datetime(2024, 7, 15, 13, 0, tzinfo=UTC)
    assert review.end == datetime.datetime(2024, 7, 15, 14, 0, tzinfo=UTC)
    assert review.resource == {"type": "calendar", "color": "#111111", "sourceId": first.id}


@pytest.mark.anyio
async def test_unreachable_and_malformed_sources_are_skipped(repository):
    user = await repository.create_user("ada@example.com")
    await repository.create_calendar_source(user.id, name="Down", url="https://down.test/a.ics")
    await repository.create_calendar_source(user.id, name="Junk", url="https://junk.test/a.ics")
    good = await repository.create_calendar_source(
        user.id, name="Good", url="https://good.test/a.ics"
    )

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "down.test":
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.host == "junk.test":
            return httpx.Response(200, text="<html>maintenance</html>")
        return httpx.Response(200, text=FEED_TEMPLATE.format(uid="g1", summary="Gym"))

    aggregator = CalendarAggregator(repository, transport=httpx.MockTransport(handler))

    events = await aggregator.list_events(user.id)

    assert [event.id for event in events] == [f"{good.id}-g1"]


@pytest.mark.anyio
async def test_slow_source_is_skipped_after_timeout(repository, caplog):
    user = await repository.create_user("ada@example.com")
    await repository.create_calendar_source(user.id, name="Slow", url="https://slow.test/a.ics")
    fast = await repository.create_calendar_source(
        user.id, name="Fast", url="https://fast.test/a.ics"
    )

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "slow.test":
            await asyncio.sleep(5)
        return httpx.Response(200, text=FEED_TEMPLATE.format(uid="f1", summary="Fast"))

    aggregator = CalendarAggregator(
        repository, timeout=0.2, transport=httpx.MockTransport(handler)
    )

    started = time.monotonic()
    with caplog.at_level(logging.WARNING, logger="taskboard.calendars.aggregator"):
        events = await aggregator.list_events(user.id)
    elapsed = time.monotonic() - started

    assert elapsed < 2
    assert [event.id for event in events] == [f"{fast.id}-f1"]
    assert "Slow" in caplog.text


@pytest.mark.anyio
async def test_user_without_sources_gets_tasks_only(repository):
    user = await repository.create_user("ada@example.com")
    await _add_task(repository, user.id)

    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - not reached
        raise AssertionError("no feed should be fetched")

    aggregator = CalendarAggregator(repository, transport=httpx.MockTransport(handler))

    events = await aggregator.list_events(user.id)

    assert [event.id for event in events] == ["task-1"]


@pytest.mark.anyio
async def test_missing_sources_table_degrades_to_tasks(tmp_path, caplog):
    repo = await _open_repository(tmp_path / "taskboard.db", provision=False)
    try:
        user = await repo.create_user("ada@example.com")
        await _add_task(repo, user.id)
        aggregator = CalendarAggregator(repo)

        with caplog.at_level(logging.ERROR, logger="taskboard.calendars.aggregator"):
            events = await aggregator.list_events(user.id)
    finally:
        await repo.close()

    assert [event.id for event in events] == ["task-1"]
    assert "calendar_sources" in caplog.text


@pytest.mark.anyio
async def test_sources_of_other_users_are_not_fetched(repository):
    ada = await repository.create_user("ada@example.com")
    bob = await repository.create_user("bob@example.com")
    await repository.create_calendar_source(bob.id, name="Bob", url="https://bob.test/a.ics")

    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        return httpx.Response(200, text=FEED_TEMPLATE.format(uid="b1", summary="Bob"))

    aggregator = CalendarAggregator(repository, transport=httpx.MockTransport(handler))

    assert await aggregator.list_events(ada.id) == []
    assert requested == []
