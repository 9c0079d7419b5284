"""Merge a user's due-dated tasks with events from their iCal feeds."""

from __future__ import annotations

import asyncio
import datetime
import logging
from typing import Optional

import httpx

from taskboard.repository import SchemaNotProvisionedError, TaskRepository
from taskboard.tasks.models import Task

from .ical import FeedEvent, parse_feed
from .models import CalendarSource, DisplayEvent

logger = logging.getLogger(__name__)

# Tasks carry no end time; the calendar shows them as one-hour blocks.
TASK_EVENT_DURATION = datetime.timedelta(hours=1)
DEFAULT_FETCH_TIMEOUT = 10.0


def task_to_event(task: Task) -> DisplayEvent:
    """Render a scheduled task as a timed calendar event."""

    if task.due_date is None:
        raise ValueError(f"Task {task.id} has no due date")
    return DisplayEvent(
        id=task.id,
        title=task.title,
        start=task.due_date,
        end=task.due_date + TASK_EVENT_DURATION,
        all_day=False,
        resource={
            "type": "task",
            "priority": task.priority.value,
            "status": task.status.value,
        },
        description=task.description,
    )


def feed_event_to_event(source: CalendarSource, event: FeedEvent) -> DisplayEvent:
    """Render a feed VEVENT; ids are prefixed so UIDs stay unique across feeds."""

    return DisplayEvent(
        id=f"{source.id}-{event.uid}",
        title=event.summary,
        start=event.start,
        end=event.end,
        all_day=event.all_day,
        resource={"type": "calendar", "color": source.color, "sourceId": source.id},
        description=event.description,
        location=event.location,
    )


class CalendarAggregator:
    """Produce the unified event list for a user's calendar view.

    Every feed is fetched and parsed independently: an unreachable host, a
    non-2xx response, a timeout or a malformed document only drops that one
    source. A missing calendar-source table degrades to task events only.
    """

    def __init__(
        self,
        repository: TaskRepository,
        *,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        floating: Optional[datetime.tzinfo] = None,
    ):
        self._repository = repository
        self._timeout = timeout
        self._transport = transport
        self._floating = floating

    async def list_events(self, user_id: str) -> list[DisplayEvent]:
        tasks = await self._repository.list_scheduled_tasks(user_id)
        events = [task_to_event(task) for task in tasks]

        try:
            sources = await self._repository.list_calendar_sources(
                user_id, newest_first=False
            )
        except SchemaNotProvisionedError as exc:
            logger.error("%s; returning only internal tasks.", exc)
            return events

        if not sources:
            return events

        async with httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            follow_redirects=True,
        ) as client:
            per_source = await asyncio.gather(
                *(self._bounded_source_events(client, source) for source in sources)
            )

        for source_events in per_source:
            events.extend(source_events)
        return events

    async def _bounded_source_events(
        self,
        client: httpx.AsyncClient,
        source: CalendarSource,
    ) -> list[DisplayEvent]:
        # httpx timeouts apply per read; this caps the whole fetch and parse.
        try:
            return await asyncio.wait_for(
                self._source_events(client, source), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Calendar %s timed out after %.1fs; skipping", source.name, self._timeout
            )
            return []

    async def _source_events(
        self,
        client: httpx.AsyncClient,
        source: CalendarSource,
    ) -> list[DisplayEvent]:
        url = source.fetch_url
        try:
            response = await client.get(url)
        except httpx.HTTPError as exc:
            logger.warning("Failed to fetch calendar %s (%s): %s", source.name, url, exc)
            return []

        if not response.is_success:
            logger.warning(
                "Calendar %s returned HTTP %s; skipping", source.name, response.status_code
            )
            return []

        try:
            feed_events = parse_feed(response.content, floating=self._floating)
        except Exception as exc:
            logger.warning("Failed to parse calendar %s: %s", source.name, exc)
            return []

        logger.debug("Calendar %s yielded %d events", source.name, len(feed_events))
        return [feed_event_to_event(source, event) for event in feed_events]


__all__ = [
    "CalendarAggregator",
    "TASK_EVENT_DURATION",
    "feed_event_to_event",
    "task_to_event",
]
