"""iCal feed parsing into absolute-time events."""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Any, Optional

from icalendar import Calendar

from .timezones import TimezoneRegistry

logger = logging.getLogger(__name__)


class FeedParseError(ValueError):
    """Raised when a feed body is not a readable iCalendar document."""


@dataclass(slots=True)
class FeedEvent:
    """A VEVENT resolved to UTC instants."""

    uid: str
    summary: str
    start: datetime.datetime
    end: datetime.datetime
    all_day: bool
    description: Optional[str] = None
    location: Optional[str] = None


def parse_feed(
    content: str | bytes,
    *,
    floating: Optional[datetime.tzinfo] = None,
) -> list[FeedEvent]:
    """Parse an iCal document and return its VEVENTs in document order.

    A fresh ``TimezoneRegistry`` is built for every call: the floating-time
    fallback first, then the feed's own VTIMEZONE definitions on top.
    """

    try:
        calendar = Calendar.from_ical(content)
    except ValueError as exc:
        raise FeedParseError(f"Invalid iCalendar data: {exc}") from exc

    registry = TimezoneRegistry(floating)
    registry.register_components(calendar.walk("VTIMEZONE"))

    events: list[FeedEvent] = []
    for index, component in enumerate(calendar.walk("VEVENT")):
        event = _convert_event(component, registry, index)
        if event is None:
            logger.debug("Skipping VEVENT #%d without a usable DTSTART", index)
            continue
        events.append(event)
    return events


def _convert_event(
    component: Any,
    registry: TimezoneRegistry,
    index: int,
) -> Optional[FeedEvent]:
    dtstart = component.get("DTSTART")
    start_value = getattr(dtstart, "dt", None)
    if not isinstance(start_value, datetime.date):
        return None

    all_day = not isinstance(start_value, datetime.datetime)
    start = _to_instant(start_value, dtstart, registry)

    dtend = component.get("DTEND")
    end_value = getattr(dtend, "dt", None)
    duration = getattr(component.get("DURATION"), "dt", None)

    if isinstance(end_value, datetime.date):
        end = _to_instant(end_value, dtend, registry)
    elif isinstance(duration, datetime.timedelta):
        end = start + duration
    elif all_day:
        end = registry.start_of_day(start_value + datetime.timedelta(days=1))
    else:
        end = start

    if end < start:
        end = start

    uid = str(component.get("UID") or f"event-{index}")
    return FeedEvent(
        uid=uid,
        summary=str(component.get("SUMMARY") or ""),
        start=start,
        end=end,
        all_day=all_day,
        description=_optional_text(component.get("DESCRIPTION")),
        location=_optional_text(component.get("LOCATION")),
    )


def _to_instant(
    value: datetime.date,
    prop: Any,
    registry: TimezoneRegistry,
) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        params = getattr(prop, "params", None) or {}
        return registry.resolve(value, params.get("TZID"))
    return registry.start_of_day(value)


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


__all__ = ["FeedEvent", "FeedParseError", "parse_feed"]
