"""Calendar source registrations and the unified display event shape."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Any, Optional

from taskboard.utils.datetime_utils import normalize_rfc3339

DEFAULT_SOURCE_COLOR = "#3b82f6"
DEFAULT_SOURCE_TYPE = "web_ical"


@dataclass(slots=True)
class CalendarSource:
    """An external iCal feed registered by a user."""

    id: str
    user_id: str
    name: str
    url: str
    type: str = DEFAULT_SOURCE_TYPE
    color: str = DEFAULT_SOURCE_COLOR
    created_at: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    @property
    def fetch_url(self) -> str:
        """The feed location with a ``webcal://`` scheme rewritten to https."""

        return normalize_feed_url(self.url)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "url": self.url,
            "type": self.type,
            "color": self.color,
            "created_at": normalize_rfc3339(self.created_at),
        }


def normalize_feed_url(url: str) -> str:
    """Rewrite ``webcal://`` feed URLs to ``https://``."""

    stripped = url.strip()
    if stripped[:9].lower() == "webcal://":
        return "https://" + stripped[9:]
    return stripped


@dataclass(slots=True)
class DisplayEvent:
    """A calendar entry ready for rendering, derived from a task or a feed.

    ``resource`` discriminates the origin: ``{"type": "task", ...}`` carries the
    task's priority and status, ``{"type": "calendar", ...}`` the source color
    and id.
    """

    id: str
    title: str
    start: datetime.datetime
    end: datetime.datetime
    all_day: bool
    resource: dict[str, Any]
    description: Optional[str] = None
    location: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape consumed by calendar clients."""
        payload: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "start": normalize_rfc3339(self.start),
            "end": normalize_rfc3339(self.end),
            "allDay": self.all_day,
            "resource": dict(self.resource),
        }
        if self.description:
            payload["description"] = self.description
        if self.location:
            payload["location"] = self.location
        return payload


__all__ = [
    "CalendarSource",
    "DEFAULT_SOURCE_COLOR",
    "DEFAULT_SOURCE_TYPE",
    "DisplayEvent",
    "normalize_feed_url",
]
