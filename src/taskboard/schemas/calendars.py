"""Calendar source request schemas."""

from __future__ import annotations

from urllib.parse import urlsplit

from pydantic import BaseModel, Field, field_validator

from taskboard.calendars.models import DEFAULT_SOURCE_COLOR, DEFAULT_SOURCE_TYPE

_FEED_SCHEMES = {"http", "https", "webcal"}


class CalendarSourceCreate(BaseModel):
    """Body for registering an external iCal feed."""

    name: str = Field(..., min_length=1, max_length=200)
    url: str = Field(..., min_length=1)
    type: str = Field(default=DEFAULT_SOURCE_TYPE, max_length=50)
    color: str = Field(default=DEFAULT_SOURCE_COLOR, max_length=32)

    @field_validator("url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        value = value.strip()
        parts = urlsplit(value)
        if parts.scheme.lower() not in _FEED_SCHEMES or not parts.netloc:
            raise ValueError("url must be an http(s) or webcal address")
        return value


__all__ = ["CalendarSourceCreate"]
