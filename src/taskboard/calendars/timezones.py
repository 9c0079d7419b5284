"""Request-scoped timezone resolution for iCal feeds.

Each feed parse gets its own ``TimezoneRegistry``. The floating-time fallback is
registered first, then any VTIMEZONE blocks the feed declares, so a feed can
override the fallback definition for its own TZIDs without affecting other
feeds or concurrent requests.
"""

from __future__ import annotations

import datetime
import logging
from typing import Iterable, Optional

from dateutil import tz
from icalendar import Timezone

logger = logging.getLogger(__name__)

FLOATING_TZID = "America/New_York"

# EST (UTC-5) / EDT (UTC-4); daylight time from the second Sunday of March
# 02:00 until the first Sunday of November 02:00.
_FLOATING_RULE = "EST5EDT,M3.2.0/2,M11.1.0/2"


def floating_time_zone() -> datetime.tzinfo:
    """Return the fixed rule table used for times that carry no zone."""

    return tz.tzstr(_FLOATING_RULE)


class TimezoneRegistry:
    """Map TZIDs to tzinfo objects for the lifetime of one feed parse."""

    def __init__(self, floating: Optional[datetime.tzinfo] = None) -> None:
        self._zones: dict[str, datetime.tzinfo] = {}
        self.register(FLOATING_TZID, floating or floating_time_zone())

    def register(self, tzid: str, zone: datetime.tzinfo) -> None:
        self._zones[_clean_tzid(tzid)] = zone

    def register_component(self, component: Timezone) -> bool:
        """Register a feed VTIMEZONE; return False when it cannot be converted."""

        try:
            tzid = str(component["TZID"])
            zone = component.to_tz(lookup_tzid=False)
        except (KeyError, ValueError, TypeError) as exc:
            logger.warning("Ignoring unusable VTIMEZONE in feed: %s", exc)
            return False
        self.register(tzid, zone)
        return True

    def register_components(self, components: Iterable[Timezone]) -> int:
        return sum(1 for component in components if self.register_component(component))

    def get(self, tzid: Optional[str]) -> Optional[datetime.tzinfo]:
        if not tzid:
            return None
        return self._zones.get(_clean_tzid(tzid))

    @property
    def floating(self) -> datetime.tzinfo:
        """The zone floating times resolve in; a feed may redefine it."""

        return self._zones[FLOATING_TZID]

    def __contains__(self, tzid: object) -> bool:
        return isinstance(tzid, str) and _clean_tzid(tzid) in self._zones

    def resolve(
        self,
        value: datetime.datetime,
        tzid: Optional[str] = None,
    ) -> datetime.datetime:
        """Return ``value`` as an absolute UTC instant.

        Registered TZIDs win over whatever zone the parser attached, then IANA
        names. Naive (floating) values take the floating zone and UTC values
        pass through.
        """

        zone = self.get(tzid)
        if zone is None and tzid:
            zone = tz.gettz(_clean_tzid(tzid))
        if zone is None:
            if value.tzinfo is not None:
                return value.astimezone(datetime.timezone.utc)
            zone = self.floating
        # replace() keeps the wall-clock digits the feed wrote
        return value.replace(tzinfo=zone).astimezone(datetime.timezone.utc)

    def start_of_day(self, value: datetime.date) -> datetime.datetime:
        """Midnight of a DATE value in the floating zone, as a UTC instant."""

        local = datetime.datetime(value.year, value.month, value.day, tzinfo=self.floating)
        return local.astimezone(datetime.timezone.utc)


def _clean_tzid(tzid: str) -> str:
    return tzid.strip().strip('"').strip("/")


__all__ = ["FLOATING_TZID", "TimezoneRegistry", "floating_time_zone"]
