"""Calendar aggregation: internal tasks merged with external iCal feeds."""

from .models import CalendarSource, DisplayEvent, normalize_feed_url

__all__ = ["CalendarSource", "DisplayEvent", "normalize_feed_url"]
