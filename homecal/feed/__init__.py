"""iCalendar feed rendering."""

from .renderer import FeedRenderer, render_calendar, select_feed_events

__all__ = ["FeedRenderer", "render_calendar", "select_feed_events"]
