"""Google Calendar side of the sync."""

from __future__ import annotations

from notion_cal_sync.calendar.auth import authorize_interactively, load_calendar_credentials
from notion_cal_sync.calendar.client import GoogleCalendarClient
from notion_cal_sync.calendar.event_mapper import from_google_event, to_google_body, to_google_patch

__all__ = [
    "GoogleCalendarClient",
    "authorize_interactively",
    "from_google_event",
    "load_calendar_credentials",
    "to_google_body",
    "to_google_patch",
]
