"""Map between Google Calendar event resources and canonical events.

- :func:`from_google_event` -- API resource ``dict`` to
  :class:`~notion_cal_sync.models.event.Event`.
- :func:`to_google_body` -- full body for ``events().insert()``.
- :func:`to_google_patch` -- partial body for ``events().patch()``.

The cross-reference to the Notion page lives in the event's private
extended properties under :data:`NOTION_ID_KEY`.

All-day events: Google stores an *exclusive* end date (a one-day event on
May 1st ends on May 2nd) while the canonical model, like Notion, uses an
inclusive end.  The mapper shifts the end date by one day in each
direction so a round trip leaves the canonical value unchanged.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any

from notion_cal_sync.exceptions import InvalidEvent
from notion_cal_sync.models.event import Event, is_date_only, normalize_timestamp, render_title

logger = logging.getLogger(__name__)

NOTION_ID_KEY = "notionPageId"


def from_google_event(item: dict) -> Event:
    """Convert a Google Calendar event resource into a canonical event.

    Args:
        item: One entry of ``events().list()["items"]`` or the response of
            ``events().insert()``.

    Returns:
        The canonical :class:`Event`, with ``native_id`` set to the Google
        event ID.

    Raises:
        InvalidEvent: If the resource has no ``id``.
        InvalidTimestamp: If ``start``/``end`` cannot be parsed.
    """
    event_id = item.get("id")
    if not event_id:
        raise InvalidEvent("Google Calendar event without an id")

    start_obj = item.get("start") or {}
    end_obj = item.get("end") or {}

    start = normalize_timestamp(start_obj.get("dateTime") or start_obj.get("date"))
    end = normalize_timestamp(end_obj.get("dateTime") or end_obj.get("date"))
    if end is not None and "dateTime" not in end_obj and is_date_only(end):
        end = (date.fromisoformat(end) - timedelta(days=1)).isoformat()

    private = (item.get("extendedProperties") or {}).get("private") or {}

    return Event.from_raw_title(
        item.get("summary", ""),
        native_id=event_id,
        external_id=private.get(NOTION_ID_KEY, ""),
        start=start,
        end=end,
    )


def to_google_body(event: Event, timezone: str) -> dict:
    """Build the ``events().insert()`` body for *event*.

    Args:
        event: A complete canonical event.
        timezone: IANA timezone attached to timed start/end values.

    Raises:
        InvalidEvent: If the event has no dates, or mixes a date-only bound
            with a timed one (Google rejects that combination).
    """
    if not event.is_complete:
        raise InvalidEvent(f"Cannot create {event.label()} without start and end")

    body: dict = {
        "summary": event.raw_title,
        **_format_range(event.start, event.end, timezone),
    }
    if event.external_id:
        body["extendedProperties"] = {"private": {NOTION_ID_KEY: event.external_id}}

    logger.debug("Mapped %s (%s -> %s) to Google Calendar body", event.label(), event.start, event.end)
    return body


def to_google_patch(fields: dict[str, Any], timezone: str) -> dict:
    """Build an ``events().patch()`` body from reconciler update fields.

    ``title``/``tag`` and ``start``/``end`` are expected in pairs, the way
    the reconciler emits them.

    Raises:
        InvalidEvent: If a pair is incomplete or the range is not writable.
    """
    body: dict = {}

    if "title" in fields or "tag" in fields:
        if "title" not in fields:
            raise InvalidEvent("Tag update without a title")
        body["summary"] = render_title(fields.get("tag"), fields["title"])

    if "start" in fields or "end" in fields:
        start = normalize_timestamp(fields.get("start"))
        end = normalize_timestamp(fields.get("end"))
        if start is None or end is None:
            raise InvalidEvent("Date update needs both start and end")
        body.update(_format_range(start, end, timezone))

    if "external_id" in fields:
        body["extendedProperties"] = {"private": {NOTION_ID_KEY: fields["external_id"] or ""}}

    return body


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _format_range(start: str, end: str, timezone: str) -> dict:
    start_all_day = is_date_only(start)
    if start_all_day != is_date_only(end):
        raise InvalidEvent(f"Mixed all-day and timed bounds: {start} -> {end}")

    if start_all_day:
        exclusive_end = date.fromisoformat(end) + timedelta(days=1)
        return {
            "start": {"date": start},
            "end": {"date": exclusive_end.isoformat()},
        }
    return {
        "start": {"dateTime": start, "timeZone": timezone},
        "end": {"dateTime": end, "timeZone": timezone},
    }
