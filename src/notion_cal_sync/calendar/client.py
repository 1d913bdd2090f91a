"""Google Calendar adapter.

Provides :class:`GoogleCalendarClient`, the calendar side of the sync.  It
wraps the ``googleapiclient`` service resource and exposes the adapter
contract of :class:`~notion_cal_sync.adapters.base.EventAdapter`:

- **Fetch** -- list the events of one calendar inside the sync window,
  with pagination, skipping cancelled events and recurring instances.
- **Create** -- insert an event carrying the Notion cross-reference.
- **Update** -- patch only the fields the plan changes.
- **Delete** -- idempotent; an already-deleted event is not an error.
- **Exists** -- look an event up by ID regardless of the window.

Raw API calls go through :func:`~notion_cal_sync.calendar.exceptions.with_retry`,
which refreshes expired credentials once but does not back off on
throttling: a rate-limited call fails its action and the next cycle retries
it.  The public methods translate calendar errors into the sync error
taxonomy.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from notion_cal_sync.calendar.event_mapper import from_google_event, to_google_body, to_google_patch
from notion_cal_sync.calendar.exceptions import CalendarAPIError, CalendarNotFoundError, with_retry
from notion_cal_sync.exceptions import (
    CreateError,
    DeleteError,
    FetchError,
    InvalidEvent,
    UpdateError,
)
from notion_cal_sync.models.event import Event

logger = logging.getLogger(__name__)

# Google Calendar API calendar identifier for the primary calendar.
_PRIMARY_CALENDAR = "primary"

# No backoff inside a cycle; the next cycle is the retry.
_RATE_LIMIT_RETRIES = 0


class GoogleCalendarClient:
    """Calendar side of the sync.

    Args:
        credentials: Valid Google credentials (OAuth user or service account).
        calendar_id: Calendar to sync; defaults to the primary calendar.
        timezone: IANA timezone sent along with timed start/end values.
        service: Optional pre-built ``googleapiclient`` service resource.
            If ``None``, one is built from *credentials*.  Pass a mock here
            in tests.
    """

    name = "calendar"

    def __init__(
        self,
        credentials: Credentials | None,
        calendar_id: str = _PRIMARY_CALENDAR,
        timezone: str = "UTC",
        service: Any | None = None,
    ) -> None:
        self._credentials = credentials
        self._calendar_id = calendar_id or _PRIMARY_CALENDAR
        self._timezone = timezone
        self._service = service or build("calendar", "v3", credentials=credentials, cache_discovery=False)

    # ------------------------------------------------------------------
    # Credential refresh hook (used by @with_retry on 401)
    # ------------------------------------------------------------------

    def _refresh_credentials(self) -> None:
        """Refresh the credentials and rebuild the service resource."""
        from google.auth.transport.requests import Request

        if self._credentials is None:
            raise CalendarAPIError("No credentials to refresh")
        self._credentials.refresh(Request())
        self._service = build("calendar", "v3", credentials=self._credentials, cache_discovery=False)
        logger.info("Credentials refreshed and service rebuilt")

    # ------------------------------------------------------------------
    # Adapter contract
    # ------------------------------------------------------------------

    def fetch_events(self, window_start: datetime, window_end: datetime) -> list[Event]:
        """List calendar events overlapping ``[window_start, window_end)``.

        Returns:
            Canonical events in start order.  Resources that cannot be
            mapped are logged and dropped.

        Raises:
            FetchError: If the API call fails.
        """
        try:
            items = self._list_events_raw(window_start, window_end)
        except CalendarAPIError as exc:
            raise FetchError(f"Google Calendar fetch failed: {exc}", side=self.name) from exc

        events: list[Event] = []
        for item in items:
            if item.get("status") == "cancelled":
                continue
            if item.get("recurringEventId") or item.get("recurrence"):
                logger.debug("Skipping recurring event instance %s", item.get("id"))
                continue
            try:
                events.append(from_google_event(item))
            except (InvalidEvent, ValueError) as exc:
                logger.warning("Dropping calendar event %s: %s", item.get("id", "?"), exc)

        logger.info(
            "Fetched %d calendar event(s) between %s and %s",
            len(events),
            _rfc3339(window_start),
            _rfc3339(window_end),
        )
        return events

    def create_event(self, event: Event) -> Event:
        """Insert *event* and return it with its new Google event ID.

        Raises:
            CreateError: If the event cannot be mapped or the API rejects it.
        """
        try:
            body = to_google_body(event, self._timezone)
            result = self._insert(body)
        except (InvalidEvent, CalendarAPIError) as exc:
            raise CreateError(f"Calendar create failed for {event.label()}: {exc}") from exc

        native_id = result.get("id", "")
        if not native_id:
            raise CreateError(f"Calendar create returned no id for {event.label()}")
        logger.info("Created calendar event %s (id=%s)", event.label(), native_id)
        return event.with_updates(native_id=native_id)

    def update_event(self, native_id: str, fields: dict[str, Any]) -> None:
        """Patch *native_id* with *fields*.

        Raises:
            UpdateError: ``not_found`` is set when the event is gone.
        """
        try:
            body = to_google_patch(fields, self._timezone)
        except (InvalidEvent, ValueError) as exc:
            raise UpdateError(f"Invalid calendar update for {native_id}: {exc}", native_id=native_id) from exc
        if not body:
            return

        try:
            self._patch(native_id, body)
        except CalendarNotFoundError as exc:
            raise UpdateError(
                f"Calendar event {native_id} no longer exists", native_id=native_id, not_found=True
            ) from exc
        except CalendarAPIError as exc:
            raise UpdateError(f"Calendar update failed for {native_id}: {exc}", native_id=native_id) from exc
        logger.info("Updated calendar event %s (%s)", native_id, ", ".join(sorted(fields)))

    def delete_event(self, native_id: str) -> None:
        """Delete *native_id*; a missing event counts as deleted.

        Raises:
            DeleteError: On any other API failure.
        """
        try:
            self._delete(native_id)
        except CalendarNotFoundError:
            logger.info("Calendar event %s already deleted", native_id)
            return
        except CalendarAPIError as exc:
            raise DeleteError(f"Calendar delete failed for {native_id}: {exc}", native_id=native_id) from exc
        logger.info("Deleted calendar event %s", native_id)

    def event_exists(self, native_id: str) -> bool:
        """Whether *native_id* exists and is not cancelled.

        Raises:
            FetchError: If the lookup itself fails.
        """
        try:
            item = self._get(native_id)
        except CalendarNotFoundError:
            return False
        except CalendarAPIError as exc:
            raise FetchError(f"Calendar lookup failed for {native_id}: {exc}", side=self.name) from exc
        return item.get("status") != "cancelled"

    # ------------------------------------------------------------------
    # Raw API calls
    # ------------------------------------------------------------------

    @with_retry(max_retries=_RATE_LIMIT_RETRIES)
    def _list_events_raw(self, time_min: datetime, time_max: datetime) -> list[dict]:
        """Fetch all pages of ``events().list()`` for the window."""
        all_events: list[dict] = []
        page_token: str | None = None

        while True:
            response = (
                self._service.events()
                .list(
                    calendarId=self._calendar_id,
                    timeMin=_rfc3339(time_min),
                    timeMax=_rfc3339(time_max),
                    singleEvents=True,
                    orderBy="startTime",
                    pageToken=page_token,
                )
                .execute()
            )

            all_events.extend(response.get("items", []))

            page_token = response.get("nextPageToken")
            if page_token is None:
                break

        return all_events

    @with_retry(max_retries=_RATE_LIMIT_RETRIES)
    def _insert(self, body: dict) -> dict:
        return self._service.events().insert(calendarId=self._calendar_id, body=body).execute()

    @with_retry(max_retries=_RATE_LIMIT_RETRIES)
    def _patch(self, event_id: str, body: dict) -> dict:
        return (
            self._service.events()
            .patch(calendarId=self._calendar_id, eventId=event_id, body=body)
            .execute()
        )

    @with_retry(max_retries=_RATE_LIMIT_RETRIES)
    def _delete(self, event_id: str) -> None:
        self._service.events().delete(calendarId=self._calendar_id, eventId=event_id).execute()

    @with_retry(max_retries=_RATE_LIMIT_RETRIES)
    def _get(self, event_id: str) -> dict:
        return self._service.events().get(calendarId=self._calendar_id, eventId=event_id).execute()


def _rfc3339(dt: datetime) -> str:
    """Format *dt* as an RFC 3339 UTC timestamp (naive values are read as UTC)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
