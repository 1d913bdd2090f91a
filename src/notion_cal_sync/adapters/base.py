"""Adapter contract consumed by the orchestrator.

Each backend (the Notion database and Google Calendar) is wrapped in an
object satisfying :class:`EventAdapter`.  Adapters translate to and from the
canonical :class:`~notion_cal_sync.models.event.Event` and map their
backend's exceptions onto :mod:`notion_cal_sync.exceptions`, so nothing
backend-specific reaches the reconciler.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from notion_cal_sync.models.event import Event


@runtime_checkable
class EventAdapter(Protocol):
    """Operations the sync needs from one side.

    Attributes:
        name: Short side label used in log lines (``"notion"``,
            ``"calendar"``).
    """

    name: str

    def fetch_events(self, window_start: datetime, window_end: datetime) -> list[Event]:
        """Return the events inside the window, ordered by start ascending.

        Records that cannot be mapped are dropped with a warning.

        Raises:
            FetchError: On transport or authentication failure.
        """
        ...

    def create_event(self, event: Event) -> Event:
        """Create *event* and return it with ``native_id`` populated.

        Raises:
            CreateError: If the backend rejects the event.
        """
        ...

    def update_event(self, native_id: str, fields: dict[str, Any]) -> None:
        """Apply a partial update (any of title, tag, start, end, external_id).

        Raises:
            UpdateError: On failure; ``not_found`` is set when *native_id*
                no longer exists.
        """
        ...

    def delete_event(self, native_id: str) -> None:
        """Delete or archive an event.  Deleting a missing event is not an error.

        Raises:
            DeleteError: On any other failure.
        """
        ...

    def event_exists(self, native_id: str) -> bool:
        """Whether *native_id* still exists, regardless of the fetch window.

        Raises:
            FetchError: If the backend cannot be asked.
        """
        ...
