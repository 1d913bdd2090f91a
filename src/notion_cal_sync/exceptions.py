"""Error taxonomy for the Notion <-> Google Calendar sync.

The orchestrator reacts to each family differently:

- :class:`FetchError` -- either side could not be read.  The whole cycle is
  aborted and nothing is applied.
- :class:`ActionError` (:class:`CreateError`, :class:`UpdateError`,
  :class:`DeleteError`) -- a single plan action failed.  It is logged and
  skipped; the rest of the plan keeps going.
- :class:`InvalidEvent` / :class:`InvalidTimestamp` -- a backend record could
  not be turned into a canonical event.  The record is dropped for this
  cycle with a warning.

Exception hierarchy::

    SyncError
    +-- FetchError
    +-- ActionError
    |   +-- CreateError
    |   +-- UpdateError
    |   +-- DeleteError
    +-- InvalidEvent
        +-- InvalidTimestamp   (also a ValueError)
"""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for every sync failure raised by this package."""


class FetchError(SyncError):
    """Raised when an adapter cannot list events (transport or auth failure).

    Attributes:
        side: Name of the adapter that failed (``"notion"``, ``"calendar"``).
    """

    def __init__(self, message: str, side: str = "") -> None:
        super().__init__(message)
        self.side = side


class ActionError(SyncError):
    """Base class for a failed create/update/delete call.

    Attributes:
        native_id: Identifier of the targeted event, when known.
    """

    def __init__(self, message: str, native_id: str = "") -> None:
        super().__init__(message)
        self.native_id = native_id


class CreateError(ActionError):
    """Raised when the backend rejects an event creation."""


class UpdateError(ActionError):
    """Raised when a partial update fails.

    ``not_found`` is set when the targeted event no longer exists.  Callers
    treat that case as "already deleted" rather than as a failure.
    """

    def __init__(self, message: str, native_id: str = "", not_found: bool = False) -> None:
        super().__init__(message, native_id=native_id)
        self.not_found = not_found


class DeleteError(ActionError):
    """Raised when a delete/archive call fails for a reason other than absence."""


class InvalidEvent(SyncError):
    """Raised when a backend record cannot be mapped to a canonical event."""


class InvalidTimestamp(InvalidEvent, ValueError):
    """Raised when a date or datetime string cannot be parsed.

    Subclasses :class:`ValueError` so pydantic validators surface it as a
    regular validation error.
    """
