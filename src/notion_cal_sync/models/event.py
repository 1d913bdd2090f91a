"""Canonical event model shared by both sides of the sync.

Defines the backend-independent representation the reconciler works on:

- :class:`Event` -- one event as seen by one side, carrying the side's own
  identifier (``native_id``) and a cross-reference to its counterpart on
  the other side (``external_id``).
- :func:`normalize_timestamp` -- maps backend date/datetime strings onto one
  canonical text form so that values survive an adapter round trip
  unchanged.
- :func:`parse_tag` / :func:`render_title` -- split and re-join the
  ``[tag] Title`` syntax used to link an event to a parent record.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, field_validator

from notion_cal_sync.exceptions import InvalidTimestamp

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TAG_RE = re.compile(r"^\[([^\[\]]+)\] (.*)$", re.DOTALL)

CANONICAL_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def normalize_timestamp(raw: str | date | datetime | None) -> str | None:
    """Convert a backend date or datetime into the canonical form.

    Two precisions are kept apart on purpose:

    - date-only values become ``"YYYY-MM-DD"``;
    - datetimes become UTC ``"YYYY-MM-DDTHH:MM:SSZ"``.  Naive datetimes are
      read as UTC and sub-second precision is dropped.

    A date-only value is therefore never equal to a midnight datetime.

    Args:
        raw: An ISO 8601 string (``Z`` suffix accepted), a ``date``, a
            ``datetime``, or ``None``/empty string.

    Returns:
        The canonical string, or ``None`` when *raw* is empty.

    Raises:
        InvalidTimestamp: If *raw* cannot be parsed.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return _format_datetime(raw)
    if isinstance(raw, date):
        return raw.isoformat()
    if not isinstance(raw, str):
        raise InvalidTimestamp(f"Unsupported timestamp type: {type(raw).__name__}")

    text = raw.strip()
    if not text:
        return None

    if _DATE_ONLY_RE.match(text):
        try:
            return date.fromisoformat(text).isoformat()
        except ValueError as exc:
            raise InvalidTimestamp(f"Invalid date: {raw!r}") from exc

    if text[-1] in "Zz":
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise InvalidTimestamp(f"Invalid datetime: {raw!r}") from exc
    return _format_datetime(parsed)


def is_date_only(value: str | None) -> bool:
    """Whether a canonical timestamp has date (all-day) precision."""
    return bool(value) and _DATE_ONLY_RE.match(value) is not None


def _format_datetime(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(CANONICAL_DATETIME_FORMAT)


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


class TaggedTitle(NamedTuple):
    """Result of :func:`parse_tag`; unpacks straight into :func:`render_title`."""

    tag: str | None
    title: str


def parse_tag(raw_title: str) -> TaggedTitle:
    """Split a leading ``[tag] `` segment off *raw_title*.

    >>> parse_tag("[proj] Meet")
    TaggedTitle(tag='proj', title='Meet')
    >>> parse_tag("Meet")
    TaggedTitle(tag=None, title='Meet')

    The tag segment must be followed by exactly one space; anything else
    (``"[proj]Meet"``, ``"[] Meet"``) is treated as a plain title, so
    ``render_title(*parse_tag(x)) == x`` holds for every input.
    """
    match = _TAG_RE.match(raw_title or "")
    if match is None:
        return TaggedTitle(tag=None, title=raw_title or "")
    return TaggedTitle(tag=match.group(1), title=match.group(2))


def render_title(tag: str | None, title: str) -> str:
    """Inverse of :func:`parse_tag`."""
    if not tag:
        return title
    return f"[{tag}] {title}"


# ---------------------------------------------------------------------------
# Event
# ---------------------------------------------------------------------------


class Event(BaseModel):
    """A calendar event in canonical, backend-independent form.

    Attributes:
        external_id: ``native_id`` of the counterpart on the other side.
            Empty when the event has never been pushed across.
        title: Display title without the tag segment.
        tag: Grouping tag parsed from the raw title, or ``None``.
        start: Canonical start timestamp, or ``None``.
        end: Canonical end timestamp, or ``None``.
        native_id: Identifier assigned by the side that owns the event.
    """

    model_config = ConfigDict(frozen=True)

    external_id: str = ""
    title: str = ""
    tag: str | None = None
    start: str | None = None
    end: str | None = None
    native_id: str = ""

    @field_validator("start", "end", mode="before")
    @classmethod
    def _normalize_bounds(cls, value: Any) -> str | None:
        return normalize_timestamp(value)

    @field_validator("external_id", "native_id", mode="before")
    @classmethod
    def _strip_identifier(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("tag", mode="before")
    @classmethod
    def _empty_tag_is_none(cls, value: Any) -> str | None:
        return value or None

    @classmethod
    def from_raw_title(cls, raw_title: str, **fields: Any) -> Event:
        """Build an event whose ``tag``/``title`` come from a ``[tag] Title`` string."""
        tag, title = parse_tag(raw_title)
        return cls(tag=tag, title=title, **fields)

    @property
    def raw_title(self) -> str:
        """Title with the tag segment re-attached, as stored by the backends."""
        return render_title(self.tag, self.title)

    @property
    def is_linked(self) -> bool:
        return bool(self.external_id)

    @property
    def is_complete(self) -> bool:
        """Both bounds present -- the only events that take part in a diff."""
        return self.start is not None and self.end is not None

    @property
    def is_partial(self) -> bool:
        """Exactly one bound present -- invalid, excluded from the sync."""
        return (self.start is None) != (self.end is None)

    @property
    def is_all_day(self) -> bool:
        return is_date_only(self.start) and is_date_only(self.end)

    def with_updates(self, **fields: Any) -> Event:
        """Return a validated copy with *fields* replaced."""
        return Event.model_validate({**self.model_dump(), **fields})

    def label(self) -> str:
        """Short human-readable description for log lines."""
        ident = self.native_id or "<new>"
        return f"'{self.raw_title}' ({ident})"
