"""Notion database adapter.

Provides :class:`NotionEventSource`, the task-database side of the sync.
Each database page is one event:

- the title property holds ``[tag] Title``;
- the date property holds the start/end range;
- a rich-text property holds the Google Calendar event ID (the
  cross-reference);
- a relation property links the page to its parent record, looked up by the
  parent's tag property when the page is created or its tag changes.

Deleting an event archives its page.  Property names come from
:class:`~notion_cal_sync.config.NotionProperties`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx
from notion_client import Client
from notion_client.errors import APIErrorCode, APIResponseError, HTTPResponseError, RequestTimeoutError
from notion_client.helpers import collect_paginated_api

from notion_cal_sync.config import NotionProperties
from notion_cal_sync.exceptions import (
    CreateError,
    DeleteError,
    FetchError,
    InvalidEvent,
    UpdateError,
)
from notion_cal_sync.models.event import Event, normalize_timestamp, render_title

logger = logging.getLogger(__name__)

_PAGE_SIZE = 100

# Everything the Notion SDK raises for a failed request.
_NOTION_ERRORS = (HTTPResponseError, RequestTimeoutError, httpx.HTTPError)


class NotionEventSource:
    """Task-database side of the sync.

    Args:
        client: A configured :class:`notion_client.Client`.
        database_id: ID of the database holding the event pages.
        properties: Names of the properties read and written.
    """

    name = "notion"

    def __init__(
        self,
        client: Client,
        database_id: str,
        properties: NotionProperties | None = None,
    ) -> None:
        self._client = client
        self._database_id = database_id
        self._props = properties or NotionProperties()

    @classmethod
    def from_token(
        cls,
        token: str,
        database_id: str,
        properties: NotionProperties | None = None,
        timeout_seconds: float = 30.0,
    ) -> NotionEventSource:
        client = Client(auth=token, timeout_ms=int(timeout_seconds * 1000))
        return cls(client, database_id, properties)

    # ------------------------------------------------------------------
    # Adapter contract
    # ------------------------------------------------------------------

    def fetch_events(self, window_start: datetime, window_end: datetime) -> list[Event]:
        """Query the pages dated inside the window, earliest first.

        Raises:
            FetchError: If the query fails.
        """
        try:
            pages = collect_paginated_api(
                self._client.databases.query,
                database_id=self._database_id,
                filter={
                    "and": [
                        {"property": self._props.date, "date": {"on_or_after": _iso(window_start)}},
                        {"property": self._props.date, "date": {"on_or_before": _iso(window_end)}},
                    ]
                },
                sorts=[{"property": self._props.date, "direction": "ascending"}],
                page_size=_PAGE_SIZE,
            )
        except _NOTION_ERRORS as exc:
            raise FetchError(f"Notion query failed: {exc}", side=self.name) from exc

        events: list[Event] = []
        for page in pages:
            try:
                events.append(page_to_event(page, self._props))
            except (InvalidEvent, ValueError) as exc:
                logger.warning("Dropping Notion page %s: %s", page.get("id", "?"), exc)

        logger.info("Fetched %d Notion event(s)", len(events))
        return events

    def create_event(self, event: Event) -> Event:
        """Create a page for *event*, linked to the parent matching its tag.

        Raises:
            CreateError: If the page cannot be created.
        """
        try:
            properties = self._properties_for(
                {
                    "title": event.title,
                    "tag": event.tag,
                    "start": event.start,
                    "end": event.end,
                    "external_id": event.external_id,
                }
            )
            page = self._client.pages.create(
                parent={"database_id": self._database_id},
                properties=properties,
            )
        except (InvalidEvent, *_NOTION_ERRORS) as exc:
            raise CreateError(f"Notion create failed for {event.label()}: {exc}") from exc

        native_id = page.get("id", "")
        if not native_id:
            raise CreateError(f"Notion create returned no page id for {event.label()}")
        logger.info("Created Notion page %s (id=%s)", event.label(), native_id)
        return event.with_updates(native_id=native_id)

    def update_event(self, native_id: str, fields: dict[str, Any]) -> None:
        """Write *fields* to the page; a tag change re-resolves the parent.

        Raises:
            UpdateError: ``not_found`` is set for a missing or archived page.
        """
        try:
            properties = self._properties_for(fields)
        except InvalidEvent as exc:
            raise UpdateError(f"Invalid Notion update for {native_id}: {exc}", native_id=native_id) from exc
        except _NOTION_ERRORS as exc:
            raise UpdateError(f"Notion parent lookup failed for {native_id}: {exc}", native_id=native_id) from exc
        if not properties:
            return

        try:
            self._client.pages.update(page_id=native_id, properties=properties)
        except APIResponseError as exc:
            if _is_gone(exc):
                raise UpdateError(
                    f"Notion page {native_id} no longer exists", native_id=native_id, not_found=True
                ) from exc
            raise UpdateError(f"Notion update failed for {native_id}: {exc}", native_id=native_id) from exc
        except _NOTION_ERRORS as exc:
            raise UpdateError(f"Notion update failed for {native_id}: {exc}", native_id=native_id) from exc
        logger.info("Updated Notion page %s (%s)", native_id, ", ".join(sorted(fields)))

    def delete_event(self, native_id: str) -> None:
        """Archive the page; a missing or already-archived page is fine.

        Raises:
            DeleteError: On any other failure.
        """
        try:
            self._client.pages.update(page_id=native_id, archived=True)
        except APIResponseError as exc:
            if _is_gone(exc):
                logger.info("Notion page %s already archived", native_id)
                return
            raise DeleteError(f"Notion archive failed for {native_id}: {exc}", native_id=native_id) from exc
        except _NOTION_ERRORS as exc:
            raise DeleteError(f"Notion archive failed for {native_id}: {exc}", native_id=native_id) from exc
        logger.info("Archived Notion page %s", native_id)

    def event_exists(self, native_id: str) -> bool:
        """Whether the page exists and is neither archived nor trashed.

        Raises:
            FetchError: If the lookup itself fails.
        """
        try:
            page = self._client.pages.retrieve(page_id=native_id)
        except APIResponseError as exc:
            if exc.code == APIErrorCode.ObjectNotFound:
                return False
            raise FetchError(f"Notion lookup failed for {native_id}: {exc}", side=self.name) from exc
        except _NOTION_ERRORS as exc:
            raise FetchError(f"Notion lookup failed for {native_id}: {exc}", side=self.name) from exc
        return not (page.get("archived") or page.get("in_trash"))

    def resolve_parent_by_tag(self, tag: str | None) -> str | None:
        """Return the ID of the first page whose tag property equals *tag*.

        Returns:
            The parent page ID, or ``None`` for an empty or unknown tag.

        Raises:
            APIResponseError, HTTPResponseError, RequestTimeoutError,
            httpx.HTTPError: Passed through from the SDK unchanged.
                ``create_event`` and ``update_event`` turn them into
                :class:`CreateError` / :class:`UpdateError`.
        """
        if not tag:
            return None
        response = self._client.databases.query(
            database_id=self._database_id,
            filter={"property": self._props.tag, "rich_text": {"equals": tag}},
            page_size=1,
        )
        results = response.get("results", [])
        if not results:
            logger.info("No parent record tagged %r", tag)
            return None
        return results[0]["id"]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _properties_for(self, fields: dict[str, Any]) -> dict:
        """Translate canonical update fields into a Notion ``properties`` payload."""
        props: dict = {}

        if "title" in fields or "tag" in fields:
            if "title" not in fields:
                raise InvalidEvent("Tag update without a title")
            raw_title = render_title(fields.get("tag"), fields["title"] or "")
            props[self._props.title] = {"title": [{"text": {"content": raw_title}}]}
            if "tag" in fields:
                parent_id = self.resolve_parent_by_tag(fields.get("tag"))
                props[self._props.parent] = {"relation": [{"id": parent_id}] if parent_id else []}

        if "start" in fields or "end" in fields:
            start = normalize_timestamp(fields.get("start"))
            end = normalize_timestamp(fields.get("end"))
            if start is None or end is None:
                raise InvalidEvent("Date update needs both start and end")
            props[self._props.date] = {"date": {"start": start, "end": end}}

        if "external_id" in fields:
            external_id = fields["external_id"] or ""
            props[self._props.event_id] = {
                "rich_text": [{"text": {"content": external_id}}] if external_id else []
            }

        return props


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def page_to_event(page: dict, props: NotionProperties) -> Event:
    """Convert a Notion page object into a canonical event.

    Raises:
        InvalidEvent: If the page is partial or misses a configured property.
        InvalidTimestamp: If the date property cannot be parsed.
    """
    page_id = page.get("id")
    properties = page.get("properties")
    if not page_id or properties is None:
        raise InvalidEvent("Partial page object without properties")

    title_prop = _require(properties, props.title, "title")
    date_prop = _require(properties, props.date, "date")
    id_prop = properties.get(props.event_id)

    date_value = date_prop.get("date") or {}
    external_id = _plain_text(id_prop.get("rich_text", [])) if id_prop and id_prop.get("type") == "rich_text" else ""

    return Event.from_raw_title(
        _plain_text(title_prop.get("title", [])),
        native_id=page_id,
        external_id=external_id,
        start=normalize_timestamp(date_value.get("start")),
        end=normalize_timestamp(date_value.get("end")),
    )


def _require(properties: dict, name: str, expected_type: str) -> dict:
    prop = properties.get(name)
    if prop is None or prop.get("type") != expected_type:
        raise InvalidEvent(f"Property {name!r} missing or not of type {expected_type!r}")
    return prop


def _plain_text(rich_text: list[dict]) -> str:
    return "".join(part.get("plain_text", "") for part in rich_text)


def _is_gone(exc: APIResponseError) -> bool:
    if exc.code == APIErrorCode.ObjectNotFound:
        return True
    return exc.code == APIErrorCode.ValidationError and "archived" in str(exc).lower()


def _iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()
