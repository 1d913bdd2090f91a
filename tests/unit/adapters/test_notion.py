"""Tests for the Notion adapter.

Tests cover: page-to-event conversion (tags, date ranges, missing event id,
partial pages, misconfigured properties), the windowed query, dropping
unreadable pages, create/update/archive payloads, parent resolution by
tag, treating missing or archived pages as gone, and wrapping SDK errors
in the sync error hierarchy.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import httpx
import pytest
from notion_client.errors import APIErrorCode, APIResponseError

from notion_cal_sync.adapters import EventAdapter, NotionEventSource, page_to_event
from notion_cal_sync.config import NotionProperties
from notion_cal_sync.exceptions import CreateError, DeleteError, FetchError, InvalidEvent, UpdateError
from notion_cal_sync.models.event import Event

WINDOW_START = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)
WINDOW_END = datetime(2026, 3, 9, 8, 0, tzinfo=timezone.utc)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _api_error(code: str, message: str = "simulated error") -> APIResponseError:
    """Build an APIResponseError without depending on the SDK's constructor."""
    exc = APIResponseError.__new__(APIResponseError)
    Exception.__init__(exc, message)
    exc.code = code
    exc.status = 404 if code == APIErrorCode.ObjectNotFound else 400
    exc.body = ""
    return exc


def _page(
    page_id: str = "page-1",
    title: str = "[proj] Planning",
    start: str | None = "2026-03-03T09:00:00.000+00:00",
    end: str | None = "2026-03-03T10:00:00.000+00:00",
    event_id: str = "gcal-1",
) -> dict:
    date = {"start": start, "end": end, "time_zone": None} if start or end else None
    return {
        "object": "page",
        "id": page_id,
        "archived": False,
        "properties": {
            "Name": {"type": "title", "title": [{"plain_text": title}] if title else []},
            "Date": {"type": "date", "date": date},
            "Event Id": {
                "type": "rich_text",
                "rich_text": [{"plain_text": event_id}] if event_id else [],
            },
        },
    }


def _query_response(pages: list[dict], has_more: bool = False, next_cursor: str | None = None) -> dict:
    return {"object": "list", "results": pages, "has_more": has_more, "next_cursor": next_cursor}


@pytest.fixture()
def client() -> MagicMock:
    mock = MagicMock()
    mock.databases.query.return_value = _query_response([])
    mock.pages.create.return_value = {"id": "page-new"}
    mock.pages.update.return_value = {"id": "page-1"}
    mock.pages.retrieve.return_value = {"id": "page-1", "archived": False}
    return mock


@pytest.fixture()
def source(client: MagicMock) -> NotionEventSource:
    return NotionEventSource(client, "db-123")


# ---------------------------------------------------------------------------
# page_to_event
# ---------------------------------------------------------------------------


class TestPageToEvent:
    """Tests for page_to_event()."""

    def test_full_page(self) -> None:
        event = page_to_event(_page(), NotionProperties())

        assert event.native_id == "page-1"
        assert event.external_id == "gcal-1"
        assert (event.tag, event.title) == ("proj", "Planning")
        assert event.start == "2026-03-03T09:00:00Z"
        assert event.end == "2026-03-03T10:00:00Z"

    def test_date_only_range(self) -> None:
        event = page_to_event(_page(start="2026-03-03", end="2026-03-04"), NotionProperties())

        assert (event.start, event.end) == ("2026-03-03", "2026-03-04")

    def test_start_without_end_is_partial(self) -> None:
        event = page_to_event(_page(end=None), NotionProperties())

        assert event.is_partial

    def test_no_date(self) -> None:
        event = page_to_event(_page(start=None, end=None), NotionProperties())

        assert event.start is None and event.end is None

    def test_empty_event_id(self) -> None:
        assert page_to_event(_page(event_id=""), NotionProperties()).external_id == ""

    def test_missing_event_id_property(self) -> None:
        page = _page()
        del page["properties"]["Event Id"]

        assert page_to_event(page, NotionProperties()).external_id == ""

    def test_partial_page_object(self) -> None:
        with pytest.raises(InvalidEvent, match="Partial page"):
            page_to_event({"object": "page", "id": "page-1"}, NotionProperties())

    def test_misnamed_title_property(self) -> None:
        with pytest.raises(InvalidEvent, match="'Title'"):
            page_to_event(_page(), NotionProperties(title="Title"))

    def test_custom_property_names(self) -> None:
        page = _page()
        page["properties"]["Task"] = page["properties"].pop("Name")

        event = page_to_event(page, NotionProperties(title="Task"))

        assert event.title == "Planning"


# ---------------------------------------------------------------------------
# fetch_events
# ---------------------------------------------------------------------------


class TestFetchEvents:
    """Tests for NotionEventSource.fetch_events()."""

    def test_satisfies_adapter_protocol(self, source: NotionEventSource) -> None:
        assert isinstance(source, EventAdapter)
        assert source.name == "notion"

    def test_queries_window(self, source: NotionEventSource, client: MagicMock) -> None:
        source.fetch_events(WINDOW_START, WINDOW_END)

        kwargs = client.databases.query.call_args.kwargs
        assert kwargs["database_id"] == "db-123"
        assert kwargs["filter"] == {
            "and": [
                {"property": "Date", "date": {"on_or_after": "2026-03-02T08:00:00+00:00"}},
                {"property": "Date", "date": {"on_or_before": "2026-03-09T08:00:00+00:00"}},
            ]
        }
        assert kwargs["sorts"] == [{"property": "Date", "direction": "ascending"}]

    def test_follows_pagination(self, source: NotionEventSource, client: MagicMock) -> None:
        client.databases.query.side_effect = [
            _query_response([_page("p1")], has_more=True, next_cursor="cursor-2"),
            _query_response([_page("p2")]),
        ]

        events = source.fetch_events(WINDOW_START, WINDOW_END)

        assert [e.native_id for e in events] == ["p1", "p2"]
        assert client.databases.query.call_args.kwargs["start_cursor"] == "cursor-2"

    def test_drops_unreadable_pages(
        self, source: NotionEventSource, client: MagicMock, caplog: pytest.LogCaptureFixture
    ) -> None:
        client.databases.query.return_value = _query_response(
            [_page("good"), _page("bad", start="next week", end="later"), {"object": "page", "id": "partial"}]
        )

        events = source.fetch_events(WINDOW_START, WINDOW_END)

        assert [e.native_id for e in events] == ["good"]
        assert "Dropping Notion page bad" in caplog.text

    def test_api_error_raises_fetch_error(self, source: NotionEventSource, client: MagicMock) -> None:
        client.databases.query.side_effect = _api_error(APIErrorCode.Unauthorized, "bad token")

        with pytest.raises(FetchError, match="Notion query failed") as exc_info:
            source.fetch_events(WINDOW_START, WINDOW_END)
        assert exc_info.value.side == "notion"

    def test_network_error_raises_fetch_error(self, source: NotionEventSource, client: MagicMock) -> None:
        client.databases.query.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(FetchError):
            source.fetch_events(WINDOW_START, WINDOW_END)


# ---------------------------------------------------------------------------
# create_event
# ---------------------------------------------------------------------------


class TestCreateEvent:
    """Tests for NotionEventSource.create_event()."""

    def test_creates_page_with_parent(self, source: NotionEventSource, client: MagicMock) -> None:
        client.databases.query.return_value = _query_response([{"id": "parent-1"}])
        event = Event(title="Planning", tag="proj", start="2026-03-03", end="2026-03-03", external_id="g1")

        created = source.create_event(event)

        assert created.native_id == "page-new"
        assert created.external_id == "g1"
        kwargs = client.pages.create.call_args.kwargs
        assert kwargs["parent"] == {"database_id": "db-123"}
        props = kwargs["properties"]
        assert props["Name"] == {"title": [{"text": {"content": "[proj] Planning"}}]}
        assert props["Date"] == {"date": {"start": "2026-03-03", "end": "2026-03-03"}}
        assert props["Event Id"] == {"rich_text": [{"text": {"content": "g1"}}]}
        assert props["Parent Item"] == {"relation": [{"id": "parent-1"}]}

    def test_untagged_event_has_empty_relation(self, source: NotionEventSource, client: MagicMock) -> None:
        source.create_event(Event(title="Lunch", start="2026-03-03", end="2026-03-03"))

        props = client.pages.create.call_args.kwargs["properties"]
        assert props["Parent Item"] == {"relation": []}
        client.databases.query.assert_not_called()

    def test_unknown_tag_has_empty_relation(self, source: NotionEventSource, client: MagicMock) -> None:
        source.create_event(Event(title="Lunch", tag="nope", start="2026-03-03", end="2026-03-03"))

        props = client.pages.create.call_args.kwargs["properties"]
        assert props["Parent Item"] == {"relation": []}

    def test_api_error_raises_create_error(self, source: NotionEventSource, client: MagicMock) -> None:
        client.pages.create.side_effect = _api_error(APIErrorCode.ValidationError, "bad property")

        with pytest.raises(CreateError, match="Notion create failed"):
            source.create_event(Event(title="Lunch", start="2026-03-03", end="2026-03-03"))

    def test_parent_lookup_error_raises_create_error(self, source: NotionEventSource, client: MagicMock) -> None:
        client.databases.query.side_effect = _api_error(APIErrorCode.RateLimited, "slow down")

        with pytest.raises(CreateError, match="slow down"):
            source.create_event(Event(title="Lunch", tag="proj", start="2026-03-03", end="2026-03-03"))
        client.pages.create.assert_not_called()

    def test_missing_page_id_raises_create_error(self, source: NotionEventSource, client: MagicMock) -> None:
        client.pages.create.return_value = {}

        with pytest.raises(CreateError, match="no page id"):
            source.create_event(Event(title="Lunch", start="2026-03-03", end="2026-03-03"))


# ---------------------------------------------------------------------------
# update_event
# ---------------------------------------------------------------------------


class TestUpdateEvent:
    """Tests for NotionEventSource.update_event()."""

    def test_dates(self, source: NotionEventSource, client: MagicMock) -> None:
        source.update_event("page-1", {"start": "2026-03-04T09:00:00Z", "end": "2026-03-04T10:00:00Z"})

        client.pages.update.assert_called_once_with(
            page_id="page-1",
            properties={"Date": {"date": {"start": "2026-03-04T09:00:00Z", "end": "2026-03-04T10:00:00Z"}}},
        )

    def test_external_id_write_back(self, source: NotionEventSource, client: MagicMock) -> None:
        source.update_event("page-1", {"external_id": "g1"})

        client.pages.update.assert_called_once_with(
            page_id="page-1",
            properties={"Event Id": {"rich_text": [{"text": {"content": "g1"}}]}},
        )

    def test_clearing_external_id(self, source: NotionEventSource, client: MagicMock) -> None:
        source.update_event("page-1", {"external_id": ""})

        props = client.pages.update.call_args.kwargs["properties"]
        assert props == {"Event Id": {"rich_text": []}}

    def test_tag_change_resolves_parent(self, source: NotionEventSource, client: MagicMock) -> None:
        client.databases.query.return_value = _query_response([{"id": "parent-9"}])

        source.update_event("page-1", {"title": "Planning", "tag": "ops"})

        query = client.databases.query.call_args.kwargs
        assert query["filter"] == {"property": "Tag", "rich_text": {"equals": "ops"}}
        props = client.pages.update.call_args.kwargs["properties"]
        assert props["Name"] == {"title": [{"text": {"content": "[ops] Planning"}}]}
        assert props["Parent Item"] == {"relation": [{"id": "parent-9"}]}

    def test_tag_without_title_is_rejected(self, source: NotionEventSource, client: MagicMock) -> None:
        with pytest.raises(UpdateError, match="Invalid Notion update"):
            source.update_event("page-1", {"tag": "ops"})
        client.pages.update.assert_not_called()

    def test_parent_lookup_error_raises_update_error(self, source: NotionEventSource, client: MagicMock) -> None:
        client.databases.query.side_effect = _api_error(APIErrorCode.RateLimited, "slow down")

        with pytest.raises(UpdateError, match="parent lookup failed") as excinfo:
            source.update_event("page-1", {"title": "Planning", "tag": "ops"})
        assert not excinfo.value.not_found
        client.pages.update.assert_not_called()

    def test_half_date_range_is_rejected(self, source: NotionEventSource, client: MagicMock) -> None:
        with pytest.raises(UpdateError):
            source.update_event("page-1", {"start": "2026-03-04"})

    def test_empty_fields_are_a_no_op(self, source: NotionEventSource, client: MagicMock) -> None:
        source.update_event("page-1", {})

        client.pages.update.assert_not_called()

    def test_missing_page_is_not_found(self, source: NotionEventSource, client: MagicMock) -> None:
        client.pages.update.side_effect = _api_error(APIErrorCode.ObjectNotFound)

        with pytest.raises(UpdateError) as exc_info:
            source.update_event("page-1", {"external_id": "g1"})
        assert exc_info.value.not_found is True
        assert exc_info.value.native_id == "page-1"

    def test_archived_page_is_not_found(self, source: NotionEventSource, client: MagicMock) -> None:
        client.pages.update.side_effect = _api_error(
            APIErrorCode.ValidationError, "Can't edit block that is archived."
        )

        with pytest.raises(UpdateError) as exc_info:
            source.update_event("page-1", {"external_id": "g1"})
        assert exc_info.value.not_found is True

    def test_other_error_is_a_plain_failure(self, source: NotionEventSource, client: MagicMock) -> None:
        client.pages.update.side_effect = _api_error(APIErrorCode.RateLimited, "slow down")

        with pytest.raises(UpdateError) as exc_info:
            source.update_event("page-1", {"external_id": "g1"})
        assert exc_info.value.not_found is False


# ---------------------------------------------------------------------------
# delete_event / event_exists
# ---------------------------------------------------------------------------


class TestDeleteEvent:
    """Tests for NotionEventSource.delete_event()."""

    def test_archives_page(self, source: NotionEventSource, client: MagicMock) -> None:
        source.delete_event("page-1")

        client.pages.update.assert_called_once_with(page_id="page-1", archived=True)

    def test_missing_page_is_fine(self, source: NotionEventSource, client: MagicMock) -> None:
        client.pages.update.side_effect = _api_error(APIErrorCode.ObjectNotFound)

        source.delete_event("page-1")

    def test_failure_raises_delete_error(self, source: NotionEventSource, client: MagicMock) -> None:
        client.pages.update.side_effect = httpx.ReadTimeout("timed out")

        with pytest.raises(DeleteError):
            source.delete_event("page-1")


class TestEventExists:
    """Tests for NotionEventSource.event_exists()."""

    def test_live_page(self, source: NotionEventSource) -> None:
        assert source.event_exists("page-1") is True

    @pytest.mark.parametrize("flag", ["archived", "in_trash"])
    def test_archived_or_trashed_page(self, source: NotionEventSource, client: MagicMock, flag: str) -> None:
        client.pages.retrieve.return_value = {"id": "page-1", flag: True}

        assert source.event_exists("page-1") is False

    def test_missing_page(self, source: NotionEventSource, client: MagicMock) -> None:
        client.pages.retrieve.side_effect = _api_error(APIErrorCode.ObjectNotFound)

        assert source.event_exists("page-1") is False

    def test_lookup_failure_raises_fetch_error(self, source: NotionEventSource, client: MagicMock) -> None:
        client.pages.retrieve.side_effect = _api_error(APIErrorCode.InternalServerError, "oops")

        with pytest.raises(FetchError):
            source.event_exists("page-1")
