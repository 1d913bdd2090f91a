"""Shared fixtures for notion-cal-sync tests."""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Generator
from datetime import datetime
from typing import Any

import pytest

from notion_cal_sync.exceptions import UpdateError
from notion_cal_sync.models.event import Event


class FakeAdapter:
    """In-memory adapter satisfying the ``EventAdapter`` contract.

    ``store`` holds every event the backend knows about.  Ids in ``hidden``
    exist but are left out of ``fetch_events`` (they sit outside the window).
    Failures can be injected per method and per native id.
    """

    _ids = itertools.count(1)

    def __init__(self, name: str, events: list[Event] | None = None) -> None:
        self.name = name
        self.store: dict[str, Event] = {e.native_id: e for e in events or []}
        self.hidden: set[str] = set()
        self.fetch_error: Exception | None = None
        self.fail_on: dict[tuple[str, str], Exception] = {}
        self.fail_create: Exception | None = None
        self.calls: list[tuple[str, Any]] = []
        self._lock = threading.Lock()

    # -- contract -------------------------------------------------------

    def fetch_events(self, window_start: datetime, window_end: datetime) -> list[Event]:
        self.calls.append(("fetch", (window_start, window_end)))
        if self.fetch_error is not None:
            raise self.fetch_error
        return [e for nid, e in self.store.items() if nid not in self.hidden]

    def create_event(self, event: Event) -> Event:
        with self._lock:
            self.calls.append(("create", event))
            if self.fail_create is not None:
                raise self.fail_create
            created = event.with_updates(native_id=f"{self.name}-{next(self._ids)}")
            self.store[created.native_id] = created
            return created

    def update_event(self, native_id: str, fields: dict[str, Any]) -> None:
        with self._lock:
            self.calls.append(("update", (native_id, dict(fields))))
            if ("update", native_id) in self.fail_on:
                raise self.fail_on[("update", native_id)]
            if native_id not in self.store:
                raise UpdateError(f"{native_id} missing", native_id=native_id, not_found=True)
            self.store[native_id] = self.store[native_id].with_updates(**fields)

    def delete_event(self, native_id: str) -> None:
        with self._lock:
            self.calls.append(("delete", native_id))
            if ("delete", native_id) in self.fail_on:
                raise self.fail_on[("delete", native_id)]
            self.store.pop(native_id, None)

    def event_exists(self, native_id: str) -> bool:
        self.calls.append(("exists", native_id))
        return native_id in self.store

    # -- helpers --------------------------------------------------------

    def calls_of(self, kind: str) -> list[Any]:
        return [args for name, args in self.calls if name == kind]


@pytest.fixture()
def fake_adapter() -> type[FakeAdapter]:
    """Return the :class:`FakeAdapter` class so tests can build their own."""
    return FakeAdapter


@pytest.fixture()
def monkeypatch_env(clean_env: None, monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set all required environment variables to valid defaults.

    Starts from :func:`clean_env`, which also patches ``load_dotenv`` so that a
    real ``.env`` file on disk does not override the test values.
    """
    env_vars = {
        "NOTION_TOKEN": "secret_test_token",
        "NOTION_DATABASE_ID": "db-123",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove all notion-cal-sync environment variables."""
    monkeypatch.setattr("notion_cal_sync.config.load_dotenv", lambda *_a, **_kw: None)
    for key in (
        "NOTION_TOKEN",
        "NOTION_DATABASE_ID",
        "GOOGLE_CALENDAR_ID",
        "GOOGLE_CREDENTIALS_PATH",
        "GOOGLE_TOKEN_PATH",
        "GOOGLE_SERVICE_ACCOUNT_FILE",
        "SYNC_WINDOW_DAYS",
        "ACTION_TIMEOUT_SECONDS",
        "SYNC_MAX_WORKERS",
        "LOG_LEVEL",
        "TIMEZONE",
        "NOTION_TITLE_PROPERTY",
        "NOTION_DATE_PROPERTY",
        "NOTION_EVENT_ID_PROPERTY",
        "NOTION_TAG_PROPERTY",
        "NOTION_PARENT_PROPERTY",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def _reset_root_logger() -> Generator[None, None, None]:
    """Reset the root logger after each test to prevent handler leaks."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
