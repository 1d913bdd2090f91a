"""Shared fixtures for Google Calendar unit tests."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, create_autospec

import pytest
from google.oauth2.credentials import Credentials

from notion_cal_sync.config import Settings


@pytest.fixture()
def mock_credentials() -> MagicMock:
    """Return a mock Credentials object that reports as valid."""
    creds = create_autospec(Credentials, instance=True)
    creds.valid = True
    creds.expired = False
    creds.refresh_token = "fake-refresh-token"
    creds.to_json.return_value = '{"token": "fake"}'
    return creds


@pytest.fixture()
def mock_expired_credentials() -> MagicMock:
    """Return a mock Credentials object that is expired but has a refresh token."""
    creds = create_autospec(Credentials, instance=True)
    creds.valid = False
    creds.expired = True
    creds.refresh_token = "fake-refresh-token"
    creds.to_json.return_value = '{"token": "refreshed"}'
    return creds


@pytest.fixture()
def tmp_credentials_file(tmp_path: Path) -> Path:
    """Write a minimal credentials.json to a temp directory and return its path."""
    creds_path = tmp_path / "credentials.json"
    creds_path.write_text('{"installed": {"client_id": "fake", "client_secret": "fake"}}')
    return creds_path


@pytest.fixture()
def tmp_token_file(tmp_path: Path) -> Path:
    """Return a path for token.json in a temp directory (file does not exist yet)."""
    return tmp_path / "token.json"


@pytest.fixture()
def settings_for(tmp_token_file: Path):
    """Build :class:`Settings` pointing at the temp token file."""

    def _build(**overrides: object) -> Settings:
        values: dict = {
            "notion_token": "secret",
            "notion_database_id": "db-123",
            "google_token_path": str(tmp_token_file),
        }
        values.update(overrides)
        return Settings(**values)

    return _build


@pytest.fixture()
def mock_service() -> MagicMock:
    """Return a mock ``googleapiclient`` calendar service resource."""
    service = MagicMock()
    events = service.events.return_value
    events.list.return_value.execute.return_value = {"items": []}
    events.insert.return_value.execute.return_value = {"id": "gcal-new"}
    events.patch.return_value.execute.return_value = {"id": "gcal-1"}
    events.delete.return_value.execute.return_value = None
    events.get.return_value.execute.return_value = {"id": "gcal-1", "status": "confirmed"}
    return service
