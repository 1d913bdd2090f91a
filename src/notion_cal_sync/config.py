"""Configuration loading for notion-cal-sync.

Reads settings from environment variables (with .env support via
python-dotenv) and validates that all required values are present.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""


@dataclass(frozen=True)
class NotionProperties:
    """Names of the Notion database properties the adapter reads and writes."""

    title: str = "Name"
    date: str = "Date"
    event_id: str = "Event Id"
    tag: str = "Tag"
    parent: str = "Parent Item"


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables.

    Attributes:
        notion_token: Notion integration token.
        notion_database_id: ID of the Notion database holding the events.
        google_calendar_id: Google Calendar to sync against.
        google_credentials_path: OAuth client secrets file.
        google_token_path: Cached OAuth user token.
        google_service_account_file: Service-account key; takes precedence
            over the OAuth user token when set.
        window_days: Length of the sync horizon, starting now.
        action_timeout_seconds: Per-action timeout during plan application.
        max_workers: Thread pool size for fetches and actions.
        log_level: Logging level (default ``"INFO"``).
        timezone: IANA timezone sent with timed Google Calendar writes.
        notion_properties: Notion property names.
    """

    notion_token: str
    notion_database_id: str
    google_calendar_id: str = "primary"
    google_credentials_path: str = "credentials.json"
    google_token_path: str = "token.json"
    google_service_account_file: str = ""
    window_days: int = 7
    action_timeout_seconds: float = 30.0
    max_workers: int = 8
    log_level: str = "INFO"
    timezone: str = "UTC"
    notion_properties: NotionProperties = NotionProperties()

    def __repr__(self) -> str:
        return (
            f"Settings(notion_token='***', "
            f"notion_database_id={self.notion_database_id!r}, "
            f"google_calendar_id={self.google_calendar_id!r}, "
            f"window_days={self.window_days!r}, "
            f"action_timeout_seconds={self.action_timeout_seconds!r}, "
            f"max_workers={self.max_workers!r}, "
            f"log_level={self.log_level!r}, "
            f"timezone={self.timezone!r})"
        )


_PROPERTY_ENV = {
    "NOTION_TITLE_PROPERTY": "title",
    "NOTION_DATE_PROPERTY": "date",
    "NOTION_EVENT_ID_PROPERTY": "event_id",
    "NOTION_TAG_PROPERTY": "tag",
    "NOTION_PARENT_PROPERTY": "parent",
}

_OPTIONAL_STR_ENV = {
    "GOOGLE_CALENDAR_ID": "google_calendar_id",
    "GOOGLE_CREDENTIALS_PATH": "google_credentials_path",
    "GOOGLE_TOKEN_PATH": "google_token_path",
    "GOOGLE_SERVICE_ACCOUNT_FILE": "google_service_account_file",
    "LOG_LEVEL": "log_level",
    "TIMEZONE": "timezone",
}


def _positive_number(env_var: str, raw: str, cast: type) -> int | float:
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(f"{env_var} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{env_var} must be greater than zero, got {raw!r}")
    return value


def load_settings() -> Settings:
    """Load and validate settings from environment variables.

    Calls :func:`dotenv.load_dotenv` so a ``.env`` file in the working
    directory is picked up automatically.

    Returns:
        A validated :class:`Settings` instance.

    Raises:
        ConfigError: If any required variable is missing or blank (the
            message names **all** missing variables), or if a numeric
            setting is not a positive number.
    """
    load_dotenv()

    required = {
        "NOTION_TOKEN": "notion_token",
        "NOTION_DATABASE_ID": "notion_database_id",
    }

    values: dict = {}
    missing: list[str] = []

    for env_var, field_name in required.items():
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            missing.append(env_var)
        else:
            values[field_name] = raw.strip()

    if missing:
        names = ", ".join(missing)
        raise ConfigError(f"Missing required environment variables: {names}")

    for env_var, field_name in _OPTIONAL_STR_ENV.items():
        raw = os.environ.get(env_var, "").strip()
        if raw:
            values[field_name] = raw

    numeric = (
        ("SYNC_WINDOW_DAYS", "window_days", int),
        ("ACTION_TIMEOUT_SECONDS", "action_timeout_seconds", float),
        ("SYNC_MAX_WORKERS", "max_workers", int),
    )
    for env_var, field_name, cast in numeric:
        raw = os.environ.get(env_var, "").strip()
        if raw:
            values[field_name] = _positive_number(env_var, raw, cast)

    property_names = {
        field_name: os.environ[env_var].strip()
        for env_var, field_name in _PROPERTY_ENV.items()
        if os.environ.get(env_var, "").strip()
    }
    if property_names:
        values["notion_properties"] = NotionProperties(**property_names)

    return Settings(**values)
