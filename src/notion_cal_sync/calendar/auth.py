"""Credential loading for the Google Calendar API.

Two kinds of credentials are supported:

- a **service account** key file, for unattended runs from a scheduler
  (share the calendar with the service account's email address);
- an **OAuth user token** cached on disk, obtained once through the
  Desktop-app browser flow (``python -m notion_cal_sync auth``) and
  refreshed automatically afterwards.

Usage::

    from notion_cal_sync.calendar.auth import load_calendar_credentials

    creds = load_calendar_credentials(settings)
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from notion_cal_sync.calendar.exceptions import CalendarAuthError
from notion_cal_sync.config import Settings

logger = logging.getLogger(__name__)

SCOPES: list[str] = ["https://www.googleapis.com/auth/calendar.events"]
"""OAuth 2.0 scope required to read and write events."""


def load_calendar_credentials(settings: Settings):
    """Return credentials for an unattended sync cycle.

    A configured service-account file wins.  Otherwise the cached user
    token is loaded and refreshed if needed; the browser flow is never
    started from here since cycles run without a user at the keyboard.

    Raises:
        CalendarAuthError: If no usable credentials are available.
    """
    if settings.google_service_account_file:
        return _load_service_account(Path(settings.google_service_account_file))

    token_path = Path(settings.google_token_path)
    creds = _load_cached_token(token_path)
    if creds is None:
        raise CalendarAuthError(
            f"No Google token at {token_path}; run 'python -m notion_cal_sync auth' first"
        )
    if creds.valid:
        logger.debug("Loaded valid cached token from %s", token_path)
        return creds
    if creds.expired and creds.refresh_token:
        logger.info("Cached token expired, refreshing")
        refreshed = _refresh_token(creds)
        if refreshed is not None:
            _save_token(refreshed, token_path)
            return refreshed
    raise CalendarAuthError(f"Google token at {token_path} is invalid and cannot be refreshed")


def authorize_interactively(
    credentials_path: Path | str,
    token_path: Path | str,
) -> Credentials:
    """Run the browser OAuth flow and cache the resulting user token.

    Args:
        credentials_path: OAuth client secrets file (``credentials.json``)
            downloaded from Google Cloud Console.
        token_path: Where to store the user token (``token.json``).

    Raises:
        CalendarAuthError: If the client secrets file does not exist.
    """
    credentials_path = Path(credentials_path)
    token_path = Path(token_path)

    if not credentials_path.exists():
        msg = f"OAuth client secrets file not found: {credentials_path}"
        logger.error(msg)
        raise CalendarAuthError(msg)

    flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), scopes=SCOPES)
    creds = flow.run_local_server(port=0)
    logger.info("Browser OAuth flow completed successfully")
    _save_token(creds, token_path)
    return creds


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _load_service_account(key_path: Path) -> service_account.Credentials:
    if not key_path.exists():
        raise CalendarAuthError(f"Service account key file not found: {key_path}")
    try:
        creds = service_account.Credentials.from_service_account_file(str(key_path), scopes=SCOPES)
    except (json.JSONDecodeError, ValueError, KeyError) as exc:
        raise CalendarAuthError(f"Invalid service account key file {key_path}: {exc}") from exc
    logger.debug("Loaded service account credentials from %s", key_path)
    return creds


def _load_cached_token(token_path: Path) -> Credentials | None:
    """Load credentials from a cached token file, or ``None`` if absent/unreadable."""
    if not token_path.exists():
        logger.info("No cached token found at %s", token_path)
        return None

    try:
        return Credentials.from_authorized_user_file(str(token_path), SCOPES)
    except (json.JSONDecodeError, ValueError, KeyError) as exc:
        logger.warning("Failed to parse cached token at %s: %s", token_path, exc)
        return None


def _refresh_token(creds: Credentials) -> Credentials | None:
    """Refresh expired credentials, returning ``None`` if the request fails."""
    try:
        creds.refresh(Request())
        logger.info("Token refresh succeeded")
        return creds
    except Exception as exc:
        logger.warning("Token refresh failed: %s", exc)
        return None


def _save_token(creds: Credentials, token_path: Path) -> None:
    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(creds.to_json())
    logger.info("Token saved to %s", token_path)
