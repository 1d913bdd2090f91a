"""Custom exceptions and throttling logic for Google Calendar API calls.

Defines a hierarchy of calendar-specific exceptions and a ``@with_retry``
decorator that absorbs rate limiting and expired tokens.  Anything else --
network errors included -- is raised straight away: a failed call fails
its plan action and the next scheduled cycle is the retry.

Exception hierarchy::

    CalendarAPIError          (base for all Calendar API errors)
    +-- CalendarAuthError     (authentication / 401 failures)
    +-- CalendarRateLimitError (HTTP 429 rate-limit responses)
    +-- CalendarNotFoundError (HTTP 404 / 410 on get/update/delete)
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

from googleapiclient.errors import HttpError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------


class CalendarAPIError(Exception):
    """Base exception for Google Calendar API errors.

    Attributes:
        status_code: HTTP status code from the API, or ``None`` if the
            error did not originate from an HTTP response.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CalendarAuthError(CalendarAPIError):
    """Raised when Calendar API authentication fails (HTTP 401, refresh failure)."""

    def __init__(self, message: str = "Calendar authentication failed") -> None:
        super().__init__(message, status_code=401)


class CalendarRateLimitError(CalendarAPIError):
    """Raised when the Calendar API keeps answering HTTP 429."""

    def __init__(self, message: str = "Calendar API rate limit exceeded") -> None:
        super().__init__(message, status_code=429)


class CalendarNotFoundError(CalendarAPIError):
    """Raised when an event does not exist (HTTP 404) or was purged (HTTP 410)."""

    def __init__(self, message: str = "Calendar resource not found", status_code: int = 404) -> None:
        super().__init__(message, status_code=status_code)


# ---------------------------------------------------------------------------
# Retry decorator
# ---------------------------------------------------------------------------

_DEFAULT_MAX_RETRIES = 3
_DEFAULT_BASE_DELAY = 1.0  # seconds
_AUTH_RETRY_LIMIT = 1  # 401 gets one retry after token refresh


def classify_http_error(error: HttpError) -> CalendarAPIError:
    """Map an ``HttpError`` to the matching calendar exception."""
    status = error.resp.status

    if status in (404, 410):
        return CalendarNotFoundError(str(error), status_code=status)
    if status == 429:
        return CalendarRateLimitError(str(error))
    if status == 403 and "rateLimitExceeded" in str(error):
        # Calendar reports per-user quota exhaustion as 403.
        return CalendarRateLimitError(str(error))
    if status == 401:
        return CalendarAuthError(str(error))
    return CalendarAPIError(str(error), status_code=status)


def with_retry(
    max_retries: int = _DEFAULT_MAX_RETRIES,
    base_delay: float = _DEFAULT_BASE_DELAY,
) -> Callable[[F], F]:
    """Decorator translating ``HttpError`` and absorbing throttling.

    Policy:

    - **HTTP 429** (or 403 ``rateLimitExceeded``): exponential backoff, up
      to *max_retries*, then :class:`CalendarRateLimitError`.
    - **HTTP 401**: call ``self._refresh_credentials()`` (if present) and
      retry once.
    - **HTTP 404 / 410**: :class:`CalendarNotFoundError` immediately.
    - Other HTTP errors: :class:`CalendarAPIError` immediately.
    - Network errors (``OSError``, ``TimeoutError``): wrapped in
      :class:`CalendarAPIError` immediately, without retry.

    Args:
        max_retries: Maximum number of backoff attempts on throttling.
        base_delay: Initial backoff delay in seconds, doubled each attempt.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            auth_retries = 0
            attempt = 0

            while True:
                try:
                    return func(*args, **kwargs)

                except HttpError as exc:
                    cal_error = classify_http_error(exc)

                    if isinstance(cal_error, CalendarNotFoundError):
                        logger.debug("Resource not found (%s): %s", cal_error.status_code, exc)
                        raise cal_error from exc

                    if isinstance(cal_error, CalendarRateLimitError):
                        if attempt >= max_retries:
                            logger.error("Rate limit exceeded after %d retries: %s", max_retries, exc)
                            raise cal_error from exc
                        delay = base_delay * (2**attempt)
                        attempt += 1
                        logger.warning(
                            "Rate limited, retrying in %.1fs (attempt %d/%d)",
                            delay,
                            attempt,
                            max_retries,
                        )
                        time.sleep(delay)
                        continue

                    if isinstance(cal_error, CalendarAuthError):
                        if auth_retries >= _AUTH_RETRY_LIMIT:
                            logger.error("Auth failed after token refresh: %s", exc)
                            raise cal_error from exc
                        auth_retries += 1
                        logger.warning("Auth expired (401), attempting token refresh")
                        instance = args[0] if args else None
                        refresh = getattr(instance, "_refresh_credentials", None)
                        if not callable(refresh):
                            raise cal_error from exc
                        try:
                            refresh()
                        except Exception as refresh_exc:
                            logger.error("Token refresh failed: %s", refresh_exc)
                            raise CalendarAuthError(f"Token refresh failed: {refresh_exc}") from refresh_exc
                        continue

                    logger.error("Calendar API error (HTTP %s): %s", cal_error.status_code, exc)
                    raise cal_error from exc

                except (OSError, TimeoutError) as exc:
                    logger.error("Network error talking to Google Calendar: %s", exc)
                    raise CalendarAPIError(f"Network error: {exc}") from exc

        return wrapper  # type: ignore[return-value]

    return decorator
