"""notion-cal-sync: keep a Notion database and Google Calendar in agreement.

Fetches upcoming events from both sides, reconciles them through explicit
cross-references and applies the resulting creates, updates and deletes.
"""

from __future__ import annotations

from notion_cal_sync.exceptions import (
    CreateError,
    DeleteError,
    FetchError,
    InvalidEvent,
    InvalidTimestamp,
    SyncError,
    UpdateError,
)
from notion_cal_sync.models.event import Event, normalize_timestamp, parse_tag, render_title
from notion_cal_sync.models.plan import Classification, Plan
from notion_cal_sync.models.result import CycleResult
from notion_cal_sync.reconciler import Reconciler
from notion_cal_sync.sync import SyncOrchestrator

__version__ = "0.1.0"

__all__ = [
    "Classification",
    "CreateError",
    "CycleResult",
    "DeleteError",
    "Event",
    "FetchError",
    "InvalidEvent",
    "InvalidTimestamp",
    "Plan",
    "Reconciler",
    "SyncError",
    "SyncOrchestrator",
    "UpdateError",
    "normalize_timestamp",
    "parse_tag",
    "render_title",
]
