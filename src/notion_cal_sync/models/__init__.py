"""Data models for notion-cal-sync."""

from __future__ import annotations

from notion_cal_sync.models.event import (
    Event,
    TaggedTitle,
    normalize_timestamp,
    parse_tag,
    render_title,
)
from notion_cal_sync.models.plan import (
    SOURCE,
    TARGET,
    Classification,
    CreateAction,
    DeleteAction,
    Plan,
    Side,
    SidePlan,
    UpdateAction,
)
from notion_cal_sync.models.result import ActionFailure, CycleResult

__all__ = [
    "SOURCE",
    "TARGET",
    "ActionFailure",
    "Classification",
    "CreateAction",
    "CycleResult",
    "DeleteAction",
    "Event",
    "Plan",
    "Side",
    "SidePlan",
    "TaggedTitle",
    "UpdateAction",
    "normalize_timestamp",
    "parse_tag",
    "render_title",
]
