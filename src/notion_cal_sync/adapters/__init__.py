"""Backend adapters behind the :class:`EventAdapter` contract."""

from __future__ import annotations

from notion_cal_sync.adapters.base import EventAdapter
from notion_cal_sync.adapters.notion import NotionEventSource, page_to_event

__all__ = [
    "EventAdapter",
    "NotionEventSource",
    "page_to_event",
]
