"""Plan data types produced by the reconciler.

A :class:`Plan` is computed once per cycle, applied by the orchestrator and
then thrown away.  It holds one :class:`SidePlan` per side:

- ``source`` -- actions against the task database (Notion);
- ``target`` -- actions against the calendar (Google Calendar).

These are intentionally simple stdlib dataclasses; the events they carry
are the validated pydantic :class:`~notion_cal_sync.models.event.Event`.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Literal

from notion_cal_sync.models.event import Event

Side = Literal["source", "target"]

SOURCE: Side = "source"
TARGET: Side = "target"

# Fields an UpdateAction may carry.
UPDATABLE_FIELDS = ("title", "tag", "start", "end", "external_id")


def other_side(side: Side) -> Side:
    return TARGET if side == SOURCE else SOURCE


class Classification(str, enum.Enum):
    """How the reconciler sees one event in the current cycle."""

    LINKED = "linked"
    UNLINKED = "unlinked"
    ORPHANED = "orphaned"
    OUT_OF_WINDOW = "out_of_window"
    DUPLICATE = "duplicate"
    EXCLUDED = "excluded"


@dataclass(frozen=True)
class CreateAction:
    """Create *event* on the receiving side.

    Attributes:
        event: The event to create.  Its ``external_id`` already points at
            ``origin.native_id`` and its ``native_id`` is empty.
        origin: The counterpart on the other side; it receives the new
            ``native_id`` as its ``external_id`` once the create succeeds.
    """

    event: Event
    origin: Event


@dataclass(frozen=True)
class UpdateAction:
    """Partially update an existing event.

    Attributes:
        event: The event as fetched this cycle.
        fields: New values keyed by a name in :data:`UPDATABLE_FIELDS`.
        reason: ``"field_drift"`` for authority-driven copies,
            ``"link"`` for cross-reference write-backs.
    """

    event: Event
    fields: dict[str, Any]
    reason: str = "field_drift"

    def __post_init__(self) -> None:
        unknown = set(self.fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown update field(s): {sorted(unknown)}")


@dataclass(frozen=True)
class DeleteAction:
    """Delete (or archive) an existing event."""

    event: Event
    reason: str = "counterpart_deleted"


@dataclass
class SidePlan:
    """Actions to apply to one side, grouped by kind."""

    creates: list[CreateAction] = field(default_factory=list)
    updates: list[UpdateAction] = field(default_factory=list)
    deletes: list[DeleteAction] = field(default_factory=list)

    @property
    def action_count(self) -> int:
        return len(self.creates) + len(self.updates) + len(self.deletes)

    @property
    def is_empty(self) -> bool:
        return self.action_count == 0


@dataclass
class Plan:
    """The full set of actions computed for one cycle.

    Attributes:
        source: Actions against the task database.
        target: Actions against the calendar.
        warnings: Corruption and data-quality findings (duplicate
            cross-references, half-dated events).  Never auto-repaired.
        classifications: ``(side, native_id) -> Classification`` for every
            event the reconciler looked at.
    """

    source: SidePlan = field(default_factory=SidePlan)
    target: SidePlan = field(default_factory=SidePlan)
    warnings: list[str] = field(default_factory=list)
    classifications: dict[tuple[str, str], Classification] = field(default_factory=dict)

    def side(self, name: Side) -> SidePlan:
        if name == SOURCE:
            return self.source
        if name == TARGET:
            return self.target
        raise ValueError(f"Unknown side: {name!r}")

    @property
    def action_count(self) -> int:
        return self.source.action_count + self.target.action_count

    @property
    def is_empty(self) -> bool:
        """No action on either side.  Warnings do not count."""
        return self.action_count == 0

    def classification_of(self, side: Side, native_id: str) -> Classification | None:
        return self.classifications.get((side, native_id))
