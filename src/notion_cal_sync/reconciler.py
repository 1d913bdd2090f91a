"""Reconciliation engine: diff two event collections into a :class:`Plan`.

The reconciler is given the events fetched from the task database
(*source*) and from the calendar (*target*) and decides, per event, what
has to happen so both sides agree again.  Matching is done only through
explicit cross-references: an event's ``external_id`` is the ``native_id``
of its counterpart on the other side.  Titles and times are never used to
guess a match.

Every event is classified as one of:

- **linked** -- its cross-reference resolves to a live counterpart.  The
  pair is compared field by field and drift is copied from the
  authoritative side (see :data:`FIELD_AUTHORITY`).
- **unlinked** -- no cross-reference and nothing on the other side points
  at it.  A create is planned on the other side; the new identifier is
  written back once the create succeeds.
- **orphaned** -- the cross-reference does not resolve and the other side
  confirms the counterpart is gone.  A delete is planned on this side.
- **out of window** -- the counterpart was not fetched but still exists
  (it scrolled out of the time horizon).  Nothing happens.
- **duplicate** -- the cross-reference is shared with another event on the
  same side, or the two sides point at different partners.  This is a
  corruption state: a warning is recorded and nothing is touched.
- **excluded** -- the event, or its counterpart, lacks its dates and sits
  out this cycle.

Running :meth:`Reconciler.plan` twice on the same inputs yields the same
plan, and once a plan has been applied the next run yields an empty one.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from notion_cal_sync.exceptions import SyncError
from notion_cal_sync.models.event import Event
from notion_cal_sync.models.plan import (
    SOURCE,
    TARGET,
    Classification,
    CreateAction,
    DeleteAction,
    Plan,
    Side,
    UpdateAction,
    other_side,
)

logger = logging.getLogger(__name__)

ExistsCheck = Callable[[str], bool]

# Fixed authority policy for linked pairs.  The task database owns what an
# event is called (title and tag, since the tag drives the parent relation);
# the calendar owns when it happens.  There are no per-field modification
# times to merge on, so when both sides change between two cycles the owner
# of each field wins.  Fields travel in groups: a tag-only change still
# rewrites the whole title, and a date range is always written whole.
FIELD_AUTHORITY: dict[tuple[str, ...], Side] = {
    ("title", "tag"): SOURCE,
    ("start", "end"): TARGET,
}


@dataclass
class _SideIndex:
    """Lookup tables for the events of one side."""

    name: Side
    events: list[Event] = field(default_factory=list)
    live: dict[str, Event] = field(default_factory=dict)
    excluded: set[str] = field(default_factory=set)
    ref_counts: Counter = field(default_factory=Counter)
    referrers: dict[str, list[Event]] = field(default_factory=lambda: defaultdict(list))
    excluded_referrers: set[str] = field(default_factory=set)


class Reconciler:
    """Compute the create/update/delete plan for one cycle.

    The reconciler keeps no state between calls; every call works only from
    the collections it is given plus the optional existence checks.
    """

    def plan(
        self,
        source_events: Iterable[Event],
        target_events: Iterable[Event],
        *,
        source_exists: ExistsCheck | None = None,
        target_exists: ExistsCheck | None = None,
    ) -> Plan:
        """Diff the two collections and return the actions to apply.

        Args:
            source_events: Events fetched from the task database.
            target_events: Events fetched from the calendar.
            source_exists: Asks the task database whether an identifier
                still exists.  Consulted before a calendar event is
                declared orphaned, so that a counterpart which merely fell
                outside the fetch window is not deleted.
            target_exists: The same check against the calendar.

        Returns:
            A :class:`Plan`.  When an existence check is omitted, any
            unresolved cross-reference towards that side counts as a
            confirmed deletion.
        """
        plan = Plan()
        indexes = {
            SOURCE: self._index(SOURCE, source_events, plan),
            TARGET: self._index(TARGET, target_events, plan),
        }
        exists_checks = {SOURCE: source_exists, TARGET: target_exists}

        pairs: dict[tuple[str, str], tuple[Event, Event]] = {}
        updates: dict[tuple[Side, str], tuple[Event, dict[str, Any], str]] = {}
        reported: set[tuple[Side, str]] = set()

        for side_name in (SOURCE, TARGET):
            side = indexes[side_name]
            other = indexes[other_side(side_name)]
            for event in side.events:
                classification, counterpart = self._classify(
                    event, side, other, exists_checks[other.name], plan, reported
                )
                plan.classifications[(side.name, event.native_id)] = classification

                if classification is Classification.UNLINKED:
                    plan.side(other.name).creates.append(
                        CreateAction(event=_counterpart_of(event), origin=event)
                    )
                elif classification is Classification.ORPHANED:
                    plan.side(side.name).deletes.append(DeleteAction(event=event))
                elif classification is Classification.LINKED and counterpart is not None:
                    if not event.external_id:
                        _queue_update(updates, side.name, event, {"external_id": counterpart.native_id}, "link")
                    if side.name == SOURCE:
                        pairs.setdefault((event.native_id, counterpart.native_id), (event, counterpart))
                    else:
                        pairs.setdefault((counterpart.native_id, event.native_id), (counterpart, event))

        for source_event, target_event in pairs.values():
            self._diff_pair(source_event, target_event, updates)

        for (side_name, _native_id), (event, fields, reason) in updates.items():
            plan.side(side_name).updates.append(UpdateAction(event=event, fields=fields, reason=reason))

        for warning in plan.warnings:
            logger.warning(warning)
        logger.info(
            "Plan computed: source %d create/%d update/%d delete, "
            "target %d create/%d update/%d delete, %d warning(s)",
            len(plan.source.creates),
            len(plan.source.updates),
            len(plan.source.deletes),
            len(plan.target.creates),
            len(plan.target.updates),
            len(plan.target.deletes),
            len(plan.warnings),
        )
        return plan

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    @staticmethod
    def _index(name: Side, events: Iterable[Event], plan: Plan) -> _SideIndex:
        """Split one side into diffable and excluded events and build lookups."""
        index = _SideIndex(name=name)
        for event in events:
            if not event.native_id:
                plan.warnings.append(f"{name}: ignoring event {event.raw_title!r} without an identifier")
                continue
            if not event.is_complete:
                if event.is_partial:
                    plan.warnings.append(
                        f"{name}: event {event.label()} has only one of start/end, excluded from sync"
                    )
                else:
                    logger.debug("%s: event %s has no dates, excluded from sync", name, event.label())
                index.excluded.add(event.native_id)
                plan.classifications[(name, event.native_id)] = Classification.EXCLUDED
                if event.external_id:
                    index.excluded_referrers.add(event.external_id)
                continue
            index.events.append(event)
            index.live[event.native_id] = event
            if event.external_id:
                index.ref_counts[event.external_id] += 1
                index.referrers[event.external_id].append(event)
        return index

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def _classify(
        self,
        event: Event,
        side: _SideIndex,
        other: _SideIndex,
        other_exists: ExistsCheck | None,
        plan: Plan,
        reported: set[tuple[Side, str]],
    ) -> tuple[Classification, Event | None]:
        if not event.external_id:
            return self._classify_without_reference(event, side, other, plan, reported)

        ref = event.external_id
        if side.ref_counts[ref] > 1:
            if (side.name, ref) not in reported:
                reported.add((side.name, ref))
                ids = ", ".join(e.native_id for e in side.referrers[ref])
                plan.warnings.append(
                    f"{side.name}: cross-reference {ref!r} is shared by {side.ref_counts[ref]} "
                    f"events ({ids}); treating them as orphaned references and leaving them untouched"
                )
            return Classification.DUPLICATE, None

        counterpart = other.live.get(ref)
        if counterpart is not None:
            if len(other.referrers.get(event.native_id, ())) > 1:
                # The counterpart side holds duplicates pointing back here.
                return Classification.DUPLICATE, None
            if not counterpart.external_id and other.referrers.get(event.native_id):
                # Half-link whose event is already claimed by someone else.
                return Classification.DUPLICATE, None
            if counterpart.external_id and counterpart.external_id != event.native_id:
                plan.warnings.append(
                    f"{side.name}: event {event.label()} points at {other.name} {ref!r}, "
                    f"which points at {counterpart.external_id!r}; cross-references disagree, "
                    "leaving the pair untouched"
                )
                return Classification.DUPLICATE, None
            return Classification.LINKED, counterpart

        if ref in other.excluded:
            return Classification.EXCLUDED, None

        if other_exists is None:
            return Classification.ORPHANED, None
        try:
            still_exists = other_exists(ref)
        except SyncError as exc:
            plan.warnings.append(
                f"{side.name}: could not confirm whether {other.name} {ref!r} still exists "
                f"({exc}); keeping {event.label()}"
            )
            return Classification.OUT_OF_WINDOW, None
        if still_exists:
            logger.debug(
                "%s: counterpart %r of %s is outside the fetch window",
                side.name,
                ref,
                event.label(),
            )
            return Classification.OUT_OF_WINDOW, None
        return Classification.ORPHANED, None

    @staticmethod
    def _classify_without_reference(
        event: Event,
        side: _SideIndex,
        other: _SideIndex,
        plan: Plan,
        reported: set[tuple[Side, str]],
    ) -> tuple[Classification, Event | None]:
        """Classify an event that carries no cross-reference of its own.

        A counterpart may still point at it when a previous cycle created the
        counterpart but failed to write the new identifier back.  The link
        is then completed instead of creating a second copy.
        """
        referrers = other.referrers.get(event.native_id, [])
        if len(referrers) == 1:
            if side.referrers.get(referrers[0].native_id):
                # The referrer is already claimed by another event on this side.
                return Classification.DUPLICATE, None
            return Classification.LINKED, referrers[0]
        if len(referrers) > 1:
            return Classification.DUPLICATE, None
        if event.native_id in other.excluded_referrers:
            return Classification.EXCLUDED, None
        return Classification.UNLINKED, None

    # ------------------------------------------------------------------
    # Field comparison
    # ------------------------------------------------------------------

    @staticmethod
    def _diff_pair(
        source_event: Event,
        target_event: Event,
        updates: dict[tuple[Side, str], tuple[Event, dict[str, Any], str]],
    ) -> None:
        """Copy every drifting field group from its authoritative side onto the other."""
        events = {SOURCE: source_event, TARGET: target_event}
        for group, authority in FIELD_AUTHORITY.items():
            winner = events[authority]
            loser_side = other_side(authority)
            loser = events[loser_side]
            if any(getattr(winner, name) != getattr(loser, name) for name in group):
                values = {name: getattr(winner, name) for name in group}
                _queue_update(updates, loser_side, loser, values, "field_drift")


def _counterpart_of(origin: Event) -> Event:
    """The event to create on the other side for an unlinked *origin*."""
    return Event(
        external_id=origin.native_id,
        title=origin.title,
        tag=origin.tag,
        start=origin.start,
        end=origin.end,
    )


def _queue_update(
    updates: dict[tuple[Side, str], tuple[Event, dict[str, Any], str]],
    side: Side,
    event: Event,
    fields: dict[str, Any],
    reason: str,
) -> None:
    """Merge *fields* into the single pending update for *event*.

    A write-back and a field copy on the same event travel as one update;
    the ``link`` reason takes precedence so the report shows why the event
    was touched first.
    """
    key = (side, event.native_id)
    if key in updates:
        _, pending, pending_reason = updates[key]
        pending.update(fields)
        updates[key] = (event, pending, "link" if "link" in (reason, pending_reason) else reason)
    else:
        updates[key] = (event, dict(fields), reason)
