"""Console report for a sync cycle.

Renders a :class:`~notion_cal_sync.models.result.CycleResult` as plain
text: the fetch counts, every planned action per side, failures, warnings
and a summary.  :func:`format_cycle_result` returns the string;
:func:`print_cycle_result` writes it to stdout.
"""

from __future__ import annotations

import sys

from notion_cal_sync.models.plan import SOURCE, TARGET, Plan
from notion_cal_sync.models.result import CycleResult

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_BANNER_WIDTH = 60
_SEPARATOR = "=" * _BANNER_WIDTH

_SIDE_LABELS = {SOURCE: "Notion", TARGET: "Google Calendar"}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def format_cycle_result(result: CycleResult) -> str:
    """Render *result* as a multi-line report."""
    lines: list[str] = [_SEPARATOR, "  NOTION <-> GOOGLE CALENDAR SYNC", _SEPARATOR]

    lines.append("")
    lines.append("--- FETCH ---")
    if result.aborted:
        lines.append(f"  Aborted: {result.error}")
        lines.append(_SEPARATOR)
        return "\n".join(lines)
    lines.append(f"  Notion events: {result.source_count}")
    lines.append(f"  Calendar events: {result.target_count}")

    lines.append("")
    lines.append("--- PLAN ---")
    if result.plan is None or result.plan.is_empty:
        lines.append("  Both sides agree. Nothing to do.")
    else:
        _append_plan(lines, result.plan, result.dry_run)

    if result.failures:
        lines.append("")
        lines.append("--- FAILURES ---")
        for failure in result.failures:
            lines.append(
                f"  [FAILED] {failure.kind} on {_SIDE_LABELS.get(failure.side, failure.side)} "
                f"{failure.event} -> {failure.error}"
            )

    _append_summary(lines, result)
    lines.append(_SEPARATOR)
    return "\n".join(lines)


def print_cycle_result(result: CycleResult) -> None:
    """Format and print *result* to stdout."""
    sys.stdout.write(format_cycle_result(result) + "\n")


# ---------------------------------------------------------------------------
# Internal formatters
# ---------------------------------------------------------------------------


def _append_plan(lines: list[str], plan: Plan, dry_run: bool) -> None:
    prefix = "[DRY RUN] " if dry_run else ""
    for side in (SOURCE, TARGET):
        side_plan = plan.side(side)
        if side_plan.is_empty:
            continue
        lines.append(f"  {_SIDE_LABELS[side]}:")
        for create in side_plan.creates:
            lines.append(f"    {prefix}[CREATE] {create.event.raw_title!r} {_format_range(create.event.start, create.event.end)}")
        for update in side_plan.updates:
            changed = ", ".join(f"{key}={value!r}" for key, value in update.fields.items())
            lines.append(f"    {prefix}[UPDATE] {update.event.label()} {changed}")
        for delete in side_plan.deletes:
            lines.append(f"    {prefix}[DELETE] {delete.event.label()} ({delete.reason})")


def _append_summary(lines: list[str], result: CycleResult) -> None:
    lines.append("")
    lines.append("--- SUMMARY ---")
    planned = result.plan.action_count if result.plan is not None else 0
    lines.append(f"  Actions planned: {planned}")
    if not result.dry_run:
        lines.append(
            f"  Applied: {result.created} created, {result.updated} updated, "
            f"{result.deleted} deleted, {result.skipped} skipped"
        )
        lines.append(f"  Failed: {len(result.failures)}")
    lines.append(f"  Warnings: {len(result.warnings)}")
    for warning in result.warnings:
        lines.append(f"    - {warning}")
    lines.append(f"  Cycle duration: {result.duration_seconds:.1f}s")


def _format_range(start: str | None, end: str | None) -> str:
    if start == end:
        return f"({start})"
    return f"({start} -> {end})"
