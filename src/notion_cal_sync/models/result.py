"""Data models for the outcome of one sync cycle.

- :class:`ActionFailure` -- one plan action that failed or timed out.
- :class:`CycleResult` -- aggregated outcome of a fetch-diff-apply pass,
  including per-kind counts, failures and the plan that was applied.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from notion_cal_sync.models.plan import Plan


@dataclass(frozen=True)
class ActionFailure:
    """A single action that could not be applied.

    Attributes:
        side: ``"source"`` or ``"target"``.
        kind: ``"create"``, ``"update"`` or ``"delete"``.
        event: Human-readable label of the event involved.
        error: Error description.
    """

    side: str
    kind: str
    event: str
    error: str


@dataclass
class CycleResult:
    """Aggregated result of one reconciliation cycle.

    Attributes:
        cycle_id: Short identifier shared by every log line of the cycle.
        plan: The plan computed this cycle (``None`` when the fetch failed).
        dry_run: Whether application was skipped.
        aborted: ``True`` when a fetch failed and nothing was applied.
        error: Reason for an aborted cycle.
        created: Number of events successfully created.
        updated: Number of successful updates (write-backs included).
        deleted: Number of events successfully deleted or archived.
        skipped: Updates whose target had already disappeared.
        failures: Actions that raised or timed out.
        source_count: Events fetched from the task database.
        target_count: Events fetched from the calendar.
        duration_seconds: Wall-clock duration of the cycle.
    """

    cycle_id: str = ""
    plan: Plan | None = None
    dry_run: bool = False
    aborted: bool = False
    error: str | None = None
    created: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    failures: list[ActionFailure] = field(default_factory=list)
    source_count: int = 0
    target_count: int = 0
    duration_seconds: float = 0.0

    @property
    def total_applied(self) -> int:
        """Total number of actions that took effect."""
        return self.created + self.updated + self.deleted

    @property
    def has_failures(self) -> bool:
        return len(self.failures) > 0

    @property
    def warnings(self) -> list[str]:
        return list(self.plan.warnings) if self.plan is not None else []

    @property
    def succeeded(self) -> bool:
        """No abort and no failed action."""
        return not self.aborted and not self.has_failures
