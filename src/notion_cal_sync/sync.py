"""Sync orchestrator: one fetch-diff-apply cycle.

:class:`SyncOrchestrator` wires the two adapters and the reconciler
together.  A cycle runs in three stages:

1. **Fetch** -- both sides are read concurrently.  If either fetch fails
   the cycle is aborted and nothing is applied.
2. **Plan** -- :class:`~notion_cal_sync.reconciler.Reconciler` diffs the two
   collections.  Each adapter's ``event_exists`` is handed over so that an
   event which merely left the window is never mistaken for a deletion.
3. **Apply** -- creates, then updates, then deletes.  Within a phase the
   actions fan out on a thread pool, each with its own timeout.  A create
   on one side is followed by an update writing the new identifier back
   onto its origin.  Failures are recorded and skipped; there is no
   rollback, the next cycle picks up whatever is left.

Cycles must not overlap.  That is up to whatever triggers them.
"""

from __future__ import annotations

import concurrent.futures
import logging
import time
import uuid
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from notion_cal_sync.adapters.base import EventAdapter
from notion_cal_sync.adapters.notion import NotionEventSource
from notion_cal_sync.calendar.auth import load_calendar_credentials
from notion_cal_sync.calendar.client import GoogleCalendarClient
from notion_cal_sync.config import Settings
from notion_cal_sync.exceptions import ActionError, FetchError, UpdateError
from notion_cal_sync.log import cycle_logger
from notion_cal_sync.models.event import Event
from notion_cal_sync.models.plan import SOURCE, TARGET, Plan, Side, UpdateAction, other_side
from notion_cal_sync.models.result import ActionFailure, CycleResult
from notion_cal_sync.reconciler import Reconciler

logger = logging.getLogger(__name__)


def sync_window(now: datetime, window_days: int) -> tuple[datetime, datetime]:
    """Return the ``(start, end)`` horizon of a cycle, in UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    start = now.astimezone(timezone.utc)
    return start, start + timedelta(days=max(1, window_days))


@dataclass(frozen=True)
class _Task:
    """One adapter call scheduled during plan application."""

    side: Side
    kind: str
    label: str
    call: Callable[[], Any]


class _Attempt:
    """A submitted task that notes when a worker actually picks it up."""

    def __init__(self, task: _Task) -> None:
        self.task = task
        self.started_at: float | None = None

    def __call__(self) -> Any:
        self.started_at = time.monotonic()
        return self.task.call()


def _last_progress(progress: float, attempts: Iterable[_Attempt]) -> float:
    """Latest of *progress* and the start times of *attempts*."""
    started = [a.started_at for a in attempts if a.started_at is not None]
    return max([progress, *started])


class SyncOrchestrator:
    """Run reconciliation cycles between a task database and a calendar.

    Args:
        source: Task-database adapter (side A).
        target: Calendar adapter (side B).
        reconciler: Reconciler to use; a fresh one by default.
        window_days: Length of the sync horizon starting now.
        action_timeout_seconds: Timeout for each individual adapter call.
        max_workers: Size of the thread pool used for fetches and actions.
    """

    def __init__(
        self,
        source: EventAdapter,
        target: EventAdapter,
        *,
        reconciler: Reconciler | None = None,
        window_days: int = 7,
        action_timeout_seconds: float = 30.0,
        max_workers: int = 8,
    ) -> None:
        self._adapters: dict[Side, EventAdapter] = {SOURCE: source, TARGET: target}
        self._reconciler = reconciler or Reconciler()
        self._window_days = window_days
        self._timeout = action_timeout_seconds
        self._max_workers = max(2, max_workers)

    def run_cycle(self, now: datetime | None = None, dry_run: bool = False) -> CycleResult:
        """Run exactly one fetch-diff-apply cycle.

        Args:
            now: Override for the current time (useful for testing).
            dry_run: Compute the plan but apply nothing.

        Returns:
            A :class:`CycleResult`.  Fetch failures are reported through
            ``aborted``/``error`` rather than raised.
        """
        started = time.monotonic()
        cycle_id = uuid.uuid4().hex[:8]
        log = cycle_logger(__name__, cycle_id)
        result = CycleResult(cycle_id=cycle_id, dry_run=dry_run)

        window_start, window_end = sync_window(now or datetime.now(timezone.utc), self._window_days)

        pool = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="notion-cal-sync")
        try:
            # ----------------------------------------------------------
            # Stage 1: Fetch
            # ----------------------------------------------------------
            log.info("Stage 1: fetching events from %s to %s", window_start.isoformat(), window_end.isoformat())
            try:
                source_events, target_events = self._fetch_both(pool, window_start, window_end)
            except FetchError as exc:
                log.error("Fetch failed, aborting cycle without changes: %s", exc)
                result.aborted = True
                result.error = str(exc)
                return result

            result.source_count = len(source_events)
            result.target_count = len(target_events)

            # ----------------------------------------------------------
            # Stage 2: Plan
            # ----------------------------------------------------------
            log.info(
                "Stage 2: reconciling %d %s event(s) with %d %s event(s)",
                result.source_count,
                self._adapters[SOURCE].name,
                result.target_count,
                self._adapters[TARGET].name,
            )
            plan = self._reconciler.plan(
                source_events,
                target_events,
                source_exists=self._adapters[SOURCE].event_exists,
                target_exists=self._adapters[TARGET].event_exists,
            )
            result.plan = plan

            if dry_run:
                log.info("Dry run: %d action(s) planned, nothing applied", plan.action_count)
                return result
            if plan.is_empty:
                log.info("Nothing to do, both sides agree")
                return result

            # ----------------------------------------------------------
            # Stage 3: Apply
            # ----------------------------------------------------------
            log.info("Stage 3: applying %d action(s)", plan.action_count)
            self._apply(pool, plan, result, log)
        finally:
            # Timed-out calls may still be running; do not block on them.
            pool.shutdown(wait=False, cancel_futures=True)
            result.duration_seconds = time.monotonic() - started

        log.info(
            "Cycle complete in %.1fs: %d created, %d updated, %d deleted, %d skipped, %d failure(s)",
            result.duration_seconds,
            result.created,
            result.updated,
            result.deleted,
            result.skipped,
            len(result.failures),
        )
        return result

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    def _fetch_both(
        self,
        pool: ThreadPoolExecutor,
        window_start: datetime,
        window_end: datetime,
    ) -> tuple[list[Event], list[Event]]:
        futures = {
            side: pool.submit(adapter.fetch_events, window_start, window_end)
            for side, adapter in self._adapters.items()
        }
        deadline = time.monotonic() + self._timeout
        fetched: dict[Side, list[Event]] = {}
        for side, future in futures.items():
            name = self._adapters[side].name
            try:
                fetched[side] = list(future.result(timeout=max(0.0, deadline - time.monotonic())))
            except concurrent.futures.TimeoutError as exc:
                future.cancel()
                raise FetchError(f"{name} fetch timed out after {self._timeout:g}s", side=name) from exc
        return fetched[SOURCE], fetched[TARGET]

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def _apply(self, pool: ThreadPoolExecutor, plan: Plan, result: CycleResult, log: logging.LoggerAdapter) -> None:
        # Phase 1: creates.  Each success yields a write-back on the origin side.
        create_tasks = [
            _Task(
                side,
                "create",
                action.event.label(),
                lambda a=action, s=side: self._adapters[s].create_event(a.event),
            )
            for side in (SOURCE, TARGET)
            for action in plan.side(side).creates
        ]
        origins = [action.origin for side in (SOURCE, TARGET) for action in plan.side(side).creates]
        created = self._run_phase(pool, create_tasks, result, log)

        write_backs: dict[Side, list[UpdateAction]] = {SOURCE: [], TARGET: []}
        for task, origin in zip(create_tasks, origins):
            new_event = created.get(id(task))
            if new_event is None:
                continue
            write_backs[other_side(task.side)].append(
                UpdateAction(event=origin, fields={"external_id": new_event.native_id}, reason="link")
            )

        # Phase 2: updates, including the write-backs from phase 1.
        update_tasks = [
            _Task(
                side,
                "update",
                action.event.label(),
                lambda a=action, s=side: self._adapters[s].update_event(a.event.native_id, a.fields),
            )
            for side in (SOURCE, TARGET)
            for action in [*plan.side(side).updates, *write_backs[side]]
        ]
        self._run_phase(pool, update_tasks, result, log)

        # Phase 3: deletes.
        delete_tasks = [
            _Task(
                side,
                "delete",
                action.event.label(),
                lambda a=action, s=side: self._adapters[s].delete_event(a.event.native_id),
            )
            for side in (SOURCE, TARGET)
            for action in plan.side(side).deletes
        ]
        self._run_phase(pool, delete_tasks, result, log)

    def _run_phase(
        self,
        pool: ThreadPoolExecutor,
        tasks: list[_Task],
        result: CycleResult,
        log: logging.LoggerAdapter,
    ) -> dict[int, Any]:
        """Run *tasks* concurrently and record their outcomes.

        Each call's timeout runs from the moment a worker picks it up, not
        from submission, so tasks queued behind others are not penalised.  A
        task still queued is failed only when no worker has started or
        finished anything for a whole timeout (every worker is stuck on a
        call that already timed out).

        Returns:
            Successful return values keyed by ``id(task)``.
        """
        if not tasks:
            return {}

        attempts: dict[Future, _Attempt] = {}
        for task in tasks:
            attempt = _Attempt(task)
            attempts[pool.submit(attempt)] = attempt
        pending = set(attempts)
        values: dict[int, Any] = {}
        progress = time.monotonic()

        while pending:
            progress = _last_progress(progress, (attempts[f] for f in pending))
            next_deadline = min(self._deadline(attempts[f], progress) for f in pending)
            done, _ = concurrent.futures.wait(
                pending,
                timeout=max(0.0, next_deadline - time.monotonic()),
                return_when=concurrent.futures.FIRST_COMPLETED,
            )
            for future in done:
                pending.discard(future)
                progress = time.monotonic()
                self._record_outcome(attempts[future].task, future, values, result, log)

            now = time.monotonic()
            progress = _last_progress(progress, (attempts[f] for f in pending))
            expired = [f for f in pending if not f.done() and self._deadline(attempts[f], progress) <= now]
            for future in expired:
                attempt = attempts[future]
                side_name = self._adapters[attempt.task.side].name
                if attempt.started_at is not None:
                    pending.discard(future)
                    self._record_failure(result, log, attempt.task, side_name, f"timed out after {self._timeout:g}s")
                elif future.cancel():
                    pending.discard(future)
                    self._record_failure(
                        result,
                        log,
                        attempt.task,
                        side_name,
                        f"not started within {self._timeout:g}s, all workers busy",
                    )
                # Otherwise a worker picked it up just now; its own clock applies.

        return values

    def _deadline(self, attempt: _Attempt, progress: float) -> float:
        if attempt.started_at is not None:
            return attempt.started_at + self._timeout
        return progress + self._timeout

    def _record_outcome(
        self,
        task: _Task,
        future: Future,
        values: dict[int, Any],
        result: CycleResult,
        log: logging.LoggerAdapter,
    ) -> None:
        side_name = self._adapters[task.side].name
        try:
            values[id(task)] = future.result()
        except UpdateError as exc:
            if exc.not_found:
                result.skipped += 1
                log.info("%s: %s already gone, update skipped", side_name, task.label)
                return
            self._record_failure(result, log, task, side_name, str(exc))
            return
        except ActionError as exc:
            self._record_failure(result, log, task, side_name, str(exc))
            return
        except Exception as exc:
            log.exception("%s: unexpected error during %s of %s", side_name, task.kind, task.label)
            self._record_failure(result, log, task, side_name, f"{type(exc).__name__}: {exc}")
            return

        if task.kind == "create":
            result.created += 1
        elif task.kind == "update":
            result.updated += 1
        else:
            result.deleted += 1

    @staticmethod
    def _record_failure(
        result: CycleResult,
        log: logging.LoggerAdapter,
        task: _Task,
        side_name: str,
        error: str,
    ) -> None:
        log.error("%s: %s of %s failed: %s", side_name, task.kind, task.label, error)
        result.failures.append(ActionFailure(side=task.side, kind=task.kind, event=task.label, error=error))


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_orchestrator(settings: Settings) -> SyncOrchestrator:
    """Build an orchestrator with real Notion and Google Calendar adapters.

    Raises:
        CalendarAuthError: If no Google credentials can be loaded.
    """
    notion = NotionEventSource.from_token(
        settings.notion_token,
        settings.notion_database_id,
        settings.notion_properties,
        timeout_seconds=settings.action_timeout_seconds,
    )
    calendar = GoogleCalendarClient(
        credentials=load_calendar_credentials(settings),
        calendar_id=settings.google_calendar_id,
        timezone=settings.timezone,
    )
    return SyncOrchestrator(
        notion,
        calendar,
        window_days=settings.window_days,
        action_timeout_seconds=settings.action_timeout_seconds,
        max_workers=settings.max_workers,
    )
