"""Entry point for ``python -m notion_cal_sync``.

Runs one reconciliation cycle per invocation; scheduling is left to cron,
a systemd timer or a CI schedule.  Uses stdlib :mod:`argparse`.

Subcommands:
    run   -- Default. Run one sync cycle and print a report.
    auth  -- Run the Google OAuth browser flow and cache the user token.

Exit codes:
    0 -- Cycle completed and every action succeeded (including no-op cycles).
    1 -- Configuration or credential error, aborted cycle, or failed action.
    2 -- Argument parsing error (handled by argparse).
"""

from __future__ import annotations

import argparse
import sys

from notion_cal_sync.calendar.auth import authorize_interactively
from notion_cal_sync.calendar.exceptions import CalendarAuthError
from notion_cal_sync.config import ConfigError, load_settings
from notion_cal_sync.log import setup_logging
from notion_cal_sync.report import print_cycle_result
from notion_cal_sync.sync import build_orchestrator


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser with ``run`` and ``auth`` subcommands."""
    parser = argparse.ArgumentParser(
        prog="notion-cal-sync",
        description="Reconcile upcoming events between a Notion database and Google Calendar.",
    )

    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run one sync cycle.")
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Compute and print the plan without applying it.",
    )
    run_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Enable debug-level logging.",
    )

    auth_parser = subparsers.add_parser(
        "auth",
        help="Authorize Google Calendar access in the browser and cache the token.",
    )
    auth_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Enable debug-level logging.",
    )

    return parser


def _resolve_command(parser: argparse.ArgumentParser, argv: list[str]) -> argparse.Namespace:
    """Parse *argv*, routing bare options (``--dry-run``) to ``run``."""
    if not argv:
        argv = ["run"]
    elif argv[0] not in {"run", "auth", "-h", "--help"}:
        argv = ["run", *argv]
    return parser.parse_args(argv)


def _handle_run(args: argparse.Namespace) -> int:
    try:
        settings = load_settings()
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if not args.verbose:
        setup_logging(settings.log_level)

    try:
        orchestrator = build_orchestrator(settings)
    except CalendarAuthError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    result = orchestrator.run_cycle(dry_run=args.dry_run)
    print_cycle_result(result)
    return 0 if result.succeeded else 1


def _handle_auth(args: argparse.Namespace) -> int:  # noqa: ARG001
    try:
        settings = load_settings()
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    try:
        authorize_interactively(settings.google_credentials_path, settings.google_token_path)
    except CalendarAuthError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Google token saved to {settings.google_token_path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Run the notion-cal-sync CLI and return the exit code."""
    parser = build_parser()
    args = _resolve_command(parser, argv if argv is not None else sys.argv[1:])

    setup_logging("DEBUG" if getattr(args, "verbose", False) else "INFO")

    if args.command == "auth":
        return _handle_auth(args)
    return _handle_run(args)


if __name__ == "__main__":
    raise SystemExit(main())
