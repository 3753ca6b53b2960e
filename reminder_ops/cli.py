"""Top-level reminder-ops command line interface."""

from __future__ import annotations

import argparse
import logging
import webbrowser
from datetime import date as Date
from pathlib import Path
from typing import Sequence

from reminder_ops.domain.errors import ReminderOpsError
from reminder_ops.jobs.daily_reminders import authenticate_only, rebuild
from reminder_ops.jobs.daily_reminders import run as run_daily_reminders
from reminder_ops.settings import UNKNOWN_PHONE_POLICIES, load_settings, resolve_target_date, with_overrides
from reminder_ops.utils.logging import configure_logging

logger = logging.getLogger(__name__)


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--output-dir", type=Path, help="Directory for the CSV and HTML artifacts")
    parser.add_argument(
        "--unknown-phone-policy",
        choices=UNKNOWN_PHONE_POLICIES,
        help="How appointments without a phone are grouped: one entry each (separate) or one shared entry (merge)",
    )
    parser.add_argument("--open", action="store_true", help="Open the reminder sheet in the default browser")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="reminder-ops", description="Appointment reminder sheet CLI")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Export tomorrow's appointments and build the reminder sheet")
    target = run_parser.add_mutually_exclusive_group()
    target.add_argument("--date", type=Date.fromisoformat, help="Target date in YYYY-MM-DD format")
    target.add_argument("--offset-days", type=int, help="Days after today to export (default: 1)")
    run_parser.add_argument("--headed", action="store_true", help="Show the browser window")
    _add_common_options(run_parser)
    run_parser.set_defaults(handler=_handle_run)

    rebuild_parser = subparsers.add_parser(
        "rebuild",
        help="Rebuild the artifacts from a saved export without opening the portal",
    )
    rebuild_parser.add_argument("--export-csv", type=Path, required=True, help="Raw export or consolidated CSV")
    rebuild_parser.add_argument("--date", type=Date.fromisoformat, help="Target date used in artifact names")
    _add_common_options(rebuild_parser)
    rebuild_parser.set_defaults(handler=_handle_rebuild)

    auth_parser = subparsers.add_parser("auth", help="Authentication/session commands")
    auth_subparsers = auth_parser.add_subparsers(dest="auth_command", required=True)
    fresha_parser = auth_subparsers.add_parser("fresha", help="Log in to Fresha and save the browser session")
    fresha_parser.add_argument("--save-session", type=Path, help="Path to save session state")
    fresha_parser.add_argument("--prompt", action="store_true", help="Ask for credentials on the terminal")
    fresha_parser.add_argument("--headed", action="store_true", help="Show the browser window")
    fresha_parser.set_defaults(handler=_handle_auth_fresha)

    return parser


def _settings_from_args(args: argparse.Namespace):
    return with_overrides(
        load_settings(),
        output_dir=getattr(args, "output_dir", None),
        unknown_phone_policy=getattr(args, "unknown_phone_policy", None),
        headless=False if getattr(args, "headed", False) else None,
    )


def _report(artifacts, open_sheet: bool) -> int:
    print(f"Consolidated CSV: {artifacts.consolidated_csv}")
    print(f"Reminder sheet: {artifacts.reminder_sheet}")
    if open_sheet:
        webbrowser.open(Path(artifacts.reminder_sheet).resolve().as_uri())
    return 0


def _handle_run(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    target_date = args.date or resolve_target_date(settings, offset_days=args.offset_days)
    artifacts = run_daily_reminders(target_date=target_date, settings=settings)
    return _report(artifacts, args.open)


def _handle_rebuild(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    target_date = args.date or resolve_target_date(settings)
    artifacts = rebuild(export_csv=args.export_csv, target_date=target_date, settings=settings)
    return _report(artifacts, args.open)


def _handle_auth_fresha(args: argparse.Namespace) -> int:
    settings = with_overrides(
        load_settings(),
        session_state_path=args.save_session,
        credential_source="prompt" if args.prompt else None,
        headless=False if args.headed else None,
    )
    path = authenticate_only(settings)
    print(f"Saved Fresha session state to {path}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)
    try:
        return args.handler(args)
    except (ReminderOpsError, ValueError, OSError) as exc:
        logger.error("Run failed: %s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
