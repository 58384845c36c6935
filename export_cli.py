"""Command line entry point for the spreadsheet export job."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from exporter import report
from exporter.logging_config import configure_logging
from exporter.reporting_window import period_label, week_start_end
from exporter.version import __version__
from settings import SettingsError, load_exporter_settings

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PARTIAL = 2


def _parse_date(value: str) -> datetime:
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid date {value!r}, expected YYYY-MM-DD") from exc
    return parsed.replace(tzinfo=timezone.utc)


def command_run(args: argparse.Namespace) -> int:
    try:
        settings = load_exporter_settings(args.settings)
        configure_logging(settings.logging_level)
        result = report.run(settings, base_date=args.date, dry_run=args.dry_run)
    except (SettingsError, report.ExportError) as exc:
        logger.error("Export run aborted: %s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_ERROR

    print(result.summary())
    if not result.ok:
        logger.warning("Export finished with failed sheets: %s", ", ".join(result.failed_sheets))
        return EXIT_PARTIAL
    return EXIT_OK


def command_window(args: argparse.Namespace) -> int:
    start, end = week_start_end(args.date)
    print(f"Start : {start.isoformat()}")
    print(f"End   : {end.isoformat()}")
    print(f"Label : {period_label(start, end)}")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Export storefront data to Google Sheets")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run one export pass")
    run_parser.add_argument("--settings", help="Path to the settings JSON file")
    run_parser.add_argument(
        "--date",
        type=_parse_date,
        default=None,
        help="Any day of the reporting week (YYYY-MM-DD). Defaults to today.",
    )
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Plan the row writes without submitting them",
    )
    run_parser.set_defaults(func=command_run)

    window_parser = subparsers.add_parser("window", help="Display the reporting window")
    window_parser.add_argument("--date", type=_parse_date, default=None, help="Any day of the week (YYYY-MM-DD)")
    window_parser.set_defaults(func=command_window)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
