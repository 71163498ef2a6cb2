"""ShiftLog application entry point.

Supports three modes:
  - Server mode (default): serves the JSON API
  - Summary mode: prints the dashboard summary to stdout
  - Report mode: prints a report for a date range, optionally exporting it

Usage:
    python -m shiftlog.main                                  # serve the API
    python -m shiftlog.main --summary                        # today/week/month
    python -m shiftlog.main --report 2025-01-01 2025-01-31   # report
    python -m shiftlog.main --report 2025-01-01 2025-01-31 --export out.csv
"""

import argparse
import logging
import os
import sys

from shiftlog.core.aggregation import DashboardAggregator
from shiftlog.core.config import get_default_config_path, load_config
from shiftlog.core.errors import ShiftLogError
from shiftlog.core.timezone import parse_civil_date
from shiftlog.persistence.store import TimeEntryStore
from shiftlog.reporting.exporter import ReportExporter
from shiftlog.reporting.formatter import TextFormatter
from shiftlog.reporting.report import ReportGenerator

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="shiftlog",
        description="ShiftLog: personal work-hours tracker",
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--summary",
        action="store_true",
        help="Print the dashboard summary and exit",
    )
    group.add_argument(
        "--report",
        nargs=2,
        metavar=("START", "END"),
        help="Print a report for START..END (YYYY-MM-DD) and exit",
    )
    parser.add_argument(
        "--export",
        metavar="PATH",
        help="With --report, also write the report to PATH (.csv or .docx)",
    )
    parser.add_argument("--user", type=int, default=1, help="User id (default: 1)")
    parser.add_argument("--tz", help="IANA timezone; defaults to the user's setting")
    parser.add_argument("--config", help="Path to config.json")
    return parser


def _open_store(config: dict) -> TimeEntryStore:
    db_path = os.path.expanduser(config.get("database_path", "~/.shiftlog/shiftlog.db"))
    store = TimeEntryStore(db_path, config.get("default_timezone", "UTC"))
    store.init_db()
    return store


def _print_summary(config: dict, user_id: int, tz: str | None = None) -> None:
    """Create a store and aggregator, then print the dashboard summary."""
    store = _open_store(config)
    try:
        summary = DashboardAggregator(store).summary(user_id, tz=tz)
        print(TextFormatter.format_summary(summary))
    finally:
        store.close()


def _print_report(
    config: dict,
    user_id: int,
    start: str,
    end: str,
    tz: str | None = None,
    export_path: str | None = None,
) -> None:
    """Generate a report, print it, and export it when *export_path* is set."""
    start_date = parse_civil_date(start)
    end_date = parse_civil_date(end)
    store = _open_store(config)
    try:
        report = ReportGenerator(store).generate(user_id, start_date, end_date, tz=tz)
    finally:
        store.close()

    print(TextFormatter.format_report(report))

    if export_path:
        report_config = config.get("report", {})
        path = os.path.expanduser(export_path)
        if not os.path.dirname(path):
            # Bare file names land in the configured report directory
            out_dir = report_config.get("output_directory", "~/shiftlog-reports")
            path = os.path.join(os.path.expanduser(out_dir), path)
        exporter = ReportExporter()
        if path.lower().endswith(".docx"):
            exporter.export_docx(report, report_config.get("user_name", ""), path)
        else:
            exporter.export_csv(report, path)
        print(f"Report written to {path}")


def main(args: list[str] | None = None) -> None:
    """Entry point for ShiftLog.

    When *args* is ``None`` the arguments are read from ``sys.argv``.
    """
    parser = build_parser()
    parsed = parser.parse_args(args)

    if parsed.export and not parsed.report:
        parser.error("--export requires --report")

    config_path = parsed.config or get_default_config_path()
    config = load_config(str(config_path))

    logging.basicConfig(
        level=config.get("log_level", "INFO"),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        if parsed.summary:
            _print_summary(config, parsed.user, parsed.tz)
        elif parsed.report:
            _print_report(config, parsed.user, *parsed.report, tz=parsed.tz, export_path=parsed.export)
        else:
            # Server mode: import here so CLI usage does not pull in Flask
            from shiftlog.ui.web import start_dashboard

            dashboard = config.get("dashboard", {})
            thread = start_dashboard(
                config,
                host=dashboard.get("host", "127.0.0.1"),
                port=dashboard.get("port", 5555),
            )
            thread.join()
    except ShiftLogError as exc:
        logger.error("%s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
