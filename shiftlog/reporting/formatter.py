"""Text formatter for ShiftLog summaries and reports.

Renders DashboardSummary and Report as aligned plain-text tables, and
provides the duration formatting shared by the exporters.
"""

from shiftlog.core.models import DashboardSummary, Report, SummaryBucket

_MS_PER_MINUTE = 60_000
_MS_PER_HOUR = 3_600_000


class TextFormatter:
    """Formats summary and report data as human-readable plain text."""

    @staticmethod
    def format_duration(milliseconds: float) -> str:
        """Format milliseconds as 'Xh YYm' (e.g., '2h 05m').

        Truncates to whole minutes.  Negative durations keep their sign so
        inconsistent break data stays visible.
        """
        sign = "-" if milliseconds < 0 else ""
        ms = int(abs(milliseconds))
        hours = ms // _MS_PER_HOUR
        minutes = (ms % _MS_PER_HOUR) // _MS_PER_MINUTE
        return f"{sign}{hours}h {minutes:02d}m"

    @staticmethod
    def format_percent_change(change: int | None, period: str) -> str:
        if change is None:
            return ""
        if change == 0:
            return f"No data from {period}"
        return f"{'+' if change > 0 else ''}{change}% from {period}"

    @staticmethod
    def _format_table(headers: list[str], rows: list[list[str]]) -> str:
        """Render rows under *headers*, first column left-aligned, rest right."""
        widths = [
            max(len(headers[i]), *(len(r[i]) for r in rows)) if rows else len(headers[i])
            for i in range(len(headers))
        ]

        def line(cells: list[str]) -> str:
            first = f"{cells[0]:<{widths[0]}}"
            rest = [f"{c:>{w}}" for c, w in zip(cells[1:], widths[1:])]
            return "  " + "  ".join([first, *rest])

        header = line(headers)
        separator = "  " + "─" * (len(header) - 2)
        return "\n".join([header, separator, *(line(r) for r in rows)]) + "\n"

    @staticmethod
    def _bucket_row(name: str, bucket: SummaryBucket, period: str) -> list[str]:
        return [
            name,
            TextFormatter.format_duration(bucket.gross_ms),
            TextFormatter.format_duration(bucket.break_ms),
            TextFormatter.format_duration(bucket.net_ms),
            TextFormatter.format_percent_change(bucket.percent_change, period),
        ]

    @staticmethod
    def format_summary(summary: DashboardSummary) -> str:
        """Render the dashboard summary as aligned plain text."""
        rows = [
            TextFormatter._bucket_row("Today", summary.today, "yesterday"),
            TextFormatter._bucket_row("This week", summary.week, "last week"),
            TextFormatter._bucket_row("This month", summary.month, "last month"),
        ]
        body = TextFormatter._format_table(
            ["Period", "Duration", "Breaks", "Net Work", "Change"], rows
        )
        breaks = (
            f"\nBreaks today: {summary.today_breaks.count} "
            f"({TextFormatter.format_duration(summary.today_breaks.total_ms)})\n"
        )
        return "Dashboard Summary\n\n" + body + breaks

    @staticmethod
    def format_report(report: Report) -> str:
        """Render a report's entries and summary as aligned plain text."""
        start_str = report.start_date.strftime("%B %d, %Y")
        end_str = report.end_date.strftime("%B %d, %Y")
        parts = [f"Report: {start_str} - {end_str} ({report.timezone})\n\n"]

        if not report.entries:
            parts.append("  No completed sessions in this range.\n")
        else:
            rows = [
                [
                    e.date,
                    e.start_time,
                    e.end_time or "In progress",
                    TextFormatter.format_duration(e.duration_ms),
                    TextFormatter.format_duration(e.break_ms),
                    TextFormatter.format_duration(e.net_work_ms),
                ]
                for e in report.entries
            ]
            parts.append(
                TextFormatter._format_table(
                    ["Date", "Start", "End", "Duration", "Breaks", "Net Work"], rows
                )
            )

        s = report.summary
        parts.append("\nSummary:\n")
        parts.append(
            TextFormatter._format_table(
                ["", "Value"],
                [
                    ["Total Duration", TextFormatter.format_duration(s.total_duration_ms)],
                    ["Total Breaks", TextFormatter.format_duration(s.total_breaks_ms)],
                    ["Total Net Work", TextFormatter.format_duration(s.total_net_work_ms)],
                    ["Days Worked", str(s.days_worked)],
                    ["Average Daily Work", TextFormatter.format_duration(s.average_daily_work_ms)],
                ],
            )
        )
        return "".join(parts)
