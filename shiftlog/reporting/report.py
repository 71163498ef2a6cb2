"""Report generation for arbitrary date ranges."""

import logging
from datetime import date, datetime
from typing import Iterable, Optional, Union

from shiftlog.core.intervals import break_totals, duration_of, net_duration
from shiftlog.core.models import (
    Break,
    EntryStatus,
    Report,
    ReportEntry,
    ReportSummary,
    WorkSession,
)
from shiftlog.core.timezone import (
    UTC,
    as_utc,
    civil_date,
    civil_date_of,
    civil_time_of,
    end_of_civil_date,
    get_zone,
    start_of_civil_date,
)
from shiftlog.persistence.base import TimeEntrySource, load_entries, load_timezone

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]


def _as_civil(value: DateLike, tz: str) -> date:
    if isinstance(value, datetime):
        return civil_date(value, tz)
    return value


def report_bounds(start: DateLike, end: DateLike, tz: str) -> tuple[datetime, datetime]:
    """First instant of *start*'s day through the last instant of *end*'s day."""
    return (
        start_of_civil_date(_as_civil(start, tz), tz),
        end_of_civil_date(_as_civil(end, tz), tz),
    )


def summarize_entries(entries: list[ReportEntry]) -> ReportSummary:
    """Roll entries up into range-level totals.

    Days worked counts distinct rendered dates, so it follows the report's
    timezone rather than UTC days.
    """
    total_duration = sum(e.duration_ms for e in entries)
    total_breaks = sum(e.break_ms for e in entries)
    total_net = net_duration(total_duration, total_breaks)
    days_worked = len({e.date for e in entries})
    return ReportSummary(
        total_duration_ms=total_duration,
        total_breaks_ms=total_breaks,
        total_net_work_ms=total_net,
        days_worked=days_worked,
        average_daily_work_ms=total_net / days_worked if days_worked > 0 else 0,
    )


def generate_report(
    sessions: Iterable[WorkSession],
    breaks: Iterable[Break],
    start: DateLike,
    end: DateLike,
    tz: str,
    now: Optional[datetime] = None,
) -> Report:
    """Build the report for completed sessions starting in ``[start, end]``.

    *start* and *end* are civil dates in *tz* (datetimes are projected onto
    their civil date first); the range covers both days entirely.  Entries
    are ordered newest first.  Breaks still open are counted up to *now*.
    """
    get_zone(tz)
    now = as_utc(now) if now is not None else datetime.now(UTC)
    lower, upper = report_bounds(start, end, tz)

    included = sorted(
        (
            s for s in sessions
            if s.status is EntryStatus.COMPLETED and lower <= as_utc(s.start) <= upper
        ),
        key=lambda s: as_utc(s.start),
        reverse=True,
    )
    totals = break_totals(breaks, now)

    entries = []
    for session in included:
        duration = duration_of(session.start, session.end, now)
        break_ms, _ = totals.get(session.id, (0, 0))
        net = net_duration(duration, break_ms)
        if net < 0:
            logger.warning(
                "Session %s has %dms of breaks but lasts only %dms", session.id, break_ms, duration
            )
        entries.append(
            ReportEntry(
                session_id=session.id,
                date=civil_date_of(session.start, tz),
                start_time=civil_time_of(session.start, tz),
                end_time=civil_time_of(session.end, tz) if session.end is not None else None,
                duration_ms=duration,
                break_ms=break_ms,
                net_work_ms=net,
            )
        )

    return Report(
        start_date=_as_civil(start, tz),
        end_date=_as_civil(end, tz),
        timezone=tz,
        entries=entries,
        summary=summarize_entries(entries),
    )


class ReportGenerator:
    """Produces reports for a user from a ``TimeEntrySource``.

    When no timezone is passed the user's configured zone is looked up once
    per call.  Any source failure aborts with ``DataAccessError``.
    """

    def __init__(self, source: TimeEntrySource) -> None:
        self.source = source

    def generate(
        self,
        user_id: int,
        start: DateLike,
        end: DateLike,
        tz: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Report:
        tz = tz or load_timezone(self.source, user_id)
        lower, upper = report_bounds(start, end, tz)
        logger.info("Generating report for user %s from %s to %s (%s)", user_id, lower, upper, tz)

        sessions, breaks = load_entries(self.source, user_id, lower, upper)
        report = generate_report(sessions, breaks, start, end, tz, now)
        logger.debug("Report for user %s has %d entries", user_id, len(report.entries))
        return report
