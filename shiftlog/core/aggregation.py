"""Dashboard aggregation: period windows, summaries and chart breakdowns.

Every function here is pure over already-fetched sessions and breaks and a
caller-supplied *now*.  ``DashboardAggregator`` is the thin layer that pulls
the data for one user from a ``TimeEntrySource`` and pins *now* once per
request so that today/yesterday/week/month figures agree with each other.
"""

import calendar
import logging
import math
from collections import defaultdict
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional, Sequence

from shiftlog.core.intervals import (
    bucket_overlap_ms,
    duration_of,
    effective_end,
    find_break_inconsistencies,
    net_duration,
)
from shiftlog.core.models import (
    Break,
    BreakTotals,
    DailyStat,
    DashboardSummary,
    EntryStatus,
    HourlyStat,
    PeriodKind,
    SummaryBucket,
    TimeWindow,
    WeeklyStat,
    WorkSession,
)
from shiftlog.core.timezone import (
    UTC,
    as_utc,
    civil_date,
    end_of_civil_date,
    resolve_local,
    start_of_civil_date,
)
from shiftlog.persistence.base import TimeEntrySource, load_entries, load_timezone

logger = logging.getLogger(__name__)

DAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]

_ONE_MS = timedelta(milliseconds=1)
_MS_PER_MINUTE = 60_000
_MS_PER_HOUR = 3_600_000


# ---------------------------------------------------------------------------
# Windows
# ---------------------------------------------------------------------------

def week_start_of(day: date) -> date:
    """The Sunday on or before *day*."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def day_window(day: date, tz: str) -> TimeWindow:
    return TimeWindow(start_of_civil_date(day, tz), end_of_civil_date(day, tz), tz)


def week_window(day: date, tz: str) -> TimeWindow:
    """Sunday 00:00 through Saturday 23:59:59.999 of the week holding *day*."""
    sunday = week_start_of(day)
    return TimeWindow(
        start_of_civil_date(sunday, tz),
        end_of_civil_date(sunday + timedelta(days=6), tz),
        tz,
    )


def month_window(day: date, tz: str) -> TimeWindow:
    first = day.replace(day=1)
    last = first.replace(day=calendar.monthrange(first.year, first.month)[1])
    return TimeWindow(start_of_civil_date(first, tz), end_of_civil_date(last, tz), tz)


def compute_window(kind: PeriodKind, tz: str, now: datetime) -> TimeWindow:
    """Resolve a named period against *now* in *tz*.

    Weeks start on Sunday.  This week runs through the end of today; last
    week and last month end one millisecond before the current period
    starts, so consecutive windows never overlap.
    """
    today = civil_date(now, tz)

    if kind is PeriodKind.TODAY:
        return day_window(today, tz)
    if kind is PeriodKind.YESTERDAY:
        return day_window(today - timedelta(days=1), tz)

    sunday = week_start_of(today)
    if kind is PeriodKind.THIS_WEEK:
        return TimeWindow(start_of_civil_date(sunday, tz), end_of_civil_date(today, tz), tz)
    if kind is PeriodKind.LAST_WEEK:
        return TimeWindow(
            start_of_civil_date(sunday - timedelta(days=7), tz),
            start_of_civil_date(sunday, tz) - _ONE_MS,
            tz,
        )

    first_of_month = today.replace(day=1)
    if kind is PeriodKind.THIS_MONTH:
        return month_window(first_of_month, tz)
    if kind is PeriodKind.LAST_MONTH:
        previous = (first_of_month - timedelta(days=1)).replace(day=1)
        return TimeWindow(
            start_of_civil_date(previous, tz),
            start_of_civil_date(first_of_month, tz) - _ONE_MS,
            tz,
        )

    raise ValueError(f"Unknown period: {kind!r}")


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

def _live(sessions: Iterable[WorkSession]) -> list[WorkSession]:
    return [s for s in sessions if s.status is not EntryStatus.DELETED]


def _breaks_by_session(breaks: Iterable[Break], ids: set[int]) -> dict[int, list[Break]]:
    grouped: dict[int, list[Break]] = defaultdict(list)
    for brk in breaks:
        if brk.session_id in ids:
            grouped[brk.session_id].append(brk)
    return grouped


def _warn_inconsistencies(
    sessions: Sequence[WorkSession], grouped: dict[int, list[Break]], now: datetime
) -> None:
    for session in sessions:
        for problem in find_break_inconsistencies(session, grouped.get(session.id, []), now):
            logger.warning("Inconsistent interval: %s", problem)


def summarize(
    sessions: Iterable[WorkSession],
    breaks: Iterable[Break],
    window: TimeWindow,
    now: datetime,
) -> SummaryBucket:
    """Total the sessions that start inside *window*.

    Open sessions and open breaks are counted up to *now*.  Soft-deleted
    sessions are ignored.  ``percent_change`` is left unset.
    """
    in_range = [s for s in _live(sessions) if window.contains(as_utc(s.start))]
    grouped = _breaks_by_session(breaks, {s.id for s in in_range})
    _warn_inconsistencies(in_range, grouped, now)

    gross = sum(duration_of(s.start, s.end, now) for s in in_range)
    own_breaks = [b for group in grouped.values() for b in group]
    break_ms = sum(duration_of(b.start, b.end, now) for b in own_breaks)

    return SummaryBucket(
        gross_ms=gross,
        break_ms=break_ms,
        net_ms=net_duration(gross, break_ms),
        break_count=len(own_breaks),
    )


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def percent_change(current: float, prior: float) -> int:
    """Whole-number percent change from *prior* to *current*.

    A zero *prior* always yields ``100``, even when *current* is zero too.
    """
    if prior == 0:
        return 100
    return _round_half_up((current - prior) / prior * 100)


def dashboard_summary(
    sessions: Sequence[WorkSession],
    breaks: Sequence[Break],
    tz: str,
    now: datetime,
) -> DashboardSummary:
    """Today, this week and this month, each compared with its predecessor."""
    buckets = {
        kind: summarize(sessions, breaks, compute_window(kind, tz, now), now)
        for kind in PeriodKind
    }
    pairs = (
        (PeriodKind.TODAY, PeriodKind.YESTERDAY),
        (PeriodKind.THIS_WEEK, PeriodKind.LAST_WEEK),
        (PeriodKind.THIS_MONTH, PeriodKind.LAST_MONTH),
    )
    for current, prior in pairs:
        buckets[current].percent_change = percent_change(
            buckets[current].net_ms, buckets[prior].net_ms
        )

    today = buckets[PeriodKind.TODAY]
    logger.debug(
        "Dashboard for %s: today net=%dms, week net=%dms, month net=%dms",
        tz, today.net_ms,
        buckets[PeriodKind.THIS_WEEK].net_ms,
        buckets[PeriodKind.THIS_MONTH].net_ms,
    )
    return DashboardSummary(
        today=today,
        week=buckets[PeriodKind.THIS_WEEK],
        month=buckets[PeriodKind.THIS_MONTH],
        today_breaks=BreakTotals(total_ms=today.break_ms, count=today.break_count),
    )


# ---------------------------------------------------------------------------
# Breakdowns
# ---------------------------------------------------------------------------

def _distribute(
    sessions: Iterable[WorkSession],
    breaks: Iterable[Break],
    bounds: Sequence[datetime],
    now: datetime,
) -> list[tuple[int, int]]:
    """Spread sessions and breaks over adjacent buckets.

    *bounds* holds ``n + 1`` instants delimiting ``n`` half-open buckets.
    Returns ``(work_ms, break_ms)`` per bucket, where work excludes breaks.
    """
    live = _live(sessions)
    ids = {s.id for s in live}
    buckets = list(zip(bounds[:-1], bounds[1:]))
    work = [0] * len(buckets)
    rest = [0] * len(buckets)

    for session in live:
        start, end = as_utc(session.start), effective_end(session.end, now)
        for i, (lo, hi) in enumerate(buckets):
            work[i] += bucket_overlap_ms(start, end, lo, hi)

    for brk in breaks:
        if brk.session_id not in ids:
            continue
        start, end = as_utc(brk.start), effective_end(brk.end, now)
        for i, (lo, hi) in enumerate(buckets):
            rest[i] += bucket_overlap_ms(start, end, lo, hi)

    return [(net_duration(w, r), r) for w, r in zip(work, rest)]


def hour_label(hour: int) -> str:
    return f"{hour % 12 or 12} {'AM' if hour < 12 else 'PM'}"


def _hours(ms: int) -> float:
    return round(ms / _MS_PER_HOUR, 1)


def hourly_breakdown(
    sessions: Iterable[WorkSession],
    breaks: Iterable[Break],
    day: TimeWindow,
    now: datetime,
) -> list[HourlyStat]:
    """24 rows, one per local hour of the civil day starting at ``day.start``.

    On DST days an hour bucket may be empty (skipped hour) or two hours long
    (repeated hour); the buckets still tile the whole day.
    """
    tz = day.timezone
    local_day = civil_date(day.start, tz)
    bounds = [resolve_local(datetime.combine(local_day, time(hour)), tz) for hour in range(24)]
    bounds.append(start_of_civil_date(local_day + timedelta(days=1), tz))

    return [
        HourlyStat(
            hour=hour,
            label=hour_label(hour),
            work_minutes=_round_half_up(work / _MS_PER_MINUTE),
            break_minutes=_round_half_up(rest / _MS_PER_MINUTE),
        )
        for hour, (work, rest) in enumerate(_distribute(sessions, breaks, bounds, now))
    ]


def weekly_breakdown(
    sessions: Iterable[WorkSession],
    breaks: Iterable[Break],
    week: TimeWindow,
    now: datetime,
) -> list[DailyStat]:
    """Seven daily rows starting at the civil date of ``week.start``."""
    tz = week.timezone
    first = civil_date(week.start, tz)
    days = [first + timedelta(days=offset) for offset in range(8)]
    bounds = [start_of_civil_date(d, tz) for d in days]

    stats = []
    for d, (work, rest) in zip(days, _distribute(sessions, breaks, bounds, now)):
        dow = (d.weekday() + 1) % 7
        stats.append(DailyStat(day=dow, label=DAY_NAMES[dow], work_hours=_hours(work), break_hours=_hours(rest)))
    return stats


def monthly_breakdown(
    sessions: Iterable[WorkSession],
    breaks: Iterable[Break],
    month: TimeWindow,
    now: datetime,
) -> list[WeeklyStat]:
    """Week-of-month rows (days 1-7, 8-14, ... 29-end), empty weeks omitted."""
    tz = month.timezone
    first = civil_date(month.start, tz).replace(day=1)
    days_in_month = calendar.monthrange(first.year, first.month)[1]

    weeks = []
    bounds = []
    for week in range(1, 6):
        first_day = 7 * (week - 1) + 1
        if first_day > days_in_month:
            break
        weeks.append(week)
        bounds.append(start_of_civil_date(first.replace(day=first_day), tz))
    bounds.append(start_of_civil_date(first + timedelta(days=days_in_month), tz))

    stats = []
    for week, (work, rest) in zip(weeks, _distribute(sessions, breaks, bounds, now)):
        work_hours, break_hours = _hours(work), _hours(rest)
        # Weeks that round to nothing are left off the chart.
        if work_hours <= 0 and break_hours <= 0:
            continue
        stats.append(WeeklyStat(week=week, label=f"Week {week}", work_hours=work_hours, break_hours=break_hours))
    return stats


# ---------------------------------------------------------------------------
# Per-user entry point
# ---------------------------------------------------------------------------

class DashboardAggregator:
    """Loads one user's entries from *source* and aggregates them.

    Each public method resolves the user's timezone and *now* once.  A
    failing source aborts the whole call with ``DataAccessError``.
    """

    # Sessions that started shortly before a window can still overlap it.
    LOOKBACK = timedelta(days=1)

    def __init__(self, source: TimeEntrySource) -> None:
        self.source = source

    def summary(
        self, user_id: int, now: Optional[datetime] = None, tz: Optional[str] = None
    ) -> DashboardSummary:
        now, tz = self._pin(user_id, now, tz)
        first = compute_window(PeriodKind.LAST_MONTH, tz, now).start
        last = compute_window(PeriodKind.THIS_MONTH, tz, now).end
        sessions, breaks = load_entries(self.source, user_id, first, last)
        return dashboard_summary(sessions, breaks, tz, now)

    def daily_stats(
        self, user_id: int, day: Optional[date] = None,
        now: Optional[datetime] = None, tz: Optional[str] = None,
    ) -> list[HourlyStat]:
        now, tz = self._pin(user_id, now, tz)
        window = day_window(day or civil_date(now, tz), tz)
        return hourly_breakdown(*self._load(user_id, window), window, now)

    def weekly_stats(
        self, user_id: int, day: Optional[date] = None,
        now: Optional[datetime] = None, tz: Optional[str] = None,
    ) -> list[DailyStat]:
        now, tz = self._pin(user_id, now, tz)
        window = week_window(day or civil_date(now, tz), tz)
        return weekly_breakdown(*self._load(user_id, window), window, now)

    def monthly_stats(
        self, user_id: int, day: Optional[date] = None,
        now: Optional[datetime] = None, tz: Optional[str] = None,
    ) -> list[WeeklyStat]:
        now, tz = self._pin(user_id, now, tz)
        window = month_window(day or civil_date(now, tz), tz)
        return monthly_breakdown(*self._load(user_id, window), window, now)

    def _pin(
        self, user_id: int, now: Optional[datetime], tz: Optional[str]
    ) -> tuple[datetime, str]:
        pinned = as_utc(now) if now is not None else datetime.now(UTC)
        return pinned, tz or load_timezone(self.source, user_id)

    def _load(self, user_id: int, window: TimeWindow):
        return load_entries(self.source, user_id, window.start - self.LOOKBACK, window.end)
