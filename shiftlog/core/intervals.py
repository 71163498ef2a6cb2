"""Interval arithmetic on work sessions and breaks.

All durations are integer milliseconds.  An interval without an end is
still running and is measured up to the caller-supplied *now*.
"""

from datetime import datetime, timedelta
from typing import Iterable, Optional

from shiftlog.core.errors import InconsistentInterval
from shiftlog.core.models import Break, WorkSession
from shiftlog.core.timezone import as_utc

_MS = timedelta(milliseconds=1)


def to_ms(delta: timedelta) -> int:
    """Convert a timedelta to whole milliseconds (floor)."""
    return delta // _MS


def duration_of(start: datetime, end: Optional[datetime], now: datetime) -> int:
    """Length of ``[start, end)``; an open interval runs until *now*."""
    return to_ms(as_utc(end if end is not None else now) - as_utc(start))


def net_duration(gross: int, break_total: int) -> int:
    """Gross minus breaks.  Negative results are returned as-is."""
    return gross - break_total


def bucket_overlap_ms(
    interval_start: datetime,
    interval_end: datetime,
    bucket_start: datetime,
    bucket_end: datetime,
) -> int:
    """Milliseconds of ``[interval_start, interval_end)`` inside the bucket."""
    latest_start = max(as_utc(interval_start), as_utc(bucket_start))
    earliest_end = min(as_utc(interval_end), as_utc(bucket_end))
    return max(0, to_ms(earliest_end - latest_start))


def effective_end(end: Optional[datetime], now: datetime) -> datetime:
    return as_utc(end if end is not None else now)


def break_totals(
    breaks: Iterable[Break], now: datetime
) -> dict[int, tuple[int, int]]:
    """Return ``{session_id: (break_ms, break_count)}``."""
    totals: dict[int, tuple[int, int]] = {}
    for brk in breaks:
        ms, count = totals.get(brk.session_id, (0, 0))
        totals[brk.session_id] = (ms + duration_of(brk.start, brk.end, now), count + 1)
    return totals


def find_break_inconsistencies(
    session: WorkSession, breaks: Iterable[Break], now: datetime
) -> list[str]:
    """Describe every break of *session* that is reversed or out of bounds.

    Bounds follow the manual-entry rule: a break must start after the
    session starts and, when both ends are known, end before it ends.
    At most one break may be open, and only while the session is open.
    """
    problems: list[str] = []
    session_start = as_utc(session.start)
    session_end = as_utc(session.end) if session.end is not None else None
    open_breaks = 0
    own = [b for b in breaks if b.session_id == session.id]

    for brk in own:
        start = as_utc(brk.start)
        if brk.end is None:
            open_breaks += 1
            if session_end is not None:
                problems.append(f"break {brk.id} is open but session {session.id} has ended")
        elif as_utc(brk.end) <= start:
            problems.append(f"break {brk.id} ends before it starts")
        if start <= session_start:
            problems.append(f"break {brk.id} starts before session {session.id}")
        if brk.end is not None and session_end is not None and as_utc(brk.end) >= session_end:
            problems.append(f"break {brk.id} ends after session {session.id}")

    if open_breaks > 1:
        problems.append(f"session {session.id} has {open_breaks} open breaks")

    gross = duration_of(session.start, session.end, now)
    total = sum(duration_of(b.start, b.end, now) for b in own)
    if net_duration(gross, total) < 0:
        problems.append(f"session {session.id} has more break time than work time")
    return problems


def check_break_bounds(
    session: WorkSession, breaks: Iterable[Break], now: datetime
) -> None:
    """Raise ``InconsistentInterval`` if any break of *session* is invalid."""
    problems = find_break_inconsistencies(session, breaks, now)
    if problems:
        raise InconsistentInterval("; ".join(problems))
