"""Validation of manually entered work sessions.

A manual entry is typed as wall-clock values on a single civil date in the
user's timezone.  ``build_manual_entry`` resolves them to instants and
checks the ordering rules before anything is written.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from shiftlog.core.errors import InconsistentInterval, InvalidTimeSpec
from shiftlog.core.timezone import resolve_wall_clock


@dataclass
class ManualBreak:
    start_time: str            # HH:MM
    end_time: Optional[str] = None


@dataclass
class ManualEntry:
    """Resolved instants for a manual session and its breaks."""
    start: datetime
    end: Optional[datetime]
    breaks: list[tuple[datetime, Optional[datetime]]] = field(default_factory=list)


def build_manual_entry(
    date_str: str,
    start_time: str,
    end_time: Optional[str],
    breaks: list[ManualBreak],
    tz: str,
) -> ManualEntry:
    """Resolve and validate a manual entry.

    Raises ``InvalidTimeSpec`` for missing or malformed fields and
    ``InconsistentInterval`` when the end precedes the start or a break is
    not strictly inside the work period.
    """
    if not date_str or not start_time:
        raise InvalidTimeSpec("A date and start time are required")

    start = resolve_wall_clock(date_str, start_time, tz)
    end = resolve_wall_clock(date_str, end_time, tz) if end_time else None
    if end is not None and start >= end:
        raise InconsistentInterval("End time must be after start time.")

    resolved = []
    for item in breaks:
        brk_start = resolve_wall_clock(date_str, item.start_time, tz)
        brk_end = resolve_wall_clock(date_str, item.end_time, tz) if item.end_time else None
        if brk_end is not None and brk_start >= brk_end:
            raise InconsistentInterval("Break end time must be after break start time.")
        if start >= brk_start or (end is not None and brk_end is not None and brk_end >= end):
            raise InconsistentInterval("Breaks must be within the work period.")
        if end is not None and brk_end is None:
            raise InconsistentInterval("A completed entry cannot contain an open break.")
        resolved.append((brk_start, brk_end))

    open_breaks = sum(1 for _, brk_end in resolved if brk_end is None)
    if open_breaks > 1:
        raise InconsistentInterval("Only one break may be open at a time.")

    return ManualEntry(start=start, end=end, breaks=resolved)
