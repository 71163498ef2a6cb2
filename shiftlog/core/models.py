"""Core data models for ShiftLog.

Defines all dataclasses and enums used across the application:
- Stored records: EntryStatus, WorkSession, Break
- Windows: PeriodKind, TimeWindow
- Dashboard: SummaryBucket, BreakTotals, DashboardSummary
- Charts: HourlyStat, DailyStat, WeeklyStat
- Reporting: ReportEntry, ReportSummary, Report
- Preferences: Theme, UserSettings, SettingsUpdate
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional


def to_dict(value: Any) -> dict[str, Any]:
    """Convert a dataclass into plain JSON-friendly values.

    Enums are rendered by value, dates and datetimes as ISO 8601 strings.
    """
    return _plain(asdict(value))


def _plain(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


# ---------------------------------------------------------------------------
# Stored records
# ---------------------------------------------------------------------------

class EntryStatus(Enum):
    """Lifecycle status of a work session."""
    ACTIVE = "active"
    COMPLETED = "completed"
    DELETED = "deleted"


@dataclass
class WorkSession:
    """A work session (time entry). ``end`` is ``None`` while it is active."""
    id: int
    user_id: int
    start: datetime
    end: Optional[datetime]
    status: EntryStatus


@dataclass
class Break:
    """A break taken inside a work session. ``end`` is ``None`` while open."""
    id: int
    session_id: int
    start: datetime
    end: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Windows
# ---------------------------------------------------------------------------

class PeriodKind(Enum):
    """Named reporting windows relative to a reference instant."""
    TODAY = "today"
    YESTERDAY = "yesterday"
    THIS_WEEK = "this_week"
    LAST_WEEK = "last_week"
    THIS_MONTH = "this_month"
    LAST_MONTH = "last_month"


@dataclass(frozen=True)
class TimeWindow:
    """An inclusive ``[start, end]`` range resolved in *timezone*."""
    start: datetime
    end: datetime
    timezone: str

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

@dataclass
class SummaryBucket:
    """Totals for one window. Durations are milliseconds."""
    gross_ms: int = 0
    break_ms: int = 0
    net_ms: int = 0
    break_count: int = 0
    percent_change: Optional[int] = None


@dataclass
class BreakTotals:
    total_ms: int = 0
    count: int = 0


@dataclass
class DashboardSummary:
    """Today/week/month figures, each compared with the prior period."""
    today: SummaryBucket
    week: SummaryBucket
    month: SummaryBucket
    today_breaks: BreakTotals = field(default_factory=BreakTotals)


# ---------------------------------------------------------------------------
# Charts
# ---------------------------------------------------------------------------

@dataclass
class HourlyStat:
    hour: int              # 0-23 local
    label: str             # "12 AM" .. "11 PM"
    work_minutes: int
    break_minutes: int


@dataclass
class DailyStat:
    day: int               # 0 = Sunday
    label: str             # "Sun" .. "Sat"
    work_hours: float
    break_hours: float


@dataclass
class WeeklyStat:
    week: int              # 1-5, week of month
    label: str             # "Week 1" .. "Week 5"
    work_hours: float
    break_hours: float


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

@dataclass
class ReportEntry:
    """One completed session, rendered in the report's timezone."""
    session_id: int
    date: str                  # YYYY-MM-DD
    start_time: str            # HH:MM
    end_time: Optional[str]    # HH:MM
    duration_ms: int
    break_ms: int
    net_work_ms: int


@dataclass
class ReportSummary:
    total_duration_ms: int = 0
    total_breaks_ms: int = 0
    total_net_work_ms: int = 0
    days_worked: int = 0
    average_daily_work_ms: float = 0


@dataclass
class Report:
    """Entries (newest first) and range-level totals for a date range."""
    start_date: date
    end_date: date
    timezone: str
    entries: list[ReportEntry] = field(default_factory=list)
    summary: ReportSummary = field(default_factory=ReportSummary)


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------

class Theme(Enum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


@dataclass
class UserSettings:
    """A complete settings record for one user."""
    working_hours: float = 8
    timezone: str = "UTC"
    auto_detect_breaks: bool = True
    enable_notifications: bool = True
    enable_email_notifications: bool = False
    allow_sharing: bool = False
    share_duration_days: int = 7
    theme: Theme = Theme.SYSTEM


@dataclass
class SettingsUpdate:
    """A partial settings change. ``None`` leaves a field untouched."""
    working_hours: Optional[float] = None
    timezone: Optional[str] = None
    auto_detect_breaks: Optional[bool] = None
    enable_notifications: Optional[bool] = None
    enable_email_notifications: Optional[bool] = None
    allow_sharing: Optional[bool] = None
    share_duration_days: Optional[int] = None
    theme: Optional[Theme] = None
