"""Timezone utilities for converting between civil (wall-clock) values and instants.

Instants are timezone-aware ``datetime`` objects in UTC.  Civil values are
``"YYYY-MM-DD"`` dates and ``"HH:MM"`` times as entered in forms.  Every
function takes an IANA timezone identifier and raises ``InvalidTimezone``
rather than falling back to a default zone.

A naive ``datetime`` passed where an instant is expected is taken to be UTC.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from shiftlog.core.errors import InvalidTimeSpec, InvalidTimezone

UTC = timezone.utc

_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_TIME_RE = re.compile(r"^(\d{2}):(\d{2})$")

_END_OF_DAY = time(23, 59, 59, 999000)


def get_zone(tz: str) -> ZoneInfo:
    """Return the ``ZoneInfo`` for *tz* or raise ``InvalidTimezone``."""
    if not isinstance(tz, str) or not tz.strip():
        raise InvalidTimezone(f"Invalid timezone: {tz!r}")
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimezone(f"Unknown timezone: {tz!r}") from exc


def as_utc(instant: datetime) -> datetime:
    """Normalise *instant* to an aware UTC datetime."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC)


def parse_civil_date(date_str: str) -> date:
    """Parse ``YYYY-MM-DD`` or raise ``InvalidTimeSpec``."""
    match = _DATE_RE.match(date_str or "")
    if not match:
        raise InvalidTimeSpec(f"Invalid date: {date_str!r} (expected YYYY-MM-DD)")
    try:
        return date(*(int(g) for g in match.groups()))
    except ValueError as exc:
        raise InvalidTimeSpec(f"Invalid date: {date_str!r}") from exc


def parse_civil_time(time_str: str) -> time:
    """Parse ``HH:MM`` (24-hour) or raise ``InvalidTimeSpec``."""
    match = _TIME_RE.match(time_str or "")
    if not match:
        raise InvalidTimeSpec(f"Invalid time: {time_str!r} (expected HH:MM)")
    try:
        return time(int(match.group(1)), int(match.group(2)))
    except ValueError as exc:
        raise InvalidTimeSpec(f"Invalid time: {time_str!r}") from exc


def resolve_local(local: datetime, tz: str) -> datetime:
    """Return the UTC instant at which the clock in *tz* shows *local*.

    *local* is a naive civil datetime.  The civil value is first read as if
    it were UTC; that guess is rendered in *tz* and shifted by the difference
    between the wanted and the rendered wall-clock value.  A second pass
    repeats the check from the corrected instant, which accounts for the
    offset changing between the guess and the answer (DST transitions).

    Times inside a spring-forward gap do not exist; they resolve to the
    instant one gap-length later (``02:30`` becomes ``03:30``).  Times that
    occur twice during a fall-back resolve to the earlier occurrence.
    """
    zone = get_zone(tz)
    wanted = local.replace(tzinfo=None)

    guess = wanted.replace(tzinfo=UTC)
    candidate = guess + (wanted - _wall_clock(guess, zone))

    rendered = _wall_clock(candidate, zone)
    if rendered != wanted:
        second = candidate + (wanted - rendered)
        if _wall_clock(second, zone) != wanted:
            # Inside a gap neither offset fits; the later instant lies past the gap.
            return max(candidate, second)
        candidate = second

    # A fall-back repeats an hour; prefer the occurrence under the earlier offset.
    for nearby in (candidate - timedelta(days=1), candidate + timedelta(days=1)):
        alt = guess - nearby.astimezone(zone).utcoffset()
        if alt < candidate and _wall_clock(alt, zone) == wanted:
            candidate = alt
    return candidate


def _wall_clock(instant: datetime, zone: ZoneInfo) -> datetime:
    return instant.astimezone(zone).replace(tzinfo=None)


def resolve_wall_clock(date_str: str, time_str: str, tz: str) -> datetime:
    """Interpret *date_str* and *time_str* as local time in *tz*.

    >>> resolve_wall_clock("2025-12-15", "09:00", "Europe/London").isoformat()
    '2025-12-15T09:00:00+00:00'
    """
    get_zone(tz)
    civil = datetime.combine(parse_civil_date(date_str), parse_civil_time(time_str))
    return resolve_local(civil, tz)


def to_local(instant: datetime, tz: str) -> datetime:
    """Return *instant* expressed in *tz* (an aware datetime)."""
    return as_utc(instant).astimezone(get_zone(tz))


def civil_date(instant: datetime, tz: str) -> date:
    return to_local(instant, tz).date()


def civil_date_of(instant: datetime, tz: str) -> str:
    """Render *instant* as ``YYYY-MM-DD`` in *tz*."""
    return civil_date(instant, tz).isoformat()


def civil_time_of(instant: datetime, tz: str) -> str:
    """Render *instant* as ``HH:MM`` in *tz*."""
    return to_local(instant, tz).strftime("%H:%M")


def is_same_civil_day(a: datetime, b: datetime, tz: str) -> bool:
    return civil_date(a, tz) == civil_date(b, tz)


def start_of_civil_date(day: date, tz: str) -> datetime:
    """Instant of 00:00 local on *day*."""
    return resolve_local(datetime.combine(day, time.min), tz)


def end_of_civil_date(day: date, tz: str) -> datetime:
    """Instant of 23:59:59.999 local on *day*."""
    return resolve_local(datetime.combine(day, _END_OF_DAY), tz)


def start_of_civil_day(instant: datetime, tz: str) -> datetime:
    return start_of_civil_date(civil_date(instant, tz), tz)


def end_of_civil_day(instant: datetime, tz: str) -> datetime:
    return end_of_civil_date(civil_date(instant, tz), tz)


def add_civil_days(day: date, days: int) -> date:
    return day + timedelta(days=days)


def now_in(tz: str) -> datetime:
    """Current instant, tagged with *tz* for civil-day arithmetic."""
    return datetime.now(get_zone(tz))
