"""SQLite-backed persistence for work sessions, breaks and user settings."""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Iterator, Optional

from shiftlog.core.errors import DataAccessError, EntryNotFound, SessionConflict
from shiftlog.core.intervals import check_break_bounds
from shiftlog.core.manual_entry import ManualEntry
from shiftlog.core.models import (
    Break,
    EntryStatus,
    SettingsUpdate,
    Theme,
    UserSettings,
    WorkSession,
)
from shiftlog.core.settings import default_settings, merge_settings
from shiftlog.core.timezone import UTC, as_utc
from shiftlog.persistence.base import TimeEntrySource

logger = logging.getLogger(__name__)


def _ts(value: datetime) -> str:
    # Fixed-width UTC text keeps lexicographic order equal to time order.
    return as_utc(value).isoformat(timespec="microseconds")


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return as_utc(datetime.fromisoformat(value))


class TimeEntryStore(TimeEntrySource):
    """Read/write interface to the local SQLite database.

    Instants are persisted as ISO 8601 UTC text.  Every ``sqlite3.Error`` is
    re-raised as ``DataAccessError``; state rules (one active session per
    user, one open break per session) raise ``SessionConflict``.
    """

    def __init__(self, db_path: str, default_timezone: str = "UTC") -> None:
        self.db_path = db_path
        self.default_timezone = default_timezone
        self._conn: Optional[sqlite3.Connection] = None

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            except sqlite3.Error as exc:
                raise DataAccessError(f"Cannot open database {self.db_path}: {exc}") from exc
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @contextmanager
    def _transaction(self, action: str) -> Iterator[sqlite3.Connection]:
        """Run a unit of work; roll back and raise ``DataAccessError`` on failure."""
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            logger.error("Database error while trying to %s: %s", action, exc)
            raise DataAccessError(f"Failed to {action}") from exc
        except Exception:
            conn.rollback()
            raise

    def ping(self) -> None:
        """Run a trivial query; raises ``DataAccessError`` if the DB is down."""
        with self._transaction("check the database connection") as conn:
            conn.execute("SELECT 1").fetchone()

    # ------------------------------------------------------------------
    # Schema initialisation
    # ------------------------------------------------------------------

    def init_db(self) -> None:
        """Create tables and indexes if they don't already exist."""
        with self._transaction("initialise the database") as conn:
            conn.executescript(
                """\
                CREATE TABLE IF NOT EXISTS time_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    start_time TEXT NOT NULL,
                    end_time TEXT,
                    status TEXT NOT NULL DEFAULT 'active',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS breaks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    time_entry_id INTEGER NOT NULL,
                    start_time TEXT NOT NULL,
                    end_time TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (time_entry_id) REFERENCES time_entries(id) ON DELETE CASCADE
                );

                CREATE TABLE IF NOT EXISTS user_settings (
                    user_id INTEGER PRIMARY KEY,
                    working_hours REAL NOT NULL DEFAULT 8,
                    timezone TEXT NOT NULL DEFAULT 'UTC',
                    auto_detect_breaks INTEGER NOT NULL DEFAULT 1,
                    enable_notifications INTEGER NOT NULL DEFAULT 1,
                    enable_email_notifications INTEGER NOT NULL DEFAULT 0,
                    allow_sharing INTEGER NOT NULL DEFAULT 0,
                    share_duration_days INTEGER NOT NULL DEFAULT 7,
                    theme TEXT NOT NULL DEFAULT 'system',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_entries_user_start
                    ON time_entries(user_id, start_time);

                CREATE INDEX IF NOT EXISTS idx_breaks_entry
                    ON breaks(time_entry_id);
                """
            )

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start_session(self, user_id: int, now: Optional[datetime] = None) -> WorkSession:
        """Open a new session.  A user may only have one active session."""
        now = now or datetime.now(UTC)
        with self._transaction("start time entry") as conn:
            if self._active_row(conn, user_id) is not None:
                raise SessionConflict(f"User {user_id} already has an active session")
            cursor = conn.execute(
                """\
                INSERT INTO time_entries (user_id, start_time, status, created_at, updated_at)
                VALUES (?, ?, 'active', ?, ?)
                """,
                (user_id, _ts(now), _ts(now), _ts(now)),
            )
            session_id = cursor.lastrowid
        logger.info("Started session %s for user %s", session_id, user_id)
        return self.get_session(session_id)  # type: ignore[return-value]

    def end_session(self, session_id: int, now: Optional[datetime] = None) -> WorkSession:
        """Close any open break, then complete the session."""
        now = now or datetime.now(UTC)
        with self._transaction("end time entry") as conn:
            conn.execute(
                "UPDATE breaks SET end_time = ?, updated_at = ? WHERE time_entry_id = ? AND end_time IS NULL",
                (_ts(now), _ts(now), session_id),
            )
            cursor = conn.execute(
                """\
                UPDATE time_entries
                SET end_time = ?, status = 'completed', updated_at = ?
                WHERE id = ? AND end_time IS NULL AND status = 'active'
                """,
                (_ts(now), _ts(now), session_id),
            )
            if cursor.rowcount == 0:
                raise SessionConflict(f"Session {session_id} is not active")
        logger.info("Ended session %s", session_id)
        return self.get_session(session_id)  # type: ignore[return-value]

    def start_break(self, session_id: int, now: Optional[datetime] = None) -> Break:
        now = now or datetime.now(UTC)
        with self._transaction("start break") as conn:
            row = conn.execute(
                "SELECT status FROM time_entries WHERE id = ?", (session_id,)
            ).fetchone()
            if row is None or row["status"] != EntryStatus.ACTIVE.value:
                raise SessionConflict(f"Session {session_id} is not active")
            open_break = conn.execute(
                "SELECT id FROM breaks WHERE time_entry_id = ? AND end_time IS NULL",
                (session_id,),
            ).fetchone()
            if open_break is not None:
                raise SessionConflict(f"Session {session_id} already has an open break")
            cursor = conn.execute(
                "INSERT INTO breaks (time_entry_id, start_time, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (session_id, _ts(now), _ts(now), _ts(now)),
            )
            break_id = cursor.lastrowid
        return Break(id=break_id, session_id=session_id, start=as_utc(now), end=None)  # type: ignore[arg-type]

    def end_break(self, break_id: int, now: Optional[datetime] = None) -> Break:
        now = now or datetime.now(UTC)
        with self._transaction("end break") as conn:
            cursor = conn.execute(
                "UPDATE breaks SET end_time = ?, updated_at = ? WHERE id = ? AND end_time IS NULL",
                (_ts(now), _ts(now), break_id),
            )
            if cursor.rowcount == 0:
                raise SessionConflict(f"Break {break_id} is not open")
            row = conn.execute("SELECT * FROM breaks WHERE id = ?", (break_id,)).fetchone()
        return self._row_to_break(row)

    def add_manual_session(self, user_id: int, entry: ManualEntry) -> WorkSession:
        """Insert a validated manual entry with its breaks in one transaction."""
        now = _ts(datetime.now(UTC))
        status = EntryStatus.COMPLETED if entry.end is not None else EntryStatus.ACTIVE
        with self._transaction("create manual time entry") as conn:
            if status is EntryStatus.ACTIVE and self._active_row(conn, user_id) is not None:
                raise SessionConflict(f"User {user_id} already has an active session")
            cursor = conn.execute(
                """\
                INSERT INTO time_entries (user_id, start_time, end_time, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    _ts(entry.start),
                    _ts(entry.end) if entry.end is not None else None,
                    status.value,
                    now,
                    now,
                ),
            )
            session_id = cursor.lastrowid
            conn.executemany(
                """\
                INSERT INTO breaks (time_entry_id, start_time, end_time, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (session_id, _ts(start), _ts(end) if end is not None else None, now, now)
                    for start, end in entry.breaks
                ],
            )
        return self.get_session(session_id)  # type: ignore[return-value]

    def delete_session(self, session_id: int) -> None:
        """Soft-delete a session; it disappears from summaries and reports."""
        with self._transaction("delete time entry") as conn:
            cursor = conn.execute(
                "UPDATE time_entries SET status = 'deleted', updated_at = ? WHERE id = ? AND status != 'deleted'",
                (_ts(datetime.now(UTC)), session_id),
            )
            if cursor.rowcount == 0:
                raise EntryNotFound(f"Session {session_id} not found")
        logger.info("Deleted session %s", session_id)

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def update_session(self, session_id: int, entry: ManualEntry) -> WorkSession:
        """Replace a session's times and its full set of breaks.

        *entry* has already passed manual-entry validation.  Reopening a
        session (no end) is refused while the user has another active one.
        """
        now = _ts(datetime.now(UTC))
        status = EntryStatus.COMPLETED if entry.end is not None else EntryStatus.ACTIVE
        with self._transaction("update time entry") as conn:
            row = self._live_session_row(conn, session_id)
            if status is EntryStatus.ACTIVE:
                active = self._active_row(conn, row["user_id"])
                if active is not None and active["id"] != session_id:
                    raise SessionConflict(f"User {row['user_id']} already has an active session")
            conn.execute(
                "UPDATE time_entries SET start_time = ?, end_time = ?, status = ?, updated_at = ? WHERE id = ?",
                (
                    _ts(entry.start),
                    _ts(entry.end) if entry.end is not None else None,
                    status.value,
                    now,
                    session_id,
                ),
            )
            conn.execute("DELETE FROM breaks WHERE time_entry_id = ?", (session_id,))
            conn.executemany(
                """\
                INSERT INTO breaks (time_entry_id, start_time, end_time, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (session_id, _ts(start), _ts(end) if end is not None else None, now, now)
                    for start, end in entry.breaks
                ],
            )
        logger.info("Updated session %s", session_id)
        return self.get_session(session_id)  # type: ignore[return-value]

    def add_break(self, session_id: int, start: datetime, end: Optional[datetime]) -> Break:
        """Attach a break to an existing session after checking its bounds."""
        now = datetime.now(UTC)
        with self._transaction("add break") as conn:
            session = self._row_to_session(self._live_session_row(conn, session_id))
            proposed = Break(id=0, session_id=session_id, start=as_utc(start), end=as_utc(end) if end is not None else None)
            check_break_bounds(session, self._session_breaks(conn, session_id) + [proposed], now)
            cursor = conn.execute(
                """\
                INSERT INTO breaks (time_entry_id, start_time, end_time, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (session_id, _ts(start), _ts(end) if end is not None else None, _ts(now), _ts(now)),
            )
            proposed.id = cursor.lastrowid  # type: ignore[assignment]
        return proposed

    def update_break(self, break_id: int, start: datetime, end: Optional[datetime]) -> Break:
        """Move a break; the result must still fit inside its session."""
        now = datetime.now(UTC)
        with self._transaction("update break") as conn:
            current = self._break_row(conn, break_id)
            session_id = current["time_entry_id"]
            session = self._row_to_session(self._live_session_row(conn, session_id))
            proposed = Break(id=break_id, session_id=session_id, start=as_utc(start), end=as_utc(end) if end is not None else None)
            others = [b for b in self._session_breaks(conn, session_id) if b.id != break_id]
            check_break_bounds(session, others + [proposed], now)
            conn.execute(
                "UPDATE breaks SET start_time = ?, end_time = ?, updated_at = ? WHERE id = ?",
                (_ts(start), _ts(end) if end is not None else None, _ts(now), break_id),
            )
        return proposed

    def delete_break(self, break_id: int) -> None:
        with self._transaction("delete break") as conn:
            cursor = conn.execute("DELETE FROM breaks WHERE id = ?", (break_id,))
            if cursor.rowcount == 0:
                raise EntryNotFound(f"Break {break_id} not found")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_session(self, session_id: int) -> Optional[WorkSession]:
        with self._transaction("get time entry") as conn:
            row = conn.execute(
                "SELECT * FROM time_entries WHERE id = ?", (session_id,)
            ).fetchone()
        return self._row_to_session(row) if row is not None else None

    def get_break(self, break_id: int) -> Optional[Break]:
        with self._transaction("get break") as conn:
            row = conn.execute("SELECT * FROM breaks WHERE id = ?", (break_id,)).fetchone()
        return self._row_to_break(row) if row is not None else None

    def get_active_session(self, user_id: int) -> Optional[tuple[WorkSession, Optional[Break]]]:
        """Return the active session and its open break, if any."""
        with self._transaction("get active time entry") as conn:
            row = self._active_row(conn, user_id)
            if row is None:
                return None
            brk = conn.execute(
                """\
                SELECT * FROM breaks
                WHERE time_entry_id = ? AND end_time IS NULL
                ORDER BY start_time DESC LIMIT 1
                """,
                (row["id"],),
            ).fetchone()
        return self._row_to_session(row), self._row_to_break(brk) if brk is not None else None

    def get_recent_sessions(self, user_id: int, limit: int = 5) -> list[WorkSession]:
        with self._transaction("get recent time entries") as conn:
            rows = conn.execute(
                """\
                SELECT * FROM time_entries
                WHERE user_id = ? AND status = 'completed'
                ORDER BY start_time DESC LIMIT ?
                """,
                (user_id, limit),
            ).fetchall()
        return [self._row_to_session(r) for r in rows]

    def fetch_sessions(
        self, user_id: int, start: datetime, end: datetime
    ) -> list[WorkSession]:
        """Return sessions of any status whose start falls in [start, end]."""
        with self._transaction("fetch time entries") as conn:
            rows = conn.execute(
                """\
                SELECT * FROM time_entries
                WHERE user_id = ? AND start_time >= ? AND start_time <= ?
                ORDER BY start_time
                """,
                (user_id, _ts(start), _ts(end)),
            ).fetchall()
        return [self._row_to_session(r) for r in rows]

    def fetch_breaks(self, session_ids: Iterable[int]) -> list[Break]:
        ids = list(session_ids)
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        with self._transaction("fetch breaks") as conn:
            rows = conn.execute(
                f"SELECT * FROM breaks WHERE time_entry_id IN ({placeholders}) ORDER BY start_time",
                ids,
            ).fetchall()
        return [self._row_to_break(r) for r in rows]

    def fetch_user_timezone(self, user_id: int) -> str:
        return self.get_user_settings(user_id).timezone

    # ------------------------------------------------------------------
    # User settings
    # ------------------------------------------------------------------

    def get_user_settings(self, user_id: int) -> UserSettings:
        """Return the user's settings, inserting defaults on first access."""
        with self._transaction("fetch user settings") as conn:
            row = conn.execute(
                "SELECT * FROM user_settings WHERE user_id = ?", (user_id,)
            ).fetchone()
        if row is not None:
            return self._row_to_settings(row)

        settings = default_settings(self.default_timezone)
        self.save_user_settings(user_id, settings)
        return settings

    def save_user_settings(self, user_id: int, settings: UserSettings) -> None:
        now = _ts(datetime.now(UTC))
        with self._transaction("save user settings") as conn:
            conn.execute(
                """\
                INSERT INTO user_settings
                    (user_id, working_hours, timezone, auto_detect_breaks,
                     enable_notifications, enable_email_notifications,
                     allow_sharing, share_duration_days, theme,
                     created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    working_hours = excluded.working_hours,
                    timezone = excluded.timezone,
                    auto_detect_breaks = excluded.auto_detect_breaks,
                    enable_notifications = excluded.enable_notifications,
                    enable_email_notifications = excluded.enable_email_notifications,
                    allow_sharing = excluded.allow_sharing,
                    share_duration_days = excluded.share_duration_days,
                    theme = excluded.theme,
                    updated_at = excluded.updated_at
                """,
                (
                    user_id,
                    settings.working_hours,
                    settings.timezone,
                    int(settings.auto_detect_breaks),
                    int(settings.enable_notifications),
                    int(settings.enable_email_notifications),
                    int(settings.allow_sharing),
                    settings.share_duration_days,
                    settings.theme.value,
                    now,
                    now,
                ),
            )

    def update_user_settings(self, user_id: int, update: SettingsUpdate) -> UserSettings:
        """Merge *update* into the stored settings and persist the result."""
        merged = merge_settings(self.get_user_settings(user_id), update)
        self.save_user_settings(user_id, merged)
        return merged

    # ------------------------------------------------------------------
    # Row mapping helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _active_row(conn: sqlite3.Connection, user_id: int) -> Optional[sqlite3.Row]:
        return conn.execute(
            """\
            SELECT * FROM time_entries
            WHERE user_id = ? AND status = 'active' AND end_time IS NULL
            ORDER BY start_time DESC LIMIT 1
            """,
            (user_id,),
        ).fetchone()

    @staticmethod
    def _live_session_row(conn: sqlite3.Connection, session_id: int) -> sqlite3.Row:
        row = conn.execute(
            "SELECT * FROM time_entries WHERE id = ? AND status != 'deleted'", (session_id,)
        ).fetchone()
        if row is None:
            raise EntryNotFound(f"Session {session_id} not found")
        return row

    @staticmethod
    def _break_row(conn: sqlite3.Connection, break_id: int) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM breaks WHERE id = ?", (break_id,)).fetchone()
        if row is None:
            raise EntryNotFound(f"Break {break_id} not found")
        return row

    @classmethod
    def _session_breaks(cls, conn: sqlite3.Connection, session_id: int) -> list[Break]:
        rows = conn.execute(
            "SELECT * FROM breaks WHERE time_entry_id = ? ORDER BY start_time", (session_id,)
        ).fetchall()
        return [cls._row_to_break(r) for r in rows]

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> WorkSession:
        return WorkSession(
            id=row["id"],
            user_id=row["user_id"],
            start=_parse_ts(row["start_time"]),  # type: ignore[arg-type]
            end=_parse_ts(row["end_time"]),
            status=EntryStatus(row["status"]),
        )

    @staticmethod
    def _row_to_break(row: sqlite3.Row) -> Break:
        return Break(
            id=row["id"],
            session_id=row["time_entry_id"],
            start=_parse_ts(row["start_time"]),  # type: ignore[arg-type]
            end=_parse_ts(row["end_time"]),
        )

    @staticmethod
    def _row_to_settings(row: sqlite3.Row) -> UserSettings:
        return UserSettings(
            working_hours=row["working_hours"],
            timezone=row["timezone"],
            auto_detect_breaks=bool(row["auto_detect_breaks"]),
            enable_notifications=bool(row["enable_notifications"]),
            enable_email_notifications=bool(row["enable_email_notifications"]),
            allow_sharing=bool(row["allow_sharing"]),
            share_duration_days=row["share_duration_days"],
            theme=Theme(row["theme"]),
        )
