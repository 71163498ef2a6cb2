"""Abstract data-access interface consumed by the aggregation and report code."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable

from shiftlog.core.errors import DataAccessError, ShiftLogError
from shiftlog.core.models import Break, WorkSession

logger = logging.getLogger(__name__)


class TimeEntrySource(ABC):
    """Read access to a user's work sessions, breaks and timezone.

    The SQLite store implements this; tests substitute mocks.  Any failure
    is expected to surface as ``DataAccessError``.
    """

    @abstractmethod
    def fetch_sessions(
        self, user_id: int, start: datetime, end: datetime
    ) -> list[WorkSession]:
        """Return the user's sessions whose start falls in ``[start, end]``."""
        pass

    @abstractmethod
    def fetch_breaks(self, session_ids: Iterable[int]) -> list[Break]:
        """Return every break belonging to *session_ids*."""
        pass

    @abstractmethod
    def fetch_user_timezone(self, user_id: int) -> str:
        """Return the user's IANA timezone, falling back to a default."""
        pass


def load_entries(
    source: TimeEntrySource, user_id: int, start: datetime, end: datetime
) -> tuple[list[WorkSession], list[Break]]:
    """Fetch sessions and their breaks in one step.

    Errors from *source* that are not already ``ShiftLogError`` are wrapped
    in ``DataAccessError`` so callers abort instead of aggregating a partial
    snapshot.
    """
    try:
        sessions = source.fetch_sessions(user_id, start, end)
        breaks = source.fetch_breaks([s.id for s in sessions]) if sessions else []
    except ShiftLogError:
        raise
    except Exception as exc:
        logger.exception("Failed to load entries for user %s", user_id)
        raise DataAccessError(f"Failed to load time entries: {exc}") from exc
    return sessions, breaks


def load_timezone(source: TimeEntrySource, user_id: int) -> str:
    try:
        return source.fetch_user_timezone(user_id)
    except ShiftLogError:
        raise
    except Exception as exc:
        logger.exception("Failed to load timezone for user %s", user_id)
        raise DataAccessError(f"Failed to load user timezone: {exc}") from exc
