"""Exception types raised by the ShiftLog core and its collaborators."""


class ShiftLogError(Exception):
    """Base class for all ShiftLog errors."""


class InvalidTimeSpec(ShiftLogError, ValueError):
    """A civil date or time string could not be parsed."""


class InvalidTimezone(ShiftLogError, ValueError):
    """An IANA timezone identifier is not recognised."""


class InvalidSettings(ShiftLogError, ValueError):
    """A user settings update contains an invalid value."""


class DataAccessError(ShiftLogError):
    """The storage collaborator failed; no partial result is produced."""


class InconsistentInterval(ShiftLogError):
    """A break falls outside its session, or an interval is reversed."""


class SessionConflict(ShiftLogError):
    """A session or break state transition is not allowed."""


class EntryNotFound(ShiftLogError):
    """No live session or break has the requested id."""
