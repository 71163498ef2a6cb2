"""User preference records: defaults, validation and partial updates."""

from dataclasses import fields, replace
from typing import Any

from shiftlog.core.errors import InvalidSettings
from shiftlog.core.models import SettingsUpdate, Theme, UserSettings
from shiftlog.core.timezone import get_zone

_FIELDS = {f.name for f in fields(SettingsUpdate)}


def default_settings(timezone: str = "UTC") -> UserSettings:
    return UserSettings(timezone=timezone)


def merge_settings(current: UserSettings, update: SettingsUpdate) -> UserSettings:
    """Return *current* with every non-``None`` field of *update* applied.

    The result is validated as a whole; *current* is left unchanged.
    """
    changes = {
        name: getattr(update, name)
        for name in _FIELDS
        if getattr(update, name) is not None
    }
    merged = replace(current, **changes)
    validate_settings(merged)
    return merged


def validate_settings(settings: UserSettings) -> None:
    """Raise ``InvalidSettings`` when any field is out of range."""
    if isinstance(settings.working_hours, bool) or not isinstance(settings.working_hours, (int, float)):
        raise InvalidSettings("working_hours must be a number")
    if not 0 < settings.working_hours <= 24:
        raise InvalidSettings("working_hours must be between 0 and 24")
    if isinstance(settings.share_duration_days, bool) or not isinstance(settings.share_duration_days, int):
        raise InvalidSettings("share_duration_days must be an integer")
    if settings.share_duration_days < 0:
        raise InvalidSettings("share_duration_days must not be negative")
    if not isinstance(settings.theme, Theme):
        raise InvalidSettings(f"Unknown theme: {settings.theme!r}")
    for flag in ("auto_detect_breaks", "enable_notifications", "enable_email_notifications", "allow_sharing"):
        if not isinstance(getattr(settings, flag), bool):
            raise InvalidSettings(f"{flag} must be true or false")
    try:
        get_zone(settings.timezone)
    except ValueError as exc:
        raise InvalidSettings(str(exc)) from exc


def settings_update_from_dict(data: dict[str, Any]) -> SettingsUpdate:
    """Build a ``SettingsUpdate`` from JSON input, rejecting unknown keys."""
    unknown = set(data) - _FIELDS
    if unknown:
        raise InvalidSettings(f"Unknown settings: {', '.join(sorted(unknown))}")

    values = dict(data)
    if values.get("theme") is not None:
        try:
            values["theme"] = Theme(values["theme"])
        except ValueError as exc:
            raise InvalidSettings(f"Unknown theme: {values['theme']!r}") from exc
    return SettingsUpdate(**values)
