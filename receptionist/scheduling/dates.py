"""Parsing of caller-supplied date/time strings."""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from receptionist.errors import ValidationError


def parse_instant(value: str, zone: ZoneInfo) -> datetime:
    """Parse an ISO-8601 string into an aware datetime.

    A trailing ``Z`` means UTC.  Strings without an offset are wall-clock
    times in the business timezone.  Raises ``ValidationError`` otherwise.
    """
    text = value.strip()
    if not text:
        raise ValidationError("Date/time is empty")
    try:
        moment = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError(f"Invalid date/time {value!r}: expected ISO 8601") from exc
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=zone)
    return moment


def try_parse_instant(value: str | None, zone: ZoneInfo) -> datetime | None:
    """``parse_instant`` that returns ``None`` for natural-language input."""
    if not value:
        return None
    try:
        return parse_instant(value, zone)
    except ValidationError:
        return None
