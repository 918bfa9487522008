"""Domain value types shared by the scheduling core, the agent and the webhook.

All instants are timezone-aware ``datetime`` objects.  Business-local
decomposition (weekday, time of day) always goes through
``zoneinfo`` so daylight-saving transitions are honoured.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import StrEnum
from typing import Any, ClassVar
from zoneinfo import ZoneInfo

DEFAULT_SLOT_MINUTES = 30


class UnavailableReason(StrEnum):
    OUTSIDE_BUSINESS_HOURS = "Outside business hours"
    EXTENDS_PAST_CLOSE = "Appointment extends beyond business hours"
    ALREADY_BOOKED = "Time slot is already booked"


class FailureReason(StrEnum):
    VALIDATION = "validation"
    PAST_DATE = "past_date"
    EXTERNAL_SERVICE = "external_service"
    MAX_ITERATIONS_EXCEEDED = "max_iterations_exceeded"
    UNRESOLVED = "unresolved"


class CallStatus(StrEnum):
    """Status strings persisted on the call log."""

    PENDING = "pending"
    BOOKED = "booked"
    SUGGESTED_ALTERNATIVES = "suggested_alternatives"
    AVAILABLE = "available"
    FAILED = "failed"


class ToolName(StrEnum):
    CHECK_AVAILABILITY = "checkAvailability"
    BOOK_APPOINTMENT = "bookAppointment"


# ── Time windows ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class TimeWindow:
    """A half-open interval ``[start, end)``."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("TimeWindow requires timezone-aware datetimes")
        if self.end <= self.start:
            raise ValueError(
                f"TimeWindow end ({self.end.isoformat()}) must be after start ({self.start.isoformat()})"
            )

    @classmethod
    def starting_at(cls, start: datetime, minutes: int = DEFAULT_SLOT_MINUTES) -> TimeWindow:
        """Build a window of the fixed slot length when only a start is known."""
        return cls(start, start + timedelta(minutes=minutes))

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: TimeWindow) -> bool:
        """True when this window starts inside, ends inside, or fully contains *other*."""
        return (
            (other.start <= self.start < other.end)
            or (other.start < self.end <= other.end)
            or (self.start <= other.start and self.end >= other.end)
        )

    def shifted(self, delta: timedelta) -> TimeWindow:
        return TimeWindow(self.start + delta, self.end + delta)

    def key(self) -> str:
        """Stable UTC key, identical for equal instants in any zone."""
        return f"{_utc_iso(self.start)}/{_utc_iso(self.end)}"


def _utc_iso(moment: datetime) -> str:
    return moment.astimezone(ZoneInfo("UTC")).strftime("%Y-%m-%dT%H:%M:%SZ")


# ── Business hours ──────────────────────────────────────────────────


@dataclass(frozen=True)
class BusinessHoursConfig:
    """Opening hours interpreted in a fixed IANA timezone.

    ``open_weekdays`` uses ISO numbering: 1 = Monday … 7 = Sunday.
    """

    timezone: str
    open_time: time
    close_time: time
    open_weekdays: frozenset[int]
    slot_duration_minutes: int = DEFAULT_SLOT_MINUTES

    def __post_init__(self) -> None:
        if self.open_time >= self.close_time:
            raise ValueError("open_time must be earlier than close_time")
        if not self.open_weekdays or not all(1 <= d <= 7 for d in self.open_weekdays):
            raise ValueError("open_weekdays must be a non-empty subset of 1..7")
        if self.slot_duration_minutes <= 0:
            raise ValueError("slot_duration_minutes must be positive")
        ZoneInfo(self.timezone)  # raises ZoneInfoNotFoundError for unknown zones

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def local_parts(self, moment: datetime) -> tuple[date, int, time]:
        """Return ``(local_date, iso_weekday, local_time_of_day)``.

        The time of day keeps seconds and microseconds, so 18:00:30 is past
        an 18:00 close.
        """
        local = moment.astimezone(self.zone)
        return local.date(), local.isoweekday(), local.time()

    def opening_on(self, day: date) -> datetime:
        """The instant the business opens on the given local date."""
        return datetime.combine(day, self.open_time, tzinfo=self.zone)

    def slot(self, start: datetime) -> TimeWindow:
        return TimeWindow.starting_at(start, self.slot_duration_minutes)


def spoken_time(moment: datetime, zone: ZoneInfo) -> str:
    """Format an instant the way the receptionist reads it aloud."""
    return moment.astimezone(zone).strftime("%A, %B %d at %I:%M %p")


# ── Requests and decisions ──────────────────────────────────────────


@dataclass(frozen=True)
class AppointmentRequest:
    """One caller's request, created per inbound call and never mutated."""

    caller_name: str
    caller_phone: str | None = None
    caller_email: str | None = None
    requested_window: TimeWindow | None = None
    requested_text: str | None = None
    business_id: str | None = None
    context_prompt: str | None = None
    call_log_id: str | None = None
    check_only: bool = False


@dataclass(frozen=True)
class AvailabilityDecision:
    available: bool
    reason: UnavailableReason | None = None

    @classmethod
    def ok(cls) -> AvailabilityDecision:
        return cls(available=True)

    @classmethod
    def rejected(cls, reason: UnavailableReason) -> AvailabilityDecision:
        return cls(available=False, reason=reason)


# ── Booking outcomes ────────────────────────────────────────────────


@dataclass(frozen=True)
class Booked:
    appointment_id: str
    external_event_id: str
    window: TimeWindow
    message: str

    status: ClassVar[CallStatus] = CallStatus.BOOKED


@dataclass(frozen=True)
class AlternativesOffered:
    windows: tuple[TimeWindow, ...]
    message: str

    status: ClassVar[CallStatus] = CallStatus.SUGGESTED_ALTERNATIVES


@dataclass(frozen=True)
class NoAlternativesFound:
    message: str

    status: ClassVar[CallStatus] = CallStatus.SUGGESTED_ALTERNATIVES


@dataclass(frozen=True)
class SlotAvailable:
    """The requested window is free; nothing was booked."""

    window: TimeWindow
    message: str

    status: ClassVar[CallStatus] = CallStatus.AVAILABLE


@dataclass(frozen=True)
class Failed:
    reason: FailureReason
    message: str
    detail: str | None = None

    status: ClassVar[CallStatus] = CallStatus.FAILED


BookingOutcome = Booked | AlternativesOffered | NoAlternativesFound | SlotAvailable | Failed


# ── Canonical inbound invocation ────────────────────────────────────


@dataclass(frozen=True)
class ToolInvocation:
    tool_name: ToolName
    arguments: Mapping[str, Any] = field(default_factory=dict)
    correlation_id: str = "tool_call_auto"


@dataclass(frozen=True)
class NotRecognized:
    reason: str
