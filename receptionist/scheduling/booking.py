"""Check → book → persist, with alternatives when the slot cannot be taken.

``BookingCoordinator.book`` is the only way an appointment gets created:
every path resolves availability first, and a booking is reported only
after both the calendar event and the appointment row exist.  Nothing in
here raises to the caller; every result is a ``BookingOutcome`` whose
``message`` can be read aloud.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from receptionist.errors import ExternalServiceError
from receptionist.models import (
    AlternativesOffered,
    AppointmentRequest,
    AvailabilityDecision,
    Booked,
    BookingOutcome,
    BusinessHoursConfig,
    Failed,
    FailureReason,
    NoAlternativesFound,
    SlotAvailable,
    TimeWindow,
    spoken_time,
)
from receptionist.scheduling.alternatives import (
    DEFAULT_CANDIDATE_MULTIPLIER,
    DEFAULT_COUNT,
    DEFAULT_LOOKAHEAD_DAYS,
    AlternativeSlotSearch,
)
from receptionist.scheduling.availability import AvailabilityResolver
from receptionist.scheduling.reservations import SlotReservations
from receptionist.services.google_calendar import CalendarBackend
from receptionist.services.persistence import CallStore

logger = logging.getLogger(__name__)

PAST_DATE_MESSAGE = (
    "The date provided appears to be in the past. "
    "Please ask the customer to confirm the year and the exact date."
)
MISSING_NAME_MESSAGE = "I need the caller's name before I can book an appointment."
MISSING_TIME_MESSAGE = "I need a specific date and time before I can book an appointment."
CALENDAR_DOWN_MESSAGE = (
    "I'm sorry, I couldn't reach the calendar right now. Please try again in a moment."
)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class BookingCoordinator:
    def __init__(
        self,
        resolver: AvailabilityResolver,
        search: AlternativeSlotSearch,
        calendar: CalendarBackend,
        store: CallStore,
        *,
        reservations: SlotReservations | None = None,
        clock: Callable[[], datetime] = _utc_now,
        calendar_id: str | None = None,
        alternative_count: int = DEFAULT_COUNT,
        lookahead_days: int = DEFAULT_LOOKAHEAD_DAYS,
        candidate_multiplier: int = DEFAULT_CANDIDATE_MULTIPLIER,
    ):
        self._resolver = resolver
        self._search = search
        self._calendar = calendar
        self._store = store
        self._reservations = reservations or SlotReservations()
        self._clock = clock
        self._calendar_id = calendar_id
        self._alternative_count = alternative_count
        self._lookahead_days = lookahead_days
        self._candidate_multiplier = candidate_multiplier

    @property
    def hours(self) -> BusinessHoursConfig:
        return self._resolver.hours

    def now(self) -> datetime:
        return self._clock()

    def speak(self, moment: datetime) -> str:
        return spoken_time(moment, self.hours.zone)

    def check(self, window: TimeWindow) -> AvailabilityDecision:
        """Availability only, no side effects.  May raise ``ExternalServiceError``."""
        return self._resolver.resolve(window)

    def check_request(self, request: AppointmentRequest) -> BookingOutcome:
        """Answer whether the requested window is free without booking it.

        Never creates an event or an appointment row.  An unavailable
        window (or a failed calendar check) is answered with alternatives,
        the same way ``book`` does.
        """
        window = request.requested_window
        if window is None:
            return Failed(FailureReason.VALIDATION, MISSING_TIME_MESSAGE)
        if window.end <= self.now():
            logger.warning("Requested window %s is in the past", window.key())
            return Failed(FailureReason.PAST_DATE, PAST_DATE_MESSAGE)

        try:
            decision = self._resolver.resolve(window)
        except ExternalServiceError as exc:
            logger.warning("Availability check failed for %s, treating as unavailable: %s", window.key(), exc)
            return self.offer_alternatives(window)

        if not decision.available:
            logger.info("Window %s unavailable: %s", window.key(), decision.reason)
            return self.offer_alternatives(window)
        return SlotAvailable(
            window=window,
            message=f"The requested time on {self.speak(window.start)} is available.",
        )

    # ── Booking protocol ─────────────────────────────────────────────

    def book(self, request: AppointmentRequest) -> BookingOutcome:
        if not request.caller_name or not request.caller_name.strip():
            return Failed(FailureReason.VALIDATION, MISSING_NAME_MESSAGE)
        window = request.requested_window
        if window is None:
            return Failed(FailureReason.VALIDATION, MISSING_TIME_MESSAGE)

        if window.end <= self.now():
            logger.warning("Requested window %s is in the past", window.key())
            return Failed(FailureReason.PAST_DATE, PAST_DATE_MESSAGE)

        with self._reservations.hold(window):
            booked = self._try_book(request, window)
        if booked is not None:
            return booked
        return self.offer_alternatives(window)

    def _try_book(self, request: AppointmentRequest, window: TimeWindow) -> Booked | None:
        """Return ``Booked`` only when the calendar and the database both succeed."""
        try:
            decision = self._resolver.resolve(window)
        except ExternalServiceError as exc:
            logger.warning("Availability check failed for %s, treating as unavailable: %s", window.key(), exc)
            return None
        if not decision.available:
            logger.info("Window %s unavailable: %s", window.key(), decision.reason)
            return None

        try:
            event = self._calendar.create_event(
                window,
                summary=f"Appointment with {request.caller_name}",
                description=self._describe(request),
            )
        except ExternalServiceError as exc:
            logger.error("Calendar event creation failed for %s: %s", window.key(), exc)
            return None

        try:
            appointment_id = self._store.create_appointment(
                name=request.caller_name,
                window=window,
                phone=request.caller_phone,
                email=request.caller_email,
                business_id=request.business_id,
                calendar_id=self._calendar_id,
                google_event_id=event.event_id,
                call_log_id=request.call_log_id,
            )
        except ExternalServiceError as exc:
            logger.error(
                "Event %s created but appointment could not be saved: %s", event.event_id, exc,
            )
            return None

        logger.info("Booked %s for %s (event %s)", window.key(), request.caller_name, event.event_id)
        return Booked(
            appointment_id=appointment_id,
            external_event_id=event.event_id,
            window=window,
            message=f"The appointment has been booked for {self.speak(window.start)}.",
        )

    def offer_alternatives(self, window: TimeWindow) -> BookingOutcome:
        """Search for up to ``alternative_count`` slots after *window*."""
        try:
            windows = self._search.search(
                window,
                count=self._alternative_count,
                lookahead_days=self._lookahead_days,
                candidate_multiplier=self._candidate_multiplier,
            )
        except ExternalServiceError as exc:
            logger.error("Alternative search failed near %s: %s", window.key(), exc)
            return Failed(FailureReason.EXTERNAL_SERVICE, CALENDAR_DOWN_MESSAGE, detail=str(exc))

        if not windows:
            return NoAlternativesFound(
                message=(
                    "The requested time is unavailable, and no alternative times were "
                    f"found in the next {self._lookahead_days} days."
                )
            )
        times = ", ".join(self.speak(w.start) for w in windows)
        return AlternativesOffered(
            windows=tuple(windows),
            message=f"The requested time is unavailable, these times are {times}.",
        )

    @staticmethod
    def _describe(request: AppointmentRequest) -> str:
        lines = [request.caller_name]
        if request.caller_phone:
            lines.append(f"Phone: {request.caller_phone}")
        if request.caller_email:
            lines.append(f"Email: {request.caller_email}")
        return "\n".join(lines)
