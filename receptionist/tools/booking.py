"""LangChain tools the booking agent can call.

Tools are built per conversation by ``build_booking_tools`` so that each
one can record its effects (a booking made, alternatives offered, the
reported outcome) on that conversation's ``ToolSession``.  Every tool
returns a plain sentence for the model; exceptions are left to the agent,
which turns them into error text for the model to recover from.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from langchain_core.tools import BaseTool, tool
from pydantic import BaseModel, Field

from receptionist.errors import PastDateError, ValidationError
from receptionist.models import (
    AlternativesOffered,
    AppointmentRequest,
    Booked,
    BookingOutcome,
    TimeWindow,
)
from receptionist.scheduling.booking import BookingCoordinator
from receptionist.scheduling.dates import parse_instant

logger = logging.getLogger(__name__)

CHECK_AVAILABILITY = "checkAvailability"
BOOK_APPOINTMENT = "bookAppointment"
REPORT_OUTCOME = "reportOutcome"

ReportedStatus = Literal["booked", "available", "alternatives_offered", "no_alternatives", "failed"]


# ── Argument schemas (what the model sees) ───────────────────────────


class CheckAvailabilityArgs(BaseModel):
    startTime: str = Field(description="Start time in ISO 8601 format (e.g. 2024-01-15T14:00:00-05:00)")
    endTime: str = Field(description="End time in ISO 8601 format (e.g. 2024-01-15T14:30:00-05:00)")


class BookAppointmentArgs(BaseModel):
    startTime: str = Field(description="Start time in ISO 8601 format (e.g. 2024-01-15T14:00:00-05:00)")
    endTime: str = Field(description="End time in ISO 8601 format (e.g. 2024-01-15T14:30:00-05:00)")
    name: str = Field(description="Name of the person booking the appointment")
    phone: str | None = Field(default=None, description="Phone number (optional)")
    email: str | None = Field(default=None, description="Email address (optional)")


class ReportOutcomeArgs(BaseModel):
    status: ReportedStatus = Field(description="How the request ended")
    message: str = Field(description="One or two sentences to read to the caller")


# ── Per-conversation state ───────────────────────────────────────────


@dataclass
class ToolSession:
    """What the tools did during one agent run."""

    request: AppointmentRequest
    booked: Booked | None = None
    available: TimeWindow | None = None
    offered: tuple[TimeWindow, ...] = ()
    reported_status: ReportedStatus | None = None
    reported_message: str = ""

    def record(self, outcome: BookingOutcome) -> None:
        if isinstance(outcome, Booked):
            self.booked = outcome
        elif isinstance(outcome, AlternativesOffered):
            self.offered = outcome.windows

    @property
    def reported(self) -> bool:
        return self.reported_status is not None


def build_booking_tools(coordinator: BookingCoordinator, session: ToolSession) -> list[BaseTool]:
    """Create the agent tools bound to *coordinator* and *session*.

    A check-only request gets no ``bookAppointment`` tool.
    """
    zone = coordinator.hours.zone

    def _window(start_text: str, end_text: str) -> TimeWindow:
        return TimeWindow(parse_instant(start_text, zone), parse_instant(end_text, zone))

    @tool(CHECK_AVAILABILITY, args_schema=CheckAvailabilityArgs)
    def check_availability(startTime: str, endTime: str) -> str:  # noqa: N803
        """Check if a time slot is available in the calendar. Always use this before booking an appointment."""
        window = _window(startTime, endTime)
        if window.end <= coordinator.now():
            raise PastDateError("Cannot check availability in the past.")
        decision = coordinator.check(window)
        span = f"{coordinator.speak(window.start)} to {coordinator.speak(window.end)}"
        if decision.available:
            session.available = window
            return f"The time slot from {span} is available."

        outcome = coordinator.offer_alternatives(window)
        session.record(outcome)
        if isinstance(outcome, AlternativesOffered):
            times = ", ".join(coordinator.speak(w.start) for w in outcome.windows)
            return (
                f"The time slot from {span} is not available. Reason: {decision.reason}. "
                f"The closest available times are {times}."
            )
        return f"The time slot from {span} is not available. Reason: {decision.reason}. {outcome.message}"

    @tool(BOOK_APPOINTMENT, args_schema=BookAppointmentArgs)
    def book_appointment(
        startTime: str,  # noqa: N803
        endTime: str,  # noqa: N803
        name: str,
        phone: str | None = None,
        email: str | None = None,
    ) -> str:
        """Book an appointment in the calendar. Only use this after checking availability."""
        start = parse_instant(startTime, zone)
        end = parse_instant(endTime, zone)
        if end <= start:
            raise ValidationError("End time must be after start time.")
        if start < coordinator.now():
            raise PastDateError("Cannot book appointments in the past.")

        base = session.request
        outcome = coordinator.book(
            AppointmentRequest(
                caller_name=name,
                caller_phone=phone or base.caller_phone,
                caller_email=email or base.caller_email,
                requested_window=TimeWindow(start, end),
                business_id=base.business_id,
                call_log_id=base.call_log_id,
            )
        )
        session.record(outcome)
        if isinstance(outcome, Booked):
            return f"{outcome.message} Event ID: {outcome.external_event_id}"
        return outcome.message

    @tool(REPORT_OUTCOME, args_schema=ReportOutcomeArgs)
    def report_outcome(status: ReportedStatus, message: str) -> str:
        """Report the final outcome of the caller's request. Call this once, as the last step."""
        session.reported_status = status
        session.reported_message = message
        logger.debug("Agent reported outcome %s", status)
        return "Outcome recorded."

    if session.request.check_only:
        return [check_availability, report_outcome]
    return [check_availability, book_appointment, report_outcome]
