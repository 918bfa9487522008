"""System instruction and opening user turn for the booking agent."""

from __future__ import annotations

from datetime import datetime

from receptionist.models import AppointmentRequest, BusinessHoursConfig

_WEEKDAY_NAMES = {
    1: "Monday", 2: "Tuesday", 3: "Wednesday", 4: "Thursday",
    5: "Friday", 6: "Saturday", 7: "Sunday",
}

SYSTEM_PROMPT_TEMPLATE = """# Overview
You are a helpful receptionist that looks up availability and books appointments
for callers on the phone.

## Current Date & Time
It is now {current_time} in the business timezone ({timezone}), a {current_day}.
Resolve relative dates like "tomorrow" or "next Tuesday" from this date and always
send tool arguments as ISO 8601 with an explicit offset.

## Opening Hours
{open_days}, {open_time} to {close_time} ({timezone}).

## Tools
- `checkAvailability` — check a time slot.  When the slot is unavailable the result
  lists the next closest available times.
- `bookAppointment` — book a slot for the caller.
- `reportOutcome` — report how the request ended.  Call it exactly once, as your
  final step, alone.

## Rules
- You must check availability with `checkAvailability` before booking an appointment.
- If the appointment is available, book it with `bookAppointment`, then call
  `reportOutcome` with status `booked` and the message
  "The appointment has been booked for <time>".
- If the appointment is unavailable, offer at most the 3 closest available times
  returned by the tools and call `reportOutcome` with status `alternatives_offered`
  and the message "The requested time is unavailable, these times are <times>"
  (do not number the times).
- If the caller only wants to know whether a time is free and `bookAppointment` is not
  offered, do not book: when the slot is free call `reportOutcome` with status
  `available` and the message "The requested time on <time> is available".
- If no alternative exists use status `no_alternatives`; if the request cannot be
  resolved (for example the date is unclear) use status `failed` and ask the caller
  to clarify in the message.
- All appointments are {slot_minutes} minutes in length.
- Messages are read aloud: write one or two complete sentences, no lists or markup.
"""


def get_system_prompt(hours: BusinessHoursConfig, now: datetime) -> str:
    """Build the fixed system instruction with the current date injected."""
    local_now = now.astimezone(hours.zone)
    open_days = ", ".join(_WEEKDAY_NAMES[d] for d in sorted(hours.open_weekdays))
    return SYSTEM_PROMPT_TEMPLATE.format(
        current_time=local_now.strftime("%Y-%m-%d %H:%M"),
        current_day=local_now.strftime("%A"),
        timezone=hours.timezone,
        open_days=open_days,
        open_time=hours.open_time.strftime("%H:%M"),
        close_time=hours.close_time.strftime("%H:%M"),
        slot_minutes=hours.slot_duration_minutes,
    )


def get_user_prompt(request: AppointmentRequest) -> str:
    """Summarise the caller's request, prefixed with any business context."""
    lines = []
    if request.context_prompt:
        lines.extend([request.context_prompt, ""])
    lines.append("The details of the requested appointment are:")
    if request.caller_name:
        lines.append(f"Name: {request.caller_name}")
    if request.caller_phone:
        lines.append(f"Phone Number: {request.caller_phone}")
    if request.requested_window is not None:
        lines.append(f"Date and Time: {request.requested_window.start.isoformat()}")
    elif request.requested_text:
        lines.append(f"Date and Time: {request.requested_text}")
    if request.caller_email:
        lines.append(f"Email Address: {request.caller_email}")
    lines.append("")
    if request.check_only:
        lines.append(
            "Please check availability only and do not book; report status `available` if free, "
            "or suggest the next 3 closest available times if not."
        )
    else:
        lines.append(
            "Please check availability and book the appointment if available, "
            "or suggest the next 3 closest available times if not."
        )
    return "\n".join(lines)
