"""Error taxonomy for the receptionist core.

None of these ever reach the voice channel as raw text: the booking
coordinator, the agent and the webhook handler convert them into spoken
sentences.  They exist so that each component can signal *what kind* of
failure happened to the boundary that owns the response.
"""

from __future__ import annotations


class ReceptionistError(Exception):
    """Base class for all receptionist errors."""


class ValidationError(ReceptionistError):
    """The caller's request is missing data or carries a malformed value."""


class PastDateError(ReceptionistError):
    """The requested window ends before the current instant."""


class ExternalServiceError(ReceptionistError):
    """A calendar, model or persistence call failed or timed out."""

    def __init__(self, message: str, *, service: str = "external", status_code: int | None = None):
        self.service = service
        self.status_code = status_code
        super().__init__(message)


class ExternalTimeoutError(ExternalServiceError):
    """An external call exceeded its configured timeout."""


class CalendarAPIError(ExternalServiceError):
    """Raised when a Google Calendar API call fails after all retries."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, service="google_calendar", status_code=status_code)


class CalendarTimeoutError(CalendarAPIError, ExternalTimeoutError):
    """Every attempt at a Google Calendar call timed out or could not connect."""
