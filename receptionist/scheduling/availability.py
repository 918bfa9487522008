"""Decide whether a time window can be booked.

Business-hours rules are evaluated locally first; the calendar is only
queried for windows that already fit inside opening hours, so obviously
invalid requests never cost a network round trip.
"""

from __future__ import annotations

import logging

from receptionist.models import (
    AvailabilityDecision,
    BusinessHoursConfig,
    TimeWindow,
    UnavailableReason,
)
from receptionist.services.google_calendar import CalendarBackend

logger = logging.getLogger(__name__)


class AvailabilityResolver:
    def __init__(self, hours: BusinessHoursConfig, calendar: CalendarBackend):
        self._hours = hours
        self._calendar = calendar

    @property
    def hours(self) -> BusinessHoursConfig:
        return self._hours

    def business_hours_violation(self, window: TimeWindow) -> UnavailableReason | None:
        """Return why *window* falls outside opening hours, or ``None`` if it fits.

        The start must lie in ``[open, close)`` on an open weekday.  The end may
        touch closing time exactly but not pass it, and must fall on the same
        local day.
        """
        hours = self._hours
        start_day, start_weekday, start_time = hours.local_parts(window.start)
        end_day, _, end_time = hours.local_parts(window.end)

        if start_weekday not in hours.open_weekdays:
            return UnavailableReason.OUTSIDE_BUSINESS_HOURS
        if start_time < hours.open_time or start_time >= hours.close_time:
            return UnavailableReason.OUTSIDE_BUSINESS_HOURS
        if end_day != start_day or end_time > hours.close_time:
            return UnavailableReason.EXTENDS_PAST_CLOSE
        return None

    def within_business_hours(self, window: TimeWindow) -> bool:
        return self.business_hours_violation(window) is None

    def resolve(self, window: TimeWindow) -> AvailabilityDecision:
        """Check business hours, then the calendar.

        Calendar failures propagate as ``ExternalServiceError``; the caller
        decides whether that means "unavailable" or a hard failure.
        """
        violation = self.business_hours_violation(window)
        if violation is not None:
            logger.debug("Window %s rejected locally: %s", window.key(), violation)
            return AvailabilityDecision.rejected(violation)

        if self._calendar.check_free_busy(window):
            return AvailabilityDecision.rejected(UnavailableReason.ALREADY_BOOKED)
        return AvailabilityDecision.ok()
