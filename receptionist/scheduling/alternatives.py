"""Find the bookable slots closest to a requested window.

One free/busy query covers the whole lookahead range; every candidate is
then tested locally.  Candidates are generated on a grid of the business's
slot length, starting right after the requested window.  Closed stretches
(nights, closed weekdays) are skipped by jumping to the next opening, where
the grid restarts at opening time.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from receptionist.models import TimeWindow, UnavailableReason
from receptionist.scheduling.availability import AvailabilityResolver
from receptionist.services.google_calendar import CalendarBackend

logger = logging.getLogger(__name__)

DEFAULT_COUNT = 3
DEFAULT_LOOKAHEAD_DAYS = 60
DEFAULT_CANDIDATE_MULTIPLIER = 10


class AlternativeSlotSearch:
    def __init__(self, resolver: AvailabilityResolver, calendar: CalendarBackend):
        self._resolver = resolver
        self._calendar = calendar
        self._hours = resolver.hours

    def _next_opening(self, moment: datetime) -> datetime:
        """The first opening instant after *moment* (today's, if not yet open)."""
        hours = self._hours
        day, weekday, clock = hours.local_parts(moment)
        if weekday in hours.open_weekdays and clock < hours.open_time:
            return hours.opening_on(day)
        for offset in range(1, 8):
            next_day = day + timedelta(days=offset)
            if next_day.isoweekday() in hours.open_weekdays:
                return hours.opening_on(next_day)
        raise AssertionError("open_weekdays is never empty")

    @staticmethod
    def _hits_busy(candidate: TimeWindow, busy: list[TimeWindow], first: int) -> bool:
        for interval in busy[first:]:
            if interval.start >= candidate.end:
                return False
            if candidate.overlaps(interval):
                return True
        return False

    def search(
        self,
        near_window: TimeWindow,
        count: int = DEFAULT_COUNT,
        lookahead_days: int = DEFAULT_LOOKAHEAD_DAYS,
        candidate_multiplier: int = DEFAULT_CANDIDATE_MULTIPLIER,
    ) -> list[TimeWindow]:
        """Return up to *count* free windows after *near_window*, earliest first.

        ``count * candidate_multiplier`` caps how many calendar-free raw
        candidates are examined before giving up.  An empty list means no
        alternative exists inside the lookahead; it is not an error.
        Calendar failures propagate as ``ExternalServiceError``.
        """
        if count <= 0:
            return []

        step = timedelta(minutes=self._hours.slot_duration_minutes)
        range_start = near_window.start
        range_end = range_start + timedelta(days=lookahead_days)
        busy = self._calendar.list_free_busy(range_start, range_end)

        max_raw = count * candidate_multiplier
        accepted: list[TimeWindow] = []
        examined = 0
        busy_idx = 0
        cursor = near_window.start + step

        while len(accepted) < count and examined < max_raw:
            candidate = TimeWindow(cursor, cursor + step)
            if candidate.end > range_end:
                break

            violation = self._resolver.business_hours_violation(candidate)
            if violation is UnavailableReason.OUTSIDE_BUSINESS_HOURS:
                cursor = self._next_opening(cursor)
                continue

            while busy_idx < len(busy) and busy[busy_idx].end <= candidate.start:
                busy_idx += 1
            if self._hits_busy(candidate, busy, busy_idx):
                cursor += step
                continue

            # Free on the calendar: counts as a raw candidate even if it
            # runs past closing time.
            examined += 1
            if violation is None:
                accepted.append(candidate)
                cursor += step
            else:
                cursor = self._next_opening(cursor)

        logger.info(
            "Alternative search near %s: %d slot(s) found, %d busy interval(s) in range",
            near_window.key(), len(accepted), len(busy),
        )
        return accepted
