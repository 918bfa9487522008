"""Shared test fixtures for the receptionist test suite."""

from __future__ import annotations

import os
from datetime import UTC, datetime, time
from zoneinfo import ZoneInfo

import pytest

from receptionist.errors import CalendarAPIError, ExternalServiceError
from receptionist.models import BusinessHoursConfig

NEW_YORK = ZoneInfo("America/New_York")
# Monday 4 March 2030, 08:00 in New York (before the DST switch on 10 March)
NOW = datetime(2030, 3, 4, 8, 0, tzinfo=NEW_YORK)


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("DATABASE_URL", "sqlite://")
    os.environ["METRICS_ENABLED"] = "false"


class FakeCalendar:
    """In-memory ``CalendarBackend`` that records every call."""

    def __init__(self, busy=None):
        self.busy = list(busy or [])
        self.free_busy_checks = []
        self.range_queries = []
        self.created = []
        self.fail_checks = False
        self.fail_create = False
        self.fail_listing = False

    def check_free_busy(self, window):
        self.free_busy_checks.append(window)
        if self.fail_checks:
            raise CalendarAPIError("free/busy unavailable", status_code=503)
        return any(window.overlaps(b) for b in self.busy)

    def list_free_busy(self, range_start, range_end):
        self.range_queries.append((range_start, range_end))
        if self.fail_listing:
            raise CalendarAPIError("free/busy unavailable", status_code=503)
        return sorted(
            (b for b in self.busy if b.end > range_start and b.start < range_end),
            key=lambda b: b.start,
        )

    def create_event(self, window, summary, description):
        from receptionist.services.google_calendar import CreatedEvent

        if self.fail_create:
            raise CalendarAPIError("insert failed", status_code=500)
        self.created.append((window, summary, description))
        self.busy.append(window)
        return CreatedEvent(event_id=f"evt-{len(self.created)}")

    @property
    def call_count(self):
        return len(self.free_busy_checks) + len(self.range_queries) + len(self.created)


class FakeStore:
    """In-memory ``CallStore``."""

    def __init__(self):
        self.call_logs = {}
        self.appointments = {}
        self.businesses = {}
        self.fail_writes = False

    def _check(self):
        if self.fail_writes:
            raise ExternalServiceError("database is down", service="database")

    def create_call_log(self, *, tool_call_id, **fields):
        self._check()
        call_log_id = f"log-{len(self.call_logs) + 1}"
        self.call_logs[call_log_id] = {"tool_call_id": tool_call_id, "status": "pending", **fields}
        return call_log_id

    def update_call_log(self, call_log_id, *, status, booked_window=None, reason=None):
        self._check()
        self.call_logs[call_log_id].update(
            status=str(status), booked_window=booked_window, reason=reason,
        )

    def create_appointment(self, *, name, window, **fields):
        self._check()
        appointment_id = f"appt-{len(self.appointments) + 1}"
        self.appointments[appointment_id] = {"name": name, "window": window, **fields}
        return appointment_id

    def find_business_by_phone(self, phone_number):
        return self.businesses.get(phone_number)


@pytest.fixture
def hours():
    return BusinessHoursConfig(
        timezone="America/New_York",
        open_time=time(9, 0),
        close_time=time(18, 0),
        open_weekdays=frozenset({1, 2, 3, 4, 5}),
        slot_duration_minutes=30,
    )


@pytest.fixture
def calendar():
    return FakeCalendar()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def clock():
    return lambda: NOW.astimezone(UTC)


@pytest.fixture
def resolver(hours, calendar):
    from receptionist.scheduling.availability import AvailabilityResolver

    return AvailabilityResolver(hours, calendar)


@pytest.fixture
def coordinator(resolver, calendar, store, clock):
    from receptionist.scheduling.alternatives import AlternativeSlotSearch
    from receptionist.scheduling.booking import BookingCoordinator

    return BookingCoordinator(
        resolver,
        AlternativeSlotSearch(resolver, calendar),
        calendar,
        store,
        clock=clock,
        calendar_id="primary",
    )


@pytest.fixture
def ny():
    """Factory for New York wall-clock datetimes."""

    def _make(year, month, day, hour=0, minute=0):
        return datetime(year, month, day, hour, minute, tzinfo=NEW_YORK)

    return _make
