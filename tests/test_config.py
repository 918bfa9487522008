"""Tests for business-hours configuration parsing."""

from __future__ import annotations

from datetime import time

import pytest

from receptionist.config import load_business_hours


class TestLoadBusinessHours:
    def test_defaults_shape(self):
        hours = load_business_hours("Europe/Lisbon", "08:30", "17:00", "1,2,3", 45)
        assert hours.open_time == time(8, 30)
        assert hours.close_time == time(17, 0)
        assert hours.open_weekdays == frozenset({1, 2, 3})
        assert hours.slot_duration_minutes == 45

    def test_ignores_blank_day_entries(self):
        hours = load_business_hours(days="1, 2,,5")
        assert hours.open_weekdays == frozenset({1, 2, 5})

    @pytest.mark.parametrize(("start", "end"), [("9", "18:00"), ("09:00", "25:00"), ("nine", "18:00")])
    def test_malformed_clock(self, start, end):
        with pytest.raises(ValueError, match="HH:MM"):
            load_business_hours(start=start, end=end)

    def test_malformed_days(self):
        with pytest.raises(ValueError, match="BUSINESS_DAYS"):
            load_business_hours(days="mon,tue")

    def test_close_before_open(self):
        with pytest.raises(ValueError, match="open_time"):
            load_business_hours(start="18:00", end="09:00")

    def test_weekday_out_of_range(self):
        with pytest.raises(ValueError, match="open_weekdays"):
            load_business_hours(days="0,8")
