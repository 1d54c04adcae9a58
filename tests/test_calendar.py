"""Tests for business calendar rules and slot generation."""

from datetime import date, datetime

import pytest

from consultsched.domain.calendar import (
    ItalianBusinessCalendar,
    ceil_to_slot,
    floor_to_slot,
)
from consultsched.domain.schedule import Schedule


class TestItalianBusinessCalendar:
    """Tests for ItalianBusinessCalendar."""

    @pytest.fixture
    def calendar(self):
        """Create a calendar treating prefestivi as holidays."""
        return ItalianBusinessCalendar()

    def test_fixed_holidays(self, calendar):
        """Test that national fixed-date holidays are recognised."""
        for day in [
            date(2021, 1, 1),
            date(2021, 1, 6),
            date(2021, 4, 25),
            date(2021, 5, 1),
            date(2021, 6, 2),
            date(2021, 8, 15),
            date(2021, 11, 1),
            date(2021, 12, 8),
            date(2021, 12, 25),
            date(2021, 12, 26),
        ]:
            assert calendar.is_holiday(day), day

    def test_easter_holidays(self, calendar):
        """Test Easter Sunday, Easter Monday and Holy Saturday for 2021."""
        assert calendar.is_holiday(date(2021, 4, 4))
        assert calendar.is_holiday(date(2021, 4, 5))
        assert calendar.is_holiday(date(2021, 4, 3))
        assert not calendar.is_holiday(date(2021, 4, 6))

    def test_easter_moves_with_year(self, calendar):
        """Test that Easter Monday is computed per year."""
        assert calendar.is_holiday(date(2022, 4, 18))
        assert not calendar.is_holiday(date(2022, 4, 5))

    def test_prefestivi_toggle(self):
        """Test that the days before holidays are only excluded on request."""
        with_prefestivi = ItalianBusinessCalendar(include_prefestivi=True)
        without_prefestivi = ItalianBusinessCalendar(include_prefestivi=False)

        assert with_prefestivi.is_holiday(date(2021, 12, 24))
        assert not without_prefestivi.is_holiday(date(2021, 12, 24))
        assert not without_prefestivi.is_holiday(date(2021, 4, 3))

    def test_weekend_is_not_business_day(self, calendar):
        """Test that Saturdays and Sundays are never business days."""
        assert not calendar.is_business_day(date(2021, 6, 19))
        assert not calendar.is_business_day(date(2021, 6, 20))
        assert calendar.is_business_day(date(2021, 6, 21))

    def test_closest_business_day(self, calendar):
        """Test skipping weekends and holidays to the next business day."""
        assert calendar.closest_business_day(date(2021, 6, 19)) == date(2021, 6, 21)
        assert calendar.closest_business_day(date(2021, 6, 21)) == date(2021, 6, 21)
        # Christmas eve (prefestivo), then the weekend
        assert calendar.closest_business_day(date(2021, 12, 24)) == date(2021, 12, 27)

    def test_invalid_business_hours(self):
        """Test that inverted business hours are rejected."""
        with pytest.raises(ValueError):
            ItalianBusinessCalendar(day_start_hour=18, day_end_hour=8)

    def test_holiday_table_is_cached(self, calendar):
        """Test that the same holiday set is returned for a year."""
        assert calendar.holidays(2021) is calendar.holidays(2021)


class TestSlotRounding:
    """Tests for ceil/floor to the slot interval."""

    def test_ceil_to_next_hour(self):
        moment = datetime(2021, 7, 4, 9, 12, 34)
        assert ceil_to_slot(moment) == datetime(2021, 7, 4, 10, 0)

    def test_ceil_keeps_oclock(self):
        moment = datetime(2021, 7, 4, 10, 0)
        assert ceil_to_slot(moment) == moment

    def test_floor_to_current_hour(self):
        moment = datetime(2021, 7, 4, 9, 12, 34)
        assert floor_to_slot(moment) == datetime(2021, 7, 4, 9, 0)
        assert floor_to_slot(datetime(2021, 7, 4, 9, 0)) == datetime(2021, 7, 4, 9, 0)


class TestSlotGeneration:
    """Tests for the slots generated by a schedule."""

    def test_friday_before_weekend(self):
        """Test that one business day's slots come before the weekend."""
        schedule = Schedule(date(2021, 6, 18), datetime(2021, 6, 25))

        first_day = schedule.slots[:10]
        assert all(slot.day == date(2021, 6, 18) for slot in first_day)
        assert [slot.start.hour for slot in first_day] == list(range(8, 18))
        assert schedule.slots[10].start == datetime(2021, 6, 21, 8, 0)
        assert len(schedule.slots) == 50

    def test_date_upper_bound_is_inclusive(self):
        """Test that a date passed as 'to' includes that day."""
        schedule = Schedule(date(2021, 6, 18), date(2021, 6, 25))

        assert schedule.to == datetime(2021, 6, 26)
        assert len(schedule.slots) == 60
        assert schedule.slots[-1].day == date(2021, 6, 25)

    def test_slots_are_hour_aligned_and_indexed(self):
        """Test that slot indexes are contiguous and slots last one hour."""
        schedule = Schedule(date(2021, 6, 14), date(2021, 6, 18))

        for expected_index, slot in enumerate(schedule.slots):
            assert slot.index == expected_index
            assert slot.start.minute == 0
            assert (slot.end - slot.start).total_seconds() == 3600
            assert slot.end.date() == slot.start.date()

    def test_holidays_excluded(self):
        """Test the Christmas period with and without prefestivi."""
        with_prefestivi = Schedule(date(2021, 12, 20), date(2021, 12, 31))
        without_prefestivi = Schedule(
            date(2021, 12, 20),
            date(2021, 12, 31),
            calendar=ItalianBusinessCalendar(include_prefestivi=False),
        )

        assert len(with_prefestivi.slots) == 80
        assert len(without_prefestivi.slots) == 100
        assert date(2021, 12, 24) not in {slot.day for slot in with_prefestivi.slots}

    def test_partial_hours_are_trimmed(self):
        """Test that bounds inside an hour only keep whole slots."""
        schedule = Schedule(datetime(2021, 7, 12, 9, 30), datetime(2021, 7, 14, 12, 20))

        assert schedule.slots[0].start == datetime(2021, 7, 12, 10, 0)
        assert schedule.slots[-1].end == datetime(2021, 7, 14, 12, 0)
        assert len(schedule.slots) == 22

    def test_generation_is_deterministic(self):
        """Test that the same bounds always give the same slots."""
        first = Schedule(date(2021, 6, 1), date(2021, 6, 30))
        second = Schedule(date(2021, 6, 1), date(2021, 6, 30))

        assert [s.start for s in first.slots] == [s.start for s in second.slots]
