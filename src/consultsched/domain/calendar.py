"""Business calendar rules for slot generation.

This module decides which hours of which days can hold work. The default
calendar follows the Italian public holiday table: fixed-date holidays,
Easter Sunday and Easter Monday, and optionally the "prefestivi" (the
working days right before a holiday, treated as non-working).

Calendars are kept separate from schedules so that tests and alternative
deployments can swap the rules without touching the allocation code.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Iterator, Union

from dateutil.easter import easter

SLOT_INTERVAL = timedelta(hours=1)

# (month, day) pairs
FIXED_HOLIDAYS = (
    (1, 1),  # Capodanno
    (1, 6),  # Epifania
    (4, 25),  # Liberazione
    (5, 1),  # Festa del lavoro
    (6, 2),  # Festa della Repubblica
    (8, 15),  # Ferragosto
    (11, 1),  # Ognissanti
    (12, 8),  # Immacolata
    (12, 25),  # Natale
    (12, 26),  # Santo Stefano
)

PREFESTIVI = (
    (1, 5),
    (4, 24),
    (4, 30),
    (6, 1),
    (8, 14),
    (10, 31),
    (12, 7),
    (12, 24),
    (12, 31),
)

DateLike = Union[date, datetime]


def as_start(value: DateLike) -> datetime:
    """Convert a lower bound to a datetime (a date means its midnight)."""
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def as_end(value: DateLike) -> datetime:
    """Convert an upper bound to an exclusive datetime.

    A date is an inclusive last day, so it becomes midnight of the
    following day. A datetime is taken as-is.
    """
    if isinstance(value, datetime):
        return value
    return datetime.combine(value + timedelta(days=1), time.min)


def floor_to_slot(moment: datetime) -> datetime:
    """Truncate to the beginning of the current hour."""
    return moment.replace(minute=0, second=0, microsecond=0)


def ceil_to_slot(moment: datetime) -> datetime:
    """Round up to the next exact hour; o'clock times are left untouched."""
    floored = floor_to_slot(moment)
    if floored == moment:
        return moment
    return floored + SLOT_INTERVAL


class BusinessCalendar(ABC):
    """Abstract base class for business day and business hour rules."""

    @abstractmethod
    def is_holiday(self, day: date) -> bool:
        """Check if a day is a non-working holiday."""
        pass

    @abstractmethod
    def business_hours(self, day: date) -> range:
        """Get the hours (of the day) at which a one-hour slot may start."""
        pass

    def is_weekend(self, day: date) -> bool:
        return day.weekday() >= 5

    def is_business_day(self, day: date) -> bool:
        return not self.is_weekend(day) and not self.is_holiday(day)

    def iter_slot_starts(self, from_: datetime, to: datetime) -> Iterator[datetime]:
        """Yield the start of every business hour slot within [from_, to).

        A slot is emitted only when it fits entirely inside the range, so
        a range starting at 09:30 begins with the 10:00 slot and a range
        ending at 12:20 ends with the 11:00 slot.

        Args:
            from_: Inclusive lower bound.
            to: Exclusive upper bound.
        """
        day = from_.date()
        while datetime.combine(day, time.min) < to:
            if self.is_business_day(day):
                for hour in self.business_hours(day):
                    start = datetime.combine(day, time(hour))
                    if start < from_:
                        continue
                    if start + SLOT_INTERVAL > to:
                        break
                    yield start
            day += timedelta(days=1)

    def closest_business_day(self, after_or_at: date) -> date:
        """Get the first business day on or after the given day."""
        day = after_or_at
        while not self.is_business_day(day):
            day += timedelta(days=1)
        return day


@dataclass
class ItalianBusinessCalendar(BusinessCalendar):
    """Italian business calendar.

    Business hours run from 08:00 to 18:00 (ten one-hour slots, the upper
    bound excluded). Holidays are the national fixed-date holidays plus
    Easter Sunday and Easter Monday. When ``include_prefestivi`` is set
    the days before the main holidays, and Holy Saturday, are treated as
    holidays too.

    Attributes:
        day_start_hour: First hour of the working day.
        day_end_hour: Hour at which the working day ends (exclusive).
        include_prefestivi: Treat "day-before-holiday" dates as holidays.
    """

    day_start_hour: int = 8
    day_end_hour: int = 18
    include_prefestivi: bool = True
    _holiday_cache: dict[int, frozenset[date]] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        if not 0 <= self.day_start_hour < self.day_end_hour <= 24:
            raise ValueError(
                f"Invalid business hours: {self.day_start_hour}-{self.day_end_hour}"
            )

    def holidays(self, year: int) -> frozenset[date]:
        """Get every holiday of the given year."""
        if year not in self._holiday_cache:
            easter_sunday = easter(year)
            days = {date(year, month, day) for month, day in FIXED_HOLIDAYS}
            days.add(easter_sunday)
            days.add(easter_sunday + timedelta(days=1))
            if self.include_prefestivi:
                days.update(date(year, month, day) for month, day in PREFESTIVI)
                days.add(easter_sunday - timedelta(days=1))
            self._holiday_cache[year] = frozenset(days)
        return self._holiday_cache[year]

    def is_holiday(self, day: date) -> bool:
        return day in self.holidays(day.year)

    def business_hours(self, day: date) -> range:
        return range(self.day_start_hour, self.day_end_hour)
