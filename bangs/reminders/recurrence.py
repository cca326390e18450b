"""
Recurrence patterns and next-due arithmetic
"""
import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union

from bangs.utils.timezone import to_utc_aware
from .exceptions import InvalidFrequencyError, InvalidScheduleError


class ReminderKind(str, Enum):
    """Values of the reminder_type column"""
    ONCE = "once"
    RECURRING = "recurring"


class Frequency(str, Enum):
    """Values of the frequency column"""
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, value) -> "Frequency":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidFrequencyError(value)


@dataclass(frozen=True)
class Once:
    """Fires a single time, then completes."""
    kind = ReminderKind.ONCE


@dataclass(frozen=True)
class Recurring:
    """Fires on every occurrence of ``frequency``, anchored to the previous due time."""
    frequency: Frequency
    kind = ReminderKind.RECURRING


Schedule = Union[Once, Recurring]


def parse_schedule(reminder_type, frequency: Optional[str]) -> Schedule:
    """Map the nullable reminder_type/frequency columns onto a schedule variant.

    A once reminder ignores whatever frequency is stored alongside it.
    """
    try:
        kind = ReminderKind(reminder_type)
    except ValueError:
        raise InvalidScheduleError(f"Unknown reminder_type: {reminder_type!r}")
    if kind == ReminderKind.ONCE:
        return Once()
    if frequency is None:
        raise InvalidFrequencyError(frequency)
    return Recurring(frequency=Frequency.parse(frequency))


def _add_one_month(ts: datetime) -> datetime:
    year, month = (ts.year + 1, 1) if ts.month == 12 else (ts.year, ts.month + 1)
    last_day = calendar.monthrange(year, month)[1]
    return ts.replace(year=year, month=month, day=min(ts.day, last_day))


_FIXED_STEPS = {
    Frequency.DAILY: timedelta(hours=24),
    Frequency.WEEKLY: timedelta(days=7),
    Frequency.BIWEEKLY: timedelta(days=14),
}


class RecurrenceCalculator:
    """Calculates the next due timestamp for a recurring reminder"""

    @staticmethod
    def compute_next(frequency, from_timestamp: datetime) -> datetime:
        """Next due time after ``from_timestamp``.

        ``from_timestamp`` is the reminder's previous ``next_due`` (the
        recurrence anchor), never the time the sweep happened to run. Naive
        values are taken as UTC and the result is always UTC-aware.
        """
        freq = Frequency.parse(frequency)
        anchor = to_utc_aware(from_timestamp)
        if freq == Frequency.MONTHLY:
            return _add_one_month(anchor)
        return anchor + _FIXED_STEPS[freq]

    @classmethod
    def next_for(cls, schedule: Schedule, previous_due: datetime) -> Optional[datetime]:
        """Next due time for a schedule variant; ``None`` once a one-shot has fired."""
        if isinstance(schedule, Recurring):
            return cls.compute_next(schedule.frequency, previous_due)
        return None
