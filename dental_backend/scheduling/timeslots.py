"""Normalization of appointment dates and wall-clock times.

Appointments store their times as zero-padded ``HH:MM`` strings and their
day as a plain calendar date. Everything entering the scheduler passes
through these helpers first so comparisons never depend on string format.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time

CLOCK_TIME_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})(?::(\d{2}))?$')
DAY_FIRST_DATE_PATTERN = re.compile(r'^(\d{1,2})/(\d{1,2})/(\d{4})$')


class InvalidTimeError(ValueError):
    """Raised when a date or time value cannot be normalized."""


def parse_clock_time(value: str | time) -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)

    if not isinstance(value, str):
        raise InvalidTimeError(f'Hora inválida: {value!r}')

    match = CLOCK_TIME_PATTERN.match(value.strip())
    if not match:
        raise InvalidTimeError(f'Hora inválida: {value!r}')

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise InvalidTimeError(f'Hora inválida: {value!r}')

    return time(hour, minute)


def format_clock_time(value: time) -> str:
    return f'{value.hour:02d}:{value.minute:02d}'


def parse_calendar_date(value: str | date | datetime) -> date:
    # datetime is a subclass of date, check it first
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    if not isinstance(value, str) or not value.strip():
        raise InvalidTimeError(f'Fecha inválida: {value!r}')

    normalized = value.strip()

    day_first = DAY_FIRST_DATE_PATTERN.match(normalized)
    if day_first:
        day, month, year = (int(part) for part in day_first.groups())
        try:
            return date(year, month, day)
        except ValueError as exc:
            raise InvalidTimeError(f'Fecha inválida: {value!r}') from exc

    # ISO datetimes keep their calendar day; no timezone conversion.
    try:
        return date.fromisoformat(normalized[:10])
    except ValueError as exc:
        raise InvalidTimeError(f'Fecha inválida: {value!r}') from exc


def minutes_since_midnight(value: time) -> int:
    return value.hour * 60 + value.minute


@dataclass(frozen=True)
class TimeSlot:
    """Half-open wall-clock interval ``[start, end)`` within one day."""

    start: time
    end: time

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise InvalidTimeError('La hora de inicio debe ser anterior a la hora de fin')

    @classmethod
    def from_strings(cls, start: str | time, end: str | time) -> 'TimeSlot':
        return cls(parse_clock_time(start), parse_clock_time(end))

    @property
    def duration_minutes(self) -> int:
        return minutes_since_midnight(self.end) - minutes_since_midnight(self.start)

    @property
    def start_label(self) -> str:
        return format_clock_time(self.start)

    @property
    def end_label(self) -> str:
        return format_clock_time(self.end)
