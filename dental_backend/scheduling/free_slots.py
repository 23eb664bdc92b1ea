from datetime import time
from typing import Iterable, Iterator

from dental_backend.scheduling.conflicts import slots_overlap
from dental_backend.scheduling.timeslots import TimeSlot, minutes_since_midnight

MINUTES_PER_DAY = 24 * 60


def _time_from_minutes(total_minutes: int) -> time:
    return time(total_minutes // 60, total_minutes % 60)


def align_to_increment(value: time, increment_minutes: int) -> int:
    minutes = minutes_since_midnight(value)
    remainder = minutes % increment_minutes
    if remainder:
        minutes += increment_minutes - remainder
    return minutes


def iter_free_slots(
    busy_slots: Iterable[TimeSlot],
    duration_minutes: int,
    opening: time,
    closing: time,
    increment_minutes: int,
) -> Iterator[TimeSlot]:
    """Yield bookable slots of ``duration_minutes`` between opening and closing.

    Candidate starts are aligned to ``increment_minutes``; a candidate is
    free when it overlaps none of ``busy_slots``.
    """
    if duration_minutes <= 0 or increment_minutes <= 0:
        return

    busy = sorted(busy_slots, key=lambda slot: slot.start)
    current = align_to_increment(opening, increment_minutes)
    latest_end = minutes_since_midnight(closing)

    while current + duration_minutes <= min(latest_end, MINUTES_PER_DAY - 1):
        candidate = TimeSlot(_time_from_minutes(current), _time_from_minutes(current + duration_minutes))
        if not any(slots_overlap(candidate, slot.start, slot.end) for slot in busy):
            yield candidate
        current += increment_minutes
