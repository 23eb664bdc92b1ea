from datetime import time

from dental_backend.scheduling.free_slots import align_to_increment, iter_free_slots
from dental_backend.scheduling.timeslots import TimeSlot


def _labels(slots) -> list[tuple[str, str]]:
    return [(slot.start_label, slot.end_label) for slot in slots]


def test_align_to_increment_rounds_up_to_next_interval() -> None:
    assert align_to_increment(time(9, 2), 15) == 9 * 60 + 15
    assert align_to_increment(time(9, 0), 15) == 9 * 60


def test_iter_free_slots_fills_an_empty_morning() -> None:
    slots = iter_free_slots([], duration_minutes=30, opening=time(9, 0), closing=time(10, 30), increment_minutes=30)

    assert _labels(slots) == [('09:00', '09:30'), ('09:30', '10:00'), ('10:00', '10:30')]


def test_iter_free_slots_skips_busy_intervals_but_allows_back_to_back() -> None:
    busy = [TimeSlot.from_strings('09:15', '09:45')]

    slots = iter_free_slots(busy, duration_minutes=15, opening=time(9, 0), closing=time(10, 0), increment_minutes=15)

    assert _labels(slots) == [('09:00', '09:15'), ('09:45', '10:00')]


def test_iter_free_slots_needs_room_for_the_whole_duration() -> None:
    busy = [TimeSlot.from_strings('10:00', '10:30')]

    slots = iter_free_slots(busy, duration_minutes=60, opening=time(9, 0), closing=time(11, 30), increment_minutes=30)

    assert _labels(slots) == [('09:00', '10:00'), ('10:30', '11:30')]


def test_iter_free_slots_aligns_odd_opening_time() -> None:
    slots = iter_free_slots([], duration_minutes=15, opening=time(8, 50), closing=time(9, 30), increment_minutes=15)

    assert _labels(slots) == [('09:00', '09:15'), ('09:15', '09:30')]


def test_iter_free_slots_returns_nothing_for_non_positive_durations() -> None:
    assert list(iter_free_slots([], duration_minutes=0, opening=time(9, 0), closing=time(10, 0), increment_minutes=15)) == []
