"""Double-booking detection for a doctor's day.

A candidate slot ``[cs, ce)`` conflicts with an existing appointment
``[es, ee)`` when::

    (es <= cs and ee > cs) or (es < ce and ee >= ce) or (es >= cs and ee <= ce)

i.e. the candidate starts inside the existing one, ends inside it, or
contains it. For non-empty intervals those three cases reduce to the
half-open test ``es < ce and cs < ee``, which is what ``slots_overlap``
evaluates. An appointment ending exactly when the candidate starts (or
starting exactly when it ends) is not a conflict.
"""

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Iterable, Protocol, Sequence

from dental_backend.models.appointment import CANCELLED_STATUS
from dental_backend.repositories.queries import AppointmentQuery
from dental_backend.scheduling.timeslots import InvalidTimeError, TimeSlot, parse_clock_time

logger = logging.getLogger(__name__)


class BookedSlot(Protocol):
    id: str
    start_time: str
    end_time: str
    status: str | None


class AppointmentReader(Protocol):
    def find_for_slot(self, query: AppointmentQuery) -> Sequence[BookedSlot]:
        ...


@dataclass(frozen=True)
class ConflictResult:
    has_conflict: bool
    conflicting_appointment_id: str | None = None

    @classmethod
    def ok(cls) -> 'ConflictResult':
        return cls(has_conflict=False)

    @classmethod
    def conflict(cls, appointment_id: str) -> 'ConflictResult':
        return cls(has_conflict=True, conflicting_appointment_id=appointment_id)

    def __bool__(self) -> bool:
        return self.has_conflict


def slots_overlap(candidate: TimeSlot, existing_start: time, existing_end: time) -> bool:
    return existing_start < candidate.end and candidate.start < existing_end


def status_blocks(status: str | None, ignore_cancelled: bool = False) -> bool:
    return not (ignore_cancelled and status == CANCELLED_STATUS)


def is_blocking(appointment: BookedSlot, ignore_cancelled: bool = False) -> bool:
    return status_blocks(appointment.status, ignore_cancelled)


def find_conflict(
    candidate: TimeSlot,
    existing: Iterable[BookedSlot],
    exclude_id: str | None = None,
    ignore_cancelled: bool = False,
) -> BookedSlot | None:
    """Return the first existing appointment that overlaps ``candidate``, if any."""
    for appointment in existing:
        if exclude_id is not None and appointment.id == exclude_id:
            continue
        if not is_blocking(appointment, ignore_cancelled):
            continue

        try:
            existing_start = parse_clock_time(appointment.start_time)
            existing_end = parse_clock_time(appointment.end_time)
        except InvalidTimeError:
            # Unreadable stored times block the whole day for this doctor.
            logger.warning(
                'Appointment %s has unreadable times %r-%r; treating it as a conflict',
                appointment.id,
                appointment.start_time,
                appointment.end_time,
            )
            return appointment

        if slots_overlap(candidate, existing_start, existing_end):
            return appointment

    return None


class SlotConflictChecker:
    """Decides whether a doctor can take a candidate slot on a given day.

    The checker only reads. Callers that go on to persist the appointment
    must hold the repository's booking lock across the check and the commit.
    """

    def __init__(self, reader: AppointmentReader, ignore_cancelled: bool = False):
        self.reader = reader
        self.ignore_cancelled = ignore_cancelled

    def check_conflict(
        self,
        organization_id: str,
        doctor_id: str,
        appointment_date: date,
        start_time: str | time,
        end_time: str | time,
        exclude_appointment_id: str | None = None,
    ) -> ConflictResult:
        candidate = TimeSlot.from_strings(start_time, end_time)
        query = AppointmentQuery(
            organization_id=organization_id,
            doctor_id=doctor_id,
            date=appointment_date,
            exclude_id=exclude_appointment_id,
        )
        existing = self.reader.find_for_slot(query)

        conflicting = find_conflict(
            candidate,
            existing,
            exclude_id=exclude_appointment_id,
            ignore_cancelled=self.ignore_cancelled,
        )
        if conflicting is None:
            return ConflictResult.ok()

        logger.debug(
            'Slot %s-%s on %s for doctor %s overlaps appointment %s',
            candidate.start_label,
            candidate.end_label,
            appointment_date.isoformat(),
            doctor_id,
            conflicting.id,
        )
        return ConflictResult.conflict(conflicting.id)
