import hashlib
from contextlib import contextmanager
from datetime import date
from threading import Lock
from typing import Iterator

from sqlalchemy import text
from sqlalchemy.orm import Session

from dental_backend.models.appointment import Appointment
from dental_backend.models.patient import Patient
from dental_backend.models.user import User
from dental_backend.repositories.queries import AppointmentQuery

_booking_locks_guard = Lock()
# (organization, doctor, date) -> [lock, threads holding or waiting on it]
_booking_locks: dict[tuple[str, str, date], list] = {}


def booking_lock_key(organization_id: str, doctor_id: str, appointment_date: date) -> int:
    """Stable signed 64-bit key for ``pg_advisory_xact_lock``."""
    raw = f'{organization_id}:{doctor_id}:{appointment_date.isoformat()}'.encode('utf-8')
    digest = hashlib.blake2b(raw, digest_size=8).digest()
    return int.from_bytes(digest, 'big', signed=True)


@contextmanager
def _local_booking_lock(organization_id: str, doctor_id: str, appointment_date: date) -> Iterator[None]:
    key = (organization_id, doctor_id, appointment_date)
    with _booking_locks_guard:
        entry = _booking_locks.get(key)
        if entry is None:
            entry = _booking_locks[key] = [Lock(), 0]
        entry[1] += 1

    try:
        with entry[0]:
            yield
    finally:
        with _booking_locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                del _booking_locks[key]


class AppointmentRepository:
    def __init__(self, db: Session):
        self.db = db

    def find_for_slot(self, query: AppointmentQuery) -> list[Appointment]:
        statement = self.db.query(Appointment).filter(
            Appointment.organization_id == query.organization_id,
            Appointment.doctor_id == query.doctor_id,
            Appointment.date == query.date,
        )
        if query.exclude_id is not None:
            statement = statement.filter(Appointment.id != query.exclude_id)
        return statement.order_by(Appointment.start_time.asc()).all()

    def list(self, query: AppointmentQuery) -> list[Appointment]:
        statement = self.db.query(Appointment).filter(Appointment.organization_id == query.organization_id)

        if query.doctor_id is not None:
            statement = statement.filter(Appointment.doctor_id == query.doctor_id)
        if query.patient_id is not None:
            statement = statement.filter(Appointment.patient_id == query.patient_id)
        if query.date is not None:
            statement = statement.filter(Appointment.date == query.date)
        if query.start_date is not None:
            statement = statement.filter(Appointment.date >= query.start_date)
        if query.end_date is not None:
            statement = statement.filter(Appointment.date <= query.end_date)
        if query.status is not None:
            statement = statement.filter(Appointment.status == query.status)
        if query.exclude_id is not None:
            statement = statement.filter(Appointment.id != query.exclude_id)

        statement = statement.order_by(Appointment.date.asc(), Appointment.start_time.asc())
        if query.limit is not None:
            statement = statement.limit(query.limit)
        return statement.all()

    def get(self, organization_id: str, appointment_id: str) -> Appointment | None:
        return self.db.query(Appointment).filter(
            Appointment.organization_id == organization_id,
            Appointment.id == appointment_id,
        ).first()

    def get_patient(self, organization_id: str, patient_id: str) -> Patient | None:
        return self.db.query(Patient).filter(
            Patient.organization_id == organization_id,
            Patient.id == patient_id,
        ).first()

    def get_doctor(self, organization_id: str, doctor_id: str) -> User | None:
        return self.db.query(User).filter(
            User.organization_id == organization_id,
            User.id == doctor_id,
        ).first()

    def get_patients(self, organization_id: str, patient_ids: set[str]) -> dict[str, Patient]:
        if not patient_ids:
            return {}
        patients = self.db.query(Patient).filter(
            Patient.organization_id == organization_id,
            Patient.id.in_(patient_ids),
        ).all()
        return {patient.id: patient for patient in patients}

    def get_doctors(self, organization_id: str, doctor_ids: set[str]) -> dict[str, User]:
        if not doctor_ids:
            return {}
        doctors = self.db.query(User).filter(
            User.organization_id == organization_id,
            User.id.in_(doctor_ids),
        ).all()
        return {doctor.id: doctor for doctor in doctors}

    def add(self, appointment: Appointment) -> Appointment:
        self.db.add(appointment)
        self.db.flush()
        return appointment

    def delete(self, appointment: Appointment) -> None:
        self.db.delete(appointment)

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def refresh(self, appointment: Appointment) -> None:
        self.db.refresh(appointment)

    @contextmanager
    def booking_lock(self, organization_id: str, doctor_id: str, appointment_date: date) -> Iterator[None]:
        """Serialize check-and-write for one doctor's day.

        The caller must commit or roll back inside the ``with`` block. On
        PostgreSQL the advisory lock is transaction scoped and is released by
        that commit/rollback; elsewhere a process-local lock is held until
        the block exits.
        """
        if self.db.get_bind().dialect.name == 'postgresql':
            self.db.execute(
                text('SELECT pg_advisory_xact_lock(:lock_key)'),
                {'lock_key': booking_lock_key(organization_id, doctor_id, appointment_date)},
            )
            yield
            return

        with _local_booking_lock(organization_id, doctor_id, appointment_date):
            yield
