"""Appointment model definitions."""

import uuid

from sqlalchemy import Column, Date, DateTime, Index, Integer, String, func
from dental_backend.database import Base


SCHEDULED_STATUS = "Programada"
CONFIRMED_STATUS = "Confirmada"
COMPLETED_STATUS = "Completada"
CANCELLED_STATUS = "Cancelada"
APPOINTMENT_STATUSES = (SCHEDULED_STATUS, CONFIRMED_STATUS, COMPLETED_STATUS, CANCELLED_STATUS)


def _new_appointment_id() -> str:
    return str(uuid.uuid4())


class Appointment(Base):
    """Represents a booked appointment for a doctor within one organization."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_org_doctor_date", "organization_id", "doctor_id", "date"),
        Index("idx_appointments_date_start", "date", "start_time"),
    )

    id = Column(String, primary_key=True, default=_new_appointment_id)
    organization_id = Column(String, nullable=False, index=True)
    patient_id = Column(String, nullable=False)
    doctor_id = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)  # HH:MM
    type = Column(String, nullable=False)
    status = Column(String, nullable=False, default=SCHEDULED_STATUS)
    reason = Column(String)
    notes = Column(String)
    duration = Column(Integer)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
