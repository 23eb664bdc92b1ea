import logging
from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dental_backend.auth.dependencies import get_current_user
from dental_backend.core import config
from dental_backend.database import get_db
from dental_backend.models.appointment import (
    APPOINTMENT_STATUSES,
    CANCELLED_STATUS,
    SCHEDULED_STATUS,
    Appointment,
)
from dental_backend.models.patient import Patient
from dental_backend.models.user import User
from dental_backend.repositories.appointment_repository import AppointmentRepository
from dental_backend.repositories.queries import AppointmentQuery
from dental_backend.scheduling.conflicts import SlotConflictChecker, is_blocking, status_blocks
from dental_backend.scheduling.free_slots import iter_free_slots
from dental_backend.scheduling.timeslots import (
    InvalidTimeError,
    TimeSlot,
    format_clock_time,
    parse_calendar_date,
    parse_clock_time,
)

router = APIRouter(tags=['appointments'])

logger = logging.getLogger(__name__)

MISSING_FIELDS_DETAIL = 'Faltan campos requeridos'
CONFLICT_DETAIL = 'Ya existe una cita en este horario para el doctor seleccionado'
NOT_FOUND_DETAIL = 'Cita no encontrada'
PATIENT_NOT_FOUND_DETAIL = 'Paciente no encontrado'
DOCTOR_NOT_FOUND_DETAIL = 'Doctor no encontrado'
DATE_AND_DOCTOR_REQUIRED_DETAIL = 'Fecha y doctor son requeridos'
INVALID_STATUS_DETAIL = 'Estado de cita inválido'
INTERNAL_ERROR_DETAIL = 'Error interno del servidor'
DELETED_MESSAGE = 'Cita eliminada exitosamente'
UNNAMED_DOCTOR = 'Doctor sin nombre'
DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 500


def _require_text(value: str | None) -> str:
    if value is None:
        raise ValueError(MISSING_FIELDS_DETAIL)
    normalized = str(value).strip()
    if not normalized:
        raise ValueError(MISSING_FIELDS_DETAIL)
    return normalized


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = str(value).strip()
    return normalized or None


def _normalize_clock(value):
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError(MISSING_FIELDS_DETAIL)
    return format_clock_time(parse_clock_time(value))


def _normalize_date(value):
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError(MISSING_FIELDS_DETAIL)
    return parse_calendar_date(value)


def _validate_status(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if not normalized:
        return None
    if normalized not in APPOINTMENT_STATUSES:
        raise ValueError(INVALID_STATUS_DETAIL)
    return normalized


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class CreateAppointmentRequest(CamelModel):
    patient_id: str
    doctor_id: str
    appointment_date: date = Field(alias='date')
    start_time: str
    end_time: str
    type: str
    reason: str | None = None
    notes: str | None = None
    status: str | None = None
    duration: int | None = Field(default=None, gt=0)

    @field_validator('patient_id', 'doctor_id', 'type', mode='before')
    @classmethod
    def validate_required_text(cls, value):
        return _require_text(value)

    @field_validator('appointment_date', mode='before')
    @classmethod
    def validate_date(cls, value):
        return _normalize_date(value)

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def validate_clock_time(cls, value):
        return _normalize_clock(value)

    @field_validator('reason', 'notes')
    @classmethod
    def validate_optional_text(cls, value: str | None) -> str | None:
        return _optional_text(value)

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str | None) -> str | None:
        return _validate_status(value)

    @model_validator(mode='after')
    def validate_time_order(self):
        TimeSlot.from_strings(self.start_time, self.end_time)
        return self


class UpdateAppointmentRequest(CamelModel):
    patient_id: str | None = None
    doctor_id: str | None = None
    appointment_date: date | None = Field(default=None, alias='date')
    start_time: str | None = None
    end_time: str | None = None
    type: str | None = None
    reason: str | None = None
    notes: str | None = None
    status: str | None = None
    duration: int | None = Field(default=None, gt=0)

    @field_validator('patient_id', 'doctor_id', 'type', mode='before')
    @classmethod
    def validate_present_text(cls, value):
        if value is None:
            return None
        return _require_text(value)

    @field_validator('appointment_date', mode='before')
    @classmethod
    def validate_date(cls, value):
        if value is None:
            return None
        return _normalize_date(value)

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def validate_clock_time(cls, value):
        if value is None:
            return None
        return _normalize_clock(value)

    @field_validator('reason', 'notes')
    @classmethod
    def validate_optional_text(cls, value: str | None) -> str | None:
        return _optional_text(value)

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str | None) -> str | None:
        return _validate_status(value)


class AppointmentPatientResponse(CamelModel):
    id: str
    first_name: str
    last_name: str
    phone: str | None = None
    email: str | None = None


class AppointmentDoctorResponse(CamelModel):
    id: str
    name: str | None = None
    especialidad: str | None = None


class AppointmentResponse(CamelModel):
    id: str
    patient_id: str
    doctor_id: str
    patient_name: str
    doctor_name: str
    appointment_date: date = Field(alias='date')
    start_time: str
    end_time: str
    type: str
    reason: str | None = None
    status: str
    notes: str | None = None
    duration: int | None = None
    patient: AppointmentPatientResponse | None = None
    doctor: AppointmentDoctorResponse | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class OccupiedSlotResponse(CamelModel):
    id: str
    start_time: str
    end_time: str
    patient_name: str
    type: str
    status: str


class FreeSlotResponse(CamelModel):
    start_time: str
    end_time: str
    duration_minutes: int


class DeleteAppointmentResponse(BaseModel):
    message: str


def get_conflict_checker(repository: AppointmentRepository) -> SlotConflictChecker:
    return SlotConflictChecker(repository, ignore_cancelled=config.CONFLICT_IGNORE_CANCELLED)


def database_error(db: Session, action: str) -> HTTPException:
    db.rollback()
    logger.exception('Database error while %s', action)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=INTERNAL_ERROR_DETAIL,
    )


def parse_query_date(value: str | None) -> date | None:
    if value is None or not value.strip():
        return None
    try:
        return parse_calendar_date(value)
    except InvalidTimeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def format_appointment(
    appointment: Appointment,
    patient: Patient | None,
    doctor: User | None,
) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        patient_id=appointment.patient_id,
        doctor_id=appointment.doctor_id,
        patient_name=patient.full_name if patient else '',
        doctor_name=(doctor.name if doctor else None) or UNNAMED_DOCTOR,
        appointment_date=appointment.date,
        start_time=appointment.start_time,
        end_time=appointment.end_time,
        type=appointment.type,
        reason=appointment.reason,
        status=appointment.status or SCHEDULED_STATUS,
        notes=appointment.notes,
        duration=appointment.duration,
        patient=AppointmentPatientResponse.model_validate(patient) if patient else None,
        doctor=AppointmentDoctorResponse.model_validate(doctor) if doctor else None,
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
    )


def format_appointments(
    appointments: list[Appointment],
    repository: AppointmentRepository,
    organization_id: str,
) -> list[AppointmentResponse]:
    patients = repository.get_patients(organization_id, {appointment.patient_id for appointment in appointments})
    doctors = repository.get_doctors(organization_id, {appointment.doctor_id for appointment in appointments})
    return [
        format_appointment(appointment, patients.get(appointment.patient_id), doctors.get(appointment.doctor_id))
        for appointment in appointments
    ]


def blocking_appointments_for_day(
    repository: AppointmentRepository,
    organization_id: str,
    doctor_id: str,
    appointment_date: date,
) -> list[Appointment]:
    appointments = repository.find_for_slot(
        AppointmentQuery(organization_id=organization_id, doctor_id=doctor_id, date=appointment_date)
    )
    return [
        appointment
        for appointment in appointments
        if is_blocking(appointment, ignore_cancelled=config.CONFLICT_IGNORE_CANCELLED)
    ]


def reject_conflict(
    repository: AppointmentRepository,
    organization_id: str,
    doctor_id: str,
    appointment_date: date,
    slot: TimeSlot,
    exclude_appointment_id: str | None = None,
) -> None:
    result = get_conflict_checker(repository).check_conflict(
        organization_id,
        doctor_id,
        appointment_date,
        slot.start,
        slot.end,
        exclude_appointment_id=exclude_appointment_id,
    )
    if not result:
        return

    # Releases the advisory lock before the request fails.
    repository.rollback()
    logger.warning(
        'Rejected %s-%s on %s for doctor %s: overlaps appointment %s',
        slot.start_label,
        slot.end_label,
        appointment_date.isoformat(),
        doctor_id,
        result.conflicting_appointment_id,
    )
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=CONFLICT_DETAIL)


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_appointments(
    start_date: str | None = Query(default=None, alias='startDate'),
    end_date: str | None = Query(default=None, alias='endDate'),
    appointment_date: str | None = Query(default=None, alias='date'),
    doctor_id: str | None = Query(default=None, alias='doctorId'),
    patient_id: str | None = Query(default=None, alias='patientId'),
    appointment_status: str | None = Query(default=None, alias='status'),
    limit: int = Query(default=DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = AppointmentQuery(
        organization_id=current_user.organization_id,
        doctor_id=_optional_text(doctor_id),
        patient_id=_optional_text(patient_id),
        date=parse_query_date(appointment_date),
        start_date=parse_query_date(start_date),
        end_date=parse_query_date(end_date),
        status=_optional_text(appointment_status),
        limit=limit,
    )
    repository = AppointmentRepository(db)

    try:
        appointments = repository.list(query)
        return format_appointments(appointments, repository, current_user.organization_id)
    except SQLAlchemyError as exc:
        raise database_error(db, 'listing appointments') from exc


@router.get('/appointments/availability', response_model=list[OccupiedSlotResponse])
def list_occupied_slots(
    appointment_date: str | None = Query(default=None, alias='date'),
    doctor_id: str | None = Query(default=None, alias='doctorId'),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    parsed_date = parse_query_date(appointment_date)
    doctor_id = _optional_text(doctor_id)
    if parsed_date is None or doctor_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=DATE_AND_DOCTOR_REQUIRED_DETAIL)

    repository = AppointmentRepository(db)

    try:
        appointments = blocking_appointments_for_day(
            repository, current_user.organization_id, doctor_id, parsed_date
        )
        patients = repository.get_patients(
            current_user.organization_id, {appointment.patient_id for appointment in appointments}
        )
        return [
            OccupiedSlotResponse(
                id=appointment.id,
                start_time=appointment.start_time,
                end_time=appointment.end_time,
                patient_name=patients[appointment.patient_id].full_name if appointment.patient_id in patients else '',
                type=appointment.type,
                status=appointment.status or SCHEDULED_STATUS,
            )
            for appointment in appointments
        ]
    except SQLAlchemyError as exc:
        raise database_error(db, 'loading occupied slots') from exc


@router.get('/appointments/free-slots', response_model=list[FreeSlotResponse])
def list_free_slots(
    appointment_date: str | None = Query(default=None, alias='date'),
    doctor_id: str | None = Query(default=None, alias='doctorId'),
    duration: int | None = Query(default=None, ge=5, le=480),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    parsed_date = parse_query_date(appointment_date)
    doctor_id = _optional_text(doctor_id)
    if parsed_date is None or doctor_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=DATE_AND_DOCTOR_REQUIRED_DETAIL)

    duration_minutes = duration or config.DEFAULT_APPOINTMENT_DURATION_MINUTES
    repository = AppointmentRepository(db)

    try:
        appointments = blocking_appointments_for_day(
            repository, current_user.organization_id, doctor_id, parsed_date
        )
    except SQLAlchemyError as exc:
        raise database_error(db, 'loading free slots') from exc

    busy_slots = []
    for appointment in appointments:
        try:
            start, end = parse_clock_time(appointment.start_time), parse_clock_time(appointment.end_time)
        except InvalidTimeError:
            logger.warning(
                'Appointment %s has unreadable times %r-%r; reporting no free slots',
                appointment.id,
                appointment.start_time,
                appointment.end_time,
            )
            return []
        if start < end:
            busy_slots.append(TimeSlot(start, end))

    free_slots = iter_free_slots(
        busy_slots,
        duration_minutes=duration_minutes,
        opening=parse_clock_time(config.CLINIC_OPENING_TIME),
        closing=parse_clock_time(config.CLINIC_CLOSING_TIME),
        increment_minutes=config.SLOT_INCREMENT_MINUTES,
    )
    return [
        FreeSlotResponse(
            start_time=slot.start_label,
            end_time=slot.end_label,
            duration_minutes=slot.duration_minutes,
        )
        for slot in free_slots
    ]


@router.get('/appointments/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    repository = AppointmentRepository(db)

    try:
        appointment = repository.get(current_user.organization_id, appointment_id)
        if not appointment:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)

        return format_appointment(
            appointment,
            repository.get_patient(current_user.organization_id, appointment.patient_id),
            repository.get_doctor(current_user.organization_id, appointment.doctor_id),
        )
    except SQLAlchemyError as exc:
        raise database_error(db, 'loading an appointment') from exc


@router.post('/appointments', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    organization_id = current_user.organization_id
    slot = TimeSlot.from_strings(data.start_time, data.end_time)
    new_status = data.status or SCHEDULED_STATUS
    repository = AppointmentRepository(db)

    try:
        patient = repository.get_patient(organization_id, data.patient_id)
        if not patient:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=PATIENT_NOT_FOUND_DETAIL)

        doctor = repository.get_doctor(organization_id, data.doctor_id)
        if not doctor:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=DOCTOR_NOT_FOUND_DETAIL)

        with repository.booking_lock(organization_id, data.doctor_id, data.appointment_date):
            if status_blocks(new_status, config.CONFLICT_IGNORE_CANCELLED):
                reject_conflict(repository, organization_id, data.doctor_id, data.appointment_date, slot)

            appointment = Appointment(
                organization_id=organization_id,
                patient_id=data.patient_id,
                doctor_id=data.doctor_id,
                date=data.appointment_date,
                start_time=slot.start_label,
                end_time=slot.end_label,
                type=data.type,
                reason=data.reason,
                notes=data.notes,
                status=new_status,
                duration=data.duration or slot.duration_minutes,
            )
            repository.add(appointment)
            repository.commit()

        repository.refresh(appointment)
        logger.info(
            'Booked appointment %s for doctor %s on %s %s-%s',
            appointment.id,
            appointment.doctor_id,
            appointment.date.isoformat(),
            appointment.start_time,
            appointment.end_time,
        )
        return format_appointment(appointment, patient, doctor)
    except SQLAlchemyError as exc:
        raise database_error(db, 'creating an appointment') from exc


@router.put('/appointments/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: str,
    data: UpdateAppointmentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    organization_id = current_user.organization_id
    repository = AppointmentRepository(db)

    try:
        appointment = repository.get(organization_id, appointment_id)
        if not appointment:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)

        doctor_id = data.doctor_id or appointment.doctor_id
        appointment_date = data.appointment_date or appointment.date
        start_time = data.start_time or appointment.start_time
        end_time = data.end_time or appointment.end_time
        new_status = data.status or appointment.status

        try:
            slot = TimeSlot.from_strings(start_time, end_time)
        except InvalidTimeError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

        schedule_changed = (
            doctor_id != appointment.doctor_id
            or appointment_date != appointment.date
            or slot.start_label != appointment.start_time
            or slot.end_label != appointment.end_time
        )
        reactivated = (
            config.CONFLICT_IGNORE_CANCELLED
            and appointment.status == CANCELLED_STATUS
            and new_status != CANCELLED_STATUS
        )

        patient = repository.get_patient(organization_id, data.patient_id or appointment.patient_id)
        if data.patient_id and not patient:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=PATIENT_NOT_FOUND_DETAIL)

        doctor = repository.get_doctor(organization_id, doctor_id)
        if data.doctor_id and not doctor:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=DOCTOR_NOT_FOUND_DETAIL)

        with repository.booking_lock(organization_id, doctor_id, appointment_date):
            if (schedule_changed or reactivated) and status_blocks(new_status, config.CONFLICT_IGNORE_CANCELLED):
                reject_conflict(
                    repository,
                    organization_id,
                    doctor_id,
                    appointment_date,
                    slot,
                    exclude_appointment_id=appointment.id,
                )

            times_changed = slot.start_label != appointment.start_time or slot.end_label != appointment.end_time
            appointment.patient_id = data.patient_id or appointment.patient_id
            appointment.doctor_id = doctor_id
            appointment.date = appointment_date
            appointment.start_time = slot.start_label
            appointment.end_time = slot.end_label
            appointment.type = data.type or appointment.type
            appointment.status = new_status
            if 'reason' in data.model_fields_set:
                appointment.reason = data.reason
            if 'notes' in data.model_fields_set:
                appointment.notes = data.notes
            if data.duration:
                appointment.duration = data.duration
            elif times_changed:
                appointment.duration = slot.duration_minutes
            repository.commit()

        repository.refresh(appointment)
        logger.info('Updated appointment %s', appointment.id)
        return format_appointment(appointment, patient, doctor)
    except SQLAlchemyError as exc:
        raise database_error(db, 'updating an appointment') from exc


@router.delete('/appointments/{appointment_id}', response_model=DeleteAppointmentResponse)
def delete_appointment(
    appointment_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    repository = AppointmentRepository(db)

    try:
        appointment = repository.get(current_user.organization_id, appointment_id)
        if not appointment:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)

        repository.delete(appointment)
        repository.commit()
        logger.info('Deleted appointment %s', appointment_id)

        return DeleteAppointmentResponse(message=DELETED_MESSAGE)
    except SQLAlchemyError as exc:
        raise database_error(db, 'deleting an appointment') from exc
