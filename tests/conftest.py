import os
from datetime import date
from types import SimpleNamespace

import pytest
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite://')

from dental_backend.database import Base, build_engine  # noqa: E402
from dental_backend.models.appointment import Appointment  # noqa: E402
from dental_backend.models.patient import Patient  # noqa: E402
from dental_backend.models.user import User  # noqa: E402

ORGANIZATION_ID = 'org-sonrisas'
OTHER_ORGANIZATION_ID = 'org-dentalia'
DOCTOR_ID = 'doctor-ana'
OTHER_DOCTOR_ID = 'doctor-luis'
PATIENT_ID = 'patient-juan'
OTHER_PATIENT_ID = 'patient-maria'
BOOKING_DATE = date(2024, 3, 1)


@pytest.fixture
def db_session():
    engine = build_engine('sqlite://')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def seed_clinic(db) -> SimpleNamespace:
    admin = User(
        id='admin-sonrisas',
        organization_id=ORGANIZATION_ID,
        email='recepcion@sonrisas.mx',
        name='Recepción',
        role='admin',
    )
    doctor = User(
        id=DOCTOR_ID,
        organization_id=ORGANIZATION_ID,
        email='ana@sonrisas.mx',
        name='Ana López',
        role='doctor',
        especialidad='Ortodoncia',
    )
    other_doctor = User(
        id=OTHER_DOCTOR_ID,
        organization_id=ORGANIZATION_ID,
        email='luis@sonrisas.mx',
        name=None,
        role='doctor',
        especialidad='Endodoncia',
    )
    other_admin = User(
        id='admin-dentalia',
        organization_id=OTHER_ORGANIZATION_ID,
        email='recepcion@dentalia.mx',
        name='Recepción Dentalia',
        role='admin',
    )
    patient = Patient(
        id=PATIENT_ID,
        organization_id=ORGANIZATION_ID,
        first_name='Juan',
        last_name='Pérez',
        phone='555-0101',
        email='juan@example.com',
    )
    other_patient = Patient(
        id=OTHER_PATIENT_ID,
        organization_id=ORGANIZATION_ID,
        first_name='María',
        last_name='García',
        phone='555-0102',
    )
    db.add_all([admin, doctor, other_doctor, other_admin, patient, other_patient])
    db.commit()

    return SimpleNamespace(
        admin=admin,
        doctor=doctor,
        other_doctor=other_doctor,
        other_admin=other_admin,
        patient=patient,
        other_patient=other_patient,
    )


@pytest.fixture
def clinic(db_session) -> SimpleNamespace:
    return seed_clinic(db_session)


@pytest.fixture
def make_appointment(db_session):
    def _make_appointment(**overrides) -> Appointment:
        values = {
            'organization_id': ORGANIZATION_ID,
            'patient_id': PATIENT_ID,
            'doctor_id': DOCTOR_ID,
            'date': BOOKING_DATE,
            'start_time': '09:00',
            'end_time': '09:30',
            'type': 'Consulta',
            'status': 'Programada',
            'duration': 30,
        }
        values.update(overrides)
        appointment = Appointment(**values)
        db_session.add(appointment)
        db_session.commit()
        db_session.refresh(appointment)
        return appointment

    return _make_appointment
