import os
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite://')

from clinic.database import Base  # noqa: E402
from clinic.models.appointment import Appointment  # noqa: E402
from clinic.models.availability import Availability, AvailabilitySlot  # noqa: E402
from clinic.models.doctor import Doctor  # noqa: E402
from clinic.models.patient import Patient  # noqa: E402
from clinic.services.availability_store import AvailabilityStore  # noqa: E402
from clinic.services.booking_engine import BookingEngine  # noqa: E402

# Monday morning; every scheduling test books relative to this instant.
FIXED_NOW = datetime(2026, 1, 5, 8, 0)

TABLES = [
    Doctor.__table__,
    Patient.__table__,
    Availability.__table__,
    AvailabilitySlot.__table__,
    Appointment.__table__,
]


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture
def db_session():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))


@pytest.fixture
def make_doctor(db_session):
    counter = {'value': 0}

    def factory(specialty: str = 'cardiology') -> Doctor:
        counter['value'] += 1
        doctor = Doctor(
            name=f'Doctor {counter["value"]}',
            crm=f'CRM-{counter["value"]:04d}',
            specialty=specialty,
        )
        db_session.add(doctor)
        db_session.commit()
        db_session.refresh(doctor)
        return doctor

    return factory


@pytest.fixture
def doctor(make_doctor) -> Doctor:
    return make_doctor()


@pytest.fixture
def patient(db_session) -> Patient:
    record = Patient(name='Maria Silva', email='maria@example.com')
    db_session.add(record)
    db_session.commit()
    db_session.refresh(record)
    return record


@pytest.fixture
def store(db_session) -> AvailabilityStore:
    return AvailabilityStore(db_session, clock=fixed_clock)


@pytest.fixture
def engine(db_session, store) -> BookingEngine:
    return BookingEngine(db_session, clock=fixed_clock, availability=store)
