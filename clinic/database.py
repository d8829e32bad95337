from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from clinic.core import config


def _engine_options(database_url: str) -> dict:
    if database_url.startswith('sqlite'):
        return {'connect_args': {'check_same_thread': False}}
    return {'pool_pre_ping': True}


engine = create_engine(config.DATABASE_URL, echo=config.SQL_ECHO, **_engine_options(config.DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_scheduling_schema() -> None:
    global _schema_checked

    if _schema_checked:
        return

    with _schema_lock:
        if _schema_checked:
            return

        inspector = inspect(engine)
        table_names = set(inspector.get_table_names())

        if not {'doctors', 'availability', 'appointments'} <= table_names:
            _schema_checked = True
            return

        doctor_columns = {column['name'] for column in inspector.get_columns('doctors')}
        appointment_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            (
                'booking_version' in doctor_columns,
                'ALTER TABLE doctors ADD COLUMN booking_version INTEGER NOT NULL DEFAULT 0',
            ),
            (
                'observations' in appointment_columns,
                'ALTER TABLE appointments ADD COLUMN observations VARCHAR',
            ),
        ]

        with engine.begin() as connection:
            for already_present, statement in migration_steps:
                if not already_present:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_availability_doctor_date ON availability(doctor_id, date)')
            )
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_appointments_doctor_range '
                    'ON appointments(doctor_id, start_time, end_time)'
                )
            )

        _schema_checked = True
