from collections.abc import Iterator
from contextlib import contextmanager
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker


load_dotenv()

from medibook.core import config  # noqa: E402


def _connect_args(url: str) -> dict:
    if url.startswith('sqlite'):
        return {'check_same_thread': False}
    return {}


engine = create_engine(config.DATABASE_URL, connect_args=_connect_args(config.DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False
_booked_slot_schema_checked = False

_doctor_locks: dict[int, Lock] = {}
_doctor_locks_guard = Lock()


@contextmanager
def doctor_lock(doctor_id: int) -> Iterator[None]:
    """Serialize slot check-then-write sequences for one doctor within this process.

    Other processes are kept honest by the unique index on booked_slots.
    """
    with _doctor_locks_guard:
        lock = _doctor_locks.setdefault(doctor_id, Lock())
    with lock:
        yield


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('consultation_type', 'ALTER TABLE appointments ADD COLUMN consultation_type VARCHAR'),
            ('notes', 'ALTER TABLE appointments ADD COLUMN notes JSON'),
            ('prescription', 'ALTER TABLE appointments ADD COLUMN prescription JSON'),
            ('cancelled_by', 'ALTER TABLE appointments ADD COLUMN cancelled_by INTEGER'),
            ('cancelled_at', 'ALTER TABLE appointments ADD COLUMN cancelled_at TIMESTAMP'),
            ('cancellation_reason', 'ALTER TABLE appointments ADD COLUMN cancellation_reason VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_appointments_doctor_date '
                    'ON appointments(doctor_id, appointment_date)'
                )
            )
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_appointments_patient_status '
                    'ON appointments(patient_id, status)'
                )
            )

        _appointment_schema_checked = True


def ensure_booked_slot_schema() -> None:
    global _booked_slot_schema_checked

    if _booked_slot_schema_checked:
        return

    with _schema_lock:
        if _booked_slot_schema_checked:
            return

        inspector = inspect(engine)

        if 'booked_slots' not in inspector.get_table_names():
            _booked_slot_schema_checked = True
            return

        with engine.begin() as connection:
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_booked_slots_doctor_slot '
                    'ON booked_slots(doctor_id, slot_date, slot_time)'
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_booked_slots_appointment ON booked_slots(appointment_id)')
            )

        _booked_slot_schema_checked = True
