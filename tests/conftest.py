import os
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('DB_RETRY_WAIT_SECONDS', '0')

from medibook.database import Base  # noqa: E402
from medibook.models.appointment import Appointment  # noqa: E402,F401
from medibook.models.booked_slot import BookedSlot  # noqa: E402,F401
from medibook.models.doctor import Doctor  # noqa: E402
from medibook.models.user import User  # noqa: E402
from medibook.scheduling import notifications  # noqa: E402
from medibook.scheduling.permissions import Actor  # noqa: E402

WORKING_HOURS = {
    'monday': [{'start': '09:00', 'end': '12:00'}, {'start': '14:00', 'end': '17:00'}],
    'wednesday': [{'start': '10:00', 'end': '13:00'}],
}


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def send(self, event, appointment):
        self.events.append((event, appointment.id))


@pytest.fixture
def db():
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def notifier(monkeypatch: pytest.MonkeyPatch) -> RecordingNotifier:
    recording = RecordingNotifier()
    monkeypatch.setattr(notifications, 'notifier', recording)
    return recording


def seed_clinic(session, *, is_approved=True, is_available=True, working_hours=None):
    patient = User(email='pat@example.com', name='Pat Morgan', role='patient')
    other_patient = User(email='sam@example.com', name='Sam Ortiz', role='patient')
    doctor_user = User(email='dr.lee@example.com', name='Dr. Lee', role='doctor')
    admin = User(email='admin@example.com', name='Admin', role='admin')
    session.add_all([patient, other_patient, doctor_user, admin])
    session.flush()

    doctor = Doctor(
        user_id=doctor_user.id,
        specialization='cardiology',
        consultation_fee=Decimal('500.00'),
        is_approved=is_approved,
        is_available=is_available,
        working_hours=WORKING_HOURS if working_hours is None else working_hours,
    )
    session.add(doctor)
    session.commit()

    return SimpleNamespace(
        doctor=doctor,
        doctor_id=doctor.id,
        patient=Actor(user_id=patient.id, role='patient'),
        other_patient=Actor(user_id=other_patient.id, role='patient'),
        doctor_actor=Actor(user_id=doctor_user.id, role='doctor', doctor_id=doctor.id),
        admin=Actor(user_id=admin.id, role='admin'),
    )


@pytest.fixture
def clinic(db):
    return seed_clinic(db)
