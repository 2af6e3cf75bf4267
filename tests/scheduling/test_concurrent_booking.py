import threading
from datetime import date, datetime, time
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from medibook.core.errors import SlotAlreadyBookedError
from medibook.database import Base
from medibook.models.appointment import Appointment
from medibook.models.booked_slot import BookedSlot
from medibook.models.doctor import Doctor
from medibook.models.user import User
from medibook.scheduling import reservations

NOW = datetime(2026, 1, 5, 8, 0)
NEXT_MONDAY = date(2026, 1, 12)
PATIENT_COUNT = 8


def test_concurrent_bookings_for_one_slot_have_exactly_one_winner(tmp_path) -> None:
    engine = create_engine(
        f'sqlite:///{tmp_path / "booking.db"}',
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    with session_factory() as setup:
        doctor_user = User(email='dr.kim@example.com', role='doctor')
        patients = [User(email=f'patient{n}@example.com', role='patient') for n in range(PATIENT_COUNT)]
        setup.add_all([doctor_user, *patients])
        setup.flush()
        doctor = Doctor(
            user_id=doctor_user.id,
            consultation_fee=Decimal('300.00'),
            is_approved=True,
            is_available=True,
            working_hours={'monday': [{'start': '09:00', 'end': '12:00'}]},
        )
        setup.add(doctor)
        setup.commit()
        doctor_id = doctor.id
        patient_ids = [patient.id for patient in patients]

    barrier = threading.Barrier(PATIENT_COUNT)
    outcomes: list[str] = []
    outcomes_lock = threading.Lock()

    def attempt(patient_id: int) -> None:
        with session_factory() as session:
            barrier.wait()
            try:
                reservations.book_appointment(
                    session,
                    doctor_id=doctor_id,
                    patient_id=patient_id,
                    appointment_date=NEXT_MONDAY,
                    appointment_time='09:00',
                    now=NOW,
                )
                outcome = 'booked'
            except SlotAlreadyBookedError:
                outcome = 'conflict'
        with outcomes_lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=attempt, args=(patient_id,)) for patient_id in patient_ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ['booked'] + ['conflict'] * (PATIENT_COUNT - 1)

    with session_factory() as check:
        assert check.query(Appointment).filter(Appointment.doctor_id == doctor_id).count() == 1
        slots = check.query(BookedSlot.slot_date, BookedSlot.slot_time).all()
        assert [tuple(slot) for slot in slots] == [(NEXT_MONDAY, time(9, 0))]

    engine.dispose()
