"""Slot reservation service.

The only code allowed to write appointments and the booked_slots index. Every
change to a doctor's slots runs under that doctor's lock and inside one unit of
work, so an appointment row and its booked slot are committed or discarded
together.
"""

import logging
import uuid
from collections.abc import Iterable
from datetime import date, datetime, time, timedelta
from typing import Any

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from medibook.core import config
from medibook.core.errors import (
    AlreadyCancelledError,
    AppointmentNotCompletedError,
    AppointmentNotFoundError,
    BookingError,
    BookingWindowError,
    DoctorNotApprovedError,
    DoctorNotFoundError,
    DoctorUnavailableError,
    DuplicateBookingError,
    InvalidTimeError,
    InvalidTransitionError,
    NonWorkingDayError,
    OutsideWorkingHoursError,
    PastAppointmentError,
    PastDateError,
    SlotAlreadyBookedError,
    UnauthorizedError,
)
from medibook.database import doctor_lock, unit_of_work
from medibook.models.appointment import (
    ACTIVE_STATUSES,
    Appointment,
    CANCELLED,
    COMPLETED,
    CONFIRMED,
    CONSULTATION_TYPES,
    DEFAULT_CONSULTATION_TYPE,
    NO_SHOW,
    PENDING,
    STATUSES,
    TERMINAL_STATUSES,
)
from medibook.models.booked_slot import BookedSlot
from medibook.models.doctor import Doctor
from medibook.scheduling import permissions
from medibook.scheduling.availability import (
    AlreadyBookedError,
    BookedSlotIndex,
    WorkingHours,
    format_clock_time,
    is_slot_free,
    is_within_working_hours,
    is_working_day,
    open_slots,
    parse_clock_time,
    release,
    reserve,
)
from medibook.scheduling.notifications import notify
from medibook.scheduling.permissions import Actor

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    PENDING: frozenset({CONFIRMED, CANCELLED, NO_SHOW}),
    CONFIRMED: frozenset({COMPLETED, CANCELLED, NO_SHOW}),
}

transient_retry = retry(
    retry=retry_if_exception_type(OperationalError),
    stop=stop_after_attempt(max(config.DB_RETRY_ATTEMPTS, 1)),
    wait=wait_exponential(multiplier=config.DB_RETRY_WAIT_SECONDS, max=2),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


def generate_appointment_code() -> str:
    return f'APT-{uuid.uuid4().hex[:10].upper()}'


def _parse_slot_time(value: str | time) -> time:
    try:
        return parse_clock_time(value)
    except ValueError as exc:
        raise InvalidTimeError() from exc


def _normalize_consultation_type(value: str | None) -> str:
    if not value:
        return DEFAULT_CONSULTATION_TYPE

    normalized = value.strip().lower().replace('-', '_')
    if normalized not in CONSULTATION_TYPES:
        raise BookingError('Invalid consultation type.')
    return normalized


def _normalize_status(value: str) -> str:
    normalized = (value or '').strip().lower().replace('-', '_')
    if normalized not in STATUSES:
        raise InvalidTransitionError('Invalid appointment status.')
    return normalized


def _get_doctor(db: Session, doctor_id: int, refresh: bool = False) -> Doctor:
    query = db.query(Doctor).filter(Doctor.id == doctor_id)
    if refresh:
        query = query.populate_existing()
    doctor = query.first()
    if doctor is None:
        raise DoctorNotFoundError()
    return doctor


def _get_appointment(db: Session, appointment_id: int, for_update: bool = False) -> Appointment:
    query = db.query(Appointment).filter(Appointment.id == appointment_id)
    if for_update:
        query = query.populate_existing().with_for_update()
    appointment = query.first()
    if appointment is None:
        raise AppointmentNotFoundError()
    return appointment


def _working_hours(doctor: Doctor) -> WorkingHours:
    try:
        return WorkingHours.from_json(doctor.working_hours)
    except ValueError as exc:
        logger.warning('Doctor %s has invalid working hours: %s', doctor.id, exc)
        raise DoctorUnavailableError("Doctor's working hours are not configured.") from exc


def _starts_at(appointment: Appointment) -> datetime:
    return datetime.combine(appointment.appointment_date, appointment.appointment_time)


def load_booked_slot_index(db: Session, doctor_id: int, dates: Iterable[date]) -> BookedSlotIndex:
    rows = db.query(BookedSlot.slot_date, BookedSlot.slot_time).filter(
        BookedSlot.doctor_id == doctor_id,
        BookedSlot.slot_date.in_(set(dates)),
    ).all()
    return BookedSlotIndex.from_pairs(rows)


def _reserve(index: BookedSlotIndex, day: date, at: time) -> BookedSlotIndex:
    try:
        return reserve(index, day, at)
    except AlreadyBookedError as exc:
        raise SlotAlreadyBookedError() from exc


def _write_index_change(
    db: Session,
    doctor_id: int,
    before: BookedSlotIndex,
    after: BookedSlotIndex,
    appointment_id: int,
) -> None:
    """Persist the difference between two index values as booked_slots rows."""
    before_pairs = before.pairs()
    after_pairs = after.pairs()

    for day, at in before_pairs - after_pairs:
        db.query(BookedSlot).filter(
            BookedSlot.doctor_id == doctor_id,
            BookedSlot.slot_date == day,
            BookedSlot.slot_time == at,
        ).delete(synchronize_session=False)

    for day, at in after_pairs - before_pairs:
        db.add(BookedSlot(doctor_id=doctor_id, slot_date=day, slot_time=at, appointment_id=appointment_id))

    try:
        db.flush()
    except IntegrityError as exc:
        # Another process claimed the slot between our read and this write.
        logger.info('Slot conflict for doctor %s detected by the database', doctor_id)
        raise SlotAlreadyBookedError() from exc


def _validate_slot(
    working_hours: WorkingHours,
    index: BookedSlotIndex,
    day: date,
    at: time,
    now: datetime,
) -> None:
    today = now.date()
    if day < today:
        raise PastDateError()
    if day > today + timedelta(days=config.MAX_BOOKING_DAYS):
        raise BookingWindowError(
            f'Appointments can only be booked up to {config.MAX_BOOKING_DAYS} days in advance.'
        )
    if not is_working_day(working_hours, day):
        raise NonWorkingDayError()
    if not is_within_working_hours(working_hours, day, at):
        raise OutsideWorkingHoursError()
    if not is_slot_free(index, day, at):
        raise SlotAlreadyBookedError()


def _merge_notes(appointment: Appointment, actor: Actor, notes: str) -> None:
    appointment.notes = {**(appointment.notes or {}), permissions.notes_key(actor): notes}


@transient_retry
def book_appointment(
    db: Session,
    *,
    doctor_id: int,
    patient_id: int,
    appointment_date: date,
    appointment_time: str | time,
    symptoms: str | None = None,
    consultation_type: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    now = now or datetime.now()
    # Only ids of existing doctors get a lock.
    _get_doctor(db, doctor_id)

    with doctor_lock(doctor_id), unit_of_work(db):
        doctor = _get_doctor(db, doctor_id, refresh=True)
        if not doctor.is_approved:
            raise DoctorNotApprovedError()
        if not doctor.is_available:
            raise DoctorUnavailableError()

        slot_time = _parse_slot_time(appointment_time)
        consultation_type = _normalize_consultation_type(consultation_type)

        index = load_booked_slot_index(db, doctor_id, [appointment_date])
        _validate_slot(_working_hours(doctor), index, appointment_date, slot_time, now)

        existing = db.query(Appointment.id).filter(
            Appointment.patient_id == patient_id,
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == appointment_date,
            Appointment.status.in_(ACTIVE_STATUSES),
        ).first()
        if existing:
            raise DuplicateBookingError()

        appointment = Appointment(
            appointment_code=generate_appointment_code(),
            patient_id=patient_id,
            doctor_id=doctor_id,
            appointment_date=appointment_date,
            appointment_time=slot_time,
            status=PENDING,
            consultation_type=consultation_type,
            consultation_fee=doctor.consultation_fee,
            symptoms=symptoms or None,
        )
        db.add(appointment)
        db.flush()

        _write_index_change(db, doctor_id, index, _reserve(index, appointment_date, slot_time), appointment.id)

    logger.info(
        'Booked appointment %s for patient %s with doctor %s at %s %s',
        appointment.id,
        patient_id,
        doctor_id,
        appointment_date.isoformat(),
        format_clock_time(slot_time),
    )
    notify('appointment_booked', appointment)
    return appointment


def _cancel(
    db: Session,
    appointment_id: int,
    actor: Actor,
    reason: str | None,
    now: datetime,
    notes: str | None = None,
) -> Appointment:
    doctor_id = _get_appointment(db, appointment_id).doctor_id

    with doctor_lock(doctor_id), unit_of_work(db):
        appointment = _get_appointment(db, appointment_id, for_update=True)
        if not permissions.can_cancel(actor, appointment):
            raise UnauthorizedError('You are not authorized to cancel this appointment.')
        if appointment.status == CANCELLED:
            raise AlreadyCancelledError()
        if _starts_at(appointment) < now:
            raise PastAppointmentError('Past appointments cannot be cancelled.')
        if appointment.status in TERMINAL_STATUSES:
            raise InvalidTransitionError(f'Cannot cancel a {appointment.status} appointment.')

        appointment.status = CANCELLED
        appointment.cancelled_by = actor.user_id
        appointment.cancelled_at = now
        appointment.cancellation_reason = reason
        if notes:
            _merge_notes(appointment, actor, notes)

        index = load_booked_slot_index(db, doctor_id, [appointment.appointment_date])
        released = release(index, appointment.appointment_date, appointment.appointment_time)
        _write_index_change(db, doctor_id, index, released, appointment.id)

    logger.info('Appointment %s cancelled by user %s', appointment.id, actor.user_id)
    notify('appointment_cancelled', appointment)
    return appointment


@transient_retry
def cancel_appointment(
    db: Session,
    appointment_id: int,
    actor: Actor,
    reason: str | None = None,
    *,
    now: datetime | None = None,
) -> Appointment:
    return _cancel(db, appointment_id, actor, reason, now or datetime.now())


@transient_retry
def reschedule_appointment(
    db: Session,
    appointment_id: int,
    actor: Actor,
    new_date: date,
    new_time: str | time,
    *,
    now: datetime | None = None,
) -> Appointment:
    now = now or datetime.now()
    doctor_id = _get_appointment(db, appointment_id).doctor_id

    with doctor_lock(doctor_id), unit_of_work(db):
        appointment = _get_appointment(db, appointment_id, for_update=True)
        if not permissions.can_reschedule(actor, appointment):
            raise UnauthorizedError('Only the patient who booked this appointment can reschedule it.')
        if appointment.status == CANCELLED:
            raise AlreadyCancelledError()
        if appointment.status in TERMINAL_STATUSES:
            raise InvalidTransitionError(f'Cannot reschedule a {appointment.status} appointment.')
        if _starts_at(appointment) < now:
            raise PastAppointmentError('Past appointments cannot be rescheduled.')

        slot_time = _parse_slot_time(new_time)
        doctor = _get_doctor(db, doctor_id)
        old_date = appointment.appointment_date
        old_time = appointment.appointment_time

        index = load_booked_slot_index(db, doctor_id, {old_date, new_date})
        # The appointment's own slot does not block its move.
        without_own = release(index, old_date, old_time)
        _validate_slot(_working_hours(doctor), without_own, new_date, slot_time, now)

        _write_index_change(db, doctor_id, index, _reserve(without_own, new_date, slot_time), appointment.id)
        appointment.appointment_date = new_date
        appointment.appointment_time = slot_time

    logger.info(
        'Appointment %s moved from %s %s to %s %s',
        appointment.id,
        old_date.isoformat(),
        format_clock_time(old_time),
        new_date.isoformat(),
        format_clock_time(slot_time),
    )
    notify('appointment_rescheduled', appointment)
    return appointment


@transient_retry
def update_appointment_status(
    db: Session,
    appointment_id: int,
    actor: Actor,
    new_status: str,
    notes: str | None = None,
    *,
    now: datetime | None = None,
) -> Appointment:
    now = now or datetime.now()
    new_status = _normalize_status(new_status)

    appointment = _get_appointment(db, appointment_id)
    if not permissions.can_view(actor, appointment):
        raise UnauthorizedError('You are not authorized to update this appointment.')

    if new_status == CANCELLED:
        return _cancel(db, appointment_id, actor, notes, now, notes=notes)

    with doctor_lock(appointment.doctor_id), unit_of_work(db):
        appointment = _get_appointment(db, appointment_id, for_update=True)
        if new_status not in ALLOWED_TRANSITIONS.get(appointment.status, ()):
            raise InvalidTransitionError(f'Cannot change appointment from {appointment.status} to {new_status}.')
        if not permissions.can_set_status(actor, appointment, new_status):
            raise UnauthorizedError(f'You are not allowed to mark this appointment as {new_status}.')

        appointment.status = new_status
        if notes:
            _merge_notes(appointment, actor, notes)

    logger.info('Appointment %s marked %s by user %s', appointment.id, new_status, actor.user_id)
    notify(f'appointment_{new_status}', appointment)
    return appointment


@transient_retry
def attach_notes(db: Session, appointment_id: int, actor: Actor, notes: str) -> Appointment:
    with unit_of_work(db):
        appointment = _get_appointment(db, appointment_id, for_update=True)
        if not permissions.can_view(actor, appointment):
            raise UnauthorizedError('You are not authorized to update this appointment.')
        if appointment.status in (CANCELLED, NO_SHOW):
            raise InvalidTransitionError(f'Notes cannot be added to a {appointment.status} appointment.')

        _merge_notes(appointment, actor, notes)

    return appointment


@transient_retry
def add_prescription(
    db: Session,
    appointment_id: int,
    actor: Actor,
    medicines: list[dict[str, Any]],
    general_instructions: str | None = None,
    next_follow_up: date | None = None,
) -> Appointment:
    with unit_of_work(db):
        appointment = _get_appointment(db, appointment_id, for_update=True)
        if not permissions.can_prescribe(actor, appointment):
            raise UnauthorizedError('You can only add prescriptions to your own appointments.')
        if appointment.status != COMPLETED:
            raise AppointmentNotCompletedError()

        appointment.prescription = {
            'medicines': list(medicines),
            'general_instructions': general_instructions or '',
            'next_follow_up': next_follow_up.isoformat() if next_follow_up else None,
        }

    logger.info('Prescription added to appointment %s', appointment.id)
    return appointment


def get_appointment(db: Session, appointment_id: int, actor: Actor) -> Appointment:
    appointment = _get_appointment(db, appointment_id)
    if not permissions.can_view(actor, appointment):
        raise UnauthorizedError('You are not authorized to view this appointment.')
    return appointment


def list_patient_appointments(db: Session, patient_id: int, status: str | None = None) -> list[Appointment]:
    query = db.query(Appointment).filter(Appointment.patient_id == patient_id)
    if status and status != 'all':
        query = query.filter(Appointment.status == _normalize_status(status))
    return query.order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc()).all()


def list_doctor_appointments(
    db: Session,
    doctor_id: int,
    status: str | None = None,
    day: date | None = None,
) -> list[Appointment]:
    query = db.query(Appointment).filter(Appointment.doctor_id == doctor_id)
    if status and status != 'all':
        query = query.filter(Appointment.status == _normalize_status(status))
    if day is not None:
        query = query.filter(Appointment.appointment_date == day)
    return query.order_by(Appointment.appointment_date.asc(), Appointment.appointment_time.asc()).all()


def get_working_hours(db: Session, doctor_id: int) -> WorkingHours:
    return _working_hours(_get_doctor(db, doctor_id))


def list_open_slots(
    db: Session,
    doctor_id: int,
    day: date,
    *,
    now: datetime | None = None,
    step_minutes: int | None = None,
) -> list[time]:
    now = now or datetime.now()
    doctor = _get_doctor(db, doctor_id)
    if not doctor.is_approved:
        raise DoctorNotApprovedError()
    if not doctor.is_available:
        raise DoctorUnavailableError()

    today = now.date()
    if day < today or day > today + timedelta(days=config.MAX_BOOKING_DAYS):
        return []

    index = load_booked_slot_index(db, doctor_id, [day])
    slots = open_slots(_working_hours(doctor), index, day, step_minutes or config.OPEN_SLOT_MINUTES)
    if day == today:
        slots = [slot for slot in slots if slot > now.time()]
    return slots
