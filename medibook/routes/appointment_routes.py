from datetime import date, datetime, time
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from medibook.auth.dependencies import get_current_actor, get_db
from medibook.models.appointment import CONSULTATION_TYPES, STATUSES
from medibook.routes.common import ensure_database_ready, service_errors
from medibook.scheduling import permissions, reservations
from medibook.scheduling.availability import parse_clock_time
from medibook.scheduling.permissions import Actor

router = APIRouter(tags=['appointments'])

MAX_SYMPTOMS_LENGTH = 500
MAX_NOTES_LENGTH = 1000
MAX_MEDICINE_NAME_LENGTH = 200
MAX_DOSAGE_LENGTH = 100


def _normalize_text(value: str | None, max_length: int, label: str) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > max_length:
        raise ValueError(f'{label} must be {max_length} characters or fewer.')

    return normalized


def _parse_time_field(value):
    if isinstance(value, (str, time)):
        return parse_clock_time(value)
    return value


class BookAppointmentRequest(BaseModel):
    doctor_id: int
    appointment_date: date
    appointment_time: time
    symptoms: str | None = None
    consultation_type: str | None = None

    @field_validator('appointment_time', mode='before')
    @classmethod
    def validate_appointment_time(cls, value):
        return _parse_time_field(value)

    @field_validator('symptoms')
    @classmethod
    def validate_symptoms(cls, value: str | None) -> str | None:
        return _normalize_text(value, MAX_SYMPTOMS_LENGTH, 'Symptoms')

    @field_validator('consultation_type')
    @classmethod
    def validate_consultation_type(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip().lower().replace('-', '_')
        if normalized not in CONSULTATION_TYPES:
            raise ValueError('Invalid consultation type.')
        return normalized


class CancelAppointmentRequest(BaseModel):
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_text(value, MAX_NOTES_LENGTH, 'Cancellation reason')


class RescheduleAppointmentRequest(BaseModel):
    appointment_date: date
    appointment_time: time

    @field_validator('appointment_time', mode='before')
    @classmethod
    def validate_appointment_time(cls, value):
        return _parse_time_field(value)


class UpdateStatusRequest(BaseModel):
    status: str
    notes: str | None = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower().replace('-', '_')
        if normalized not in STATUSES:
            raise ValueError('Invalid appointment status.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_text(value, MAX_NOTES_LENGTH, 'Notes')


class NotesRequest(BaseModel):
    notes: str

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str) -> str:
        normalized = _normalize_text(value, MAX_NOTES_LENGTH, 'Notes')
        if normalized is None:
            raise ValueError('Notes are required.')
        return normalized


class MedicineEntry(BaseModel):
    name: str
    dosage: str | None = None
    frequency: str | None = None
    duration: str | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not 1 <= len(normalized) <= MAX_MEDICINE_NAME_LENGTH:
            raise ValueError(f'Medicine name must be between 1 and {MAX_MEDICINE_NAME_LENGTH} characters.')
        return normalized

    @field_validator('dosage')
    @classmethod
    def validate_dosage(cls, value: str | None) -> str | None:
        return _normalize_text(value, MAX_DOSAGE_LENGTH, 'Dosage')


class PrescriptionRequest(BaseModel):
    medicines: list[MedicineEntry] = []
    general_instructions: str | None = None
    next_follow_up: date | None = None

    @field_validator('general_instructions')
    @classmethod
    def validate_general_instructions(cls, value: str | None) -> str | None:
        return _normalize_text(value, MAX_NOTES_LENGTH, 'General instructions')


class AppointmentResponse(BaseModel):
    id: int
    appointment_code: str
    patient_id: int
    doctor_id: int
    appointment_date: date
    appointment_time: time
    status: str
    consultation_type: str | None = None
    consultation_fee: Decimal | None = None
    symptoms: str | None = None
    notes: dict[str, str] | None = None
    prescription: dict | None = None
    cancelled_by: int | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: BookAppointmentRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    if not permissions.can_book(actor):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only patients can book appointments.',
        )

    ensure_database_ready()

    with service_errors():
        return reservations.book_appointment(
            db,
            doctor_id=data.doctor_id,
            patient_id=actor.user_id,
            appointment_date=data.appointment_date,
            appointment_time=data.appointment_time,
            symptoms=data.symptoms,
            consultation_type=data.consultation_type,
        )


@router.get('/mine', response_model=list[AppointmentResponse])
def list_my_appointments(
    status_filter: str | None = Query(default=None, alias='status'),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors():
        return reservations.list_patient_appointments(db, actor.user_id, status_filter)


@router.get('/doctor', response_model=list[AppointmentResponse])
def list_doctor_appointments(
    status_filter: str | None = Query(default=None, alias='status'),
    day: date | None = Query(default=None, alias='date'),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    if actor.doctor_id is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Doctor profile not found.',
        )

    ensure_database_ready()

    with service_errors():
        return reservations.list_doctor_appointments(db, actor.doctor_id, status_filter, day)


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors():
        return reservations.get_appointment(db, appointment_id, actor)


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors():
        return reservations.cancel_appointment(db, appointment_id, actor, data.reason)


@router.post('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors():
        return reservations.reschedule_appointment(
            db,
            appointment_id,
            actor,
            data.appointment_date,
            data.appointment_time,
        )


@router.put('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateStatusRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors():
        return reservations.update_appointment_status(db, appointment_id, actor, data.status, data.notes)


@router.put('/{appointment_id}/notes', response_model=AppointmentResponse)
def update_appointment_notes(
    appointment_id: int,
    data: NotesRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors():
        return reservations.attach_notes(db, appointment_id, actor, data.notes)


@router.put('/{appointment_id}/prescription', response_model=AppointmentResponse)
def add_prescription(
    appointment_id: int,
    data: PrescriptionRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors():
        return reservations.add_prescription(
            db,
            appointment_id,
            actor,
            [medicine.model_dump() for medicine in data.medicines],
            data.general_instructions,
            data.next_follow_up,
        )
