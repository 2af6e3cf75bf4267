"""Capability checks for appointment operations."""

from dataclasses import dataclass

from medibook.models.appointment import Appointment, CANCELLED, COMPLETED, CONFIRMED, NO_SHOW
from medibook.models.user import ADMIN_ROLE, DOCTOR_ROLE, PATIENT_ROLE


@dataclass(frozen=True)
class Actor:
    """The authenticated caller. ``doctor_id`` is set only for users with a doctor profile."""

    user_id: int
    role: str
    doctor_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def is_patient_of(actor: Actor, appointment: Appointment) -> bool:
    return actor.role == PATIENT_ROLE and appointment.patient_id == actor.user_id


def is_doctor_of(actor: Actor, appointment: Appointment) -> bool:
    return (
        actor.role == DOCTOR_ROLE
        and actor.doctor_id is not None
        and appointment.doctor_id == actor.doctor_id
    )


def is_participant(actor: Actor, appointment: Appointment) -> bool:
    return is_patient_of(actor, appointment) or is_doctor_of(actor, appointment)


def can_view(actor: Actor, appointment: Appointment) -> bool:
    return actor.is_admin or is_participant(actor, appointment)


def can_cancel(actor: Actor, appointment: Appointment) -> bool:
    return actor.is_admin or is_participant(actor, appointment)


def can_reschedule(actor: Actor, appointment: Appointment) -> bool:
    return is_patient_of(actor, appointment)


def can_confirm(actor: Actor, appointment: Appointment) -> bool:
    return is_doctor_of(actor, appointment)


def can_complete(actor: Actor, appointment: Appointment) -> bool:
    return is_doctor_of(actor, appointment)


def can_mark_no_show(actor: Actor, appointment: Appointment) -> bool:
    return actor.is_admin or is_doctor_of(actor, appointment)


def can_prescribe(actor: Actor, appointment: Appointment) -> bool:
    return is_doctor_of(actor, appointment)


_STATUS_CAPABILITIES = {
    CONFIRMED: can_confirm,
    COMPLETED: can_complete,
    CANCELLED: can_cancel,
    NO_SHOW: can_mark_no_show,
}


def can_set_status(actor: Actor, appointment: Appointment, new_status: str) -> bool:
    capability = _STATUS_CAPABILITIES.get(new_status)
    return capability is not None and capability(actor, appointment)


def notes_key(actor: Actor) -> str:
    return f'{actor.role}_notes'


def can_book(actor: Actor) -> bool:
    return actor.role == PATIENT_ROLE
