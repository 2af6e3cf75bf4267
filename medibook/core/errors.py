"""Booking error taxonomy.

Every rule the reservation service enforces fails with one of these. Each kind
carries the HTTP status it maps to and a stable default message; routes turn
them into ``HTTPException`` without inspecting the kind.
"""

from fastapi import status


class BookingError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = 'Booking request rejected.'

    def __init__(self, detail: str | None = None) -> None:
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class DoctorNotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = 'Doctor not found.'


class AppointmentNotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = 'Appointment not found.'


class DoctorNotApprovedError(BookingError):
    detail = 'Doctor is not approved yet.'


class DoctorUnavailableError(BookingError):
    detail = 'Doctor is currently not available.'


class PastDateError(BookingError):
    detail = 'Cannot book appointments for past dates.'


class BookingWindowError(BookingError):
    detail = 'Appointments cannot be booked that far in advance.'


class NonWorkingDayError(BookingError):
    detail = 'Doctor is not available on this day.'


class OutsideWorkingHoursError(BookingError):
    detail = "Requested time is outside the doctor's working hours."


class InvalidTimeError(BookingError):
    detail = 'Times must use the HH:MM format.'


class PastAppointmentError(BookingError):
    detail = 'Appointments in the past cannot be changed.'


class InvalidTransitionError(BookingError):
    detail = 'This status change is not allowed.'


class AppointmentNotCompletedError(BookingError):
    detail = 'Prescriptions can only be added to completed appointments.'


class SlotAlreadyBookedError(BookingError):
    status_code = status.HTTP_409_CONFLICT
    detail = 'This time slot is already booked.'


class DuplicateBookingError(BookingError):
    status_code = status.HTTP_409_CONFLICT
    detail = 'You already have an appointment with this doctor on this date.'


class AlreadyCancelledError(BookingError):
    status_code = status.HTTP_409_CONFLICT
    detail = 'Appointment is already cancelled.'


class UnauthorizedError(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    detail = 'You are not authorized to change this appointment.'
