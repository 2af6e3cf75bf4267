"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Time
from medibook.database import Base

PENDING = "pending"
CONFIRMED = "confirmed"
COMPLETED = "completed"
CANCELLED = "cancelled"
NO_SHOW = "no_show"

STATUSES = (PENDING, CONFIRMED, COMPLETED, CANCELLED, NO_SHOW)
ACTIVE_STATUSES = (PENDING, CONFIRMED)
TERMINAL_STATUSES = (COMPLETED, CANCELLED, NO_SHOW)

CONSULTATION_TYPES = ("in_person", "video_call", "phone_call")
DEFAULT_CONSULTATION_TYPE = "in_person"


class Appointment(Base):
    """Represents a booked consultation between a patient and a doctor."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    appointment_code = Column(String, unique=True, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    appointment_date = Column(Date, nullable=False)
    appointment_time = Column(Time, nullable=False)
    status = Column(String, default=PENDING, nullable=False)
    consultation_type = Column(String, default=DEFAULT_CONSULTATION_TYPE)
    consultation_fee = Column(Numeric(10, 2))
    symptoms = Column(String)
    notes = Column(JSON)
    prescription = Column(JSON)
    cancelled_by = Column(Integer, ForeignKey("users.id"))
    cancelled_at = Column(DateTime)
    cancellation_reason = Column(String)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
