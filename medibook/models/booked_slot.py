"""Booked slot model definitions."""

from sqlalchemy import Column, Date, ForeignKey, Integer, Time, UniqueConstraint
from medibook.database import Base


class BookedSlot(Base):
    """One occupied (date, time) slot of a doctor, owned by a live appointment.

    The unique constraint is what stops two processes from claiming the same slot.
    """
    __tablename__ = "booked_slots"
    __table_args__ = (
        UniqueConstraint("doctor_id", "slot_date", "slot_time", name="uq_booked_slots_doctor_slot"),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    slot_date = Column(Date, nullable=False)
    slot_time = Column(Time, nullable=False)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False)
