"""Doctor profile model definitions."""

from sqlalchemy import JSON, Boolean, Column, ForeignKey, Integer, Numeric, String
from medibook.database import Base


class Doctor(Base):
    """Doctor profile with the weekly working hours used for booking."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True)
    specialization = Column(String)
    consultation_fee = Column(Numeric(10, 2), default=0)
    is_approved = Column(Boolean, default=False)
    is_available = Column(Boolean, default=True)
    working_hours = Column(JSON, default=dict)  # {"monday": [{"start": "09:00", "end": "12:00"}]}
