"""User model definitions."""

from sqlalchemy import Column, Integer, String
from medibook.database import Base

PATIENT_ROLE = "patient"
DOCTOR_ROLE = "doctor"
ADMIN_ROLE = "admin"


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    name = Column(String)
    hashed_password = Column(String)
    role = Column(String, default=PATIENT_ROLE)  # patient/doctor/admin
