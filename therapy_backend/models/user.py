"""User model definitions."""

from sqlalchemy import Boolean, Column, Integer, String
from therapy_backend.database import Base

ROLE_PATIENT = 'patient'
ROLE_THERAPIST = 'therapist'
ROLE_ADMIN = 'admin'


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    full_name = Column(String)
    role = Column(String)  # patient/therapist/partner/admin
    is_active = Column(Boolean, default=True)
