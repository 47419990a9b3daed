"""Therapy session model definitions."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from therapy_backend.database import Base


class TherapySession(Base):
    """Represents a booked therapy session."""
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True)
    therapist_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default='scheduled')  # scheduled/completed/cancelled
    notes = Column(String)
    cancelled_at = Column(DateTime)
    cancellation_reason = Column(String)
    credit_refunded = Column(Boolean, default=False)
