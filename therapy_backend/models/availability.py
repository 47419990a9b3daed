"""Availability model definitions."""

from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, String, Time, UniqueConstraint
from therapy_backend.database import Base


class AvailabilityTemplate(Base):
    """Weekly hours for one day of the week (0 = Sunday)."""
    __tablename__ = "availability_templates"
    __table_args__ = (UniqueConstraint('therapist_id', 'day_of_week', name='uq_template_therapist_day'),)

    id = Column(Integer, primary_key=True)
    therapist_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    is_enabled = Column(Boolean, default=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    session_duration_minutes = Column(Integer, nullable=False)
    buffer_minutes = Column(Integer, default=0)
    max_sessions_per_day = Column(Integer, default=8)


class AvailabilityOverride(Base):
    """Date-specific blackout or special hours."""
    __tablename__ = "availability_overrides"
    __table_args__ = (UniqueConstraint('therapist_id', 'override_date', name='uq_override_therapist_date'),)

    id = Column(Integer, primary_key=True)
    therapist_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    override_date = Column(Date, nullable=False)
    is_available = Column(Boolean, default=False)
    start_time = Column(Time)
    end_time = Column(Time)
    session_duration_minutes = Column(Integer)
    max_sessions = Column(Integer)
    reason = Column(String)


class SessionSettingsRecord(Base):
    """Per-therapist session defaults and booking window."""
    __tablename__ = "session_settings"

    therapist_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    session_duration_minutes = Column(Integer, nullable=False)
    buffer_minutes = Column(Integer, nullable=False)
    max_sessions_per_day = Column(Integer, nullable=False)
    advance_booking_days = Column(Integer, nullable=False)
    cancellation_hours = Column(Integer, nullable=False)
    min_lead_minutes = Column(Integer, nullable=False)
    timezone = Column(String, nullable=False, default='UTC')
