"""
Reads and writes behind the availability resolver.

The resolver needs three collections per therapist: weekly template rows,
overrides in a date range and non-cancelled sessions in a date range. This
module turns ORM rows into scheduling types and persists template, override
and settings changes.
"""

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy.orm import Session

from therapy_backend.core import config
from therapy_backend.models.availability import (
    AvailabilityOverride as OverrideRecord,
    AvailabilityTemplate,
    SessionSettingsRecord,
)
from therapy_backend.models.session import TherapySession
from therapy_backend.scheduling.types import (
    CANCELLED,
    AvailabilityOverride,
    BookedSession,
    DayTemplate,
    SessionSettings,
    TherapistSchedule,
    WeeklyTemplate,
)

logger = logging.getLogger(__name__)


def default_session_settings() -> SessionSettings:
    return SessionSettings(
        session_duration_minutes=config.DEFAULT_SESSION_DURATION_MINUTES,
        buffer_minutes=config.DEFAULT_BUFFER_MINUTES,
        max_sessions_per_day=config.DEFAULT_MAX_SESSIONS_PER_DAY,
        advance_booking_days=config.DEFAULT_ADVANCE_BOOKING_DAYS,
        cancellation_hours=config.DEFAULT_CANCELLATION_HOURS,
        min_lead_minutes=config.DEFAULT_MIN_LEAD_MINUTES,
        timezone=config.DEFAULT_TIMEZONE,
    )


def to_day_template(row: AvailabilityTemplate) -> DayTemplate:
    return DayTemplate(
        day_of_week=row.day_of_week,
        enabled=bool(row.is_enabled),
        start_time=row.start_time,
        end_time=row.end_time,
        session_duration_minutes=row.session_duration_minutes,
        buffer_minutes=row.buffer_minutes or 0,
        max_sessions_per_day=row.max_sessions_per_day or config.DEFAULT_MAX_SESSIONS_PER_DAY,
    )


def to_override(row: OverrideRecord) -> AvailabilityOverride:
    return AvailabilityOverride(
        override_date=row.override_date,
        is_available=bool(row.is_available),
        start_time=row.start_time,
        end_time=row.end_time,
        session_duration_minutes=row.session_duration_minutes,
        max_sessions=row.max_sessions,
        reason=row.reason,
    )


def to_booked_session(row: TherapySession) -> BookedSession:
    return BookedSession(
        session_id=row.id,
        therapist_id=row.therapist_id,
        start=row.start_time,
        end=row.end_time,
        status=row.status,
    )


def to_session_settings(row: SessionSettingsRecord | None) -> SessionSettings:
    if row is None:
        return default_session_settings()
    return SessionSettings(
        session_duration_minutes=row.session_duration_minutes,
        buffer_minutes=row.buffer_minutes,
        max_sessions_per_day=row.max_sessions_per_day,
        advance_booking_days=row.advance_booking_days,
        cancellation_hours=row.cancellation_hours,
        min_lead_minutes=row.min_lead_minutes,
        timezone=row.timezone or config.DEFAULT_TIMEZONE,
    )


def get_session_settings(db: Session, therapist_id: int) -> SessionSettings:
    row = db.query(SessionSettingsRecord).filter(SessionSettingsRecord.therapist_id == therapist_id).first()
    return to_session_settings(row)


def get_weekly_template(db: Session, therapist_id: int) -> WeeklyTemplate:
    rows = db.query(AvailabilityTemplate).filter(
        AvailabilityTemplate.therapist_id == therapist_id,
    ).order_by(AvailabilityTemplate.day_of_week.asc()).all()
    return WeeklyTemplate.from_days(to_day_template(row) for row in rows)


def list_override_records(
    db: Session,
    therapist_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[OverrideRecord]:
    query = db.query(OverrideRecord).filter(OverrideRecord.therapist_id == therapist_id)
    if start_date is not None:
        query = query.filter(OverrideRecord.override_date >= start_date)
    if end_date is not None:
        query = query.filter(OverrideRecord.override_date <= end_date)
    return query.order_by(OverrideRecord.override_date.asc()).all()


def list_active_sessions(db: Session, therapist_id: int, range_start: datetime, range_end: datetime) -> list[TherapySession]:
    return db.query(TherapySession).filter(
        TherapySession.therapist_id == therapist_id,
        TherapySession.status != CANCELLED,
        TherapySession.start_time < range_end,
        TherapySession.end_time > range_start,
    ).order_by(TherapySession.start_time.asc()).all()


def load_schedule(db: Session, therapist_id: int, start_date: date, end_date: date) -> TherapistSchedule:
    """Fetch everything the resolver needs for [start_date, end_date] in one pass."""
    range_start = datetime.combine(start_date, time.min)
    range_end = datetime.combine(end_date + timedelta(days=1), time.min)

    return TherapistSchedule(
        therapist_id=therapist_id,
        weekly=get_weekly_template(db, therapist_id),
        overrides={
            row.override_date: to_override(row)
            for row in list_override_records(db, therapist_id, start_date, end_date)
        },
        sessions=[
            to_booked_session(row)
            for row in list_active_sessions(db, therapist_id, range_start, range_end)
        ],
        settings=get_session_settings(db, therapist_id),
    )


def save_session_settings(db: Session, therapist_id: int, settings: SessionSettings) -> SessionSettingsRecord:
    row = db.query(SessionSettingsRecord).filter(SessionSettingsRecord.therapist_id == therapist_id).first()
    if row is None:
        row = SessionSettingsRecord(therapist_id=therapist_id)
        db.add(row)

    row.session_duration_minutes = settings.session_duration_minutes
    row.buffer_minutes = settings.buffer_minutes
    row.max_sessions_per_day = settings.max_sessions_per_day
    row.advance_booking_days = settings.advance_booking_days
    row.cancellation_hours = settings.cancellation_hours
    row.min_lead_minutes = settings.min_lead_minutes
    row.timezone = settings.timezone
    return row


def save_weekly_template(
    db: Session,
    therapist_id: int,
    weekly: WeeklyTemplate,
    settings: SessionSettings | None = None,
) -> None:
    """Overwrite the therapist's template; earlier rows are not versioned."""
    db.query(AvailabilityTemplate).filter(AvailabilityTemplate.therapist_id == therapist_id).delete()
    for day in weekly.days.values():
        db.add(
            AvailabilityTemplate(
                therapist_id=therapist_id,
                day_of_week=day.day_of_week,
                is_enabled=day.enabled,
                start_time=day.start_time,
                end_time=day.end_time,
                session_duration_minutes=day.session_duration_minutes,
                buffer_minutes=day.buffer_minutes,
                max_sessions_per_day=day.max_sessions_per_day,
            )
        )
    if settings is not None:
        save_session_settings(db, therapist_id, settings)

    db.commit()
    logger.info('Saved weekly template for therapist %s (%d days)', therapist_id, len(weekly.days))


def _apply_override(row: OverrideRecord, override: AvailabilityOverride) -> None:
    row.is_available = override.is_available
    row.reason = override.reason
    if override.is_available:
        row.start_time = override.start_time
        row.end_time = override.end_time
        row.session_duration_minutes = override.session_duration_minutes
        row.max_sessions = override.max_sessions
    else:
        row.start_time = None
        row.end_time = None
        row.session_duration_minutes = None
        row.max_sessions = None


def upsert_override(db: Session, therapist_id: int, override: AvailabilityOverride) -> tuple[OverrideRecord, bool]:
    """Create or replace the override for its date. Returns (row, created)."""
    row = db.query(OverrideRecord).filter(
        OverrideRecord.therapist_id == therapist_id,
        OverrideRecord.override_date == override.override_date,
    ).first()
    created = row is None
    if created:
        row = OverrideRecord(therapist_id=therapist_id, override_date=override.override_date)
        db.add(row)

    _apply_override(row, override)
    db.commit()
    db.refresh(row)
    return row, created


def replace_overrides(db: Session, therapist_id: int, overrides: list[AvailabilityOverride]) -> list[OverrideRecord]:
    """Replace overrides for every date in the batch, e.g. a vacation period."""
    dates = [override.override_date for override in overrides]
    db.query(OverrideRecord).filter(
        OverrideRecord.therapist_id == therapist_id,
        OverrideRecord.override_date.in_(dates),
    ).delete(synchronize_session=False)

    rows = []
    for override in overrides:
        row = OverrideRecord(therapist_id=therapist_id, override_date=override.override_date)
        _apply_override(row, override)
        db.add(row)
        rows.append(row)

    db.commit()
    for row in rows:
        db.refresh(row)
    return rows
