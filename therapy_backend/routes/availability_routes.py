from datetime import date, datetime, time, timedelta
from itertools import islice
from typing import Iterator

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from therapy_backend.auth.dependencies import get_current_user, require_therapist_access
from therapy_backend.core import config
from therapy_backend.core.clock import local_now
from therapy_backend.database import ensure_availability_schema, ensure_session_schema, get_db
from therapy_backend.models.availability import AvailabilityOverride as OverrideRecord
from therapy_backend.models.user import ROLE_THERAPIST, User
from therapy_backend.scheduling.adapters import TemplatePayload, to_weekly_availability, to_weekly_template
from therapy_backend.scheduling.errors import InvalidRange, InvalidSchedule
from therapy_backend.scheduling.resolver import resolve_slots, validate_range
from therapy_backend.scheduling.types import AvailabilityOverride, ResolvedSlot, SessionSettings
from therapy_backend.services import schedule_store

router = APIRouter(tags=['availability'])

DATABASE_UNAVAILABLE = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'
MAX_NEXT_SLOTS = 20
MAX_OVERRIDE_REASON_LENGTH = 300


class SlotResponse(BaseModel):
    date: date
    start_time: time
    end_time: time
    duration_minutes: int
    starts_at: datetime
    ends_at: datetime


class OverrideFields(BaseModel):
    override_date: date
    is_available: bool = False
    start_time: time | None = None
    end_time: time | None = None
    session_duration: int | None = Field(default=None, gt=0)
    max_sessions: int | None = Field(default=None, ge=1)
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_OVERRIDE_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_OVERRIDE_REASON_LENGTH} characters or fewer.')

        return normalized


class SaveOverrideRequest(OverrideFields):
    therapist_id: int


class BulkOverridesRequest(BaseModel):
    therapist_id: int
    overrides: list[OverrideFields] = Field(min_length=1)


class OverrideResponse(BaseModel):
    id: int
    therapist_id: int
    override_date: date
    is_available: bool
    start_time: time | None = None
    end_time: time | None = None
    session_duration_minutes: int | None = None
    max_sessions: int | None = None
    reason: str | None = None

    class Config:
        from_attributes = True


class SessionSettingsRequest(BaseModel):
    therapist_id: int
    session_duration_minutes: int = Field(gt=0)
    buffer_minutes: int = Field(ge=0)
    max_sessions_per_day: int = Field(ge=1)
    advance_booking_days: int = Field(ge=0)
    cancellation_hours: int = Field(ge=0)
    min_lead_minutes: int = Field(default=config.DEFAULT_MIN_LEAD_MINUTES, ge=0)
    timezone: str = config.DEFAULT_TIMEZONE


class SessionSettingsResponse(BaseModel):
    therapist_id: int
    session_duration_minutes: int
    buffer_minutes: int
    max_sessions_per_day: int
    advance_booking_days: int
    cancellation_hours: int
    min_lead_minutes: int
    timezone: str


class TemplateResponse(BaseModel):
    therapist_id: int
    availability: dict
    overrides: list[OverrideResponse]


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_session_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


def get_therapist_or_404(db: Session, therapist_id: int) -> User:
    therapist = db.query(User).filter(
        User.id == therapist_id,
        User.role == ROLE_THERAPIST,
    ).first()
    if therapist is None or therapist.is_active is False:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Therapist not found.',
        )
    return therapist


def to_slot_response(slot: ResolvedSlot) -> SlotResponse:
    return SlotResponse(
        date=slot.date,
        start_time=slot.start_time,
        end_time=slot.end_time,
        duration_minutes=slot.duration_minutes,
        starts_at=slot.starts_at,
        ends_at=slot.ends_at,
    )


def to_settings_response(therapist_id: int, settings: SessionSettings) -> SessionSettingsResponse:
    return SessionSettingsResponse(
        therapist_id=therapist_id,
        session_duration_minutes=settings.session_duration_minutes,
        buffer_minutes=settings.buffer_minutes,
        max_sessions_per_day=settings.max_sessions_per_day,
        advance_booking_days=settings.advance_booking_days,
        cancellation_hours=settings.cancellation_hours,
        min_lead_minutes=settings.min_lead_minutes,
        timezone=settings.timezone,
    )


def build_override(fields: OverrideFields) -> AvailabilityOverride:
    try:
        return AvailabilityOverride(
            override_date=fields.override_date,
            is_available=fields.is_available,
            start_time=fields.start_time if fields.is_available else None,
            end_time=fields.end_time if fields.is_available else None,
            session_duration_minutes=fields.session_duration if fields.is_available else None,
            max_sessions=fields.max_sessions if fields.is_available else None,
            reason=fields.reason,
        )
    except InvalidSchedule as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc


def upcoming_slots(db: Session, therapist_id: int, now: datetime, advance_booking_days: int) -> Iterator[ResolvedSlot]:
    """Slots from today to the end of the advance window, loaded one chunk at a time."""
    chunk_days = config.MAX_RESOLVE_RANGE_DAYS
    chunk_start = now.date()
    window_end = chunk_start + timedelta(days=advance_booking_days)

    while chunk_start <= window_end:
        chunk_end = min(chunk_start + timedelta(days=chunk_days - 1), window_end)
        schedule = schedule_store.load_schedule(db, therapist_id, chunk_start, chunk_end)
        yield from resolve_slots(schedule, chunk_start, chunk_end, now, max_days=chunk_days)
        chunk_start = chunk_end + timedelta(days=1)


@router.get('/slots', response_model=list[SlotResponse])
def list_available_slots(
    therapist_id: int = Query(...),
    start_date: date = Query(...),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    range_end = end_date or start_date
    try:
        validate_range(start_date, range_end, config.MAX_RESOLVE_RANGE_DAYS)
    except InvalidRange as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    ensure_database_ready()

    try:
        get_therapist_or_404(db, therapist_id)
        schedule = schedule_store.load_schedule(db, therapist_id, start_date, range_end)
        slots = resolve_slots(
            schedule,
            start_date,
            range_end,
            local_now(schedule.settings.timezone),
            max_days=config.MAX_RESOLVE_RANGE_DAYS,
        )
        return [to_slot_response(slot) for slot in slots]
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.get('/next', response_model=list[SlotResponse])
def list_next_available_slots(
    therapist_id: int = Query(...),
    limit: int = Query(default=1, ge=1, le=MAX_NEXT_SLOTS),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        get_therapist_or_404(db, therapist_id)
        settings = schedule_store.get_session_settings(db, therapist_id)
        now = local_now(settings.timezone)
        slots = islice(upcoming_slots(db, therapist_id, now, settings.advance_booking_days), limit)
        return [to_slot_response(slot) for slot in slots]
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.get('/template', response_model=TemplateResponse)
def get_template(therapist_id: int = Query(...), db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        get_therapist_or_404(db, therapist_id)
        weekly = schedule_store.get_weekly_template(db, therapist_id)
        settings = schedule_store.get_session_settings(db, therapist_id)
        today = local_now(settings.timezone).date()
        overrides = schedule_store.list_override_records(db, therapist_id, start_date=today)

        return TemplateResponse(
            therapist_id=therapist_id,
            availability=to_weekly_availability(weekly, settings),
            overrides=[OverrideResponse.model_validate(row) for row in overrides],
        )
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.put('/template', response_model=TemplateResponse)
def save_template(
    data: TemplatePayload,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_therapist_access(current_user, data.therapist_id)
    ensure_database_ready()

    try:
        get_therapist_or_404(db, data.therapist_id)
        current_settings = schedule_store.get_session_settings(db, data.therapist_id)

        try:
            weekly, new_settings = to_weekly_template(data, current_settings)
        except InvalidSchedule as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(exc),
            ) from exc

        schedule_store.save_weekly_template(db, data.therapist_id, weekly, new_settings)
        today = local_now((new_settings or current_settings).timezone).date()
        overrides = schedule_store.list_override_records(db, data.therapist_id, start_date=today)

        return TemplateResponse(
            therapist_id=data.therapist_id,
            availability=to_weekly_availability(weekly, new_settings or current_settings),
            overrides=[OverrideResponse.model_validate(row) for row in overrides],
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.get('/overrides', response_model=list[OverrideResponse])
def list_overrides(
    therapist_id: int = Query(...),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedule_store.list_override_records(db, therapist_id, start_date, end_date)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.post('/overrides', response_model=OverrideResponse)
def save_override(
    data: SaveOverrideRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_therapist_access(current_user, data.therapist_id)
    override = build_override(data)

    ensure_database_ready()

    try:
        get_therapist_or_404(db, data.therapist_id)
        row, _ = schedule_store.upsert_override(db, data.therapist_id, override)
        return row
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.put('/overrides/bulk', response_model=list[OverrideResponse])
def replace_overrides(
    data: BulkOverridesRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_therapist_access(current_user, data.therapist_id)

    dates = [item.override_date for item in data.overrides]
    if len(set(dates)) != len(dates):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Each date can only appear once.',
        )
    overrides = [build_override(item) for item in data.overrides]

    ensure_database_ready()

    try:
        get_therapist_or_404(db, data.therapist_id)
        return schedule_store.replace_overrides(db, data.therapist_id, overrides)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.delete('/overrides/{override_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_override(
    override_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        override = db.query(OverrideRecord).filter(OverrideRecord.id == override_id).first()

        if not override:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Override not found.',
            )

        require_therapist_access(current_user, override.therapist_id)

        db.delete(override)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.get('/settings', response_model=SessionSettingsResponse)
def get_settings(therapist_id: int = Query(...), db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        get_therapist_or_404(db, therapist_id)
        return to_settings_response(therapist_id, schedule_store.get_session_settings(db, therapist_id))
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.put('/settings', response_model=SessionSettingsResponse)
def save_settings(
    data: SessionSettingsRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_therapist_access(current_user, data.therapist_id)

    try:
        settings = SessionSettings(
            session_duration_minutes=data.session_duration_minutes,
            buffer_minutes=data.buffer_minutes,
            max_sessions_per_day=data.max_sessions_per_day,
            advance_booking_days=data.advance_booking_days,
            cancellation_hours=data.cancellation_hours,
            min_lead_minutes=data.min_lead_minutes,
            timezone=data.timezone,
        )
    except InvalidSchedule as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    ensure_database_ready()

    try:
        get_therapist_or_404(db, data.therapist_id)
        schedule_store.save_session_settings(db, data.therapist_id, settings)
        db.commit()
        return to_settings_response(data.therapist_id, settings)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc
