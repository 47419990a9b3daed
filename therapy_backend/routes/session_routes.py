import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from therapy_backend.auth.dependencies import get_current_user, require_therapist_access
from therapy_backend.core import config
from therapy_backend.core.clock import local_now, to_local_naive
from therapy_backend.database import get_db
from therapy_backend.models.session import TherapySession
from therapy_backend.models.user import ROLE_ADMIN, ROLE_PATIENT, ROLE_THERAPIST, User
from therapy_backend.routes.availability_routes import (
    DATABASE_UNAVAILABLE,
    ensure_database_ready,
    get_therapist_or_404,
    to_slot_response,
)
from therapy_backend.scheduling.cancellation import cancellation_deadline
from therapy_backend.scheduling.errors import ConflictOnCommit
from therapy_backend.scheduling.overlap import find_conflicts
from therapy_backend.scheduling.resolver import resolve_slots, suggest_alternatives
from therapy_backend.scheduling.types import TherapistSchedule
from therapy_backend.services import booking_service, schedule_store

router = APIRouter(tags=['sessions'])

logger = logging.getLogger(__name__)

MAX_SESSION_NOTES_LENGTH = 600
MAX_CHECK_DURATION_MINUTES = 240
SUGGESTION_SEARCH_DAYS = 7


class CreateSessionRequest(BaseModel):
    therapist_id: int
    start_time: datetime
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_SESSION_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_SESSION_NOTES_LENGTH} characters or fewer.')

        return normalized


class CheckAvailabilityRequest(BaseModel):
    therapist_id: int
    start_time: datetime
    duration_minutes: int = Field(gt=0, le=MAX_CHECK_DURATION_MINUTES)
    exclude_session_id: int | None = None


class CancelSessionRequest(BaseModel):
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None


class SessionResponse(BaseModel):
    id: int
    therapist_id: int
    patient_id: int
    start_time: datetime
    end_time: datetime
    status: str
    notes: str | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    credit_refunded: bool = False

    class Config:
        from_attributes = True


class CancellationResponse(BaseModel):
    session: SessionResponse
    credit_refunded: bool
    late_cancellation: bool
    cancellation_deadline: datetime


class ConflictingSessionResponse(BaseModel):
    id: int | None
    start_time: datetime
    end_time: datetime
    status: str


class CheckAvailabilityResponse(BaseModel):
    available: bool
    conflicting_sessions: list[ConflictingSessionResponse]
    suggested_slots: list[dict]


def suggested_slots(schedule: TherapistSchedule, requested_start: datetime, now: datetime) -> list[dict]:
    return [
        to_slot_response(slot).model_dump(mode='json')
        for slot in suggest_alternatives(
            schedule, requested_start, now, limit=config.SUGGESTION_LIMIT, search_days=SUGGESTION_SEARCH_DAYS,
        )
    ]


def load_booking_schedule(db: Session, therapist_id: int, requested_start: datetime) -> TherapistSchedule:
    # Covers every day suggest_alternatives may look at.
    requested_date = requested_start.date()
    return schedule_store.load_schedule(
        db,
        therapist_id,
        requested_date - timedelta(days=1),
        requested_date + timedelta(days=SUGGESTION_SEARCH_DAYS),
    )


def requested_local_start(db: Session, therapist_id: int, requested: datetime) -> datetime:
    timezone_name = schedule_store.get_session_settings(db, therapist_id).timezone
    return to_local_naive(requested, timezone_name).replace(second=0, microsecond=0)


def get_session_or_404(db: Session, session_id: int) -> TherapySession:
    session = db.query(TherapySession).filter(TherapySession.id == session_id).first()
    if not session:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Session not found.',
        )
    return session


def _slot_taken(message: str, schedule: TherapistSchedule, requested_start: datetime, now: datetime) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            'message': message,
            'suggested_slots': suggested_slots(schedule, requested_start, now),
        },
    )


@router.post('', response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def book_session(
    data: CreateSessionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if current_user.role != ROLE_PATIENT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only patients can book sessions.',
        )

    ensure_database_ready()

    try:
        get_therapist_or_404(db, data.therapist_id)
        start_time = requested_local_start(db, data.therapist_id, data.start_time)
        booking_date = start_time.date()

        schedule = load_booking_schedule(db, data.therapist_id, start_time)
        now = local_now(schedule.settings.timezone)

        if start_time <= now:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Sessions must be booked in the future.',
            )

        offered = {slot.starts_at: slot for slot in resolve_slots(schedule, booking_date, booking_date, now)}
        slot = offered.get(start_time)
        if slot is None:
            raise _slot_taken('This time is not available.', schedule, start_time, now)

        try:
            session = booking_service.commit_session(
                db,
                therapist_id=data.therapist_id,
                patient_id=current_user.id,
                start_time=slot.starts_at,
                end_time=slot.ends_at,
                notes=data.notes,
            )
        except ConflictOnCommit as exc:
            logger.info('Booking conflict for therapist %s at %s', data.therapist_id, start_time)
            fresh = load_booking_schedule(db, data.therapist_id, start_time)
            raise _slot_taken(str(exc), fresh, start_time, now) from exc
        except booking_service.InsufficientCredits as exc:
            raise HTTPException(
                status_code=status.HTTP_402_PAYMENT_REQUIRED,
                detail=str(exc),
            ) from exc

        return session
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.post('/check-availability', response_model=CheckAvailabilityResponse)
def check_availability(
    data: CheckAvailabilityRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_therapist_access(current_user, data.therapist_id)
    ensure_database_ready()

    try:
        get_therapist_or_404(db, data.therapist_id)
        start_time = requested_local_start(db, data.therapist_id, data.start_time)
        end_time = start_time + timedelta(minutes=data.duration_minutes)

        schedule = load_booking_schedule(db, data.therapist_id, start_time)
        conflicts = find_conflicts(start_time, end_time, schedule.sessions, data.exclude_session_id)

        suggestions = []
        if conflicts:
            now = local_now(schedule.settings.timezone)
            suggestions = suggested_slots(schedule, start_time, now)

        return CheckAvailabilityResponse(
            available=not conflicts,
            conflicting_sessions=[
                ConflictingSessionResponse(
                    id=conflict.session_id,
                    start_time=conflict.start,
                    end_time=conflict.end,
                    status=conflict.status,
                )
                for conflict in conflicts
            ],
            suggested_slots=suggestions,
        )
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.get('', response_model=list[SessionResponse])
def list_my_sessions(
    include_past: bool = Query(default=False),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        query = db.query(TherapySession)
        if current_user.role == ROLE_THERAPIST:
            query = query.filter(TherapySession.therapist_id == current_user.id)
        elif current_user.role != ROLE_ADMIN:
            query = query.filter(TherapySession.patient_id == current_user.id)

        sessions = query.order_by(TherapySession.start_time.asc()).all()
        if include_past:
            return sessions

        # Stored times are local to each therapist, so "now" is too.
        now_by_therapist: dict[int, datetime] = {}
        upcoming = []
        for session in sessions:
            if session.therapist_id not in now_by_therapist:
                settings = schedule_store.get_session_settings(db, session.therapist_id)
                now_by_therapist[session.therapist_id] = local_now(settings.timezone)
            if session.end_time > now_by_therapist[session.therapist_id]:
                upcoming.append(session)
        return upcoming
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.post('/{session_id}/cancel', response_model=CancellationResponse)
def cancel_session(
    session_id: int,
    data: CancelSessionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        session = get_session_or_404(db, session_id)

        is_patient = session.patient_id == current_user.id
        is_staff = current_user.role == ROLE_ADMIN or session.therapist_id == current_user.id
        if not (is_patient or is_staff):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Only the patient, the therapist or an admin can cancel this session.',
            )

        settings = schedule_store.get_session_settings(db, session.therapist_id)
        policy = settings.policy
        now = local_now(settings.timezone)

        try:
            session = booking_service.cancel_session(
                db,
                session,
                now,
                policy,
                reason=data.reason,
                always_refund=is_staff and not is_patient,
            )
        except booking_service.InvalidSessionState as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(exc),
            ) from exc

        deadline = cancellation_deadline(schedule_store.to_booked_session(session), policy)
        return CancellationResponse(
            session=SessionResponse.model_validate(session),
            credit_refunded=bool(session.credit_refunded),
            late_cancellation=now > deadline,
            cancellation_deadline=deadline,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


@router.post('/{session_id}/complete', response_model=SessionResponse)
def complete_session(
    session_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        session = get_session_or_404(db, session_id)
        require_therapist_access(current_user, session.therapist_id)

        try:
            return booking_service.complete_session(db, session)
        except booking_service.InvalidSessionState as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(exc),
            ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc
