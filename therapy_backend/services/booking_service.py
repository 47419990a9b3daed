"""
Booking commit path.

The resolver only says a slot is likely open. The commit here is the
authoritative check: inside one transaction it locks the therapist's
user row, re-runs the double-booking guard against fresh rows, takes a
credit and inserts the session. On PostgreSQL the sessions_no_overlap
exclusion constraint rejects any overlap that still slips through.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from therapy_backend.models.credit import UserCredit
from therapy_backend.models.session import TherapySession
from therapy_backend.models.user import User
from therapy_backend.scheduling.cancellation import can_cancel
from therapy_backend.scheduling.errors import ConflictOnCommit
from therapy_backend.scheduling.overlap import find_conflicts
from therapy_backend.scheduling.types import CANCELLED, COMPLETED, SCHEDULED, BookingWindowPolicy
from therapy_backend.services.schedule_store import list_active_sessions, to_booked_session

logger = logging.getLogger(__name__)


class InsufficientCredits(Exception):
    """Raised when the patient has no credit to pay for a session."""


class InvalidSessionState(Exception):
    """Raised when a session cannot move to the requested status."""


def therapist_lock_query(db: Session, therapist_id: int):
    # SQLite ignores FOR UPDATE.
    return db.query(User).filter(User.id == therapist_id).with_for_update()


def _lock_therapist(db: Session, therapist_id: int) -> None:
    """Serialise concurrent commits for the same therapist."""
    therapist_lock_query(db, therapist_id).first()


def _take_credit(db: Session, patient_id: int) -> UserCredit:
    credit = db.query(UserCredit).filter(UserCredit.user_id == patient_id).with_for_update().first()
    if credit is None or credit.credits_balance < 1:
        raise InsufficientCredits('You need at least 1 credit to book a session.')

    credit.credits_balance -= 1
    credit.credits_used += 1
    return credit


def _return_credit(db: Session, patient_id: int) -> None:
    credit = db.query(UserCredit).filter(UserCredit.user_id == patient_id).with_for_update().first()
    if credit is None:
        credit = UserCredit(user_id=patient_id, credits_balance=0, credits_used=0)
        db.add(credit)

    credit.credits_balance += 1
    credit.credits_used = max(0, (credit.credits_used or 0) - 1)


def commit_session(
    db: Session,
    therapist_id: int,
    patient_id: int,
    start_time: datetime,
    end_time: datetime,
    notes: str | None = None,
) -> TherapySession:
    """
    Insert a session unless it overlaps a non-cancelled one.

    Raises:
        ConflictOnCommit: the interval is taken; re-resolve and offer alternatives
        InsufficientCredits: payment could not be authorized
    """
    try:
        _lock_therapist(db, therapist_id)

        existing = [
            to_booked_session(row)
            for row in list_active_sessions(db, therapist_id, start_time, end_time)
        ]
        conflicts = find_conflicts(start_time, end_time, existing)
        if conflicts:
            raise ConflictOnCommit(conflicting_ids=[session.session_id for session in conflicts])

        _take_credit(db, patient_id)

        session = TherapySession(
            therapist_id=therapist_id,
            patient_id=patient_id,
            start_time=start_time,
            end_time=end_time,
            status=SCHEDULED,
            notes=notes,
        )
        db.add(session)
        db.commit()
    except (ConflictOnCommit, InsufficientCredits):
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.info('Overlap constraint rejected booking for therapist %s at %s', therapist_id, start_time)
        raise ConflictOnCommit() from exc

    db.refresh(session)
    logger.info('Booked session %s for therapist %s at %s', session.id, therapist_id, start_time)
    return session


def cancel_session(
    db: Session,
    session: TherapySession,
    now: datetime,
    policy: BookingWindowPolicy,
    reason: str | None = None,
    always_refund: bool = False,
) -> TherapySession:
    """
    Cancel a scheduled session.

    Cancelling with enough notice returns the patient's credit; a late
    cancellation goes through but the credit is forfeited. always_refund is
    for cancellations made by the therapist or an admin.
    """
    if session.status != SCHEDULED:
        raise InvalidSessionState(f'Only scheduled sessions can be cancelled (status is {session.status}).')

    refund = always_refund or can_cancel(to_booked_session(session), now, policy)

    session.status = CANCELLED
    session.cancelled_at = now
    session.cancellation_reason = reason
    session.credit_refunded = refund
    if refund:
        _return_credit(db, session.patient_id)
    else:
        logger.warning('Late cancellation of session %s, credit forfeited', session.id)

    db.commit()
    db.refresh(session)
    return session


def complete_session(db: Session, session: TherapySession) -> TherapySession:
    if session.status != SCHEDULED:
        raise InvalidSessionState(f'Only scheduled sessions can be completed (status is {session.status}).')

    session.status = COMPLETED
    db.commit()
    db.refresh(session)
    return session
