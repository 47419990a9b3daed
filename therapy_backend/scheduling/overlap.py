"""
Double-booking guard.

Intervals are half-open, [start, end), so back-to-back sessions with no
buffer do not conflict.
"""

from datetime import datetime
from typing import Iterable

from therapy_backend.scheduling.types import BookedSession


def intervals_overlap(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    return start < other_end and end > other_start


def find_conflicts(
    start: datetime,
    end: datetime,
    sessions: Iterable[BookedSession],
    exclude_session_id: int | None = None,
) -> list[BookedSession]:
    """
    Return the non-cancelled sessions overlapping [start, end).

    Args:
        start: proposed start
        end: proposed end
        sessions: the therapist's existing sessions
        exclude_session_id: session being edited, ignored in the check
    """
    conflicts = []
    for session in sessions:
        if not session.is_active:
            continue
        if exclude_session_id is not None and session.session_id == exclude_session_id:
            continue
        if intervals_overlap(start, end, session.start, session.end):
            conflicts.append(session)
    return conflicts


def has_conflict(
    start: datetime,
    end: datetime,
    sessions: Iterable[BookedSession],
    exclude_session_id: int | None = None,
) -> bool:
    return bool(find_conflicts(start, end, sessions, exclude_session_id))
