from datetime import datetime, timedelta

import pytest

from therapy_backend.scheduling.overlap import find_conflicts, has_conflict, intervals_overlap
from therapy_backend.scheduling.types import BookedSession


def session(session_id: int, hour: int, minute: int = 0, minutes: int = 60, status: str = 'scheduled') -> BookedSession:
    start = datetime(2026, 1, 5, hour, minute)
    return BookedSession(
        session_id=session_id,
        therapist_id=3,
        start=start,
        end=start + timedelta(minutes=minutes),
        status=status,
    )


@pytest.mark.parametrize(
    ('start_hour', 'start_minute', 'minutes', 'expected'),
    [
        (9, 0, 60, False),   # ends exactly when the session starts
        (11, 0, 60, False),  # starts exactly when the session ends
        (9, 30, 60, True),   # overlaps the start
        (10, 30, 60, True),  # overlaps the end
        (10, 15, 30, True),  # inside
        (9, 0, 180, True),   # covers
    ],
)
def test_intervals_overlap_is_half_open(start_hour: int, start_minute: int, minutes: int, expected: bool) -> None:
    start = datetime(2026, 1, 5, start_hour, start_minute)
    end = start + timedelta(minutes=minutes)

    assert intervals_overlap(start, end, datetime(2026, 1, 5, 10, 0), datetime(2026, 1, 5, 11, 0)) is expected


def test_find_conflicts_returns_only_active_overlaps() -> None:
    sessions = [
        session(1, 10),
        session(2, 10, status='cancelled'),
        session(3, 10, 30, status='completed'),
        session(4, 13),
    ]

    conflicts = find_conflicts(datetime(2026, 1, 5, 10, 0), datetime(2026, 1, 5, 11, 0), sessions)

    assert [conflict.session_id for conflict in conflicts] == [1, 3]


def test_has_conflict_can_exclude_the_session_being_edited() -> None:
    sessions = [session(1, 10)]
    start, end = datetime(2026, 1, 5, 10, 30), datetime(2026, 1, 5, 11, 30)

    assert has_conflict(start, end, sessions) is True
    assert has_conflict(start, end, sessions, exclude_session_id=1) is False


def test_has_conflict_with_no_sessions() -> None:
    assert has_conflict(datetime(2026, 1, 5, 10, 0), datetime(2026, 1, 5, 11, 0), []) is False
