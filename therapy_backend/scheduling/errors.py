"""Errors raised by the scheduling core."""


class SchedulingError(Exception):
    """Base class for scheduling failures."""


class InvalidRange(SchedulingError, ValueError):
    """Raised when a requested date range is reversed or too wide."""


class InvalidSchedule(SchedulingError, ValueError):
    """Raised when template or override hours are malformed."""


class UnknownTherapist(SchedulingError):
    """Raised when a therapist has no template and no overrides."""

    def __init__(self, therapist_id: int):
        super().__init__(f'No availability configured for therapist {therapist_id}.')
        self.therapist_id = therapist_id


class ConflictOnCommit(SchedulingError):
    """Raised by the commit path when a booking would overlap an existing session.

    Resolved slots are advisory and can go stale between resolution and commit.
    Callers should re-resolve and offer alternatives rather than fail hard.
    """

    def __init__(self, message: str = 'This time slot is no longer available.', conflicting_ids=None):
        super().__init__(message)
        self.conflicting_ids = list(conflicting_ids or [])
