from datetime import datetime, timedelta

from therapy_backend.scheduling.types import BookedSession, BookingWindowPolicy


def cancellation_deadline(session: BookedSession, policy: BookingWindowPolicy) -> datetime:
    return session.start - timedelta(hours=policy.cancellation_hours)


def can_cancel(session: BookedSession, now: datetime, policy: BookingWindowPolicy) -> bool:
    """True when the session starts at least cancellation_hours after now.

    A False result only means the notice is too short. Whether that blocks the
    cancellation or just forfeits the credit is up to the caller.
    """
    return session.start - now >= timedelta(hours=policy.cancellation_hours)
