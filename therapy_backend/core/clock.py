import logging
from datetime import datetime

import pytz

logger = logging.getLogger(__name__)


def _timezone(timezone_name: str | None):
    try:
        return pytz.timezone(timezone_name or 'UTC')
    except pytz.UnknownTimeZoneError:
        logger.warning('Unknown timezone %r, using UTC', timezone_name)
        return pytz.UTC


def local_now(timezone_name: str | None) -> datetime:
    """Current wall-clock time in the therapist's timezone, without tzinfo.

    Schedules and sessions are stored as naive local times.
    """
    return datetime.now(_timezone(timezone_name)).replace(tzinfo=None)


def to_local_naive(value: datetime, timezone_name: str | None) -> datetime:
    """Convert an aware datetime to the therapist's naive local time.

    Naive values are taken as already local.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(_timezone(timezone_name)).replace(tzinfo=None)
