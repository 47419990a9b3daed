"""
Availability resolver.

Turns a therapist's weekly template, date overrides and existing sessions
into the list of bookable slots for a date range:

1. Skip dates outside [now, now + advance_booking_days].
2. An override for the date wins: blackout skips the day, explicit hours
   replace the template's, an override without hours reuses the template
   day's hours even when that day is disabled.
3. Without an override a disabled template day is skipped.
4. Step from the start time by duration + buffer while the session still
   ends by the end time.
5. Drop candidates inside the minimum lead time, beyond the advance window,
   or overlapping a non-cancelled session.
6. Keep at most max_sessions minus the sessions already booked that day.

The output is advisory. A slot can be taken between resolution and commit,
so the commit path re-checks and raises ConflictOnCommit.
"""

from datetime import date, datetime, timedelta
from itertools import islice
from typing import Iterator

from therapy_backend.scheduling.errors import InvalidRange, UnknownTherapist
from therapy_backend.scheduling.overlap import has_conflict
from therapy_backend.scheduling.types import DayHours, ResolvedSlot, TherapistSchedule

MAX_RESOLVE_RANGE_DAYS = 90


def iterate_dates(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def validate_range(range_start: date, range_end: date, max_days: int = MAX_RESOLVE_RANGE_DAYS) -> None:
    if range_end < range_start:
        raise InvalidRange('End date must not be before start date.')
    if (range_end - range_start).days + 1 > max_days:
        raise InvalidRange(f'Date range cannot exceed {max_days} days.')


def effective_hours(schedule: TherapistSchedule, target_date: date) -> DayHours | None:
    """Hours in force on target_date, or None when the therapist is unavailable."""
    settings = schedule.settings
    template = schedule.weekly.for_date(target_date)
    override = schedule.overrides.get(target_date)

    if override is not None:
        if not override.is_available:
            return None

        if override.has_hours:
            start_time, end_time = override.start_time, override.end_time
        elif template is not None:
            start_time, end_time = template.start_time, template.end_time
        else:
            return None

        duration = (
            override.session_duration_minutes
            or (template.session_duration_minutes if template else settings.session_duration_minutes)
        )
        buffer_minutes = template.buffer_minutes if template else settings.buffer_minutes
        max_sessions = (
            override.max_sessions
            or (template.max_sessions_per_day if template else settings.max_sessions_per_day)
        )
        return DayHours(start_time, end_time, duration, buffer_minutes, max_sessions)

    if template is None or not template.enabled:
        return None

    return DayHours(
        template.start_time,
        template.end_time,
        template.session_duration_minutes,
        template.buffer_minutes,
        template.max_sessions_per_day,
    )


def candidate_intervals(target_date: date, hours: DayHours) -> Iterator[tuple[datetime, datetime]]:
    duration = timedelta(minutes=hours.session_duration_minutes)
    step = timedelta(minutes=hours.session_duration_minutes + hours.buffer_minutes)
    current = datetime.combine(target_date, hours.start_time)
    day_end = datetime.combine(target_date, hours.end_time)

    while current + duration <= day_end:
        yield current, current + duration
        current += step


def slots_for_date(
    schedule: TherapistSchedule,
    target_date: date,
    earliest_start: datetime,
    latest_start: datetime,
) -> list[ResolvedSlot]:
    hours = effective_hours(schedule, target_date)
    if hours is None:
        return []

    day_start = datetime.combine(target_date, datetime.min.time())
    booked = schedule.active_sessions_between(day_start, day_start + timedelta(days=1))
    booked_that_day = sum(1 for session in booked if session.date == target_date)
    capacity = max(0, hours.max_sessions - booked_that_day)

    slots: list[ResolvedSlot] = []
    for start, end in candidate_intervals(target_date, hours):
        if len(slots) >= capacity:
            break
        if start < earliest_start or start > latest_start:
            continue
        if has_conflict(start, end, booked):
            continue
        slots.append(
            ResolvedSlot(
                date=target_date,
                start_time=start.time(),
                end_time=end.time(),
                duration_minutes=hours.session_duration_minutes,
            )
        )

    return slots


class SlotSequence:
    """Lazy, restartable view over resolved slots.

    Every iteration starts a fresh pass over the inputs, so taking a prefix
    only computes the dates needed for it.
    """

    def __init__(self, schedule: TherapistSchedule, range_start: date, range_end: date, now: datetime):
        self.schedule = schedule
        self.range_start = range_start
        self.range_end = range_end
        self.now = now

    def __iter__(self) -> Iterator[ResolvedSlot]:
        policy = self.schedule.settings.policy
        earliest_start = self.now + timedelta(minutes=policy.min_lead_minutes)
        latest_start = self.now + timedelta(days=policy.advance_booking_days)

        first_day = max(self.range_start, self.now.date())
        last_day = min(self.range_end, latest_start.date())

        for target_date in iterate_dates(first_day, last_day):
            yield from slots_for_date(self.schedule, target_date, earliest_start, latest_start)

    def first(self) -> ResolvedSlot | None:
        return next(iter(self), None)

    def take(self, count: int) -> list[ResolvedSlot]:
        return list(islice(self, count))


def resolve_slots(
    schedule: TherapistSchedule,
    range_start: date,
    range_end: date,
    now: datetime,
    require_known: bool = False,
    max_days: int = MAX_RESOLVE_RANGE_DAYS,
) -> SlotSequence:
    """
    Resolve bookable slots for a therapist.

    Args:
        schedule: template, overrides, sessions and settings for the therapist
        range_start: first calendar date, inclusive
        range_end: last calendar date, inclusive
        now: reference time, naive and in the therapist's timezone
        require_known: raise UnknownTherapist instead of returning nothing
            when no template or override exists
        max_days: widest range accepted

    Returns:
        SlotSequence ordered by (date, start_time). Empty means no availability.

    Raises:
        InvalidRange: reversed range or wider than max_days
        UnknownTherapist: only with require_known
    """
    validate_range(range_start, range_end, max_days)
    if require_known and not schedule.is_known:
        raise UnknownTherapist(schedule.therapist_id)
    return SlotSequence(schedule, range_start, range_end, now)


def suggest_alternatives(
    schedule: TherapistSchedule,
    requested_start: datetime,
    now: datetime,
    limit: int = 3,
    search_days: int = 7,
) -> list[ResolvedSlot]:
    """Open slots closest to a rejected request, nearest first.

    Looks from the day before the requested date through search_days after it.
    """
    range_start = requested_start.date() - timedelta(days=1)
    range_end = requested_start.date() + timedelta(days=search_days)
    candidates = list(resolve_slots(schedule, range_start, range_end, now, max_days=search_days + 2))
    candidates.sort(key=lambda slot: (abs(slot.starts_at - requested_start), slot.starts_at))
    return sorted(candidates[:limit])
