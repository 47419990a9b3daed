"""
Value types for the availability resolver.

Everything here is plain data: the resolver never talks to the database,
it works on a TherapistSchedule assembled by the caller.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from therapy_backend.scheduling.errors import InvalidSchedule

SCHEDULED = 'scheduled'
COMPLETED = 'completed'
CANCELLED = 'cancelled'
SESSION_STATUSES = (SCHEDULED, COMPLETED, CANCELLED)

# 0 = Sunday .. 6 = Saturday, matching stored template rows.
DAY_NAMES = ('sunday', 'monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday')


def day_of_week(value: date) -> int:
    return (value.weekday() + 1) % 7


def _check_hours(start_time: time, end_time: time) -> None:
    if start_time >= end_time:
        raise InvalidSchedule('Start time must be before end time.')


@dataclass(frozen=True)
class BookingWindowPolicy:
    advance_booking_days: int = 30
    cancellation_hours: int = 24
    min_lead_minutes: int = 0


@dataclass(frozen=True)
class SessionSettings:
    """Per-therapist defaults and booking rules."""
    session_duration_minutes: int = 60
    buffer_minutes: int = 15
    max_sessions_per_day: int = 8
    advance_booking_days: int = 30
    cancellation_hours: int = 24
    min_lead_minutes: int = 0
    timezone: str = 'UTC'

    def __post_init__(self) -> None:
        if self.session_duration_minutes <= 0:
            raise InvalidSchedule('Session duration must be positive.')
        if self.buffer_minutes < 0:
            raise InvalidSchedule('Buffer time cannot be negative.')
        if self.max_sessions_per_day < 1:
            raise InvalidSchedule('Max sessions per day must be at least 1.')
        if self.advance_booking_days < 0 or self.cancellation_hours < 0 or self.min_lead_minutes < 0:
            raise InvalidSchedule('Booking window values cannot be negative.')

    @property
    def policy(self) -> BookingWindowPolicy:
        return BookingWindowPolicy(
            advance_booking_days=self.advance_booking_days,
            cancellation_hours=self.cancellation_hours,
            min_lead_minutes=self.min_lead_minutes,
        )


@dataclass(frozen=True)
class DayTemplate:
    """Recurring hours for one day of the week."""
    day_of_week: int
    enabled: bool
    start_time: time
    end_time: time
    session_duration_minutes: int
    buffer_minutes: int = 0
    max_sessions_per_day: int = 8

    def __post_init__(self) -> None:
        if not 0 <= self.day_of_week <= 6:
            raise InvalidSchedule('Day of week must be between 0 (Sunday) and 6 (Saturday).')
        _check_hours(self.start_time, self.end_time)
        if self.session_duration_minutes <= 0:
            raise InvalidSchedule('Session duration must be positive.')
        if self.buffer_minutes < 0:
            raise InvalidSchedule('Buffer time cannot be negative.')
        if self.max_sessions_per_day < 1:
            raise InvalidSchedule('Max sessions per day must be at least 1.')


@dataclass(frozen=True)
class WeeklyTemplate:
    days: dict[int, DayTemplate] = field(default_factory=dict)

    @classmethod
    def from_days(cls, days) -> 'WeeklyTemplate':
        by_day: dict[int, DayTemplate] = {}
        for day in days:
            if day.day_of_week in by_day:
                raise InvalidSchedule(f'Duplicate template for {DAY_NAMES[day.day_of_week]}.')
            by_day[day.day_of_week] = day
        return cls(days=by_day)

    def for_date(self, value: date) -> DayTemplate | None:
        return self.days.get(day_of_week(value))

    def __bool__(self) -> bool:
        return bool(self.days)


@dataclass(frozen=True)
class AvailabilityOverride:
    """Date-specific exception; takes precedence over the weekly template."""
    override_date: date
    is_available: bool
    start_time: time | None = None
    end_time: time | None = None
    session_duration_minutes: int | None = None
    max_sessions: int | None = None
    reason: str | None = None

    def __post_init__(self) -> None:
        if (self.start_time is None) != (self.end_time is None):
            raise InvalidSchedule('Override hours need both a start and an end time.')
        if self.start_time is not None:
            _check_hours(self.start_time, self.end_time)
        if self.session_duration_minutes is not None and self.session_duration_minutes <= 0:
            raise InvalidSchedule('Session duration must be positive.')
        if self.max_sessions is not None and self.max_sessions < 1:
            raise InvalidSchedule('Max sessions must be at least 1.')

    @property
    def has_hours(self) -> bool:
        return self.start_time is not None


@dataclass(frozen=True)
class BookedSession:
    session_id: int | None
    therapist_id: int
    start: datetime
    end: datetime
    status: str = SCHEDULED

    @property
    def date(self) -> date:
        return self.start.date()

    @property
    def is_active(self) -> bool:
        return self.status != CANCELLED


@dataclass(frozen=True, order=True)
class ResolvedSlot:
    date: date
    start_time: time
    end_time: time
    duration_minutes: int

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.start_time)

    @property
    def ends_at(self) -> datetime:
        return self.starts_at + timedelta(minutes=self.duration_minutes)


@dataclass(frozen=True)
class DayHours:
    """Effective hours for a single calendar date after overrides."""
    start_time: time
    end_time: time
    session_duration_minutes: int
    buffer_minutes: int
    max_sessions: int


@dataclass
class TherapistSchedule:
    """Everything the resolver needs for one therapist, fetched once per call."""
    therapist_id: int
    weekly: WeeklyTemplate = field(default_factory=WeeklyTemplate)
    overrides: dict[date, AvailabilityOverride] = field(default_factory=dict)
    sessions: list[BookedSession] = field(default_factory=list)
    settings: SessionSettings = field(default_factory=SessionSettings)

    @property
    def is_known(self) -> bool:
        return bool(self.weekly) or bool(self.overrides)

    def active_sessions_between(self, start: datetime, end: datetime) -> list[BookedSession]:
        return [
            session for session in self.sessions
            if session.is_active and session.start < end and session.end > start
        ]
