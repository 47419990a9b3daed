from datetime import date, datetime, time, timedelta

import pytest

from therapy_backend.scheduling.errors import InvalidRange, UnknownTherapist
from therapy_backend.scheduling.resolver import resolve_slots, suggest_alternatives
from therapy_backend.scheduling.types import (
    CANCELLED,
    AvailabilityOverride,
    BookedSession,
    DayTemplate,
    SessionSettings,
    TherapistSchedule,
    WeeklyTemplate,
)

MONDAY = date(2026, 1, 5)
THURSDAY_BEFORE = datetime(2026, 1, 1, 8, 0)


def monday_template(**overrides) -> DayTemplate:
    values = {
        'day_of_week': 1,
        'enabled': True,
        'start_time': time(9, 0),
        'end_time': time(12, 0),
        'session_duration_minutes': 60,
        'buffer_minutes': 0,
        'max_sessions_per_day': 8,
    }
    values.update(overrides)
    return DayTemplate(**values)


def build_schedule(days=None, overrides=None, sessions=None, **settings) -> TherapistSchedule:
    settings.setdefault('min_lead_minutes', 0)
    return TherapistSchedule(
        therapist_id=7,
        weekly=WeeklyTemplate.from_days(days if days is not None else [monday_template()]),
        overrides={override.override_date: override for override in overrides or []},
        sessions=list(sessions or []),
        settings=SessionSettings(**settings),
    )


def booked(start: datetime, minutes: int = 60, status: str = 'scheduled', session_id: int = 1) -> BookedSession:
    return BookedSession(
        session_id=session_id,
        therapist_id=7,
        start=start,
        end=start + timedelta(minutes=minutes),
        status=status,
    )


def start_times(slots) -> list[time]:
    return [slot.start_time for slot in slots]


def test_single_monday_yields_three_hourly_slots() -> None:
    slots = list(resolve_slots(build_schedule(), MONDAY, MONDAY, THURSDAY_BEFORE))

    assert [(slot.start_time, slot.end_time) for slot in slots] == [
        (time(9, 0), time(10, 0)),
        (time(10, 0), time(11, 0)),
        (time(11, 0), time(12, 0)),
    ]
    assert all(slot.duration_minutes == 60 for slot in slots)


def test_existing_session_removes_overlapping_slot() -> None:
    schedule = build_schedule(sessions=[booked(datetime(2026, 1, 5, 10, 0))])

    slots = resolve_slots(schedule, MONDAY, MONDAY, THURSDAY_BEFORE)

    assert start_times(slots) == [time(9, 0), time(11, 0)]


def test_cancelled_session_does_not_block_slot() -> None:
    schedule = build_schedule(sessions=[booked(datetime(2026, 1, 5, 10, 0), status=CANCELLED)])

    slots = resolve_slots(schedule, MONDAY, MONDAY, THURSDAY_BEFORE)

    assert start_times(slots) == [time(9, 0), time(10, 0), time(11, 0)]


def test_back_to_back_session_does_not_overlap() -> None:
    schedule = build_schedule(sessions=[booked(datetime(2026, 1, 5, 8, 0))])

    slots = resolve_slots(schedule, MONDAY, MONDAY, THURSDAY_BEFORE)

    assert start_times(slots) == [time(9, 0), time(10, 0), time(11, 0)]


def test_blackout_override_removes_the_whole_date() -> None:
    schedule = build_schedule(overrides=[AvailabilityOverride(override_date=MONDAY, is_available=False)])

    assert list(resolve_slots(schedule, MONDAY, MONDAY, THURSDAY_BEFORE)) == []


def test_override_hours_replace_template_hours() -> None:
    override = AvailabilityOverride(
        override_date=MONDAY,
        is_available=True,
        start_time=time(13, 0),
        end_time=time(15, 0),
    )
    schedule = build_schedule(overrides=[override])

    slots = resolve_slots(schedule, MONDAY, MONDAY, THURSDAY_BEFORE)

    assert start_times(slots) == [time(13, 0), time(14, 0)]


def test_override_duration_and_max_sessions_apply() -> None:
    override = AvailabilityOverride(
        override_date=MONDAY,
        is_available=True,
        start_time=time(9, 0),
        end_time=time(12, 0),
        session_duration_minutes=30,
        max_sessions=2,
    )
    schedule = build_schedule(overrides=[override])

    slots = list(resolve_slots(schedule, MONDAY, MONDAY, THURSDAY_BEFORE))

    assert start_times(slots) == [time(9, 0), time(9, 30)]
    assert all(slot.duration_minutes == 30 for slot in slots)


def test_override_without_hours_enables_disabled_day_with_template_hours() -> None:
    schedule = build_schedule(
        days=[monday_template(enabled=False)],
        overrides=[AvailabilityOverride(override_date=MONDAY, is_available=True)],
    )

    slots = resolve_slots(schedule, MONDAY, MONDAY, THURSDAY_BEFORE)

    assert start_times(slots) == [time(9, 0), time(10, 0), time(11, 0)]


def test_override_without_hours_and_without_template_row_has_no_slots() -> None:
    tuesday = MONDAY + timedelta(days=1)
    schedule = build_schedule(overrides=[AvailabilityOverride(override_date=tuesday, is_available=True)])

    assert list(resolve_slots(schedule, tuesday, tuesday, THURSDAY_BEFORE)) == []


def test_disabled_day_has_no_slots_across_weeks() -> None:
    schedule = build_schedule(days=[monday_template(enabled=False)])

    slots = list(resolve_slots(schedule, MONDAY, MONDAY + timedelta(days=20), THURSDAY_BEFORE))

    assert slots == []


def test_only_template_weekdays_produce_slots() -> None:
    slots = list(resolve_slots(build_schedule(), date(2026, 1, 2), date(2026, 1, 25), THURSDAY_BEFORE))

    assert {slot.date.weekday() for slot in slots} == {0}
    assert sorted({slot.date for slot in slots}) == [date(2026, 1, 5), date(2026, 1, 12), date(2026, 1, 19)]


def test_buffer_spaces_consecutive_slots() -> None:
    schedule = build_schedule(days=[monday_template(session_duration_minutes=45, buffer_minutes=15)])

    slots = list(resolve_slots(schedule, MONDAY, MONDAY, THURSDAY_BEFORE))

    assert start_times(slots) == [time(9, 0), time(10, 0), time(11, 0)]
    for previous, following in zip(slots, slots[1:]):
        assert following.starts_at >= previous.ends_at + timedelta(minutes=15)
    assert all(slot.ends_at - slot.starts_at == timedelta(minutes=45) for slot in slots)


def test_max_sessions_caps_slots_per_day() -> None:
    schedule = build_schedule(days=[monday_template(max_sessions_per_day=2)])

    slots = resolve_slots(schedule, MONDAY, MONDAY, THURSDAY_BEFORE)

    assert start_times(slots) == [time(9, 0), time(10, 0)]


def test_booked_sessions_count_against_daily_capacity() -> None:
    schedule = build_schedule(
        days=[monday_template(max_sessions_per_day=2)],
        sessions=[booked(datetime(2026, 1, 5, 11, 0))],
    )

    slots = resolve_slots(schedule, MONDAY, MONDAY, THURSDAY_BEFORE)

    assert start_times(slots) == [time(9, 0)]


def test_advance_booking_window_limits_range() -> None:
    every_day = [monday_template(day_of_week=day) for day in range(7)]
    wednesday = datetime(2026, 1, 7, 8, 0)
    schedule = build_schedule(days=every_day, advance_booking_days=7)

    slots = list(resolve_slots(schedule, wednesday.date(), wednesday.date() + timedelta(days=10), wednesday))

    assert slots
    assert all(slot.starts_at <= wednesday + timedelta(days=7) for slot in slots)
    assert max(slot.date for slot in slots) == date(2026, 1, 13)


def test_minimum_lead_time_drops_early_slots() -> None:
    now = datetime(2026, 1, 5, 9, 10)
    schedule = build_schedule(min_lead_minutes=60)

    slots = resolve_slots(schedule, MONDAY, MONDAY, now)

    assert start_times(slots) == [time(11, 0)]


def test_slots_in_the_past_are_never_offered() -> None:
    now = datetime(2026, 1, 5, 10, 30)

    assert start_times(resolve_slots(build_schedule(), MONDAY, MONDAY, now)) == [time(11, 0)]
    assert list(resolve_slots(build_schedule(), MONDAY - timedelta(days=7), MONDAY - timedelta(days=1), now)) == []


def test_resolution_is_repeatable_and_restartable() -> None:
    schedule = build_schedule(sessions=[booked(datetime(2026, 1, 5, 10, 0))])

    sequence = resolve_slots(schedule, MONDAY, MONDAY + timedelta(days=14), THURSDAY_BEFORE)
    first_pass = list(sequence)
    second_pass = list(sequence)
    fresh = list(resolve_slots(schedule, MONDAY, MONDAY + timedelta(days=14), THURSDAY_BEFORE))

    assert first_pass == second_pass == fresh
    assert first_pass == sorted(first_pass)


def test_prefix_helpers_return_earliest_slots() -> None:
    sequence = resolve_slots(build_schedule(), MONDAY, MONDAY + timedelta(days=28), THURSDAY_BEFORE)

    assert sequence.first().starts_at == datetime(2026, 1, 5, 9, 0)
    assert [slot.starts_at for slot in sequence.take(4)] == [
        datetime(2026, 1, 5, 9, 0),
        datetime(2026, 1, 5, 10, 0),
        datetime(2026, 1, 5, 11, 0),
        datetime(2026, 1, 12, 9, 0),
    ]


def test_first_is_none_without_availability() -> None:
    schedule = build_schedule(days=[])

    assert resolve_slots(schedule, MONDAY, MONDAY, THURSDAY_BEFORE).first() is None


def test_reversed_range_is_rejected() -> None:
    with pytest.raises(InvalidRange):
        resolve_slots(build_schedule(), MONDAY, MONDAY - timedelta(days=1), THURSDAY_BEFORE)


def test_range_wider_than_limit_is_rejected() -> None:
    with pytest.raises(InvalidRange):
        resolve_slots(build_schedule(), MONDAY, MONDAY + timedelta(days=90), THURSDAY_BEFORE)


def test_unknown_therapist_is_empty_unless_required() -> None:
    schedule = build_schedule(days=[])

    assert list(resolve_slots(schedule, MONDAY, MONDAY, THURSDAY_BEFORE)) == []
    with pytest.raises(UnknownTherapist):
        resolve_slots(schedule, MONDAY, MONDAY, THURSDAY_BEFORE, require_known=True)


def test_suggest_alternatives_returns_nearest_open_slots() -> None:
    schedule = build_schedule(sessions=[booked(datetime(2026, 1, 5, 10, 0))])

    suggestions = suggest_alternatives(schedule, datetime(2026, 1, 5, 10, 0), THURSDAY_BEFORE, limit=3)

    assert [slot.starts_at for slot in suggestions] == [
        datetime(2026, 1, 5, 9, 0),
        datetime(2026, 1, 5, 11, 0),
        datetime(2026, 1, 12, 9, 0),
    ]
