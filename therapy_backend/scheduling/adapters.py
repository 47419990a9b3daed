"""
Boundary translation between request formats and the resolver's types.

Two shapes reach the template endpoint:

- legacy rows: {"therapist_id": 1, "templates": [{"day_of_week": 1, ...}]}
- weekly object: {"therapist_id": 1, "availability": {"standardHours": {...},
  "sessionSettings": {...}}}

Both become a single WeeklyTemplate here so no business rule is duplicated
per format.
"""

from datetime import time
from typing import Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from therapy_backend.scheduling.errors import InvalidSchedule
from therapy_backend.scheduling.types import DAY_NAMES, DayTemplate, SessionSettings, WeeklyTemplate


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LegacyTemplateRow(_CamelModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    session_duration: int | None = Field(default=None, gt=0)
    buffer_minutes: int | None = Field(default=None, ge=0)
    max_sessions: int | None = Field(default=None, ge=1)
    is_active: bool = True


class LegacyTemplatesPayload(_CamelModel):
    therapist_id: int
    templates: list[LegacyTemplateRow]


class GeneralHoursPayload(_CamelModel):
    start: time
    end: time
    session_duration: int | None = Field(default=None, gt=0)
    buffer_time: int | None = Field(default=None, ge=0)
    max_sessions: int | None = Field(default=None, ge=1)


class DayAvailabilityPayload(_CamelModel):
    enabled: bool = False
    general_hours: GeneralHoursPayload | None = None


class SessionSettingsPayload(_CamelModel):
    session_duration: int = Field(gt=0)
    buffer_time: int = Field(ge=0)
    max_sessions_per_day: int = Field(ge=1)
    advance_booking_days: int = Field(ge=0)
    cancellation_hours: int = Field(ge=0)
    min_lead_minutes: int | None = Field(default=None, ge=0)
    timezone: str | None = None


class WeeklyAvailabilityBody(_CamelModel):
    standard_hours: dict[str, DayAvailabilityPayload]
    session_settings: SessionSettingsPayload | None = None


class WeeklyAvailabilityPayload(_CamelModel):
    therapist_id: int
    availability: WeeklyAvailabilityBody


TemplatePayload = Union[WeeklyAvailabilityPayload, LegacyTemplatesPayload]


def settings_from_payload(payload: SessionSettingsPayload, current: SessionSettings) -> SessionSettings:
    return SessionSettings(
        session_duration_minutes=payload.session_duration,
        buffer_minutes=payload.buffer_time,
        max_sessions_per_day=payload.max_sessions_per_day,
        advance_booking_days=payload.advance_booking_days,
        cancellation_hours=payload.cancellation_hours,
        min_lead_minutes=(
            payload.min_lead_minutes if payload.min_lead_minutes is not None else current.min_lead_minutes
        ),
        timezone=payload.timezone or current.timezone,
    )


def _from_legacy(payload: LegacyTemplatesPayload, settings: SessionSettings) -> WeeklyTemplate:
    days = []
    for row in payload.templates:
        days.append(
            DayTemplate(
                day_of_week=row.day_of_week,
                enabled=row.is_active,
                start_time=row.start_time,
                end_time=row.end_time,
                session_duration_minutes=row.session_duration or settings.session_duration_minutes,
                buffer_minutes=row.buffer_minutes if row.buffer_minutes is not None else settings.buffer_minutes,
                max_sessions_per_day=row.max_sessions or settings.max_sessions_per_day,
            )
        )
    return WeeklyTemplate.from_days(days)


def _from_weekly(body: WeeklyAvailabilityBody, settings: SessionSettings) -> WeeklyTemplate:
    days = []
    for day_name, day in body.standard_hours.items():
        normalized = day_name.strip().lower()
        if normalized not in DAY_NAMES:
            raise InvalidSchedule(f'Unknown day "{day_name}".')

        hours = day.general_hours
        if hours is None:
            if day.enabled:
                raise InvalidSchedule(f'{normalized.capitalize()} is enabled but has no hours.')
            continue

        days.append(
            DayTemplate(
                day_of_week=DAY_NAMES.index(normalized),
                enabled=day.enabled,
                start_time=hours.start,
                end_time=hours.end,
                session_duration_minutes=hours.session_duration or settings.session_duration_minutes,
                buffer_minutes=hours.buffer_time if hours.buffer_time is not None else settings.buffer_minutes,
                max_sessions_per_day=hours.max_sessions or settings.max_sessions_per_day,
            )
        )
    return WeeklyTemplate.from_days(days)


def to_weekly_template(
    payload: TemplatePayload,
    current_settings: SessionSettings,
) -> tuple[WeeklyTemplate, SessionSettings | None]:
    """
    Convert either request format into a WeeklyTemplate.

    Returns:
        (template, settings) where settings is None unless the payload
        carried session settings. Day defaults come from the new settings
        when present, otherwise from current_settings.

    Raises:
        InvalidSchedule: malformed hours, unknown or duplicate days
    """
    if isinstance(payload, WeeklyAvailabilityPayload):
        new_settings = None
        if payload.availability.session_settings is not None:
            new_settings = settings_from_payload(payload.availability.session_settings, current_settings)
        template = _from_weekly(payload.availability, new_settings or current_settings)
        return template, new_settings

    return _from_legacy(payload, current_settings), None


def to_weekly_availability(weekly: WeeklyTemplate, settings: SessionSettings) -> dict:
    """Render a template in the weekly object shape, one entry per day name."""
    standard_hours = {}
    for index, day_name in enumerate(DAY_NAMES):
        day = weekly.days.get(index)
        if day is None:
            standard_hours[day_name] = {'enabled': False, 'generalHours': None}
            continue
        standard_hours[day_name] = {
            'enabled': day.enabled,
            'generalHours': {
                'start': day.start_time.strftime('%H:%M'),
                'end': day.end_time.strftime('%H:%M'),
                'sessionDuration': day.session_duration_minutes,
                'bufferTime': day.buffer_minutes,
                'maxSessions': day.max_sessions_per_day,
            },
        }

    return {
        'standardHours': standard_hours,
        'sessionSettings': {
            'sessionDuration': settings.session_duration_minutes,
            'bufferTime': settings.buffer_minutes,
            'maxSessionsPerDay': settings.max_sessions_per_day,
            'advanceBookingDays': settings.advance_booking_days,
            'cancellationHours': settings.cancellation_hours,
            'minLeadMinutes': settings.min_lead_minutes,
            'timezone': settings.timezone,
        },
    }
