import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = _get_int("JWT_EXPIRES_MINUTES", 60)

# Used when a therapist has not saved session settings yet.
DEFAULT_SESSION_DURATION_MINUTES = _get_int("DEFAULT_SESSION_DURATION_MINUTES", 60)
DEFAULT_BUFFER_MINUTES = _get_int("DEFAULT_BUFFER_MINUTES", 15)
DEFAULT_MAX_SESSIONS_PER_DAY = _get_int("DEFAULT_MAX_SESSIONS_PER_DAY", 8)
DEFAULT_ADVANCE_BOOKING_DAYS = _get_int("DEFAULT_ADVANCE_BOOKING_DAYS", 30)
DEFAULT_CANCELLATION_HOURS = _get_int("DEFAULT_CANCELLATION_HOURS", 24)
DEFAULT_MIN_LEAD_MINUTES = _get_int("DEFAULT_MIN_LEAD_MINUTES", 30)
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC")

MAX_RESOLVE_RANGE_DAYS = _get_int("MAX_RESOLVE_RANGE_DAYS", 90)
SUGGESTION_LIMIT = _get_int("SUGGESTION_LIMIT", 3)


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
