import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:4200"])

SLOT_DURATION_MINUTES = int(os.getenv("SLOT_DURATION_MINUTES", "30"))
MIN_APPOINTMENT_MINUTES = int(os.getenv("MIN_APPOINTMENT_MINUTES", "30"))
MAX_APPOINTMENT_MINUTES = int(os.getenv("MAX_APPOINTMENT_MINUTES", "240"))
# Implied length of appointments booked with a single date_time.
LEGACY_APPOINTMENT_MINUTES = int(os.getenv("LEGACY_APPOINTMENT_MINUTES", "30"))

BOOKING_RETRY_ATTEMPTS = int(os.getenv("BOOKING_RETRY_ATTEMPTS", "3"))
BOOKING_RETRY_MAX_WAIT_SECONDS = float(os.getenv("BOOKING_RETRY_MAX_WAIT_SECONDS", "2.0"))

MAX_OBSERVATIONS_LENGTH = 1000


def validate_runtime_config() -> None:
    if SLOT_DURATION_MINUTES <= 0:
        raise RuntimeError("SLOT_DURATION_MINUTES must be positive.")
    if MIN_APPOINTMENT_MINUTES > MAX_APPOINTMENT_MINUTES:
        raise RuntimeError("MIN_APPOINTMENT_MINUTES cannot exceed MAX_APPOINTMENT_MINUTES.")
    if BOOKING_RETRY_ATTEMPTS < 1:
        raise RuntimeError("BOOKING_RETRY_ATTEMPTS must be at least 1.")
