import os
from dataclasses import dataclass
from datetime import time, timedelta

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_time(value: str | None, default: time) -> time:
    if value is None or not value.strip():
        return default
    return time.fromisoformat(value.strip())

APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./wellness.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "%(asctime)s %(levelname)s %(name)s: %(message)s")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:4200").split(",")
    if origin.strip()
]

WORKDAY_START = _get_time(os.getenv("WORKDAY_START"), default=time(9, 0))
WORKDAY_END = _get_time(os.getenv("WORKDAY_END"), default=time(17, 0))
SLOT_DURATION_MINUTES = int(os.getenv("SLOT_DURATION_MINUTES", "30"))

MIN_APPOINTMENT_MINUTES = int(os.getenv("MIN_APPOINTMENT_MINUTES", "15"))
MAX_APPOINTMENT_HOURS = int(os.getenv("MAX_APPOINTMENT_HOURS", "4"))
MAX_APPOINTMENTS_PER_DAY = int(os.getenv("MAX_APPOINTMENTS_PER_DAY", "2"))

STORE_TIMEOUT_SECONDS = float(os.getenv("STORE_TIMEOUT_SECONDS", "5"))

# When false, availability lookups raise instead of reporting an empty day.
AVAILABILITY_FAIL_OPEN = _get_bool(os.getenv("AVAILABILITY_FAIL_OPEN"), default=True)


@dataclass(frozen=True)
class SchedulingSettings:
    """Scheduling limits handed to the policy and service."""

    workday_start: time = time(9, 0)
    workday_end: time = time(17, 0)
    slot_duration: timedelta = timedelta(minutes=30)
    min_duration: timedelta = timedelta(minutes=15)
    max_duration: timedelta = timedelta(hours=4)
    max_appointments_per_day: int = 2
    store_timeout_seconds: float = 5.0
    availability_fail_open: bool = True


def load_scheduling_settings() -> SchedulingSettings:
    return SchedulingSettings(
        workday_start=WORKDAY_START,
        workday_end=WORKDAY_END,
        slot_duration=timedelta(minutes=SLOT_DURATION_MINUTES),
        min_duration=timedelta(minutes=MIN_APPOINTMENT_MINUTES),
        max_duration=timedelta(hours=MAX_APPOINTMENT_HOURS),
        max_appointments_per_day=MAX_APPOINTMENTS_PER_DAY,
        store_timeout_seconds=STORE_TIMEOUT_SECONDS,
        availability_fail_open=AVAILABILITY_FAIL_OPEN,
    )


def validate_runtime_config() -> None:
    if WORKDAY_END <= WORKDAY_START:
        raise RuntimeError("WORKDAY_END must be later than WORKDAY_START.")
    if SLOT_DURATION_MINUTES <= 0:
        raise RuntimeError("SLOT_DURATION_MINUTES must be positive.")
    if MIN_APPOINTMENT_MINUTES <= 0:
        raise RuntimeError("MIN_APPOINTMENT_MINUTES must be positive.")
    if timedelta(minutes=MIN_APPOINTMENT_MINUTES) > timedelta(hours=MAX_APPOINTMENT_HOURS):
        raise RuntimeError("MIN_APPOINTMENT_MINUTES cannot exceed MAX_APPOINTMENT_HOURS.")
    if MAX_APPOINTMENTS_PER_DAY <= 0:
        raise RuntimeError("MAX_APPOINTMENTS_PER_DAY must be positive.")
    if STORE_TIMEOUT_SECONDS <= 0:
        raise RuntimeError("STORE_TIMEOUT_SECONDS must be positive.")
    if APP_ENV.lower() == "production" and DATABASE_URL.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must point at a server database in production.")
