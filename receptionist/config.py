"""Centralized configuration for the AI receptionist.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/ai-receptionist/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os
from datetime import time

from dotenv import load_dotenv

from receptionist.models import BusinessHoursConfig

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/ai-receptionist/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /ai-receptionist/{name} (AWS)."
    )


def _optional_secret(name: str) -> str:
    """Like ``_require_env`` but returns an empty string when unset."""
    try:
        return _require_env(name)
    except OSError:
        return ""


# ── LLM ─────────────────────────────────────────────────────────────
ANTHROPIC_API_KEY: str = _require_env("ANTHROPIC_API_KEY")
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-sonnet-4-5")
MODEL_TIMEOUT_SECONDS: float = float(os.getenv("MODEL_TIMEOUT_SECONDS", "30"))
MAX_AGENT_ITERATIONS: int = int(os.getenv("MAX_AGENT_ITERATIONS", "10"))

# ── Google Calendar ─────────────────────────────────────────────────
GOOGLE_CALENDAR_ID: str = os.getenv("GOOGLE_CALENDAR_ID", "primary")
GOOGLE_SERVICE_ACCOUNT_JSON: str = _optional_secret("GOOGLE_SERVICE_ACCOUNT_JSON")
GOOGLE_SERVICE_ACCOUNT_JSON_BASE64: str = _optional_secret("GOOGLE_SERVICE_ACCOUNT_JSON_BASE64")
GOOGLE_CALENDAR_BASE_URL: str = "https://www.googleapis.com/calendar/v3"
CALENDAR_TIMEOUT_SECONDS: float = float(os.getenv("CALENDAR_TIMEOUT_SECONDS", "15"))

# ── Business rules ──────────────────────────────────────────────────
BUSINESS_TIMEZONE: str = os.getenv("BUSINESS_TIMEZONE", "America/New_York")
BUSINESS_HOURS_START: str = os.getenv("BUSINESS_HOURS_START", "09:00")
BUSINESS_HOURS_END: str = os.getenv("BUSINESS_HOURS_END", "18:00")
BUSINESS_DAYS: str = os.getenv("BUSINESS_DAYS", "1,2,3,4,5")  # 1=Monday … 7=Sunday
APPOINTMENT_DURATION_MINUTES: int = int(os.getenv("APPOINTMENT_DURATION_MINUTES", "30"))

ALTERNATIVE_COUNT = 3
ALTERNATIVE_LOOKAHEAD_DAYS = 60
ALTERNATIVE_CANDIDATE_MULTIPLIER = 10

# ── Persistence ─────────────────────────────────────────────────────
DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./receptionist.db")

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000",
).split(",")


def _parse_clock(value: str, name: str) -> time:
    try:
        hour, minute = (int(part) for part in value.strip().split(":"))
        return time(hour, minute)
    except ValueError as exc:
        raise ValueError(f"{name} must be HH:MM (24-hour), got {value!r}") from exc


def load_business_hours(
    timezone: str = BUSINESS_TIMEZONE,
    start: str = BUSINESS_HOURS_START,
    end: str = BUSINESS_HOURS_END,
    days: str = BUSINESS_DAYS,
    slot_minutes: int = APPOINTMENT_DURATION_MINUTES,
) -> BusinessHoursConfig:
    """Build the immutable business-hours configuration from env strings."""
    try:
        weekdays = frozenset(int(d) for d in days.split(",") if d.strip())
    except ValueError as exc:
        raise ValueError(f"BUSINESS_DAYS must be comma-separated 1-7, got {days!r}") from exc

    return BusinessHoursConfig(
        timezone=timezone,
        open_time=_parse_clock(start, "BUSINESS_HOURS_START"),
        close_time=_parse_clock(end, "BUSINESS_HOURS_END"),
        open_weekdays=weekdays,
        slot_duration_minutes=slot_minutes,
    )
