import os
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from utils.timezone_helpers import validate_timezone

# Load environment variables from .env file, if it exists
load_dotenv()


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


def _env_int(name: str, default: str) -> int:
    return int(os.getenv(name, default))


def _env_offsets(name: str, default: str) -> List[int]:
    raw = os.getenv(name, default)
    return [int(part.strip()) for part in raw.split(",") if part.strip()]


class Settings(BaseModel):
    # Grace handling for regular sessions (4 min grace + 60 s race buffer)
    GRACE_MINUTES: int = Field(default_factory=lambda: _env_int("GRACE_MINUTES", "4"))
    RACE_BUFFER_SECONDS: int = Field(default_factory=lambda: _env_int("RACE_BUFFER_SECONDS", "60"))
    ACCURACY_PASS_METERS: float = Field(default_factory=lambda: _env_float("ACCURACY_PASS_METERS", "50"))
    AUTO_WINDOW_MINUTES: int = Field(default_factory=lambda: _env_int("AUTO_WINDOW_MINUTES", "60"))
    STALE_EXIT_HOURS: int = Field(default_factory=lambda: _env_int("STALE_EXIT_HOURS", "24"))

    # Overtime
    MAX_OT_HOURS: float = Field(default_factory=lambda: _env_float("MAX_OT_HOURS", "3"))
    OT_GRACE_MINUTES: int = Field(default_factory=lambda: _env_int("OT_GRACE_MINUTES", "5"))

    # Site-local clock used for shift windows and reminders
    SITE_TIMEZONE: str = Field(
        default_factory=lambda: os.getenv("SITE_TIMEZONE", "Europe/London"), validate_default=True
    )

    # Time-based auto clock-out after shift end
    AUTO_CLOCKOUT_DELAY_MINUTES: int = Field(default_factory=lambda: _env_int("AUTO_CLOCKOUT_DELAY_MINUTES", "30"))
    AUTO_CLOCKOUT_WINDOW_MINUTES: int = Field(default_factory=lambda: _env_int("AUTO_CLOCKOUT_WINDOW_MINUTES", "10"))
    CLOCK_IN_REMINDER_OFFSETS: List[int] = Field(
        default_factory=lambda: _env_offsets("CLOCK_IN_REMINDER_OFFSETS", "-5,0,15")
    )
    CLOCK_OUT_REMINDER_OFFSETS: List[int] = Field(
        default_factory=lambda: _env_offsets("CLOCK_OUT_REMINDER_OFFSETS", "0,15")
    )

    # Shared secret the scheduler sends on sweep endpoints (unset = open)
    CRON_SECRET: str | None = Field(default_factory=lambda: os.getenv("CRON_SECRET") or None)

    # Push delivery through Firebase Cloud Messaging
    PUSH_ENABLED: bool = Field(
        default_factory=lambda: os.getenv("PUSH_ENABLED", "false").lower() in ("true", "1", "t")
    )

    DEV_DOMAIN: str = Field(default_factory=lambda: os.getenv("DEV_DOMAIN", "http://localhost:5173"))
    PRODUCTION_DOMAIN: str | None = Field(default_factory=lambda: os.getenv("PRODUCTION_DOMAIN"))

    @field_validator("SITE_TIMEZONE")
    @classmethod
    def check_site_timezone(cls, v: str) -> str:
        if not validate_timezone(v):
            raise ValueError(f"SITE_TIMEZONE {v!r} is not a valid IANA timezone")
        return v

    @property
    def grace_delay_seconds(self) -> int:
        return self.GRACE_MINUTES * 60 + self.RACE_BUFFER_SECONDS


settings = Settings()
