"""Runtime configuration read from the environment (and ``.env``)."""

import os
from dataclasses import dataclass
from datetime import UTC, tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from mnemos.core.errors import InvalidInput


@dataclass(frozen=True)
class Settings:
    """Settings for the CLI and the engine objects it wires up."""

    state_dir: Path
    user_id: str = "local"
    trend_window_days: int = 7
    trend_horizon_days: int = 30
    timezone: str = "UTC"
    log_level: str = "WARNING"

    @property
    def tz(self) -> tzinfo:
        if self.timezone == "UTC":
            return UTC
        return ZoneInfo(self.timezone)


def _positive_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise InvalidInput(f"{name} must be an integer, got {raw!r}") from e
    if value < 1:
        raise InvalidInput(f"{name} must be >= 1, got {value}")
    return value


def load_settings() -> Settings:
    """Build settings from ``MNEMOS_*`` environment variables.

    Raises:
        InvalidInput: a numeric value or the timezone name is invalid
    """
    load_dotenv(Path.cwd() / ".env")

    timezone = os.environ.get("MNEMOS_TIMEZONE", "UTC")
    try:
        if timezone != "UTC":
            ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidInput(f"Unknown timezone: {timezone}") from e

    return Settings(
        state_dir=Path(os.environ.get("MNEMOS_STATE_DIR", Path.cwd() / ".mnemos")),
        user_id=os.environ.get("MNEMOS_USER", "local"),
        trend_window_days=_positive_int("MNEMOS_TREND_WINDOW_DAYS", 7),
        trend_horizon_days=_positive_int("MNEMOS_TREND_HORIZON_DAYS", 30),
        timezone=timezone,
        log_level=os.environ.get("MNEMOS_LOG_LEVEL", "WARNING").upper(),
    )
