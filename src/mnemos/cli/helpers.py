"""Shared CLI helpers: settings, storage and engine wiring."""

import logging

from rich.console import Console
from rich.logging import RichHandler

from mnemos.config import Settings, load_settings
from mnemos.core.attempts import AttemptLog
from mnemos.core.metrics import ProgressAnalyzer
from mnemos.core.scheduler import ReviewScheduler
from mnemos.core.sessions import SessionLifecycle
from mnemos.core.storage import MnemosStorage
from mnemos.core.wellness import WellnessTracker

console = Console()

# Global instances (initialized lazily)
_settings: Settings | None = None
_storage: MnemosStorage | None = None


def get_settings() -> Settings:
    """Get or load the settings."""
    global _settings
    if _settings is None:
        _settings = load_settings()
        configure_logging(_settings.log_level)
    return _settings


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def get_storage() -> MnemosStorage:
    """Get or create the storage instance."""
    global _storage
    if _storage is None:
        _storage = MnemosStorage(get_settings().state_dir)
    return _storage


def reset() -> None:
    """Forget cached settings and storage (tests switch state dirs)."""
    global _settings, _storage
    _settings = None
    _storage = None


def attempt_log() -> AttemptLog:
    storage = get_storage()
    return AttemptLog(storage.attempts, storage.questions)


def analyzer() -> ProgressAnalyzer:
    return ProgressAnalyzer(attempt_log(), get_storage().questions, tz=get_settings().tz)


def scheduler() -> ReviewScheduler:
    return ReviewScheduler(get_storage().schedules, tz=get_settings().tz)


def lifecycle() -> SessionLifecycle:
    storage = get_storage()
    return SessionLifecycle(storage.sessions, attempt_log(), storage.questions)


def wellness_tracker() -> WellnessTracker:
    return WellnessTracker(get_storage().wellness, tz=get_settings().tz)
