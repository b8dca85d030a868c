"""Service layer helpers (settings, timers)."""

from .scheduler import Scheduler, TimerScheduler
from .settings import Settings, SettingsStore

__all__ = ["Scheduler", "Settings", "SettingsStore", "TimerScheduler"]
