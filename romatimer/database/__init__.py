"""Database package."""

from .db import get_session, init_db, configure_engine, DEFAULT_USER_ID
from .models import (
    UserConfigurationRecord,
    TimerSessionRecord,
    SessionResetEvent,
    DailySessionStats,
    ScheduledTask,
)

__all__ = [
    "get_session",
    "init_db",
    "configure_engine",
    "DEFAULT_USER_ID",
    "UserConfigurationRecord",
    "TimerSessionRecord",
    "SessionResetEvent",
    "DailySessionStats",
    "ScheduledTask",
]
