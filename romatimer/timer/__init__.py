"""Timer package."""

from .engine import TimerEngine, TICK_INTERVAL_MS
from .session import (
    TimerSession,
    TimerSnapshot,
    TimerType,
    DEFAULT_DURATIONS,
    DEFAULT_LONG_BREAK_FREQUENCY,
    MAX_SESSION_DURATION,
    next_kind,
)

__all__ = [
    "TimerEngine",
    "TimerSession",
    "TimerSnapshot",
    "TimerType",
    "DEFAULT_DURATIONS",
    "DEFAULT_LONG_BREAK_FREQUENCY",
    "MAX_SESSION_DURATION",
    "TICK_INTERVAL_MS",
    "next_kind",
]
