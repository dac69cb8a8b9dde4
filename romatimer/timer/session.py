"""Timer session model. Pure state with no Qt or I/O.

A :class:`TimerSession` is one countdown of a given kind.  Every mutating
method takes the current Unix timestamp as ``now`` so the model stays
deterministic; the engine supplies it from its clock.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum

from ..errors import (
    AlreadyRunning,
    InvalidDuration,
    InvalidElapsed,
    InvalidTimestamps,
    NotRunning,
)


# ── enums ─────────────────────────────────────────────────────────────────


class TimerType(Enum):
    WORK = "Work"
    SHORT_BREAK = "ShortBreak"
    LONG_BREAK = "LongBreak"

    @property
    def default_duration(self) -> int:
        return DEFAULT_DURATIONS[self]

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


# ── constants ─────────────────────────────────────────────────────────────

DEFAULT_DURATIONS: dict[TimerType, int] = {
    TimerType.WORK: 25 * 60,
    TimerType.SHORT_BREAK: 5 * 60,
    TimerType.LONG_BREAK: 15 * 60,
}

_DISPLAY_NAMES: dict[TimerType, str] = {
    TimerType.WORK: "Work Session",
    TimerType.SHORT_BREAK: "Short Break",
    TimerType.LONG_BREAK: "Long Break",
}

MIN_SESSION_DURATION = 1
MAX_SESSION_DURATION = 2 * 60 * 60
DEFAULT_LONG_BREAK_FREQUENCY = 4


def next_kind(
    kind: TimerType, work_sessions_completed: int, long_break_frequency: int
) -> TimerType:
    """Kind that follows *kind*.

    ``work_sessions_completed`` must already include the Work session being
    left: the caller increments first, then asks.
    """
    if kind == TimerType.WORK:
        if work_sessions_completed % long_break_frequency == 0:
            return TimerType.LONG_BREAK
        return TimerType.SHORT_BREAK
    return TimerType.WORK


# ── session ───────────────────────────────────────────────────────────────


@dataclass
class TimerSession:
    duration: int
    kind: TimerType = TimerType.WORK
    elapsed: int = 0
    running: bool = False
    created_at: int = 0
    updated_at: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def create(
        cls, kind: TimerType, now: int, duration: int | None = None
    ) -> "TimerSession":
        if duration is None:
            duration = kind.default_duration
        return cls(duration=duration, kind=kind, created_at=now, updated_at=now)

    # ── derived ───────────────────────────────────────────────────────

    @property
    def remaining(self) -> int:
        return max(0, self.duration - self.elapsed)

    @property
    def progress(self) -> float:
        """0.0 → 1.0 through the session."""
        if self.duration == 0:
            return 0.0
        return self.elapsed / self.duration

    @property
    def is_complete(self) -> bool:
        return self.elapsed >= self.duration

    # ── transitions ───────────────────────────────────────────────────

    def start(self, now: int) -> None:
        if self.running:
            raise AlreadyRunning()
        self.running = True
        self._touch(now)

    def pause(self, now: int) -> None:
        if not self.running:
            raise NotRunning()
        self.running = False
        self._touch(now)

    def reset(self, now: int) -> None:
        self.elapsed = 0
        self.running = False
        self._touch(now)

    def add_elapsed(self, seconds: int, now: int) -> bool:
        """Advance by *seconds*, never past ``duration``.  Returns completion."""
        if seconds > 0:
            self.elapsed = min(self.duration, self.elapsed + seconds)
        self._touch(now)
        return self.is_complete

    def skip_to_next(
        self,
        work_sessions_completed: int,
        long_break_frequency: int,
        now: int,
        durations: dict[TimerType, int] | None = None,
    ) -> TimerType:
        new_kind = next_kind(self.kind, work_sessions_completed, long_break_frequency)
        self.kind = new_kind
        self.duration = (durations or DEFAULT_DURATIONS)[new_kind]
        self.elapsed = 0
        self.running = False
        self._touch(now)
        return new_kind

    def validate(self) -> None:
        if not MIN_SESSION_DURATION <= self.duration <= MAX_SESSION_DURATION:
            raise InvalidDuration(self.duration)
        if self.elapsed > self.duration:
            raise InvalidElapsed(self.elapsed)
        if self.updated_at < self.created_at:
            raise InvalidTimestamps()

    def _touch(self, now: int) -> None:
        # updated_at never moves behind created_at, even if the clock jumps back
        self.updated_at = max(now, self.created_at)


# ── snapshot ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TimerSnapshot:
    """Read-only copy of the live session handed to the outside world."""

    id: str
    duration: int
    elapsed: int
    kind: TimerType
    running: bool
    created_at: int
    updated_at: int
    work_sessions_completed: int = 0

    @classmethod
    def of(cls, session: TimerSession, work_sessions_completed: int = 0) -> "TimerSnapshot":
        return cls(
            id=session.id,
            duration=session.duration,
            elapsed=session.elapsed,
            kind=session.kind,
            running=session.running,
            created_at=session.created_at,
            updated_at=session.updated_at,
            work_sessions_completed=work_sessions_completed,
        )

    @property
    def remaining(self) -> int:
        return max(0, self.duration - self.elapsed)

    @property
    def progress(self) -> float:
        if self.duration == 0:
            return 0.0
        return self.elapsed / self.duration

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "duration": self.duration,
            "elapsed": self.elapsed,
            "timer_type": self.kind.value,
            "is_running": self.running,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "remaining_seconds": self.remaining,
            "progress_percentage": self.progress * 100.0,
            "work_sessions_completed": self.work_sessions_completed,
        }
