"""Timer state machine for Roma Timer.

States
------
The live session is one of ``{Work, ShortBreak, LongBreak} x {running, paused}``.
A fresh engine holds a paused Work session at elapsed 0.

Transitions
-----------
paused  → running                         (start; AlreadyRunning otherwise)
running → paused                          (pause; NotRunning otherwise)
any     → same kind, elapsed 0, paused    (reset)
any     → next kind, elapsed 0, paused    (skip)
running → next kind, elapsed 0, paused    (tick reaches duration)

Leaving a Work session, by skip or by completion, bumps
``work_sessions_completed`` *before* the next kind is picked, so with a
frequency of 4 the fourth Work session is followed by the long break.

Threading
---------
One re-entrant lock guards the session.  The tick task is a single
``QTimer`` owned by the engine: ``start()`` arms it inside the same critical
section that flips ``running``, and every path that stops the session
disarms it.  The engine must live on the thread that runs the Qt event loop.
"""

from __future__ import annotations

import logging
import threading

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from ..clock import Clock, SystemClock
from ..errors import OutOfRange
from .session import (
    DEFAULT_DURATIONS,
    DEFAULT_LONG_BREAK_FREQUENCY,
    TimerSession,
    TimerSnapshot,
    TimerType,
)

logger = logging.getLogger(__name__)

TICK_INTERVAL_MS = 1000


class TimerEngine(QObject):
    """Single-session pomodoro engine.

    Signals
    -------
    state_changed(snapshot: TimerSnapshot)
        Emitted after start, pause, reset, skip, completion and restore.
    ticked(snapshot: TimerSnapshot)
        Emitted after every tick that advanced the clock.
    session_completed(data: dict)
        Emitted when a running session reaches its duration.  Keys:
        ``session_id``, ``kind``, ``duration``, ``completed_at``,
        ``work_sessions_completed``.
    """

    state_changed = pyqtSignal(object)
    ticked = pyqtSignal(object)
    session_completed = pyqtSignal(object)

    def __init__(
        self,
        parent: QObject | None = None,
        *,
        clock: Clock | None = None,
        durations: dict[TimerType, int] | None = None,
        long_break_frequency: int = DEFAULT_LONG_BREAK_FREQUENCY,
        tick_interval_ms: int = TICK_INTERVAL_MS,
    ) -> None:
        super().__init__(parent)

        self._clock: Clock = clock or SystemClock()
        self._lock = threading.RLock()

        # ── configuration ─────────────────────────────────────────────
        self._durations: dict[TimerType, int] = dict(DEFAULT_DURATIONS)
        if durations:
            self._durations.update(durations)
        if long_break_frequency < 2:
            raise OutOfRange(2, 10, long_break_frequency)
        self._long_break_frequency: int = long_break_frequency

        # ── cycle / session state ─────────────────────────────────────
        now = self._clock.now_timestamp()
        self._work_sessions_completed: int = 0
        self._session = TimerSession.create(
            TimerType.WORK, now, self._durations[TimerType.WORK]
        )
        self._last_tick_at: int = now

        # ── tick task ─────────────────────────────────────────────────
        self._qt_timer = QTimer(self)
        self._qt_timer.setInterval(tick_interval_ms)
        self._qt_timer.timeout.connect(self._on_tick)

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC PROPERTIES
    # ══════════════════════════════════════════════════════════════════

    @property
    def session_type(self) -> TimerType:
        with self._lock:
            return self._session.kind

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._session.running

    @property
    def work_sessions_completed(self) -> int:
        with self._lock:
            return self._work_sessions_completed

    @property
    def long_break_frequency(self) -> int:
        return self._long_break_frequency

    @property
    def tick_active(self) -> bool:
        """True while the background tick task is armed."""
        return self._qt_timer.isActive()

    def duration_for(self, kind: TimerType) -> int:
        return self._durations[kind]

    def get_state(self) -> TimerSnapshot:
        with self._lock:
            return self._snapshot()

    def apply_configuration(self, config) -> None:
        """Adopt durations and long-break frequency from a user configuration.

        An untouched idle session takes the new duration for its kind; a
        session already in progress keeps its duration unless the new one is
        shorter, in which case elapsed is clamped.
        """
        with self._lock:
            self._durations = {
                TimerType.WORK: config.work_duration,
                TimerType.SHORT_BREAK: config.short_break_duration,
                TimerType.LONG_BREAK: config.long_break_duration,
            }
            self._long_break_frequency = config.long_break_frequency

            session = self._session
            new_duration = self._durations[session.kind]
            if not session.running and session.elapsed == 0:
                session.duration = new_duration
            elif new_duration < session.duration:
                session.duration = new_duration
                session.elapsed = min(session.elapsed, new_duration)
            snapshot = self._snapshot()

        logger.debug(
            "Configuration applied: durations=%s frequency=%d",
            {k.value: v for k, v in self._durations.items()},
            self._long_break_frequency,
        )
        self.state_changed.emit(snapshot)

    # ══════════════════════════════════════════════════════════════════
    #  CONTROLS
    # ══════════════════════════════════════════════════════════════════

    def start(self) -> TimerSnapshot:
        """Start the countdown.  Raises :class:`AlreadyRunning` if running."""
        with self._lock:
            now = self._clock.now_timestamp()
            self._session.start(now)
            self._last_tick_at = now
            self._qt_timer.start()
            snapshot = self._snapshot()
        logger.debug("Timer started: %s", snapshot.kind.value)
        self.state_changed.emit(snapshot)
        return snapshot

    def pause(self) -> TimerSnapshot:
        """Freeze the countdown.  Raises :class:`NotRunning` if paused."""
        with self._lock:
            self._session.pause(self._clock.now_timestamp())
            self._qt_timer.stop()
            snapshot = self._snapshot()
        logger.debug("Timer paused at %d/%d", snapshot.elapsed, snapshot.duration)
        self.state_changed.emit(snapshot)
        return snapshot

    def reset(self) -> TimerSnapshot:
        """Rewind the current session to zero.  Kind and duration are kept."""
        with self._lock:
            self._qt_timer.stop()
            self._session.reset(self._clock.now_timestamp())
            snapshot = self._snapshot()
        logger.debug("Timer reset: %s", snapshot.kind.value)
        self.state_changed.emit(snapshot)
        return snapshot

    def skip(self) -> TimerSnapshot:
        """Move to the next session kind.  Always succeeds."""
        with self._lock:
            self._qt_timer.stop()
            self._advance(self._clock.now_timestamp())
            snapshot = self._snapshot()
        logger.debug("Timer skipped to %s", snapshot.kind.value)
        self.state_changed.emit(snapshot)
        return snapshot

    def reset_cycle(self) -> TimerSnapshot:
        """Back to a fresh Work session with the work-session counter zeroed."""
        with self._lock:
            self._qt_timer.stop()
            now = self._clock.now_timestamp()
            self._work_sessions_completed = 0
            self._session = TimerSession.create(
                TimerType.WORK, now, self._durations[TimerType.WORK]
            )
            snapshot = self._snapshot()
        logger.debug("Timer cycle reset")
        self.state_changed.emit(snapshot)
        return snapshot

    def restore(self, session: TimerSession, work_sessions_completed: int = 0) -> TimerSnapshot:
        """Adopt a previously persisted session, always paused.

        The session is validated first; an invalid one raises and the live
        session is left untouched.
        """
        session.validate()
        with self._lock:
            self._qt_timer.stop()
            session.running = False
            self._session = session
            self._work_sessions_completed = max(0, work_sessions_completed)
            snapshot = self._snapshot()
        logger.info("Restored %s session %s", snapshot.kind.value, snapshot.id)
        self.state_changed.emit(snapshot)
        return snapshot

    # ══════════════════════════════════════════════════════════════════
    #  TICK
    # ══════════════════════════════════════════════════════════════════

    def tick(self, delta_seconds: int = 1) -> bool:
        """Advance a running session by *delta_seconds*.

        ``elapsed`` saturates at ``duration``.  Reaching it completes the
        session and moves on to the next kind.  Returns True on completion;
        a paused session is left alone and False is returned.
        """
        completion = None
        with self._lock:
            session = self._session
            if not session.running:
                return False
            now = self._clock.now_timestamp()
            self._last_tick_at = now
            completed = session.add_elapsed(delta_seconds, now)
            tick_snapshot = self._snapshot()
            if completed:
                self._qt_timer.stop()
                session.running = False
                completion = {
                    "session_id": session.id,
                    "kind": session.kind,
                    "duration": session.duration,
                    "completed_at": now,
                }
                self._advance(now)
                completion["work_sessions_completed"] = self._work_sessions_completed
                next_snapshot = self._snapshot()

        self.ticked.emit(tick_snapshot)
        if completion is None:
            return False

        logger.info(
            "%s completed after %ds; next up %s",
            completion["kind"].display_name,
            completion["duration"],
            next_snapshot.kind.value,
        )
        self.session_completed.emit(completion)
        self.state_changed.emit(next_snapshot)
        return True

    # ══════════════════════════════════════════════════════════════════
    #  INTERNAL
    # ══════════════════════════════════════════════════════════════════

    def _on_tick(self) -> None:
        with self._lock:
            if not self._session.running:
                self._qt_timer.stop()
                return
            now = self._clock.now_timestamp()
            delta = now - self._last_tick_at
            if delta <= 0:
                return
        self.tick(delta)

    def _advance(self, now: int) -> None:
        if self._session.kind == TimerType.WORK:
            self._work_sessions_completed += 1
        self._session.skip_to_next(
            self._work_sessions_completed,
            self._long_break_frequency,
            now,
            self._durations,
        )

    def _snapshot(self) -> TimerSnapshot:
        return TimerSnapshot.of(self._session, self._work_sessions_completed)
