"""Roma Timer server wiring.

``RomaTimerApp`` owns every long-lived object in the process and connects
their signals:

* engine ``state_changed``        → persist the live session
* engine ``session_completed``    → daily count, statistics, webhook
* config ``configuration_changed`` → engine durations, daily reset task
* sweep ``QTimer``                → ``sweep_connections``, ``check_and_reset``,
                                    ``process_pending_tasks``

It is headless; run it under a ``QCoreApplication`` event loop.
"""

from __future__ import annotations

import logging

from PyQt6.QtCore import QObject, QTimer

from .clock import Clock, SystemClock
from .configuration import ConfigurationService, UserConfiguration
from .daily_reset.service import DailyResetService
from .database.db import get_session
from .database.models import TimerSessionRecord
from .errors import RomaTimerError
from .notifications import WebhookNotifier
from .server.messages import MessageDispatcher
from .server.websocket import TimerServer
from .settings import ServerSettings
from .timer.engine import TimerEngine
from .timer.session import TimerSession, TimerSnapshot, TimerType

logger = logging.getLogger(__name__)


def session_from_record(record: TimerSessionRecord) -> TimerSession:
    return TimerSession(
        id=record.id,
        duration=record.duration,
        kind=TimerType(record.timer_type),
        elapsed=record.elapsed,
        running=record.is_running,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def session_from_snapshot(snapshot: TimerSnapshot) -> TimerSession:
    return TimerSession(
        id=snapshot.id,
        duration=snapshot.duration,
        kind=snapshot.kind,
        elapsed=snapshot.elapsed,
        running=snapshot.running,
        created_at=snapshot.created_at,
        updated_at=snapshot.updated_at,
    )


class RomaTimerApp(QObject):
    """Headless timer server."""

    def __init__(
        self,
        settings: ServerSettings,
        clock: Clock | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._settings = settings
        self._clock = clock or SystemClock()
        self._user_id = settings.user_id

        # ── services ─────────────────────────────────────────────────
        self.configuration = ConfigurationService(self._clock, self)
        self.daily_reset = DailyResetService(self._clock, self)
        self.notifier = WebhookNotifier(self)

        self._config: UserConfiguration = self.configuration.get_configuration(self._user_id)

        # ── engine ───────────────────────────────────────────────────
        self.engine = TimerEngine(self, clock=self._clock)
        self.engine.apply_configuration(self._config)
        self._restore_session()

        self.engine.state_changed.connect(self._persist_session)
        self.engine.session_completed.connect(self._on_session_completed)
        self.configuration.configuration_changed.connect(self._on_configuration_changed)

        # ── server ───────────────────────────────────────────────────
        self.dispatcher = MessageDispatcher(
            self.engine, self.configuration, self.daily_reset,
            user_id=self._user_id, clock=self._clock,
        )
        self.server = TimerServer(
            self.dispatcher, self.engine, self.configuration, self.daily_reset,
            max_connections=settings.max_websocket_connections,
            connection_timeout=settings.connection_timeout,
            clock=self._clock, parent=self,
        )

        # ── background sweep ─────────────────────────────────────────
        self._sweep_timer = QTimer(self)
        self._sweep_timer.setInterval(max(1, settings.reset_check_interval) * 1000)
        self._sweep_timer.timeout.connect(self.sweep)

    @property
    def config(self) -> UserConfiguration:
        return self._config

    # ── lifecycle ────────────────────────────────────────────────────

    def start(self) -> bool:
        if not self.server.listen(self._settings.host, self._settings.port):
            return False
        self.daily_reset.schedule_daily_reset_task(self._user_id)
        self.sweep()
        self._sweep_timer.start()
        return True

    def stop(self) -> None:
        self._sweep_timer.stop()
        self.server.close()
        if self.engine.is_running:
            self.engine.pause()
        logger.info("Roma Timer stopped")

    def sweep(self) -> None:
        """Periodic housekeeping for client heartbeats and the daily reset."""
        self.server.sweep_connections()
        try:
            self.daily_reset.check_and_reset(self._user_id)
            self.daily_reset.process_pending_tasks()
        except RomaTimerError as exc:
            logger.warning("Background sweep failed: %s", exc)

    # ── persistence ──────────────────────────────────────────────────

    def _restore_session(self) -> None:
        with get_session() as db:
            record = (
                db.query(TimerSessionRecord)
                .order_by(TimerSessionRecord.updated_at.desc())
                .first()
            )
        if record is None:
            return
        try:
            self.engine.restore(session_from_record(record), record.work_sessions_completed)
        except (RomaTimerError, ValueError) as exc:
            logger.warning("Discarding stored session %s: %s", record.id, exc)

    def _persist_session(self, snapshot: TimerSnapshot) -> None:
        session = session_from_snapshot(snapshot)
        try:
            session.validate()
        except RomaTimerError as exc:
            logger.warning("Not persisting invalid session %s: %s", snapshot.id, exc)
            return
        with get_session() as db:
            record = db.get(TimerSessionRecord, snapshot.id)
            if record is None:
                record = TimerSessionRecord(id=snapshot.id)
                db.add(record)
            record.duration = snapshot.duration
            record.elapsed = snapshot.elapsed
            record.timer_type = snapshot.kind.value
            record.is_running = snapshot.running
            record.work_sessions_completed = snapshot.work_sessions_completed
            record.created_at = snapshot.created_at
            record.updated_at = snapshot.updated_at

    # ── signal handlers ──────────────────────────────────────────────

    def _on_session_completed(self, data: dict) -> None:
        kind: TimerType = data["kind"]
        if kind == TimerType.WORK:
            try:
                count = self.daily_reset.increment_session_count(self._user_id)
            except RomaTimerError as exc:
                logger.warning("Could not count finished session: %s", exc)
                count = self.daily_reset.get_session_count(self._user_id)
        else:
            count = self.daily_reset.get_session_count(self._user_id)
        self.daily_reset.record_completed_session(self._user_id, kind, data["duration"])
        self.notifier.notify_completion(self._config, data, count)

    def _on_configuration_changed(self, config: UserConfiguration) -> None:
        self._config = config
        self.engine.apply_configuration(config)
        self.daily_reset.schedule_daily_reset_task(self._user_id)
