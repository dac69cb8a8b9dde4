"""Daily session counter bookkeeping.

``DailyResetService`` is the persisting side of :mod:`.scheduler`.  It
zeroes the "sessions completed today" counter, writes an audit row for every
reset or manual override, keeps per-day statistics, and runs the
``ScheduledTask`` rows that fall due.

Signals
-------
session_reset(data: dict)
    ``user_id``, ``previous_count``, ``new_count``, ``reset_type``,
    ``reset_timestamp_utc``, ``next_reset_utc`` (None when disabled).
session_count_changed(data: dict)
    ``user_id``, ``previous_count``, ``current_count``, ``manual_override``.

Task execution
--------------
Due tasks are read in one database session and executed one by one, each
handler in its own session, so a handler never nests inside the sweep's
transaction.  A failing task has ``failure_count`` bumped and is
deactivated once it has failed :data:`MAX_TASK_FAILURES` times with a
success rate under 50%.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable

from PyQt6.QtCore import QObject, pyqtSignal

from ..clock import Clock, SystemClock, resolve_timezone
from ..configuration import UserConfiguration, apply_to_record, load_configuration
from ..database.db import DEFAULT_USER_ID, get_session
from ..database.models import DailySessionStats, ScheduledTask, SessionResetEvent
from ..errors import UnsupportedTask
from ..timer.session import TimerType
from .scheduler import (
    calculate_next_reset_time,
    daily_reset_cron_expression,
    get_current_session_count,
    should_reset_today,
    todays_reset_time,
    validate_session_count,
)

logger = logging.getLogger(__name__)

MAX_TASK_FAILURES = 5
LOCAL_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
EVENT_RETENTION_DAYS = 90


class ResetType(Enum):
    SCHEDULED_DAILY = "scheduled_daily"
    MANUAL_RESET = "manual_reset"
    TIMEZONE_CHANGE = "timezone_change"
    CONFIGURATION_CHANGE = "configuration_change"
    SYSTEM = "system"
    STARTUP = "startup"


class TriggerSource(Enum):
    BACKGROUND_SERVICE = "background_service"
    USER_ACTION = "user_action"
    API_CALL = "api_call"
    WEBSOCKET_MESSAGE = "websocket_message"
    MIGRATION = "migration"
    CONFIGURATION_UPDATE = "configuration_update"


def daily_reset_task_id(user_id: str) -> str:
    return f"daily_reset_{user_id}"


class DailyResetService(QObject):
    """Owns the daily counter, its audit trail and the scheduled-task sweep."""

    session_reset = pyqtSignal(object)
    session_count_changed = pyqtSignal(object)

    def __init__(self, clock: Clock | None = None, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._clock = clock or SystemClock()
        self._task_handlers: dict[str, Callable[[ScheduledTask], None]] = {
            "daily_reset": self._run_daily_reset_task,
            "cleanup": self._run_cleanup_task,
        }

    # ── helpers ──────────────────────────────────────────────────────

    def _period_date(self, config: UserConfiguration, now: datetime) -> str:
        """Local date the current counting period belongs to."""
        tz = resolve_timezone(config.timezone)
        if config.daily_reset_enabled and config.last_daily_reset_utc is not None:
            start = datetime.fromtimestamp(config.last_daily_reset_utc, tz)
        else:
            start = now.astimezone(tz)
        return start.strftime("%Y-%m-%d")

    def _stats_row(self, db, config: UserConfiguration, day: str, now_ts: int) -> DailySessionStats:
        stats = (
            db.query(DailySessionStats)
            .filter_by(user_configuration_id=config.id, date=day, timezone=config.timezone)
            .first()
        )
        if stats is None:
            stats = DailySessionStats(
                user_configuration_id=config.id,
                date=day,
                timezone=config.timezone,
                work_sessions_completed=0,
                total_work_seconds=0,
                total_break_seconds=0,
                manual_overrides=0,
                final_session_count=0,
                created_at=now_ts,
                updated_at=now_ts,
            )
            db.add(stats)
        return stats

    def _reset_event(
        self,
        config: UserConfiguration,
        reset_type: ResetType,
        previous: int,
        new: int,
        now: datetime,
        trigger_source: TriggerSource,
        device_id: str | None,
        context: dict | None = None,
    ) -> SessionResetEvent:
        tz = resolve_timezone(config.timezone)
        now_ts = int(now.timestamp())
        return SessionResetEvent(
            user_configuration_id=config.id,
            reset_type=reset_type.value,
            previous_count=previous,
            new_count=new,
            reset_timestamp_utc=now_ts,
            user_timezone=config.timezone,
            local_reset_time=now.astimezone(tz).strftime(LOCAL_TIME_FORMAT),
            device_id=device_id or "system",
            trigger_source=trigger_source.value,
            context=json.dumps(context) if context else None,
            created_at=now_ts,
        )

    # ── counter ──────────────────────────────────────────────────────

    def get_session_count(self, user_id: str = DEFAULT_USER_ID) -> int:
        with get_session() as db:
            _, config = load_configuration(db, user_id, self._clock.now_timestamp())
        return get_current_session_count(config)

    def perform_daily_reset(
        self,
        user_id: str = DEFAULT_USER_ID,
        trigger_source: TriggerSource = TriggerSource.BACKGROUND_SERVICE,
        device_id: str | None = None,
    ) -> dict:
        """Zero today's counter and clear any manual override."""
        now = self._clock.now_utc()
        now_ts = int(now.timestamp())

        with get_session() as db:
            record, config = load_configuration(db, user_id, now_ts)
            previous = get_current_session_count(config)

            # ── close out the period's statistics ────────────────────
            stats = self._stats_row(db, config, self._period_date(config, now), now_ts)
            stats.final_session_count = previous
            stats.updated_at = now_ts

            db.add(self._reset_event(
                config, ResetType.SCHEDULED_DAILY, previous, 0,
                now, trigger_source, device_id,
            ))

            config.reset_session_count(now_ts)
            config.updated_at = max(now_ts, config.created_at)
            apply_to_record(config, record)

        next_reset = None
        if config.daily_reset_enabled:
            next_reset = int(calculate_next_reset_time(config, now).timestamp())

        logger.info(
            "Daily reset for %r (%s): %d -> 0", user_id, trigger_source.value, previous
        )
        data = {
            "user_id": user_id,
            "previous_count": previous,
            "new_count": 0,
            "reset_type": ResetType.SCHEDULED_DAILY.value,
            "reset_timestamp_utc": now_ts,
            "next_reset_utc": next_reset,
        }
        self.session_reset.emit(data)
        return data

    def increment_session_count(self, user_id: str = DEFAULT_USER_ID) -> int:
        """Count one finished Work session.  Does nothing while overridden."""
        now_ts = self._clock.now_timestamp()
        with get_session() as db:
            record, config = load_configuration(db, user_id, now_ts)
            previous = get_current_session_count(config)
            if config.manual_session_override is not None:
                return previous
            config.set_today_session_count(config.today_session_count + 1)
            config.updated_at = max(now_ts, config.created_at)
            apply_to_record(config, record)

        current = config.today_session_count
        logger.debug("Session count for %r: %d -> %d", user_id, previous, current)
        self.session_count_changed.emit({
            "user_id": user_id,
            "previous_count": previous,
            "current_count": current,
            "manual_override": None,
        })
        return current

    def set_manual_session_override(
        self,
        user_id: str,
        value: int | None,
        trigger_source: TriggerSource = TriggerSource.USER_ACTION,
        device_id: str | None = None,
    ) -> int:
        """Pin the displayed count to *value* (0-100), or clear the pin with None."""
        if value is not None:
            validate_session_count(value)
        now = self._clock.now_utc()
        now_ts = int(now.timestamp())

        with get_session() as db:
            record, config = load_configuration(db, user_id, now_ts)
            previous = get_current_session_count(config)
            config.set_manual_session_override(value)
            config.updated_at = max(now_ts, config.created_at)
            current = get_current_session_count(config)
            apply_to_record(config, record)

            db.add(self._reset_event(
                config, ResetType.MANUAL_RESET, previous, current,
                now, trigger_source, device_id,
                context={"manual_override": value},
            ))
            if value is not None:
                stats = self._stats_row(db, config, self._period_date(config, now), now_ts)
                stats.manual_overrides += 1
                stats.updated_at = now_ts

        logger.info("Manual session override for %r: %r", user_id, value)
        self.session_count_changed.emit({
            "user_id": user_id,
            "previous_count": previous,
            "current_count": current,
            "manual_override": value,
        })
        return current

    def record_completed_session(
        self, user_id: str, kind: TimerType, duration: int
    ) -> DailySessionStats:
        """Add a finished session to the current period's statistics."""
        now = self._clock.now_utc()
        now_ts = int(now.timestamp())
        with get_session() as db:
            _, config = load_configuration(db, user_id, now_ts)
            stats = self._stats_row(db, config, self._period_date(config, now), now_ts)
            if kind == TimerType.WORK:
                stats.work_sessions_completed += 1
                stats.total_work_seconds += duration
            else:
                stats.total_break_seconds += duration
            stats.updated_at = now_ts
        return stats

    def get_daily_statistics(
        self, user_id: str, start_date: str, end_date: str
    ) -> list[DailySessionStats]:
        """Stats rows with ``start_date <= date <= end_date`` (ISO dates), oldest first."""
        with get_session() as db:
            return (
                db.query(DailySessionStats)
                .filter(
                    DailySessionStats.user_configuration_id == user_id,
                    DailySessionStats.date >= start_date,
                    DailySessionStats.date <= end_date,
                )
                .order_by(DailySessionStats.date)
                .all()
            )

    def get_reset_events(self, user_id: str, limit: int = 50) -> list[SessionResetEvent]:
        with get_session() as db:
            return (
                db.query(SessionResetEvent)
                .filter_by(user_configuration_id=user_id)
                .order_by(SessionResetEvent.reset_timestamp_utc.desc())
                .limit(limit)
                .all()
            )

    def check_and_reset(self, user_id: str = DEFAULT_USER_ID) -> bool:
        """Reset if today's reset is pending and its local time has passed."""
        now = self._clock.now_utc()
        with get_session() as db:
            _, config = load_configuration(db, user_id, int(now.timestamp()))
        if not should_reset_today(config, now):
            return False
        if now < todays_reset_time(config, now):
            return False
        self.perform_daily_reset(user_id, TriggerSource.BACKGROUND_SERVICE)
        return True

    # ── scheduled tasks ──────────────────────────────────────────────

    def register_task_handler(
        self, task_type: str, handler: Callable[[ScheduledTask], None]
    ) -> None:
        self._task_handlers[task_type] = handler

    def schedule_daily_reset_task(self, user_id: str = DEFAULT_USER_ID) -> ScheduledTask:
        """Create or refresh the user's daily reset task from their configuration."""
        now = self._clock.now_utc()
        now_ts = int(now.timestamp())
        task_id = daily_reset_task_id(user_id)

        with get_session() as db:
            _, config = load_configuration(db, user_id, now_ts)
            task = db.get(ScheduledTask, task_id)
            if task is None:
                task = ScheduledTask.new(
                    "daily_reset", now_ts,
                    cron_expression=daily_reset_cron_expression(config),
                    timezone=config.timezone,
                    user_configuration_id=user_id,
                    task_id=task_id,
                )
                db.add(task)
            else:
                task.cron_expression = daily_reset_cron_expression(config)
                task.timezone = config.timezone
                task.failure_count = 0
                task.updated_at = now_ts
            task.calculate_next_run(now)
            if config.daily_reset_enabled:
                task.activate(now_ts)
            else:
                task.deactivate(now_ts)

        logger.debug(
            "Daily reset task %s: cron=%r tz=%s next=%d active=%s",
            task.id, task.cron_expression, task.timezone, task.next_run_utc, task.is_active,
        )
        return task

    def cancel_scheduled_task(self, task_id: str) -> bool:
        with get_session() as db:
            task = db.get(ScheduledTask, task_id)
            if task is None:
                return False
            task.deactivate(self._clock.now_timestamp())
        logger.info("Cancelled scheduled task %s", task_id)
        return True

    def process_pending_tasks(self) -> int:
        """Run every active task whose ``next_run_utc`` has passed.

        Returns the number of tasks that ran successfully.
        """
        now_ts = self._clock.now_timestamp()
        with get_session() as db:
            due = [
                task.id for task in (
                    db.query(ScheduledTask)
                    .filter(
                        ScheduledTask.is_active.is_(True),
                        ScheduledTask.next_run_utc <= now_ts,
                    )
                    .order_by(ScheduledTask.next_run_utc)
                    .all()
                )
            ]

        succeeded = 0
        for task_id in due:
            if self._process_task(task_id):
                succeeded += 1
        return succeeded

    def _process_task(self, task_id: str) -> bool:
        with get_session() as db:
            task = db.get(ScheduledTask, task_id)
        if task is None:
            return False
        handler = self._task_handlers.get(task.task_type)

        error: Exception | None = None
        try:
            if handler is None:
                raise UnsupportedTask(task.task_type)
            handler(task)
        except Exception as exc:  # any handler failure is recorded on the task
            error = exc

        now = self._clock.now_utc()
        now_ts = int(now.timestamp())
        with get_session() as db:
            task = db.get(ScheduledTask, task_id)
            if task is None or not task.is_active:
                return error is None
            if error is None:
                task.mark_success(now_ts)
                task.calculate_next_run(now)
                return True

            task.mark_failure(now_ts)
            task.calculate_next_run(now)
            logger.warning(
                "Scheduled task %s failed (%d failures): %s",
                task_id, task.failure_count, error,
            )
            if task.should_disable_due_to_failures(MAX_TASK_FAILURES):
                task.deactivate(now_ts)
                logger.error("Scheduled task %s disabled after repeated failures", task_id)
        return False

    # ── task handlers ────────────────────────────────────────────────

    def _run_daily_reset_task(self, task: ScheduledTask) -> None:
        user_id = task.user_configuration_id or DEFAULT_USER_ID
        now = self._clock.now_utc()
        with get_session() as db:
            _, config = load_configuration(db, user_id, int(now.timestamp()))
        if not config.daily_reset_enabled or config.timezone != task.timezone:
            # Stale task: configuration moved on since it was scheduled.
            self.cancel_scheduled_task(task.id)
            return
        if should_reset_today(config, now):
            self.perform_daily_reset(user_id, TriggerSource.BACKGROUND_SERVICE)

    def _run_cleanup_task(self, task: ScheduledTask) -> None:
        cutoff = self._clock.now_timestamp() - int(timedelta(days=EVENT_RETENTION_DAYS).total_seconds())
        with get_session() as db:
            removed = (
                db.query(SessionResetEvent)
                .filter(SessionResetEvent.reset_timestamp_utc < cutoff)
                .delete(synchronize_session=False)
            )
        logger.info("Cleanup removed %d reset events older than %d days", removed, EVENT_RETENTION_DAYS)
