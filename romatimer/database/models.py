"""SQLAlchemy ORM models for Roma Timer.

Timestamps are integer Unix seconds throughout; enum-valued columns store
the enum's wire value.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone as dt_timezone

from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import (
    Column, Integer, String, Boolean, Text, ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.orm import DeclarativeBase

from ..errors import InvalidCronExpression, UnsupportedTask


class Base(DeclarativeBase):
    pass


def _uuid() -> str:
    return str(uuid.uuid4())


class UserConfigurationRecord(Base):
    """One row per user: timer preferences plus daily-reset state."""

    __tablename__ = "user_configurations"

    id = Column(String(64), primary_key=True)
    work_duration = Column(Integer, nullable=False, default=1500)
    short_break_duration = Column(Integer, nullable=False, default=300)
    long_break_duration = Column(Integer, nullable=False, default=900)
    long_break_frequency = Column(Integer, nullable=False, default=4)
    notifications_enabled = Column(Boolean, nullable=False, default=True)
    webhook_url = Column(String(2048), nullable=True)
    wait_for_interaction = Column(Boolean, nullable=False, default=False)
    theme = Column(String(10), nullable=False, default="Light")  # Light | Dark

    # ── daily reset ───────────────────────────────────────────────────
    timezone = Column(String(64), nullable=False, default="UTC", index=True)
    daily_reset_time_type = Column(String(10), nullable=False, default="midnight")
    daily_reset_time_hour = Column(Integer, nullable=True)
    daily_reset_time_custom = Column(String(5), nullable=True)
    daily_reset_enabled = Column(Boolean, nullable=False, default=False, index=True)
    last_daily_reset_utc = Column(Integer, nullable=True)
    today_session_count = Column(Integer, nullable=False, default=0)
    manual_session_override = Column(Integer, nullable=True)

    created_at = Column(Integer, nullable=False)
    updated_at = Column(Integer, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<UserConfigurationRecord id={self.id} tz={self.timezone} "
            f"today={self.today_session_count}>"
        )


class TimerSessionRecord(Base):
    """Last known state of the live timer session, keyed by session id."""

    __tablename__ = "timer_sessions"

    id = Column(String(36), primary_key=True)
    duration = Column(Integer, nullable=False)
    elapsed = Column(Integer, nullable=False, default=0)
    timer_type = Column(String(20), nullable=False)  # Work | ShortBreak | LongBreak
    is_running = Column(Boolean, nullable=False, default=False, index=True)
    work_sessions_completed = Column(Integer, nullable=False, default=0)
    created_at = Column(Integer, nullable=False)
    updated_at = Column(Integer, nullable=False, index=True)

    def __repr__(self) -> str:
        return (
            f"<TimerSessionRecord id={self.id} type={self.timer_type} "
            f"elapsed={self.elapsed}/{self.duration}>"
        )


class SessionResetEvent(Base):
    """Audit trail entry written whenever a session count is reset."""

    __tablename__ = "session_reset_events"
    __table_args__ = (
        Index("idx_session_reset_events_user_time",
              "user_configuration_id", "reset_timestamp_utc"),
    )

    id = Column(String(80), primary_key=True, default=_uuid)
    user_configuration_id = Column(
        String(64), ForeignKey("user_configurations.id", ondelete="CASCADE"),
        nullable=False,
    )
    reset_type = Column(String(30), nullable=False)  # scheduled_daily | manual_reset | ...
    previous_count = Column(Integer, nullable=False)
    new_count = Column(Integer, nullable=False)
    reset_timestamp_utc = Column(Integer, nullable=False)
    user_timezone = Column(String(64), nullable=False)
    local_reset_time = Column(String(32), nullable=False)  # YYYY-MM-DD HH:MM:SS
    device_id = Column(String(128), nullable=True)
    trigger_source = Column(String(30), nullable=False)
    context = Column(Text, nullable=True)  # JSON
    created_at = Column(Integer, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<SessionResetEvent type={self.reset_type} "
            f"{self.previous_count}->{self.new_count}>"
        )


class DailySessionStats(Base):
    """Aggregated per-user, per-local-day session statistics."""

    __tablename__ = "daily_session_stats"
    __table_args__ = (
        UniqueConstraint("user_configuration_id", "date", "timezone"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    user_configuration_id = Column(
        String(64), ForeignKey("user_configurations.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    date = Column(String(10), nullable=False, index=True)  # YYYY-MM-DD, local
    timezone = Column(String(64), nullable=False)
    work_sessions_completed = Column(Integer, nullable=False, default=0)
    total_work_seconds = Column(Integer, nullable=False, default=0)
    total_break_seconds = Column(Integer, nullable=False, default=0)
    manual_overrides = Column(Integer, nullable=False, default=0)
    final_session_count = Column(Integer, nullable=False, default=0)
    created_at = Column(Integer, nullable=False)
    updated_at = Column(Integer, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<DailySessionStats date={self.date} "
            f"work={self.work_sessions_completed} final={self.final_session_count}>"
        )


# ── scheduled tasks ──────────────────────────────────────────────────────

TASK_TYPES = ("daily_reset", "cleanup", "analytics", "backup", "notification")

DEFAULT_CRON_EXPRESSIONS: dict[str, str] = {
    "daily_reset": "0 0 * * *",   # midnight daily
    "cleanup": "0 2 * * sun",     # 2 AM Sundays
    "analytics": "0 1 * * *",     # 1 AM daily
    "backup": "0 3 * * sun",      # 3 AM Sundays
    "notification": "* * * * *",
}


class ScheduledTask(Base):
    """A recurring background job described by a cron expression.

    Only the bookkeeping lives here; the sweep that executes due tasks is
    :meth:`DailyResetService.process_pending_tasks`.
    """

    __tablename__ = "scheduled_tasks"
    __table_args__ = (
        Index("idx_scheduled_tasks_type_active", "task_type", "is_active"),
    )

    id = Column(String(100), primary_key=True)
    task_type = Column(String(20), nullable=False)
    user_configuration_id = Column(
        String(64), ForeignKey("user_configurations.id", ondelete="CASCADE"),
        nullable=True, index=True,
    )
    cron_expression = Column(String(64), nullable=False)
    timezone = Column(String(64), nullable=False, default="UTC")
    next_run_utc = Column(Integer, nullable=False, index=True)
    last_run_utc = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    run_count = Column(Integer, nullable=False, default=0)
    failure_count = Column(Integer, nullable=False, default=0)
    task_data = Column(Text, nullable=True)  # JSON
    created_at = Column(Integer, nullable=False)
    updated_at = Column(Integer, nullable=False)

    @classmethod
    def new(
        cls,
        task_type: str,
        now: int,
        *,
        cron_expression: str | None = None,
        timezone: str = "UTC",
        user_configuration_id: str | None = None,
        task_id: str | None = None,
    ) -> "ScheduledTask":
        if task_type not in TASK_TYPES:
            raise UnsupportedTask(task_type)
        return cls(
            id=task_id or f"task_{task_type}_{uuid.uuid4()}",
            task_type=task_type,
            user_configuration_id=user_configuration_id,
            cron_expression=cron_expression or DEFAULT_CRON_EXPRESSIONS[task_type],
            timezone=timezone,
            next_run_utc=now,
            last_run_utc=None,
            is_active=True,
            run_count=0,
            failure_count=0,
            created_at=now,
            updated_at=now,
        )

    # ── state ─────────────────────────────────────────────────────────

    def is_due(self, now: int) -> bool:
        return bool(self.is_active) and self.next_run_utc <= now

    def mark_success(self, now: int) -> None:
        self.last_run_utc = now
        self.run_count = (self.run_count or 0) + 1
        self.updated_at = now

    def mark_failure(self, now: int) -> None:
        self.last_run_utc = now
        self.failure_count = (self.failure_count or 0) + 1
        self.updated_at = now

    def activate(self, now: int) -> None:
        self.is_active = True
        self.updated_at = now

    def deactivate(self, now: int) -> None:
        self.is_active = False
        self.updated_at = now

    @property
    def success_rate(self) -> float:
        """Percentage of runs that succeeded (100.0 before the first run)."""
        runs = self.run_count or 0
        total = runs + (self.failure_count or 0)
        if total == 0:
            return 100.0
        return runs / total * 100.0

    def should_disable_due_to_failures(self, max_failures: int) -> bool:
        return (self.failure_count or 0) >= max_failures and self.success_rate < 50.0

    def calculate_next_run(self, base: datetime) -> datetime:
        """Set ``next_run_utc`` to the first fire time strictly after *base*.

        The cron expression is evaluated in the task's own timezone.
        """
        try:
            trigger = CronTrigger.from_crontab(self.cron_expression, timezone=self.timezone)
        except ValueError:
            raise InvalidCronExpression(self.cron_expression) from None
        if base.tzinfo is None:
            base = base.replace(tzinfo=dt_timezone.utc)
        fire = trigger.get_next_fire_time(None, base + timedelta(seconds=1))
        fire_utc = fire.astimezone(dt_timezone.utc)
        self.next_run_utc = int(fire_utc.timestamp())
        return fire_utc

    def __repr__(self) -> str:
        return (
            f"<ScheduledTask id={self.id} type={self.task_type} "
            f"next={self.next_run_utc} active={self.is_active}>"
        )
