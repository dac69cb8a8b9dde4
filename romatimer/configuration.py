"""Per-user timer configuration.

:class:`UserConfiguration` is the in-memory record; every setter checks its
bound *before* assigning, so a rejected update leaves the previous value in
place.  :class:`ConfigurationService` loads and saves it through the
database layer and announces changes.

Usage::

    service = ConfigurationService(clock)
    config = service.update_configuration("default-config", {"work_duration": 1800})
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Mapping
from urllib.parse import urlparse

from PyQt6.QtCore import QObject, pyqtSignal

from .clock import Clock, SystemClock, resolve_timezone
from .database.db import DEFAULT_USER_ID, get_session
from .database.models import UserConfigurationRecord
from .errors import (
    ConfigurationNotFound,
    InvalidConfiguration,
    InvalidResetTime,
    InvalidTimestamps,
    OutOfRange,
)

logger = logging.getLogger(__name__)


# ── enums ─────────────────────────────────────────────────────────────────


class Theme(Enum):
    LIGHT = "Light"
    DARK = "Dark"


class DailyResetTimeType(Enum):
    MIDNIGHT = "midnight"
    HOUR = "hour"
    CUSTOM = "custom"


# ── bounds ────────────────────────────────────────────────────────────────

WORK_DURATION_RANGE = (5 * 60, 60 * 60)
SHORT_BREAK_DURATION_RANGE = (60, 15 * 60)
LONG_BREAK_DURATION_RANGE = (5 * 60, 30 * 60)
LONG_BREAK_FREQUENCY_RANGE = (2, 10)
SESSION_OVERRIDE_RANGE = (0, 100)
TODAY_SESSION_COUNT_RANGE = (0, 1000)

_CUSTOM_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def parse_custom_time(value: str | None) -> tuple[int, int] | None:
    """Parse ``"HH:MM"`` (24h).  Returns None when malformed or out of range."""
    if not value:
        return None
    match = _CUSTOM_TIME_PATTERN.match(value.strip())
    if match is None:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return hour, minute


def _check_range(field_name: str, value: int, bounds: tuple[int, int], unit: str = "") -> int:
    lo, hi = bounds
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfiguration(field_name, value, "must be an integer")
    if not lo <= value <= hi:
        raise InvalidConfiguration(field_name, value, f"must be {lo}-{hi}{unit}")
    return value


def _coerce_enum(enum_cls, field_name: str, value):
    if isinstance(value, enum_cls):
        return value
    for member in enum_cls:
        if value == member.value or (isinstance(value, str) and value.lower() == member.value.lower()):
            return member
    raise InvalidConfiguration(field_name, value, f"must be one of {[m.value for m in enum_cls]}")


# ── model ─────────────────────────────────────────────────────────────────


@dataclass
class UserConfiguration:
    """All user-configurable timer and daily-reset preferences."""

    id: str = DEFAULT_USER_ID

    # ── timer ─────────────────────────────────────────────────────────
    work_duration: int = 25 * 60           # seconds
    short_break_duration: int = 5 * 60
    long_break_duration: int = 15 * 60
    long_break_frequency: int = 4

    # ── notifications / ui ────────────────────────────────────────────
    notifications_enabled: bool = True
    webhook_url: str | None = None
    wait_for_interaction: bool = False
    theme: Theme = Theme.LIGHT

    # ── daily reset ───────────────────────────────────────────────────
    timezone: str = "UTC"
    daily_reset_enabled: bool = False
    daily_reset_time_type: DailyResetTimeType = DailyResetTimeType.MIDNIGHT
    daily_reset_time_hour: int | None = None
    daily_reset_time_custom: str | None = None
    today_session_count: int = 0
    manual_session_override: int | None = None
    last_daily_reset_utc: int | None = None

    created_at: int = 0
    updated_at: int = 0

    # ── setters ───────────────────────────────────────────────────────

    def set_work_duration(self, seconds: int) -> None:
        self.work_duration = _check_range("work_duration", seconds, WORK_DURATION_RANGE, "s")

    def set_short_break_duration(self, seconds: int) -> None:
        self.short_break_duration = _check_range(
            "short_break_duration", seconds, SHORT_BREAK_DURATION_RANGE, "s"
        )

    def set_long_break_duration(self, seconds: int) -> None:
        self.long_break_duration = _check_range(
            "long_break_duration", seconds, LONG_BREAK_DURATION_RANGE, "s"
        )

    def set_long_break_frequency(self, frequency: int) -> None:
        self.long_break_frequency = _check_range(
            "long_break_frequency", frequency, LONG_BREAK_FREQUENCY_RANGE
        )

    def set_notifications_enabled(self, enabled: bool) -> None:
        self.notifications_enabled = bool(enabled)

    def set_wait_for_interaction(self, enabled: bool) -> None:
        self.wait_for_interaction = bool(enabled)

    def set_theme(self, theme: Theme | str) -> None:
        self.theme = _coerce_enum(Theme, "theme", theme)

    def set_webhook_url(self, url: str | None) -> None:
        if url:
            parsed = urlparse(url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise InvalidConfiguration("webhook_url", url, "must be an http(s) URL")
        self.webhook_url = url or None

    def set_timezone(self, name: str) -> None:
        resolve_timezone(name)
        self.timezone = name

    def set_daily_reset_enabled(self, enabled: bool) -> None:
        self.daily_reset_enabled = bool(enabled)

    def set_daily_reset_time(
        self,
        time_type: DailyResetTimeType | str,
        hour: int | None = None,
        custom: str | None = None,
    ) -> None:
        """Set the reset policy as one unit; nothing changes if any part is bad."""
        time_type = _coerce_enum(DailyResetTimeType, "daily_reset_time_type", time_type)
        if time_type == DailyResetTimeType.HOUR:
            if hour is None or isinstance(hour, bool) or not isinstance(hour, int) or not 0 <= hour <= 23:
                raise InvalidResetTime(f"hour must be 0-23, got {hour!r}")
            custom = None
        elif time_type == DailyResetTimeType.CUSTOM:
            if parse_custom_time(custom) is None:
                raise InvalidResetTime(f"custom time must be HH:MM, got {custom!r}")
            hour = None
        else:
            hour, custom = None, None
        self.daily_reset_time_type = time_type
        self.daily_reset_time_hour = hour
        self.daily_reset_time_custom = custom

    def set_today_session_count(self, count: int) -> None:
        lo, hi = TODAY_SESSION_COUNT_RANGE
        if isinstance(count, bool) or not isinstance(count, int) or not lo <= count <= hi:
            raise OutOfRange(lo, hi, count)
        self.today_session_count = count

    def set_manual_session_override(self, count: int | None) -> None:
        if count is not None:
            lo, hi = SESSION_OVERRIDE_RANGE
            if isinstance(count, bool) or not isinstance(count, int) or not lo <= count <= hi:
                raise OutOfRange(lo, hi, count)
        self.manual_session_override = count

    def reset_session_count(self, now: int) -> None:
        self.today_session_count = 0
        self.manual_session_override = None
        self.last_daily_reset_utc = now

    # ── whole-record operations ───────────────────────────────────────

    def validate(self) -> None:
        """Re-check every field against its bound."""
        candidate = copy.copy(self)
        candidate.set_work_duration(self.work_duration)
        candidate.set_short_break_duration(self.short_break_duration)
        candidate.set_long_break_duration(self.long_break_duration)
        candidate.set_long_break_frequency(self.long_break_frequency)
        candidate.set_webhook_url(self.webhook_url)
        candidate.set_theme(self.theme)
        candidate.set_timezone(self.timezone)
        candidate.set_daily_reset_time(
            self.daily_reset_time_type,
            self.daily_reset_time_hour,
            self.daily_reset_time_custom,
        )
        candidate.set_today_session_count(self.today_session_count)
        candidate.set_manual_session_override(self.manual_session_override)
        if self.updated_at < self.created_at:
            raise InvalidTimestamps()

    def with_changes(self, changes: Mapping[str, Any], now: int) -> "UserConfiguration":
        """Return a copy with *changes* applied; ``self`` is never modified.

        Daily-reset time fields are applied together so a type switch and
        its hour/custom value can arrive in the same update.
        """
        updated = replace(self)
        changes = dict(changes)

        reset_keys = {"daily_reset_time_type", "daily_reset_time_hour", "daily_reset_time_custom"}
        if reset_keys & changes.keys():
            updated.set_daily_reset_time(
                changes.pop("daily_reset_time_type", updated.daily_reset_time_type),
                changes.pop("daily_reset_time_hour", updated.daily_reset_time_hour),
                changes.pop("daily_reset_time_custom", updated.daily_reset_time_custom),
            )

        for key, value in changes.items():
            setter = _SETTERS.get(key)
            if setter is None:
                raise InvalidConfiguration(key, value, "unknown or read-only field")
            setter(updated, value)

        updated.updated_at = max(now, updated.created_at)
        return updated

    def reset_to_defaults(self, now: int) -> "UserConfiguration":
        """Fresh defaults under the same id; daily-reset bookkeeping is kept."""
        return UserConfiguration(
            id=self.id,
            today_session_count=self.today_session_count,
            manual_session_override=self.manual_session_override,
            last_daily_reset_utc=self.last_daily_reset_utc,
            created_at=self.created_at,
            updated_at=max(now, self.created_at),
        )

    # ── (de)serialization ─────────────────────────────────────────────

    def to_dict(self) -> dict:
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            data[f.name] = value.value if isinstance(value, Enum) else value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UserConfiguration":
        valid_keys = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in valid_keys}
        if "theme" in kwargs:
            kwargs["theme"] = _coerce_enum(Theme, "theme", kwargs["theme"])
        if "daily_reset_time_type" in kwargs:
            kwargs["daily_reset_time_type"] = _coerce_enum(
                DailyResetTimeType, "daily_reset_time_type", kwargs["daily_reset_time_type"]
            )
        return cls(**kwargs)

    def should_send_webhook(self) -> bool:
        return self.notifications_enabled and self.webhook_url is not None


_SETTERS = {
    "work_duration": UserConfiguration.set_work_duration,
    "short_break_duration": UserConfiguration.set_short_break_duration,
    "long_break_duration": UserConfiguration.set_long_break_duration,
    "long_break_frequency": UserConfiguration.set_long_break_frequency,
    "notifications_enabled": UserConfiguration.set_notifications_enabled,
    "wait_for_interaction": UserConfiguration.set_wait_for_interaction,
    "theme": UserConfiguration.set_theme,
    "webhook_url": UserConfiguration.set_webhook_url,
    "timezone": UserConfiguration.set_timezone,
    "daily_reset_enabled": UserConfiguration.set_daily_reset_enabled,
    "manual_session_override": UserConfiguration.set_manual_session_override,
}


# ── persistence helpers ───────────────────────────────────────────────────


def config_from_record(record: UserConfigurationRecord) -> UserConfiguration:
    data = {f.name: getattr(record, f.name) for f in fields(UserConfiguration)}
    return UserConfiguration.from_dict(data)


def apply_to_record(config: UserConfiguration, record: UserConfigurationRecord) -> None:
    for key, value in config.to_dict().items():
        setattr(record, key, value)


def load_configuration(db, user_id: str, now: int) -> tuple[UserConfigurationRecord, UserConfiguration]:
    """Fetch (or create with defaults) the row for *user_id* inside session *db*."""
    record = db.get(UserConfigurationRecord, user_id)
    if record is None:
        config = UserConfiguration(id=user_id, created_at=now, updated_at=now)
        record = UserConfigurationRecord(id=user_id)
        apply_to_record(config, record)
        db.add(record)
        db.flush()
        logger.info("Created default configuration for %r", user_id)
        return record, config
    return record, config_from_record(record)


# ── service ───────────────────────────────────────────────────────────────


class ConfigurationService(QObject):
    """Load, update and reset user configurations.

    Signals
    -------
    configuration_changed(config: UserConfiguration)
        Emitted after every successful update or reset.
    """

    configuration_changed = pyqtSignal(object)

    def __init__(self, clock: Clock | None = None, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._clock = clock or SystemClock()

    def get_configuration(
        self, user_id: str = DEFAULT_USER_ID, create: bool = True
    ) -> UserConfiguration:
        """Load *user_id*, creating a default record unless *create* is False."""
        with get_session() as db:
            if not create and db.get(UserConfigurationRecord, user_id) is None:
                raise ConfigurationNotFound(user_id)
            _, config = load_configuration(db, user_id, self._clock.now_timestamp())
        return config

    def update_configuration(
        self, user_id: str, changes: Mapping[str, Any]
    ) -> UserConfiguration:
        """Apply *changes* all-or-nothing.  Raises a ValidationError on bad input."""
        now = self._clock.now_timestamp()
        with get_session() as db:
            record, current = load_configuration(db, user_id, now)
            updated = current.with_changes(changes, now)
            apply_to_record(updated, record)
        logger.info("Configuration %r updated: %s", user_id, sorted(changes))
        self.configuration_changed.emit(updated)
        return updated

    def reset_to_defaults(self, user_id: str = DEFAULT_USER_ID) -> UserConfiguration:
        now = self._clock.now_timestamp()
        with get_session() as db:
            record, current = load_configuration(db, user_id, now)
            updated = current.reset_to_defaults(now)
            apply_to_record(updated, record)
        logger.info("Configuration %r reset to defaults", user_id)
        self.configuration_changed.emit(updated)
        return updated
