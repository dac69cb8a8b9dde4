"""Time source abstraction.

Production code reads time through :class:`SystemClock`; tests swap in a
:class:`FakeClock` they can move forward by hand.  All instants are
timezone-aware UTC ``datetime`` objects; timestamps are integer Unix seconds.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import InvalidTimezone


def resolve_timezone(name: str) -> ZoneInfo:
    """Return the IANA zone called *name* or raise :class:`InvalidTimezone`."""
    if not name or not isinstance(name, str):
        raise InvalidTimezone(str(name))
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        # region directories such as "America" raise IsADirectoryError
        raise InvalidTimezone(name) from None


class Clock(ABC):

    @abstractmethod
    def now_utc(self) -> datetime:
        ...

    def now_timestamp(self) -> int:
        return int(self.now_utc().timestamp())

    def now_in_timezone(self, tz: ZoneInfo) -> datetime:
        return self.now_utc().astimezone(tz)

    def to_timezone(self, instant: datetime, tz: ZoneInfo) -> datetime:
        return instant.astimezone(tz)


class SystemClock(Clock):

    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class FakeClock(Clock):
    """Deterministic clock for tests; starts at *start* and only moves when told."""

    def __init__(self, start: datetime | None = None) -> None:
        if start is None:
            start = datetime.now(timezone.utc)
        elif start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._lock = threading.Lock()
        self._now = start.astimezone(timezone.utc)

    def now_utc(self) -> datetime:
        with self._lock:
            return self._now

    def set_time(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        with self._lock:
            self._now = instant.astimezone(timezone.utc)

    def advance(
        self,
        seconds: int = 0,
        minutes: int = 0,
        hours: int = 0,
        days: int = 0,
    ) -> None:
        delta = timedelta(seconds=seconds, minutes=minutes, hours=hours, days=days)
        with self._lock:
            self._now = self._now + delta
