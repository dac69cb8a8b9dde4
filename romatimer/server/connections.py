"""Per-connection bookkeeping for WebSocket clients.

A :class:`DeviceConnection` records who is on the other end of a socket
(device id, user agent, address) and when it last sent a ``Ping``.
:class:`ConnectionPool` holds them by connection id and finds the stale
ones.  Everything takes the current Unix timestamp as ``now``; the server
supplies it from its clock.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum

DEFAULT_CONNECTION_TIMEOUT = 120    # seconds


class ConnectionState(Enum):
    CONNECTED = "connected"
    INACTIVE = "inactive"
    DISCONNECTED = "disconnected"


class DeviceType(Enum):
    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"
    UNKNOWN = "unknown"


def device_type_from_user_agent(user_agent: str | None) -> DeviceType:
    if not user_agent:
        return DeviceType.UNKNOWN
    if any(tag in user_agent for tag in ("Mobile", "Android", "iPhone")):
        return DeviceType.MOBILE
    if "Tablet" in user_agent or "iPad" in user_agent:
        return DeviceType.TABLET
    return DeviceType.DESKTOP


@dataclass
class DeviceConnection:
    connected_at: int
    last_ping: int
    device_id: str | None = None
    user_agent: str | None = None
    ip_address: str | None = None
    state: ConnectionState = ConnectionState.CONNECTED
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def open(
        cls,
        now: int,
        device_id: str | None = None,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> "DeviceConnection":
        return cls(
            connected_at=now,
            last_ping=now,
            device_id=device_id or None,
            user_agent=user_agent or None,
            ip_address=ip_address or None,
        )

    @property
    def device_type(self) -> DeviceType:
        return device_type_from_user_agent(self.user_agent)

    def identify(self, device_id: str) -> bool:
        """Adopt *device_id* unless the connection already has one."""
        if self.device_id is not None or not device_id:
            return False
        self.device_id = device_id
        return True

    def update_ping(self, now: int) -> None:
        self.last_ping = max(self.last_ping, now)
        if self.state == ConnectionState.INACTIVE:
            self.state = ConnectionState.CONNECTED

    def mark_inactive(self) -> None:
        self.state = ConnectionState.INACTIVE

    def mark_disconnected(self) -> None:
        self.state = ConnectionState.DISCONNECTED

    def time_since_last_ping(self, now: int) -> int:
        return max(0, now - self.last_ping)

    def age(self, now: int) -> int:
        return max(0, now - self.connected_at)

    def is_healthy(self, now: int, timeout: int = DEFAULT_CONNECTION_TIMEOUT) -> bool:
        return (
            self.state == ConnectionState.CONNECTED
            and self.time_since_last_ping(now) < timeout
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "device_id": self.device_id,
            "device_type": self.device_type.value,
            "ip_address": self.ip_address,
            "connected_at": self.connected_at,
            "last_ping": self.last_ping,
            "state": self.state.value,
        }


class ConnectionPool:
    """Connections keyed by id, with lookups by device."""

    def __init__(self) -> None:
        self._connections: dict[str, DeviceConnection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._connections

    def add(self, connection: DeviceConnection) -> None:
        self._connections[connection.id] = connection

    def remove(self, connection_id: str) -> DeviceConnection | None:
        connection = self._connections.pop(connection_id, None)
        if connection is not None:
            connection.mark_disconnected()
        return connection

    def get(self, connection_id: str) -> DeviceConnection | None:
        return self._connections.get(connection_id)

    def all(self) -> list[DeviceConnection]:
        return list(self._connections.values())

    def device_connections(self, device_id: str) -> list[DeviceConnection]:
        return [c for c in self._connections.values() if c.device_id == device_id]

    def active(self, now: int, timeout: int = DEFAULT_CONNECTION_TIMEOUT) -> list[DeviceConnection]:
        return [c for c in self._connections.values() if c.is_healthy(now, timeout)]

    def update_ping(self, connection_id: str, now: int) -> bool:
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        connection.update_ping(now)
        return True

    def mark_inactive_connections(
        self, now: int, timeout: int = DEFAULT_CONNECTION_TIMEOUT
    ) -> list[str]:
        stale = []
        for connection_id, connection in self._connections.items():
            if not connection.is_healthy(now, timeout):
                connection.mark_inactive()
                stale.append(connection_id)
        return stale

    def cleanup_inactive_connections(
        self, now: int, timeout: int = DEFAULT_CONNECTION_TIMEOUT
    ) -> list[DeviceConnection]:
        """Drop every connection that missed its heartbeat and return them."""
        return [
            self.remove(connection_id)
            for connection_id in self.mark_inactive_connections(now, timeout)
        ]

    def stats(self, now: int, timeout: int = DEFAULT_CONNECTION_TIMEOUT) -> dict:
        connections = self._connections.values()
        total = len(self._connections)
        active = len(self.active(now, timeout))
        by_type = {t: 0 for t in DeviceType}
        for connection in connections:
            by_type[connection.device_type] += 1
        return {
            "total": total,
            "active": active,
            "inactive": total - active,
            "desktop": by_type[DeviceType.DESKTOP],
            "mobile": by_type[DeviceType.MOBILE],
            "tablet": by_type[DeviceType.TABLET],
        }
