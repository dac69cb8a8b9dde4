"""WebSocket message envelope and dispatch.

Every frame is a JSON object ``{"type": <tag>, "data": <payload>}``.

Client → server
    ``TimerControl {action}``   start | pause | reset | skip | reset_cycle
    ``SettingsUpdate {...}``    configuration fields to change
    ``SessionOverride {count}`` 0-100, or null to clear
    ``GetState``
    ``Ping``

Any client frame may carry a ``device_id`` in its data; the first one seen
names the connection for audit events.

Server → client
    ``TimerStateUpdate``, ``ConfigurationChanged``, ``SessionCountUpdated``,
    ``SessionReset``, ``ConnectionStatus``, ``Pong``, ``Error {code, message}``
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..clock import Clock, SystemClock
from ..configuration import ConfigurationService, UserConfiguration
from ..daily_reset.service import DailyResetService, TriggerSource
from ..database.db import DEFAULT_USER_ID
from ..errors import InvalidMessage, RomaTimerError, UnknownMessageType
from ..timer.engine import TimerEngine
from ..timer.session import TimerSnapshot
from .connections import DeviceConnection

logger = logging.getLogger(__name__)

# ── tags ──────────────────────────────────────────────────────────────────

TIMER_CONTROL = "TimerControl"
SETTINGS_UPDATE = "SettingsUpdate"
SESSION_OVERRIDE = "SessionOverride"
GET_STATE = "GetState"
PING = "Ping"

TIMER_STATE_UPDATE = "TimerStateUpdate"
CONFIGURATION_CHANGED = "ConfigurationChanged"
SESSION_COUNT_UPDATED = "SessionCountUpdated"
SESSION_RESET = "SessionReset"
CONNECTION_STATUS = "ConnectionStatus"
PONG = "Pong"
ERROR = "Error"

TIMER_ACTIONS = ("start", "pause", "reset", "skip", "reset_cycle")


# ── envelope ──────────────────────────────────────────────────────────────


def message(tag: str, data: Any = None) -> dict:
    return {"type": tag, "data": data}


def encode(msg: dict) -> str:
    return json.dumps(msg, separators=(",", ":"))


def decode(text: str) -> tuple[str, Any]:
    """Parse a client frame into ``(tag, data)``.  Raises :class:`InvalidMessage`."""
    try:
        payload = json.loads(text)
    except (TypeError, ValueError):
        raise InvalidMessage("not valid JSON") from None
    if not isinstance(payload, dict):
        raise InvalidMessage("expected a JSON object")
    tag = payload.get("type")
    if not isinstance(tag, str) or not tag:
        raise InvalidMessage("missing 'type'")
    return tag, payload.get("data")


# ── server → client builders ──────────────────────────────────────────────


def timer_state_update(snapshot: TimerSnapshot) -> dict:
    return message(TIMER_STATE_UPDATE, snapshot.to_dict())


def configuration_changed(config: UserConfiguration) -> dict:
    return message(CONFIGURATION_CHANGED, config.to_dict())


def session_count_updated(data: dict) -> dict:
    return message(SESSION_COUNT_UPDATED, dict(data))


def session_reset(data: dict) -> dict:
    return message(SESSION_RESET, dict(data))


def connection_status(connected: bool, client_count: int, server_time: int) -> dict:
    return message(CONNECTION_STATUS, {
        "connected": connected,
        "client_count": client_count,
        "server_time": server_time,
    })


def pong(server_time: int) -> dict:
    return message(PONG, {"timestamp": server_time})


def error(code: str, text: str) -> dict:
    return message(ERROR, {"code": code, "message": text})


# ── dispatch ──────────────────────────────────────────────────────────────


class MessageDispatcher:
    """Route client frames onto the engine and services.

    ``handle`` returns the reply for the sender only, or None when the
    outcome reaches every client through a broadcast signal instead.
    Domain errors come back as ``Error`` replies.
    """

    def __init__(
        self,
        engine: TimerEngine,
        configuration: ConfigurationService,
        daily_reset: DailyResetService,
        user_id: str = DEFAULT_USER_ID,
        clock: Clock | None = None,
    ) -> None:
        self._engine = engine
        self._configuration = configuration
        self._daily_reset = daily_reset
        self._user_id = user_id
        self._clock = clock or SystemClock()
        self._handlers = {
            TIMER_CONTROL: self._on_timer_control,
            SETTINGS_UPDATE: self._on_settings_update,
            SESSION_OVERRIDE: self._on_session_override,
            GET_STATE: self._on_get_state,
            PING: self._on_ping,
        }

    def greeting(self, client_count: int) -> list[dict]:
        """Messages sent to a client right after it connects."""
        count = self._daily_reset.get_session_count(self._user_id)
        return [
            connection_status(True, client_count, self._clock.now_timestamp()),
            timer_state_update(self._engine.get_state()),
            session_count_updated({
                "user_id": self._user_id,
                "previous_count": count,
                "current_count": count,
                "manual_override": None,
            }),
        ]

    def handle(self, text: str, connection: DeviceConnection | None = None) -> dict | None:
        try:
            tag, data = decode(text)
            handler = self._handlers.get(tag)
            if handler is None:
                raise UnknownMessageType(tag)
            if connection is not None and isinstance(data, dict):
                device_id = data.get("device_id")
                if isinstance(device_id, str) and connection.identify(device_id):
                    logger.info("Connection %s identified as device %s", connection.id, device_id)
            return handler(data, connection)
        except RomaTimerError as exc:
            logger.debug("Rejected client message: %s", exc)
            return error(exc.code, str(exc))

    # ── handlers ─────────────────────────────────────────────────────

    def _on_timer_control(self, data, connection) -> None:
        action = data.get("action") if isinstance(data, dict) else None
        if action not in TIMER_ACTIONS:
            raise InvalidMessage(f"action must be one of {list(TIMER_ACTIONS)}, got {action!r}")
        getattr(self._engine, action)()
        return None

    def _on_settings_update(self, data, connection) -> None:
        changes = {k: v for k, v in data.items() if k != "device_id"} if isinstance(data, dict) else None
        if not changes:
            raise InvalidMessage("SettingsUpdate needs an object of fields")
        self._configuration.update_configuration(self._user_id, changes)
        return None

    def _on_session_override(self, data, connection) -> None:
        if not isinstance(data, dict) or "count" not in data:
            raise InvalidMessage("SessionOverride needs a 'count' field")
        self._daily_reset.set_manual_session_override(
            self._user_id, data["count"], TriggerSource.WEBSOCKET_MESSAGE,
            device_id=connection.device_id if connection is not None else None,
        )
        return None

    def _on_get_state(self, data, connection) -> dict:
        return timer_state_update(self._engine.get_state())

    def _on_ping(self, data, connection) -> dict:
        now = self._clock.now_timestamp()
        if connection is not None:
            connection.update_ping(now)
        return pong(now)
