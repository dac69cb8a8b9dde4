"""WebSocket server that mirrors timer state to every connected client."""

from __future__ import annotations

import logging

from PyQt6.QtCore import QObject, QUrl, QUrlQuery, pyqtSignal
from PyQt6.QtNetwork import QHostAddress
from PyQt6.QtWebSockets import QWebSocket, QWebSocketProtocol, QWebSocketServer

from ..clock import Clock, SystemClock
from ..configuration import ConfigurationService
from ..daily_reset.service import DailyResetService
from ..timer.engine import TimerEngine
from . import messages
from .connections import DEFAULT_CONNECTION_TIMEOUT, ConnectionPool, DeviceConnection
from .messages import MessageDispatcher

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONNECTIONS = 100


def device_id_from_url(url: QUrl) -> str | None:
    """``device_id`` from the connect URL's query string, if any."""
    value = QUrlQuery(url).queryItemValue("device_id", QUrl.ComponentFormattingOption.FullyDecoded)
    return value or None


class TimerServer(QObject):
    """Accepts WebSocket clients, dispatches their frames, and broadcasts state.

    Each socket gets a :class:`DeviceConnection` in :attr:`connections`.
    ``sweep_connections`` closes the ones that stopped sending ``Ping``.

    Signals
    -------
    client_count_changed(count: int)
        Emitted whenever a client connects or disconnects.
    """

    client_count_changed = pyqtSignal(int)

    def __init__(
        self,
        dispatcher: MessageDispatcher,
        engine: TimerEngine,
        configuration: ConfigurationService,
        daily_reset: DailyResetService,
        *,
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
        connection_timeout: int = DEFAULT_CONNECTION_TIMEOUT,
        clock: Clock | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._dispatcher = dispatcher
        self._max_connections = max_connections
        self._connection_timeout = connection_timeout
        self._clock = clock or SystemClock()
        self._pool = ConnectionPool()
        self._clients: dict[QWebSocket, str] = {}     # socket -> connection id

        self._server = QWebSocketServer(
            "RomaTimer", QWebSocketServer.SslMode.NonSecureMode, self
        )
        self._server.newConnection.connect(self._on_new_connection)

        # ── broadcasts ───────────────────────────────────────────────
        engine.state_changed.connect(
            lambda snap: self.broadcast(messages.timer_state_update(snap))
        )
        engine.ticked.connect(
            lambda snap: self.broadcast(messages.timer_state_update(snap))
        )
        configuration.configuration_changed.connect(
            lambda cfg: self.broadcast(messages.configuration_changed(cfg))
        )
        daily_reset.session_count_changed.connect(
            lambda data: self.broadcast(messages.session_count_updated(data))
        )
        daily_reset.session_reset.connect(
            lambda data: self.broadcast(messages.session_reset(data))
        )

    # ── lifecycle ────────────────────────────────────────────────────

    def listen(self, host: str, port: int) -> bool:
        ok = self._server.listen(QHostAddress(host), port)
        if ok:
            logger.info("WebSocket server listening on ws://%s:%d", host, self.port)
        else:
            logger.error("Could not listen on %s:%d: %s", host, port, self._server.errorString())
        return ok

    def close(self) -> None:
        for client in list(self._clients):
            client.close(QWebSocketProtocol.CloseCode.CloseCodeGoingAway, "Server shutting down")
        self._clients.clear()
        for connection in self._pool.all():
            self._pool.remove(connection.id)
        self._server.close()

    @property
    def port(self) -> int:
        return self._server.serverPort()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    @property
    def connections(self) -> ConnectionPool:
        return self._pool

    def connection_stats(self) -> dict:
        return self._pool.stats(self._clock.now_timestamp(), self._connection_timeout)

    def broadcast(self, msg: dict) -> None:
        text = messages.encode(msg)
        for client in list(self._clients):
            client.sendTextMessage(text)

    def sweep_connections(self) -> list[str]:
        """Close connections whose last heartbeat is too old, then ping the rest.

        A heartbeat is a ``Ping`` message or the pong answering a protocol ping.
        """
        now = self._clock.now_timestamp()
        stale = self._pool.cleanup_inactive_connections(now, self._connection_timeout)
        if stale:
            self._drop(stale, now)
        for client in list(self._clients):
            client.ping()
        return [connection.id for connection in stale]

    def _drop(self, stale: list[DeviceConnection], now: int) -> None:
        stale_ids = {connection.id for connection in stale}
        for socket, connection_id in list(self._clients.items()):
            if connection_id in stale_ids:
                del self._clients[socket]
                socket.close(QWebSocketProtocol.CloseCode.CloseCodeGoingAway, "Heartbeat timeout")
        for connection in stale:
            logger.info(
                "Dropped connection %s (device %s): no heartbeat for %ds",
                connection.id, connection.device_id, connection.time_since_last_ping(now),
            )
        self.client_count_changed.emit(len(self._clients))
        self.broadcast(messages.connection_status(True, len(self._clients), now))

    # ── slots ────────────────────────────────────────────────────────

    def _on_new_connection(self) -> None:
        while self._server.hasPendingConnections():
            socket = self._server.nextPendingConnection()
            if len(self._clients) >= self._max_connections:
                logger.warning(
                    "Rejecting %s: %d connections already open",
                    socket.peerAddress().toString(), len(self._clients),
                )
                socket.sendTextMessage(messages.encode(messages.error(
                    "too_many_connections",
                    f"Server accepts at most {self._max_connections} connections",
                )))
                socket.close(
                    QWebSocketProtocol.CloseCode.CloseCodePolicyViolated,
                    "Too many connections",
                )
                socket.deleteLater()
                continue

            connection = DeviceConnection.open(
                self._clock.now_timestamp(),
                device_id=device_id_from_url(socket.requestUrl()),
                user_agent=bytes(socket.request().rawHeader(b"User-Agent")).decode("utf-8", "replace"),
                ip_address=socket.peerAddress().toString(),
            )
            self._pool.add(connection)
            socket.textMessageReceived.connect(self._on_text_message)
            socket.disconnected.connect(self._on_disconnected)
            socket.pong.connect(self._on_pong)
            self._clients[socket] = connection.id
            logger.info(
                "Client %s connected from %s (device %s, %d open)",
                connection.id, connection.ip_address, connection.device_id, len(self._clients),
            )
            self.client_count_changed.emit(len(self._clients))

            try:
                greeting = self._dispatcher.greeting(len(self._clients))
            except Exception:
                logger.exception("Failed to build greeting")
                continue
            for msg in greeting:
                socket.sendTextMessage(messages.encode(msg))

    def _on_text_message(self, text: str) -> None:
        socket = self.sender()
        connection = self._pool.get(self._clients.get(socket, ""))
        try:
            reply = self._dispatcher.handle(text, connection)
        except Exception:
            # PyQt aborts on exceptions escaping a slot.
            logger.exception("Error handling client message")
            reply = messages.error("internal_error", "Internal server error")
        if reply is not None and socket is not None:
            socket.sendTextMessage(messages.encode(reply))

    def _on_pong(self, elapsed_ms: int, payload) -> None:
        connection_id = self._clients.get(self.sender())
        if connection_id is not None:
            self._pool.update_ping(connection_id, self._clock.now_timestamp())

    def _on_disconnected(self) -> None:
        socket = self.sender()
        connection_id = self._clients.pop(socket, None)
        if connection_id is not None:
            self._pool.remove(connection_id)
            logger.info("Client %s disconnected (%d open)", connection_id, len(self._clients))
            self.client_count_changed.emit(len(self._clients))
        if socket is not None:
            socket.deleteLater()
