"""Outbound webhook for finished sessions.

The payload is built by :func:`build_completion_payload`; :class:`WebhookNotifier`
POSTs it asynchronously through Qt's network stack.  Delivery failures are
logged and reported through ``delivery_failed``; they never raise.
"""

from __future__ import annotations

import json
import logging

from PyQt6.QtCore import QByteArray, QObject, QUrl, pyqtSignal
from PyQt6.QtNetwork import QNetworkAccessManager, QNetworkReply, QNetworkRequest

from .configuration import UserConfiguration
from .timer.session import TimerType

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT_MS = 10_000


def build_completion_payload(completion: dict, session_count: int) -> dict:
    """JSON body for a ``session_completed`` event."""
    kind: TimerType = completion["kind"]
    return {
        "event": "session_completed",
        "session_id": completion["session_id"],
        "timer_type": kind.value,
        "title": f"{kind.display_name} complete",
        "duration": completion["duration"],
        "completed_at": completion["completed_at"],
        "work_sessions_completed": completion["work_sessions_completed"],
        "session_count": session_count,
    }


class WebhookNotifier(QObject):
    """Send session-completion webhooks.

    Signals
    -------
    delivered(url: str, status: int)
    delivery_failed(url: str, reason: str)
    """

    delivered = pyqtSignal(str, int)
    delivery_failed = pyqtSignal(str, str)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._manager = QNetworkAccessManager(self)
        self._pending: set[QNetworkReply] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def notify_completion(
        self, config: UserConfiguration, completion: dict, session_count: int
    ) -> bool:
        """Queue a webhook if *config* asks for one.  Returns True when queued."""
        if not config.should_send_webhook():
            return False
        self.post(config.webhook_url, build_completion_payload(completion, session_count))
        return True

    def post(self, url: str, payload: dict) -> QNetworkReply:
        request = QNetworkRequest(QUrl(url))
        request.setHeader(
            QNetworkRequest.KnownHeaders.ContentTypeHeader, "application/json"
        )
        request.setTransferTimeout(WEBHOOK_TIMEOUT_MS)
        body = QByteArray(json.dumps(payload).encode("utf-8"))

        reply = self._manager.post(request, body)
        self._pending.add(reply)
        reply.finished.connect(lambda: self._on_finished(reply, url))
        logger.debug("Webhook queued for %s", url)
        return reply

    def _on_finished(self, reply: QNetworkReply, url: str) -> None:
        self._pending.discard(reply)
        status = reply.attribute(QNetworkRequest.Attribute.HttpStatusCodeAttribute)
        if reply.error() != QNetworkReply.NetworkError.NoError:
            logger.warning("Webhook to %s failed: %s", url, reply.errorString())
            self.delivery_failed.emit(url, reply.errorString())
        else:
            logger.debug("Webhook to %s delivered (%s)", url, status)
            self.delivered.emit(url, int(status or 0))
        reply.deleteLater()
