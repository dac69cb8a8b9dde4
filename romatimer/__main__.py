"""Allow running Roma Timer as a module: python -m romatimer."""

import logging
import signal
import sys

from PyQt6.QtCore import QCoreApplication, QTimer

from .app import RomaTimerApp
from .database.db import configure_engine, init_db
from .logging_setup import setup_logging
from .settings import load_settings

logger = logging.getLogger("romatimer")


def main() -> None:
    settings = load_settings()
    setup_logging(settings.log_level, settings.log_file)

    configure_engine(settings.resolved_database_url)
    init_db()

    app = QCoreApplication(sys.argv)
    app.setApplicationName("RomaTimer")
    app.setOrganizationName("RomaTimer")

    server = RomaTimerApp(settings)
    if not server.start():
        sys.exit(1)
    logger.info("Roma Timer ready!")

    signal.signal(signal.SIGINT, lambda *_: app.quit())
    signal.signal(signal.SIGTERM, lambda *_: app.quit())
    # Wake the interpreter periodically so Python signal handlers run.
    heartbeat = QTimer()
    heartbeat.timeout.connect(lambda: None)
    heartbeat.start(500)

    app.aboutToQuit.connect(server.stop)
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
