"""Roma Timer: a headless pomodoro timer server."""

__version__ = "0.1.0"
