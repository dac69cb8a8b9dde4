"""Server settings with JSON persistence.

Settings are stored at:
    ~/.romatimer/settings.json

Every field can be overridden from the environment with a ``ROMA_TIMER_``
prefix (``ROMA_TIMER_PORT=8080``); environment values win over the file.

Usage::

    settings = load_settings()
    settings.port = 8080
    save_settings(settings)
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Mapping

from .database.db import DEFAULT_DATA_DIR, DEFAULT_USER_ID

logger = logging.getLogger(__name__)

SETTINGS_PATH = DEFAULT_DATA_DIR / "settings.json"
ENV_PREFIX = "ROMA_TIMER_"


@dataclass
class ServerSettings:
    """Process-level settings; per-user preferences live in the database."""

    # ── network ───────────────────────────────────────────────────────
    host: str = "127.0.0.1"
    port: int = 3000
    max_websocket_connections: int = 100
    connection_timeout: int = 120          # seconds without a heartbeat before a client is dropped

    # ── storage ───────────────────────────────────────────────────────
    data_dir: str = str(DEFAULT_DATA_DIR)
    database_url: str | None = None        # sqlite file in data_dir when unset
    user_id: str = DEFAULT_USER_ID

    # ── logging ───────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_file: str | None = None

    # ── background work ───────────────────────────────────────────────
    reset_check_interval: int = 60         # seconds

    @property
    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite:///{Path(self.data_dir).expanduser() / 'romatimer.db'}"


def _coerce(value: str, default):
    """Convert an environment string to the type of the field's default."""
    if isinstance(default, int):
        return int(value)
    return value


def apply_env_overrides(
    settings: ServerSettings, environ: Mapping[str, str] | None = None
) -> ServerSettings:
    environ = os.environ if environ is None else environ
    defaults = ServerSettings()
    for f in fields(ServerSettings):
        raw = environ.get(ENV_PREFIX + f.name.upper())
        if raw is None:
            continue
        try:
            setattr(settings, f.name, _coerce(raw, getattr(defaults, f.name)))
        except ValueError:
            logger.warning("Ignoring %s%s=%r: not a valid value", ENV_PREFIX, f.name.upper(), raw)
    return settings


def load_settings(
    path: Path | None = None, environ: Mapping[str, str] | None = None
) -> ServerSettings:
    """Load settings from disk, falling back to defaults, then apply env overrides."""
    path = path or SETTINGS_PATH
    settings = ServerSettings()
    try:
        if path.exists():
            data = json.loads(path.read_text(encoding="utf-8"))
            # Only use keys that exist in the dataclass
            valid_keys = {f.name for f in fields(ServerSettings)}
            filtered = {k: v for k, v in data.items() if k in valid_keys}
            settings = ServerSettings(**filtered)
    except (OSError, ValueError, TypeError) as exc:
        logger.warning("Could not read %s, using defaults: %s", path, exc)
    return apply_env_overrides(settings, environ)


def save_settings(settings: ServerSettings, path: Path | None = None) -> None:
    """Write settings to disk as JSON."""
    path = path or SETTINGS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(asdict(settings), indent=2) + "\n",
        encoding="utf-8",
    )
