"""Database connection and session management."""

import logging
import time
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import sessionmaker, Session as OrmSession

from .models import Base, UserConfigurationRecord

logger = logging.getLogger(__name__)

# ── defaults ─────────────────────────────────────────────────────────────────

DEFAULT_DATA_DIR = Path.home() / ".romatimer"
DEFAULT_DB_PATH = DEFAULT_DATA_DIR / "romatimer.db"
DEFAULT_USER_ID = "default-config"

# ── engine & session factory (created lazily) ─────────────────────────────

_engine = None
_SessionFactory = None


def _make_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, echo=False)


def _get_engine():
    global _engine
    if _engine is None:
        DEFAULT_DATA_DIR.mkdir(parents=True, exist_ok=True)
        _engine = _make_engine(f"sqlite:///{DEFAULT_DB_PATH}")
    return _engine


def _get_session_factory():
    global _SessionFactory
    if _SessionFactory is None:
        _SessionFactory = sessionmaker(bind=_get_engine(), expire_on_commit=False)
    return _SessionFactory


# ── public API ────────────────────────────────────────────────────────────


def configure_engine(url: str) -> None:
    """Point the store at *url*.  Tests use ``sqlite:///:memory:``."""
    global _engine, _SessionFactory
    _SessionFactory = None
    if url.startswith("sqlite:///") and ":memory:" not in url:
        Path(url[len("sqlite:///"):]).expanduser().parent.mkdir(parents=True, exist_ok=True)
    _engine = _make_engine(url)
    logger.debug("Database engine configured: %s", _engine.url.render_as_string(hide_password=True))


def _run_migrations(engine) -> None:
    """Schema migrations for existing databases.

    Runs after ``create_all`` so fresh installs already have every column.
    Each migration is idempotent.
    """
    insp = inspect(engine)
    table_names = set(insp.get_table_names())

    with engine.connect() as conn:
        # ── M1: work_sessions_completed on timer_sessions ──────────────
        if "timer_sessions" in table_names:
            columns = {c["name"] for c in insp.get_columns("timer_sessions")}
            if "work_sessions_completed" not in columns:
                conn.execute(text(
                    "ALTER TABLE timer_sessions "
                    "ADD COLUMN work_sessions_completed INTEGER NOT NULL DEFAULT 0"
                ))

        # ── M2: daily reset columns on user_configurations ─────────────
        if "user_configurations" in table_names:
            columns = {c["name"] for c in insp.get_columns("user_configurations")}
            _daily_reset_columns = {
                "timezone": "VARCHAR(64) NOT NULL DEFAULT 'UTC'",
                "daily_reset_time_type": "VARCHAR(10) NOT NULL DEFAULT 'midnight'",
                "daily_reset_time_hour": "INTEGER",
                "daily_reset_time_custom": "VARCHAR(5)",
                "daily_reset_enabled": "BOOLEAN NOT NULL DEFAULT 0",
                "last_daily_reset_utc": "INTEGER",
                "today_session_count": "INTEGER NOT NULL DEFAULT 0",
                "manual_session_override": "INTEGER",
            }
            for name, ddl in _daily_reset_columns.items():
                if name not in columns:
                    conn.execute(text(
                        f"ALTER TABLE user_configurations ADD COLUMN {name} {ddl}"
                    ))

        conn.commit()


def init_db() -> None:
    """Create all tables, run migrations, and seed the default configuration."""
    engine = _get_engine()
    Base.metadata.create_all(engine)
    _run_migrations(engine)

    factory = _get_session_factory()
    with factory() as session:
        if session.get(UserConfigurationRecord, DEFAULT_USER_ID) is None:
            now = int(time.time())
            session.add(UserConfigurationRecord(
                id=DEFAULT_USER_ID, created_at=now, updated_at=now,
            ))
            session.commit()
            logger.info("Seeded default configuration %r", DEFAULT_USER_ID)


@contextmanager
def get_session():
    """Yield a SQLAlchemy session; commit on success, rollback on error."""
    factory = _get_session_factory()
    session: OrmSession = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
