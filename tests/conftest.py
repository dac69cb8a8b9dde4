"""Shared pytest fixtures for Roma Timer tests."""

import sys
from datetime import datetime, timezone

import pytest

from PyQt6.QtCore import QCoreApplication

from romatimer.clock import FakeClock
from romatimer.configuration import ConfigurationService
from romatimer.daily_reset.service import DailyResetService
from romatimer.database.db import configure_engine, init_db
from romatimer.timer.engine import TimerEngine


START = datetime(2025, 1, 7, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def qapp():
    """A single QCoreApplication instance shared across the entire test run."""
    app = QCoreApplication.instance() or QCoreApplication(sys.argv)
    yield app


@pytest.fixture(autouse=True)
def test_db():
    """Point every test at a fresh in-memory SQLite database."""
    configure_engine("sqlite:///:memory:")
    init_db()
    yield


@pytest.fixture
def clock():
    """Fake clock frozen at 2025-01-07 10:00:00 UTC."""
    return FakeClock(START)


@pytest.fixture
def engine(qapp, clock):
    """Fresh TimerEngine on the fake clock with default durations."""
    return TimerEngine(parent=None, clock=clock)


@pytest.fixture
def config_service(qapp, clock):
    return ConfigurationService(clock)


@pytest.fixture
def reset_service(qapp, clock):
    return DailyResetService(clock)
