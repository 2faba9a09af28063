"""Shared test fixtures for worktimer tests."""

from datetime import datetime, timedelta, timezone

import pytest

from worktimer.predictor import Predictor
from worktimer.store import SessionStore


class FakeClock:
    """Deterministic clock; advance() moves time forward."""

    def __init__(self, start=None):
        self.now = start or datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def tmp_db(tmp_path):
    """Path to a temporary SQLite database file."""
    return tmp_path / "test-worktimer.db"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_db, clock):
    """SessionStore on a temporary file, driven by the fake clock."""
    with SessionStore(tmp_db, clock=clock) as s:
        yield s


@pytest.fixture
def predictor(store):
    return Predictor(store)
