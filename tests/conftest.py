"""Shared fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from bizscope.services.database import DatabaseService
from bizscope.services.user_service import UserService


class FakeClock:
    """Controllable epoch-seconds clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUtcClock:
    """Controllable aware-UTC datetime clock."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def utc_clock():
    return FakeUtcClock()


@pytest.fixture
async def db_service(tmp_path):
    """File-backed SQLite database, fresh per test."""
    service = DatabaseService(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await service.initialize()
    yield service
    await service.close()


@pytest.fixture
def user_service(db_service):
    return UserService(db_service)
