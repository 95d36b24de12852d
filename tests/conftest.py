"""Shared fixtures for the tracker tests."""
from datetime import datetime, timedelta, timezone

import pytest

import timezones
from repository import TrackerRepository
from services import WorkHoursCalculator

UTC = timezone.utc
NEW_YORK = "America/New_York"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


class FakeClock:
    """Callable clock pinned to a fixed instant; move it with `advance`."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def default_zone(monkeypatch):
    monkeypatch.setattr(timezones, "DEFAULT_TIMEZONE", NEW_YORK)


@pytest.fixture
def calc():
    return WorkHoursCalculator()


@pytest.fixture
def clock():
    return FakeClock(utc(2024, 1, 15, 13, 0))


@pytest.fixture
def repo(tmp_path, clock):
    return TrackerRepository(f"sqlite:///{(tmp_path / 'tracker.db').as_posix()}", clock=clock)
