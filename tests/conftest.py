"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from phone_sync.models.config import MonitoringConfig
from phone_sync.monitoring.logger import StructuredLogger
from phone_sync.monitoring.sync_monitoring import SyncMonitoringService
from phone_sync.storage.catalog import InMemoryCatalogStore


class FakeClock:
    """Fake clock for deterministic time testing.

    ``now`` is monotonic seconds, ``utcnow`` a matching aware datetime, and
    ``sleep`` advances both and records every requested delay.
    """

    def __init__(self, initial_time: float = 0.0):
        self.t = initial_time
        self.start = datetime(2024, 6, 1, tzinfo=timezone.utc)
        self.sleeps = []

    def now(self) -> float:
        return self.t

    def utcnow(self) -> datetime:
        return self.start + timedelta(seconds=self.t)

    def advance(self, seconds: float) -> None:
        self.t += seconds

    async def sleep(self, dt: float) -> None:
        self.sleeps.append(dt)
        self.t += dt


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def logger():
    return StructuredLogger(name="phone_sync.tests", level="DEBUG")


@pytest.fixture
def monitor(clock, logger):
    """Monitoring with alerting off and a fake clock."""
    return SyncMonitoringService(MonitoringConfig(enabled=False), logger=logger, now=clock.utcnow)


@pytest.fixture
def catalog():
    return InMemoryCatalogStore()
