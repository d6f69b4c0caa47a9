"""
Shared pytest fixtures for OLT monitor tests.

Provides fixtures for:
- Settings tuned for tests
- Manually driven clock
- In-memory directory and repositories
- Scripted telemetry client
- Wired poller, scheduler, watchdog and service
"""
from typing import List
from unittest.mock import AsyncMock

import pytest

from olt_monitor.alarms.ledger import AlarmLedger
from olt_monitor.config import (
    AlarmSettings,
    MonitorSettings,
    PollingSettings,
    WatchdogSettings,
)
from olt_monitor.devices.models import Device
from olt_monitor.monitoring.watchdog import StalenessWatchdog
from olt_monitor.polling.poller import DevicePoller
from olt_monitor.polling.scheduler import FleetScheduler
from olt_monitor.service import MonitorService
from olt_monitor.storage.memory import (
    InMemoryAlarmRepository,
    InMemoryDeviceDirectory,
    InMemoryMetricsRepository,
)

from tests.factories import DeviceFactory
from tests.fakes import FakeTelemetryClient, ManualClock


# ============================================================================
# Core Fixtures
# ============================================================================

@pytest.fixture
def settings() -> MonitorSettings:
    """Monitor settings with default cadences and no start-up sweep."""
    return MonitorSettings(
        polling=PollingSettings(
            batch_size=5,
            poll_timeout=5.0,
            poll_on_start=False,
            retry_attempts=1,
        ),
        watchdog=WatchdogSettings(
            interval=300.0,
            max_age=600.0,
            check_on_start=False,
        ),
        alarms=AlarmSettings(),
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


# ============================================================================
# Backend Fixtures
# ============================================================================

@pytest.fixture
def directory() -> InMemoryDeviceDirectory:
    return InMemoryDeviceDirectory()


@pytest.fixture
def metrics_repo() -> InMemoryMetricsRepository:
    return InMemoryMetricsRepository()


@pytest.fixture
def alarm_repo() -> InMemoryAlarmRepository:
    return InMemoryAlarmRepository()


@pytest.fixture
def mock_sink():
    """Notification sink recording raised and cleared alarms."""
    sink = AsyncMock()
    sink.on_alarm_raised = AsyncMock()
    sink.on_alarm_cleared = AsyncMock()
    return sink


@pytest.fixture
def client(clock) -> FakeTelemetryClient:
    return FakeTelemetryClient(clock)


# ============================================================================
# Engine Fixtures
# ============================================================================

@pytest.fixture
def ledger(alarm_repo, mock_sink) -> AlarmLedger:
    return AlarmLedger(alarm_repo, mock_sink)


@pytest.fixture
def poller(directory, client, metrics_repo, ledger, settings, clock) -> DevicePoller:
    return DevicePoller(
        directory,
        client,
        metrics_repo,
        ledger,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def scheduler(directory, poller, settings, clock) -> FleetScheduler:
    return FleetScheduler(directory, poller, settings=settings, clock=clock)


@pytest.fixture
def watchdog(directory, ledger, settings, clock) -> StalenessWatchdog:
    return StalenessWatchdog(directory, ledger, settings=settings, clock=clock)


@pytest.fixture
def service(directory, client, metrics_repo, alarm_repo, mock_sink, settings, clock) -> MonitorService:
    return MonitorService(
        directory=directory,
        client=client,
        metrics=metrics_repo,
        alarms=alarm_repo,
        sink=mock_sink,
        settings=settings,
        clock=clock,
    )


# ============================================================================
# Data Fixtures
# ============================================================================

@pytest.fixture
def device(directory) -> Device:
    """A single online device registered in the directory."""
    return directory.add_device(DeviceFactory())


@pytest.fixture
def fleet(directory) -> List[Device]:
    """Twenty-three devices registered in the directory."""
    return [directory.add_device(d) for d in DeviceFactory.build_batch(23)]


# ============================================================================
# Time Fixtures
# ============================================================================

@pytest.fixture
def freeze_time():
    """
    Freeze time for deterministic wall-clock tests.

    Usage:
        def test_something(freeze_time):
            with freeze_time("2026-01-15 12:00:00"):
                ...
    """
    from freezegun import freeze_time as _freeze_time
    return _freeze_time
