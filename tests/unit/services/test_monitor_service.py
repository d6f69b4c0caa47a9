"""
Unit tests for MonitorService.

Tests lifecycle wiring between the ledger, scheduler and watchdog.
"""
import asyncio
from datetime import timedelta

import pytest

from olt_monitor.alarms.models import Alarm, AlarmKind, AlarmSeverity, AlarmTransition
from olt_monitor.config import MonitorSettings, PollingSettings, WatchdogSettings
from olt_monitor.devices.models import DeviceStatus, MetricClass, MetricKind
from olt_monitor.exceptions import ConfigurationError
from olt_monitor.service import MonitorService

from tests.factories import DeviceFactory
from tests.fakes import settle


class TestLifecycle:
    """Test start and stop."""

    @pytest.mark.asyncio
    async def test_start_stop(self, service):
        await service.start()

        assert service.is_running
        assert service.scheduler.is_running
        assert service.watchdog.is_running

        await service.stop()

        assert not service.is_running
        assert not service.scheduler.is_running
        assert not service.watchdog.is_running

    @pytest.mark.asyncio
    async def test_start_twice(self, service):
        await service.start()
        await service.start()

        assert service.is_running
        await service.stop()

    @pytest.mark.asyncio
    async def test_invalid_interval(self, service):
        with pytest.raises(ConfigurationError):
            await service.start({MetricClass.STATUS: -1})

        assert not service.is_running
        assert not service.scheduler.is_running

    @pytest.mark.asyncio
    async def test_watchdog_failure_stops_scheduler(
        self, directory, client, metrics_repo, alarm_repo, clock
    ):
        settings = MonitorSettings(
            polling=PollingSettings(poll_on_start=False),
            watchdog=WatchdogSettings(interval=0),
        )
        service = MonitorService(directory, client, metrics_repo, alarm_repo, settings=settings, clock=clock)

        with pytest.raises(ConfigurationError):
            await service.start()

        assert not service.scheduler.is_running
        assert not service.is_running

    @pytest.mark.asyncio
    async def test_start_loads_open_alarms(self, service, directory, alarm_repo, clock):
        device = directory.add_device(DeviceFactory(
            status=DeviceStatus.OFFLINE,
            last_successful_poll_at=clock.now() - timedelta(hours=2),
        ))
        await alarm_repo.save(Alarm(
            device_id=device.id,
            severity=AlarmSeverity.CRITICAL,
            kind=AlarmKind.OFFLINE,
            message="Device has not responded to polling for more than 10 minutes",
            raised_at=clock.now() - timedelta(hours=1),
        ))

        await service.start()
        report = await service.run_health_check()
        await service.stop()

        assert report.stale == 1
        assert report.alarms_raised == 0
        assert len(alarm_repo.all()) == 1


    @pytest.mark.asyncio
    async def test_stop_waits_for_running_health_check(self, service, directory, clock):
        release = asyncio.Event()
        roster = directory.list_all

        async def slow_list_all():
            await release.wait()
            return await roster()

        directory.list_all = slow_list_all
        await service.start()
        await settle()
        await clock.advance(300)
        assert service.watchdog.get_stats()["busy"] is True

        stop_task = asyncio.create_task(service.stop())
        await settle()
        assert not stop_task.done()

        release.set()
        await stop_task

        assert service.watchdog.get_stats()["checks_completed"] == 1

class TestEndToEnd:
    """Test timers, polls and alarms working together."""

    @pytest.mark.asyncio
    async def test_temperature_alarm_through_timers(self, service, directory, client, alarm_repo, mock_sink, clock):
        device = directory.add_device(DeviceFactory())
        client.set_value(device.id, MetricKind.TEMPERATURE, 60.0)
        await service.start()
        await settle()

        await clock.advance(120)
        await settle(50)
        assert directory.device(device.id).status == DeviceStatus.WARNING

        client.set_value(device.id, MetricKind.TEMPERATURE, 75.0)
        await clock.advance(120)
        await settle(50)

        await service.stop()

        assert [a.severity for a in alarm_repo.all()] == [
            AlarmSeverity.WARNING,
            AlarmSeverity.CRITICAL,
        ]
        assert mock_sink.on_alarm_raised.await_count == 2
        assert mock_sink.on_alarm_cleared.await_count == 1

    @pytest.mark.asyncio
    async def test_silent_device_goes_offline(self, service, directory, client, ledger, clock):
        quiet, chatty = DeviceFactory.build_batch(2)
        directory.add_device(quiet)
        directory.add_device(chatty)

        report = await service.poll_fleet(MetricClass.STATUS)
        assert report.succeeded == 2

        client.failures[quiet.id] = TimeoutError("no response")
        await service.start()
        await settle()

        await clock.advance(900)
        await settle(50)
        await service.stop()

        assert directory.device(quiet.id).status == DeviceStatus.OFFLINE
        assert directory.device(chatty.id).status == DeviceStatus.ONLINE
        offline = [a for a in service.ledger.open_alarms() if a.kind == AlarmKind.OFFLINE]
        assert [a.device_id for a in offline] == [quiet.id]

    @pytest.mark.asyncio
    async def test_manual_poll(self, service, directory, client):
        device = directory.add_device(DeviceFactory())
        client.set_value(device.id, MetricKind.CPU_USAGE, 95.0)

        report = await service.poll_fleet(MetricClass.CPU_MEMORY)

        assert report.outcomes[0].transitions == [AlarmTransition.RAISED]
        assert directory.device(device.id).status == DeviceStatus.WARNING

    @pytest.mark.asyncio
    async def test_get_stats(self, service, directory):
        directory.add_device(DeviceFactory())
        await service.poll_fleet(MetricClass.TRAFFIC)

        stats = service.get_stats()

        assert stats["service"]["running"] is False
        assert stats["scheduler"]["sweeps_completed"]["traffic"] == 1
        assert stats["scheduler"]["last_sweeps"]["traffic"]["succeeded"] == 1
        assert stats["watchdog"]["checks_completed"] == 0
        assert stats["alarms"]["open_alarms"] == 0
