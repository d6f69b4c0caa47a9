"""
Unit tests for SimulatedTelemetryClient and the simulated fleet.
"""
import pytest

from olt_monitor.config import MonitorSettings, SimulationSettings
from olt_monitor.devices.models import METRIC_CLASS_KINDS, MetricClass, MetricKind, UnitStatus
from olt_monitor.exceptions import TelemetryError
from olt_monitor.main import build_simulated_fleet
from olt_monitor.telemetry import SimulatedTelemetryClient


@pytest.fixture
def sim_settings():
    return MonitorSettings(simulation=SimulationSettings(
        devices=2,
        ports_per_device=3,
        units_per_port=4,
        failure_rate=0.0,
        latency=0.0,
        seed=7,
    ))


@pytest.fixture
def sim_directory(sim_settings):
    return build_simulated_fleet(sim_settings)


class TestBuildSimulatedFleet:
    """Test fleet provisioning."""

    def test_sizes(self, sim_directory):
        stats = sim_directory.get_stats()

        assert stats["devices"] == 2
        assert stats["ports"] == 6
        assert stats["units"] == 24


class TestSimulatedTelemetryClient:
    """Test simulated readings."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("metric_class", list(MetricClass))
    async def test_metrics_match_class(self, sim_directory, metric_class):
        client = SimulatedTelemetryClient(sim_directory, seed=1)
        device = (await sim_directory.list_all())[0]

        samples = await client.fetch_metrics(device, metric_class)

        assert samples
        assert all(s.device_id == device.id for s in samples)
        assert {s.kind for s in samples} <= set(METRIC_CLASS_KINDS[metric_class])

    @pytest.mark.asyncio
    async def test_value_ranges(self, sim_directory):
        client = SimulatedTelemetryClient(sim_directory, seed=3)
        device = (await sim_directory.list_all())[0]

        for _ in range(20):
            cpu = await client.fetch_metrics(device, MetricClass.CPU_MEMORY)
            temperature = await client.fetch_metrics(device, MetricClass.TEMPERATURE)
            values = {s.kind: s.value for s in cpu + temperature}
            assert 0 <= values[MetricKind.CPU_USAGE] <= 80
            assert 0 <= values[MetricKind.MEMORY_USAGE] <= 70
            assert 20 <= values[MetricKind.TEMPERATURE] <= 60

    @pytest.mark.asyncio
    async def test_uptime_increases(self, sim_directory):
        client = SimulatedTelemetryClient(sim_directory, seed=5)
        device = (await sim_directory.list_all())[0]

        first = (await client.fetch_metrics(device, MetricClass.STATUS))[0].value
        second = (await client.fetch_metrics(device, MetricClass.STATUS))[0].value

        assert second > first

    @pytest.mark.asyncio
    async def test_port_readings(self, sim_directory):
        client = SimulatedTelemetryClient(sim_directory, seed=11)
        device = (await sim_directory.list_all())[0]

        readings = await client.fetch_ports(device)

        assert len(readings) == 3
        for reading in readings:
            assert len(reading.units) == 4
            reachable = [
                u for u in reading.units
                if u.status in (UnitStatus.ONLINE, UnitStatus.DEGRADED)
            ]
            assert reading.active_units == len(reachable)
            assert all(u.rx_power is not None for u in reachable)

    @pytest.mark.asyncio
    async def test_failure_rate(self, sim_directory):
        client = SimulatedTelemetryClient(sim_directory, failure_rate=1.0)
        device = (await sim_directory.list_all())[0]

        with pytest.raises(TelemetryError) as exc_info:
            await client.fetch_metrics(device, MetricClass.TRAFFIC)

        assert exc_info.value.device_id == device.id
        assert exc_info.value.metric_class == "traffic"
        assert client.requests == 1

    @pytest.mark.asyncio
    async def test_seeded_runs_repeat(self, sim_directory):
        device = (await sim_directory.list_all())[0]
        first = SimulatedTelemetryClient(sim_directory, seed=42)
        second = SimulatedTelemetryClient(sim_directory, seed=42)

        a = await first.fetch_metrics(device, MetricClass.TRAFFIC)
        b = await second.fetch_metrics(device, MetricClass.TRAFFIC)

        assert [s.value for s in a] == [s.value for s in b]
