"""
Simulated telemetry client.

Produces plausible random readings so the engine can run without real
devices: CPU, memory, temperature, traffic and uptime values, random
active unit counts per port, and unit statuses with optical rx power.
"""
import asyncio
import logging
import random
from typing import Dict, List, Optional
from uuid import UUID

from ..clock import Clock, SystemClock
from ..devices.models import (
    Device,
    MetricClass,
    MetricKind,
    MetricSample,
    PortReading,
    UnitReading,
    UnitStatus,
)
from ..exceptions import TelemetryError
from ..interfaces import DeviceDirectory, TelemetryClient

logger = logging.getLogger(__name__)


class SimulatedTelemetryClient(TelemetryClient):
    """
    Telemetry client returning random values.

    Features:
    - Per-class metric generation
    - Configurable failure rate and latency
    - Unit status and rx power simulation
    """

    def __init__(
        self,
        directory: DeviceDirectory,
        failure_rate: float = 0.0,
        latency: float = 0.0,
        seed: Optional[int] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the simulator.

        Args:
            directory: Directory used to enumerate provisioned ports and units.
            failure_rate: Probability (0-1) that a call raises TelemetryError.
            latency: Maximum simulated response time in seconds.
            seed: Random seed for reproducible runs.
            clock: Clock providing sample timestamps.
        """
        self.directory = directory
        self.failure_rate = failure_rate
        self.latency = latency
        self.clock = clock or SystemClock()

        self._random = random.Random(seed)
        self._uptime: Dict[UUID, int] = {}
        self._requests = 0

    async def fetch_metrics(
        self,
        device: Device,
        metric_class: MetricClass,
    ) -> List[MetricSample]:
        await self._simulate_call(device, metric_class)
        now = self.clock.now()
        rnd = self._random

        if metric_class == MetricClass.STATUS:
            uptime = self._uptime.get(device.id, rnd.randint(0, 1000000))
            uptime += rnd.randint(30, 90)
            self._uptime[device.id] = uptime
            values = {MetricKind.UPTIME: float(uptime)}

        elif metric_class == MetricClass.CPU_MEMORY:
            values = {
                MetricKind.CPU_USAGE: float(rnd.randint(0, 80)),
                MetricKind.MEMORY_USAGE: float(rnd.randint(0, 70)),
            }

        elif metric_class == MetricClass.TRAFFIC:
            values = {
                MetricKind.RX_BPS: float(rnd.randint(0, 10 ** 9)),
                MetricKind.TX_BPS: float(rnd.randint(0, 10 ** 9)),
            }

        else:
            values = {MetricKind.TEMPERATURE: float(rnd.randint(20, 60))}

        return [
            MetricSample(device.id, now, kind, value)
            for kind, value in values.items()
        ]

    async def fetch_ports(self, device: Device) -> List[PortReading]:
        await self._simulate_call(device, MetricClass.STATUS)
        rnd = self._random

        units_by_port: Dict[UUID, List[UnitReading]] = {}
        for unit in await self.directory.list_units(device.id):
            status = rnd.choices(
                [UnitStatus.ONLINE, UnitStatus.OFFLINE, UnitStatus.LOSS_OF_SIGNAL, UnitStatus.DEGRADED],
                weights=[90, 5, 2, 3],
            )[0]
            rx_power = None
            if status in (UnitStatus.ONLINE, UnitStatus.DEGRADED):
                rx_power = round(rnd.uniform(-31.0, -20.0), 2)
            units_by_port.setdefault(unit.port_id, []).append(
                UnitReading(unit_id=unit.id, status=status, rx_power=rx_power)
            )

        readings = []
        for port in await self.directory.list_ports(device.id):
            units = units_by_port.get(port.id, [])
            if units:
                active = sum(
                    1 for u in units
                    if u.status in (UnitStatus.ONLINE, UnitStatus.DEGRADED)
                )
            else:
                active = rnd.randint(0, port.total_units)
            readings.append(PortReading(port_id=port.id, active_units=active, units=units))

        return readings

    async def _simulate_call(self, device: Device, metric_class: MetricClass) -> None:
        self._requests += 1

        if self.latency > 0:
            await asyncio.sleep(self._random.uniform(0, self.latency))

        if self._random.random() < self.failure_rate:
            raise TelemetryError(
                f"Simulated failure reading {metric_class.value}",
                device.id,
                metric_class.value,
            )

    @property
    def requests(self) -> int:
        return self._requests
