"""
In-memory backends.

Process-local implementations of the device directory, metrics repository,
alarm repository and notification sink. Used by the simulated entry point
and by tests; production hosts plug in their own database-backed versions.
"""
import asyncio
import logging
from collections import defaultdict, deque
from dataclasses import replace
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional
from uuid import UUID

from ..alarms.models import Alarm
from ..devices.models import (
    ChildPort,
    Device,
    DeviceStatus,
    MetricKind,
    MetricSample,
    PortStatus,
    SignalQuality,
    SubscriberUnit,
    UnitStatus,
)
from ..exceptions import DeviceNotFound, RepositoryError
from ..interfaces import (
    AlarmRepository,
    DeviceDirectory,
    MetricsRepository,
    NotificationSink,
)

logger = logging.getLogger(__name__)


class InMemoryDeviceDirectory(DeviceDirectory):
    """
    Device directory kept in dictionaries.

    Returned entities are copies, so callers never mutate stored state
    directly.
    """

    def __init__(self):
        self._devices: Dict[UUID, Device] = {}
        self._ports: Dict[UUID, ChildPort] = {}
        self._units: Dict[UUID, SubscriberUnit] = {}
        self._lock = asyncio.Lock()

    # =========================================================================
    # Provisioning
    # =========================================================================

    def add_device(self, device: Device) -> Device:
        """Register a device."""
        self._devices[device.id] = device
        logger.debug(f"Added device {device.id} ({device.name})")
        return device

    def add_port(self, port: ChildPort) -> ChildPort:
        """Register a port on an existing device."""
        if port.device_id not in self._devices:
            raise DeviceNotFound(port.device_id)
        self._ports[port.id] = port
        return port

    def add_unit(self, unit: SubscriberUnit) -> SubscriberUnit:
        """Register a subscriber unit on an existing port."""
        if unit.port_id not in self._ports:
            raise RepositoryError(f"Port {unit.port_id} not found", "add_unit")
        self._units[unit.id] = unit
        return unit

    def set_maintenance(self, device_id: UUID, enabled: bool) -> None:
        """Toggle maintenance for a device."""
        device = self._devices.get(device_id)
        if device is None:
            raise DeviceNotFound(device_id)
        device.status = DeviceStatus.MAINTENANCE if enabled else DeviceStatus.ONLINE

    # =========================================================================
    # DeviceDirectory
    # =========================================================================

    async def list_pollable(self) -> List[Device]:
        return [replace(d) for d in self._devices.values() if d.is_pollable]

    async def list_all(self) -> List[Device]:
        return [replace(d) for d in self._devices.values()]

    async def get_device(self, device_id: UUID) -> Optional[Device]:
        device = self._devices.get(device_id)
        return replace(device) if device else None

    async def update_device_status(
        self,
        device_id: UUID,
        status: DeviceStatus,
        last_poll_at: Optional[datetime] = None,
        last_successful_poll_at: Optional[datetime] = None,
        last_error: Optional[str] = None,
    ) -> None:
        async with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                raise DeviceNotFound(device_id)

            # Maintenance is only lifted by an administrator
            if device.status == DeviceStatus.MAINTENANCE:
                logger.debug(f"Device {device_id} in maintenance, ignoring status update")
                return

            device.status = status
            if last_poll_at is not None:
                device.last_poll_at = last_poll_at
            if last_successful_poll_at is not None:
                device.last_successful_poll_at = last_successful_poll_at
            device.last_error = last_error

    async def record_poll_failure(
        self,
        device_id: UUID,
        last_poll_at: datetime,
        last_error: Optional[str],
    ) -> DeviceStatus:
        async with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                raise DeviceNotFound(device_id)

            if device.status == DeviceStatus.MAINTENANCE:
                logger.debug(f"Device {device_id} in maintenance, ignoring poll failure")
                return device.status

            # Only the watchdog demotes to offline and only a success promotes
            if device.status != DeviceStatus.OFFLINE:
                device.status = DeviceStatus.WARNING
            device.last_poll_at = last_poll_at
            device.last_error = last_error
            return device.status

    async def list_ports(self, device_id: UUID) -> List[ChildPort]:
        return [replace(p) for p in self._ports.values() if p.device_id == device_id]

    async def update_port(
        self,
        port_id: UUID,
        active_units: int,
        status: PortStatus,
        last_poll_at: datetime,
    ) -> None:
        port = self._ports.get(port_id)
        if port is None:
            raise RepositoryError(f"Port {port_id} not found", "update_port")
        port.active_units = active_units
        port.status = status
        port.last_poll_at = last_poll_at

    async def list_units(self, device_id: UUID) -> List[SubscriberUnit]:
        return [replace(u) for u in self._units.values() if u.device_id == device_id]

    async def update_unit(
        self,
        unit_id: UUID,
        status: UnitStatus,
        signal_quality: SignalQuality,
        rx_power: Optional[float],
        last_seen_at: Optional[datetime],
        last_poll_at: datetime,
    ) -> None:
        unit = self._units.get(unit_id)
        if unit is None:
            raise RepositoryError(f"Unit {unit_id} not found", "update_unit")
        unit.status = status
        unit.signal_quality = signal_quality
        unit.rx_power = rx_power
        unit.last_seen_at = last_seen_at
        unit.last_poll_at = last_poll_at

    # =========================================================================
    # Lookup helpers
    # =========================================================================

    def device(self, device_id: UUID) -> Device:
        """Get the stored device (not a copy)."""
        return self._devices[device_id]

    def port(self, port_id: UUID) -> ChildPort:
        """Get the stored port (not a copy)."""
        return self._ports[port_id]

    def unit(self, unit_id: UUID) -> SubscriberUnit:
        """Get the stored unit (not a copy)."""
        return self._units[unit_id]

    def get_stats(self) -> Dict[str, Any]:
        """Get device counts by status."""
        by_status: Dict[str, int] = defaultdict(int)
        for device in self._devices.values():
            by_status[device.status.value] += 1
        return {
            "devices": len(self._devices),
            "ports": len(self._ports),
            "units": len(self._units),
            "by_status": dict(by_status),
        }


class InMemoryMetricsRepository(MetricsRepository):
    """
    Bounded per-(device, kind) sample history.

    Args:
        max_samples: Samples retained per device and kind.
    """

    def __init__(self, max_samples: int = 1000):
        self.max_samples = max_samples
        self._samples: Dict[tuple, Deque[MetricSample]] = defaultdict(
            lambda: deque(maxlen=self.max_samples)
        )
        self._total = 0

    async def append(self, sample: MetricSample) -> None:
        self._samples[(sample.device_id, sample.kind)].append(sample)
        self._total += 1

    async def latest(
        self,
        device_id: UUID,
        kind: MetricKind,
        limit: int = 1,
    ) -> List[MetricSample]:
        history = self._samples.get((device_id, kind))
        if not history:
            return []
        # Equal timestamps resolve to the most recently appended sample
        newest = sorted(reversed(history), key=lambda s: s.captured_at, reverse=True)
        return newest[:limit]

    @property
    def total_samples(self) -> int:
        return self._total


class InMemoryAlarmRepository(AlarmRepository):
    """Alarm rows kept by ID."""

    def __init__(self):
        self._alarms: Dict[UUID, Alarm] = {}

    async def save(self, alarm: Alarm) -> None:
        self._alarms[alarm.id] = replace(alarm)

    async def list_open(self) -> List[Alarm]:
        return [replace(a) for a in self._alarms.values() if a.is_open]

    def all(self) -> List[Alarm]:
        """Every alarm ever saved, oldest first."""
        return sorted(self._alarms.values(), key=lambda a: a.raised_at)


class LoggingNotificationSink(NotificationSink):
    """Notification sink that writes alarm transitions to the log."""

    def __init__(self, logger_name: str = "olt_monitor.alarms.notifications"):
        self._logger = logging.getLogger(logger_name)

    async def on_alarm_raised(self, alarm: Alarm) -> None:
        level = logging.ERROR if alarm.severity.value == "critical" else logging.WARNING
        self._logger.log(level, f"[{alarm.severity.value.upper()}] {alarm.kind.value}: {alarm.message}")

    async def on_alarm_cleared(self, alarm: Alarm) -> None:
        self._logger.info(f"[CLEARED] {alarm.kind.value}: {alarm.message}")
