"""
Collaborator interfaces (ports) for the polling engine.

These interfaces define what the engine needs from its host without
specifying how devices are stored, read or notified about.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from .alarms.models import Alarm
from .devices.models import (
    ChildPort,
    Device,
    DeviceStatus,
    MetricClass,
    MetricKind,
    MetricSample,
    PortReading,
    PortStatus,
    SignalQuality,
    SubscriberUnit,
    UnitStatus,
)


class DeviceDirectory(ABC):
    """
    Device roster and device state persistence.

    Implementations raise RepositoryError when the backing store fails.
    """

    @abstractmethod
    async def list_pollable(self) -> List[Device]:
        """
        List devices eligible for polling.

        Returns:
            All devices whose status is not maintenance.
        """
        pass

    @abstractmethod
    async def list_all(self) -> List[Device]:
        """List every device."""
        pass

    @abstractmethod
    async def get_device(self, device_id: UUID) -> Optional[Device]:
        """
        Get device by ID.

        Args:
            device_id: Device UUID

        Returns:
            Device if found, None otherwise
        """
        pass

    @abstractmethod
    async def update_device_status(
        self,
        device_id: UUID,
        status: DeviceStatus,
        last_poll_at: Optional[datetime] = None,
        last_successful_poll_at: Optional[datetime] = None,
        last_error: Optional[str] = None,
    ) -> None:
        """
        Persist a device status transition.

        Timestamps left as None are not changed. ``last_error`` is stored
        as given, so passing None clears it.
        """
        pass

    @abstractmethod
    async def record_poll_failure(
        self,
        device_id: UUID,
        last_poll_at: datetime,
        last_error: Optional[str],
    ) -> DeviceStatus:
        """
        Persist a failed poll against the stored device status.

        The device becomes warning unless it is stored as offline, in which
        case it stays offline. The check and the write must be atomic with
        respect to other status updates. ``last_successful_poll_at`` is not
        changed.

        Args:
            device_id: Device UUID
            last_poll_at: Time of the failed poll
            last_error: Failure message

        Returns:
            The status the device has after the update
        """
        pass

    @abstractmethod
    async def list_ports(self, device_id: UUID) -> List[ChildPort]:
        """List the ports of a device."""
        pass

    @abstractmethod
    async def update_port(
        self,
        port_id: UUID,
        active_units: int,
        status: PortStatus,
        last_poll_at: datetime,
    ) -> None:
        """Persist the polled state of a port."""
        pass

    @abstractmethod
    async def list_units(self, device_id: UUID) -> List[SubscriberUnit]:
        """List the subscriber units attached to a device."""
        pass

    @abstractmethod
    async def update_unit(
        self,
        unit_id: UUID,
        status: UnitStatus,
        signal_quality: SignalQuality,
        rx_power: Optional[float],
        last_seen_at: Optional[datetime],
        last_poll_at: datetime,
    ) -> None:
        """Persist the polled state of a subscriber unit."""
        pass


class TelemetryClient(ABC):
    """
    Reads telemetry from a device over some protocol.

    One implementation per vendor or protocol. Both methods raise
    TelemetryError when the device cannot be read.
    """

    @abstractmethod
    async def fetch_metrics(
        self,
        device: Device,
        metric_class: MetricClass,
    ) -> List[MetricSample]:
        """
        Fetch the metrics of one class.

        Args:
            device: Device to read.
            metric_class: Metric class requested by the timer.

        Returns:
            Samples read from the device.
        """
        pass

    @abstractmethod
    async def fetch_ports(self, device: Device) -> List[PortReading]:
        """Enumerate ports, and units where supported."""
        pass


class MetricsRepository(ABC):
    """Append-only time-series storage for metric samples."""

    @abstractmethod
    async def append(self, sample: MetricSample) -> None:
        """Store a sample."""
        pass

    @abstractmethod
    async def latest(
        self,
        device_id: UUID,
        kind: MetricKind,
        limit: int = 1,
    ) -> List[MetricSample]:
        """
        Get the newest samples of a kind.

        Returns:
            Samples ordered newest first.
        """
        pass


class AlarmRepository(ABC):
    """Alarm persistence."""

    @abstractmethod
    async def save(self, alarm: Alarm) -> None:
        """Insert or update an alarm."""
        pass

    @abstractmethod
    async def list_open(self) -> List[Alarm]:
        """List alarms that have not been cleared."""
        pass


class NotificationSink(ABC):
    """Receives alarm transitions for delivery."""

    @abstractmethod
    async def on_alarm_raised(self, alarm: Alarm) -> None:
        pass

    @abstractmethod
    async def on_alarm_cleared(self, alarm: Alarm) -> None:
        pass
