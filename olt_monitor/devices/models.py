"""
Device and telemetry models.

Tracks the polled devices, their ports and subscriber units, and the
point-in-time metric samples read from them.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID, uuid4


class DeviceStatus(str, Enum):
    """Rolled-up device status."""
    ONLINE = "online"
    WARNING = "warning"
    OFFLINE = "offline"
    MAINTENANCE = "maintenance"


class PortStatus(str, Enum):
    """Child port status."""
    ONLINE = "online"
    OFFLINE = "offline"
    DISABLED = "disabled"
    WARNING = "warning"


class UnitStatus(str, Enum):
    """Subscriber unit status."""
    ONLINE = "online"
    OFFLINE = "offline"
    LOSS_OF_SIGNAL = "los"
    DEGRADED = "degraded"
    DISABLED = "disabled"
    PENDING = "pending"


class SignalQuality(str, Enum):
    """Optical signal quality of a subscriber unit."""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    UNKNOWN = "unknown"


class MetricClass(str, Enum):
    """Categories of telemetry, each polled on its own cadence."""
    STATUS = "status"
    CPU_MEMORY = "cpu_memory"
    TRAFFIC = "traffic"
    TEMPERATURE = "temperature"


class MetricKind(str, Enum):
    """Individual metrics written as samples."""
    UPTIME = "uptime"
    PORTS_ONLINE = "ports_online"
    PORTS_OFFLINE = "ports_offline"
    CPU_USAGE = "cpu_usage"
    MEMORY_USAGE = "memory_usage"
    RX_BPS = "rx_bps"
    TX_BPS = "tx_bps"
    TEMPERATURE = "temperature"


METRIC_CLASS_KINDS: Dict[MetricClass, Tuple[MetricKind, ...]] = {
    MetricClass.STATUS: (
        MetricKind.UPTIME,
        MetricKind.PORTS_ONLINE,
        MetricKind.PORTS_OFFLINE,
    ),
    MetricClass.CPU_MEMORY: (MetricKind.CPU_USAGE, MetricKind.MEMORY_USAGE),
    MetricClass.TRAFFIC: (MetricKind.RX_BPS, MetricKind.TX_BPS),
    MetricClass.TEMPERATURE: (MetricKind.TEMPERATURE,),
}

# Units reporting one of these statuses are considered seen
REACHABLE_UNIT_STATUSES = frozenset({UnitStatus.ONLINE, UnitStatus.DEGRADED})


def enumerates_ports(metric_class: MetricClass) -> bool:
    """Check if a metric class includes port and unit enumeration."""
    return metric_class == MetricClass.STATUS


@dataclass(frozen=True)
class MetricSample:
    """A single immutable metric reading."""
    device_id: UUID
    captured_at: datetime
    kind: MetricKind
    value: float


@dataclass
class Device:
    """
    A polled network access device (e.g. an optical line terminal).

    Status and poll timestamps are only changed by poll outcomes, the
    staleness watchdog, or an administrator toggling maintenance.
    """
    id: UUID = field(default_factory=uuid4)
    name: str = ""
    address: str = ""
    credentials_ref: Optional[str] = None

    status: DeviceStatus = DeviceStatus.ONLINE
    last_poll_at: Optional[datetime] = None
    last_successful_poll_at: Optional[datetime] = None
    last_error: Optional[str] = None

    @property
    def is_pollable(self) -> bool:
        return self.status != DeviceStatus.MAINTENANCE

    def age_since_success(self, now: datetime) -> Optional[float]:
        """
        Get seconds since the last successful poll.

        Returns:
            Age in seconds, or None if the device was never polled successfully.
        """
        if self.last_successful_poll_at is None:
            return None
        return (now - self.last_successful_poll_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": str(self.id),
            "name": self.name,
            "address": self.address,
            "status": self.status.value,
            "last_poll_at": self.last_poll_at.isoformat() if self.last_poll_at else None,
            "last_successful_poll_at": (
                self.last_successful_poll_at.isoformat()
                if self.last_successful_poll_at
                else None
            ),
            "last_error": self.last_error,
        }


@dataclass
class ChildPort:
    """A physical port on a device aggregating subscriber units."""
    device_id: UUID
    id: UUID = field(default_factory=uuid4)
    name: str = ""
    total_units: int = 64
    active_units: int = 0
    status: PortStatus = PortStatus.ONLINE
    last_poll_at: Optional[datetime] = None


@dataclass
class SubscriberUnit:
    """An end-customer unit (e.g. an optical network unit) on a port."""
    device_id: UUID
    port_id: UUID
    id: UUID = field(default_factory=uuid4)
    serial_number: str = ""
    status: UnitStatus = UnitStatus.PENDING
    signal_quality: SignalQuality = SignalQuality.UNKNOWN
    rx_power: Optional[float] = None  # dBm
    last_seen_at: Optional[datetime] = None
    last_poll_at: Optional[datetime] = None

    @property
    def label(self) -> str:
        return self.serial_number or str(self.id)


@dataclass
class UnitReading:
    """Unit state as reported by a telemetry client."""
    unit_id: UUID
    status: UnitStatus
    signal_quality: Optional[SignalQuality] = None
    rx_power: Optional[float] = None


@dataclass
class PortReading:
    """
    Port state as reported by a telemetry client.

    ``units`` is None when the client cannot enumerate units on the port.
    """
    port_id: UUID
    active_units: int
    units: Optional[List[UnitReading]] = None

    @property
    def derived_status(self) -> PortStatus:
        return PortStatus.ONLINE if self.active_units > 0 else PortStatus.OFFLINE
