"""
Device models.

Provides devices, ports, subscriber units and metric samples.
"""
from .models import (
    ChildPort,
    Device,
    DeviceStatus,
    METRIC_CLASS_KINDS,
    MetricClass,
    MetricKind,
    MetricSample,
    PortReading,
    PortStatus,
    SignalQuality,
    SubscriberUnit,
    UnitReading,
    UnitStatus,
)
from .signal import classify_rx_power

__all__ = [
    "ChildPort",
    "Device",
    "DeviceStatus",
    "METRIC_CLASS_KINDS",
    "MetricClass",
    "MetricKind",
    "MetricSample",
    "PortReading",
    "PortStatus",
    "SignalQuality",
    "SubscriberUnit",
    "UnitReading",
    "UnitStatus",
    "classify_rx_power",
]
