"""
Test data factories.

Provides factory classes for generating test data.
"""
from .device_factory import (
    ChildPortFactory,
    DeviceFactory,
    MaintenanceDeviceFactory,
    SubscriberUnitFactory,
)
from .telemetry_factory import MetricSampleFactory

__all__ = [
    "ChildPortFactory",
    "DeviceFactory",
    "MaintenanceDeviceFactory",
    "SubscriberUnitFactory",
    "MetricSampleFactory",
]
