"""
OLT Monitor - device telemetry polling and alarm engine.

Polls a fleet of access devices on per-metric-class cadences, detects
stale devices and raises deduplicated alarms.
"""
from .config import MonitorSettings, get_monitor_settings
from .exceptions import (
    ConfigurationError,
    DeviceNotFound,
    MonitorError,
    RepositoryError,
    TelemetryError,
)
from .service import MonitorService

__all__ = [
    "MonitorSettings",
    "get_monitor_settings",
    "ConfigurationError",
    "DeviceNotFound",
    "MonitorError",
    "RepositoryError",
    "TelemetryError",
    "MonitorService",
]
