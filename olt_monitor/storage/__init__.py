"""
Storage backends.
"""
from .memory import (
    InMemoryAlarmRepository,
    InMemoryDeviceDirectory,
    InMemoryMetricsRepository,
    LoggingNotificationSink,
)

__all__ = [
    "InMemoryAlarmRepository",
    "InMemoryDeviceDirectory",
    "InMemoryMetricsRepository",
    "LoggingNotificationSink",
]
