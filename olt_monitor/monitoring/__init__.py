"""
Fleet health monitoring.
"""
from .watchdog import HealthCheckReport, StalenessWatchdog

__all__ = [
    "HealthCheckReport",
    "StalenessWatchdog",
]
