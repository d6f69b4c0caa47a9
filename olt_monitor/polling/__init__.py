"""
Telemetry polling module.

Handles per-device poll cycles and scheduled fleet sweeps.
"""
from .poller import DevicePoller, PollOutcome
from .scheduler import FleetScheduler, SweepReport

__all__ = [
    "DevicePoller",
    "PollOutcome",
    "FleetScheduler",
    "SweepReport",
]
