"""
Telemetry clients.
"""
from .simulator import SimulatedTelemetryClient

__all__ = [
    "SimulatedTelemetryClient",
]
