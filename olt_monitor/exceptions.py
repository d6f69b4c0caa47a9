"""
Exceptions raised by the polling and alarm engine.

Per-device errors (DeviceNotFound, TelemetryError, RepositoryError) are
caught at the poller boundary and turned into device status and alarm side
effects. ConfigurationError is only raised when a timer is started.
"""
from typing import Any, Dict, List, Optional
from uuid import UUID


class MonitorError(Exception):
    """
    Base exception for all engine errors.

    Carries a machine-readable code and optional details so hosts can
    report failures consistently.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging or API responses."""
        return {
            'error': self.code,
            'message': self.message,
            'details': self.details
        }


class DeviceNotFound(MonitorError):
    """Raised when a device is not present in the directory."""

    def __init__(self, device_id: UUID, message: Optional[str] = None):
        self.device_id = device_id
        super().__init__(
            message=message or f"Device with id '{device_id}' not found",
            code='DEVICE_NOT_FOUND',
            details={'device_id': str(device_id)}
        )


class TelemetryError(MonitorError):
    """Raised by a telemetry client when a device cannot be read."""

    def __init__(
        self,
        message: str,
        device_id: Optional[UUID] = None,
        metric_class: Optional[str] = None,
    ):
        self.device_id = device_id
        self.metric_class = metric_class
        super().__init__(
            message=message,
            code='TELEMETRY_ERROR',
            details={
                'device_id': str(device_id) if device_id else None,
                'metric_class': metric_class,
            }
        )


class RepositoryError(MonitorError):
    """Raised when samples, alarms or device state cannot be persisted."""

    def __init__(self, message: str, operation: Optional[str] = None):
        self.operation = operation
        super().__init__(
            message=message,
            code='REPOSITORY_ERROR',
            details={'operation': operation}
        )


class ConfigurationError(MonitorError):
    """Raised at start time for invalid intervals or batch sizes."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(
            message="Invalid configuration: " + "; ".join(self.errors),
            code='CONFIGURATION_ERROR',
            details={'errors': self.errors}
        )
