"""
Configuration for the OLT monitor.

Provides settings for per-class polling cadences, batching, timeouts,
the staleness watchdog and alarm thresholds.
"""
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .devices.models import MetricClass


class PollingSettings(BaseSettings):
    """Telemetry polling configuration."""

    model_config = SettingsConfigDict(
        env_prefix="OLT_POLLING_",
        env_file=".env",
        extra="ignore",
    )

    status_interval: float = Field(default=60.0, description="Status/port poll interval (seconds)")
    cpu_memory_interval: float = Field(default=30.0, description="CPU/memory poll interval (seconds)")
    traffic_interval: float = Field(default=300.0, description="Traffic poll interval (seconds)")
    temperature_interval: float = Field(default=120.0, description="Temperature poll interval (seconds)")
    batch_size: int = Field(default=5, description="Devices polled concurrently per batch")
    poll_timeout: float = Field(default=10.0, description="Timeout per telemetry call (seconds)")
    poll_on_start: bool = Field(default=True, description="Sweep every class once when started")
    retry_attempts: int = Field(default=1, description="Telemetry attempts per poll (1 disables retry)")
    retry_delay: float = Field(default=1.0, description="Delay before the first retry (seconds)")
    backoff_multiplier: float = Field(default=2.0, description="Backoff multiplier between retries")
    max_backoff: float = Field(default=30.0, description="Maximum retry delay (seconds)")

    def intervals(self) -> Dict[MetricClass, float]:
        """Get the configured interval for every metric class."""
        return {
            MetricClass.STATUS: self.status_interval,
            MetricClass.CPU_MEMORY: self.cpu_memory_interval,
            MetricClass.TRAFFIC: self.traffic_interval,
            MetricClass.TEMPERATURE: self.temperature_interval,
        }


class WatchdogSettings(BaseSettings):
    """Staleness watchdog configuration."""

    model_config = SettingsConfigDict(
        env_prefix="OLT_WATCHDOG_",
        env_file=".env",
        extra="ignore",
    )

    interval: float = Field(default=300.0, description="Health check interval (seconds)")
    max_age: float = Field(default=600.0, description="Max age of last successful poll (seconds)")
    check_on_start: bool = Field(default=False, description="Run a health check when started")


class AlarmSettings(BaseSettings):
    """Alarm rule thresholds."""

    model_config = SettingsConfigDict(
        env_prefix="OLT_ALARM_",
        env_file=".env",
        extra="ignore",
    )

    temperature_warning: float = Field(default=55.0, description="Warning above this temperature (C)")
    temperature_critical: float = Field(default=70.0, description="Critical above this temperature (C)")
    cpu_warning: float = Field(default=80.0, description="Warning above this CPU usage (%)")
    cpu_critical: float = Field(default=90.0, description="Critical above this CPU usage (%)")
    unit_offline_hours: float = Field(default=24.0, description="Hours offline before a unit alarms")


class SimulationSettings(BaseSettings):
    """Simulated fleet used by the standalone entry point."""

    model_config = SettingsConfigDict(
        env_prefix="OLT_SIMULATION_",
        env_file=".env",
        extra="ignore",
    )

    devices: int = Field(default=12, description="Number of simulated devices")
    ports_per_device: int = Field(default=4, description="Ports per simulated device")
    units_per_port: int = Field(default=8, description="Subscriber units per simulated port")
    failure_rate: float = Field(default=0.05, description="Probability of a simulated read failure")
    latency: float = Field(default=0.5, description="Maximum simulated response time (seconds)")
    seed: Optional[int] = Field(default=None, description="Random seed")


class MonitorSettings(BaseSettings):
    """Main configuration for the OLT monitor."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="OLT Monitor")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Sub-settings
    polling: PollingSettings = Field(default_factory=PollingSettings)
    watchdog: WatchdogSettings = Field(default_factory=WatchdogSettings)
    alarms: AlarmSettings = Field(default_factory=AlarmSettings)
    simulation: SimulationSettings = Field(default_factory=SimulationSettings)

    def validate_settings(
        self,
        intervals: Optional[Dict[MetricClass, float]] = None,
    ) -> List[str]:
        """
        Validate timer and batching settings.

        Args:
            intervals: Interval overrides to validate instead of the configured ones.

        Returns:
            List of error messages, empty when valid.
        """
        errors = []

        for metric_class, interval in (intervals or self.polling.intervals()).items():
            if interval is None or interval <= 0:
                errors.append(
                    f"Interval for {MetricClass(metric_class).value} must be positive, got {interval}"
                )

        if self.polling.batch_size < 1:
            errors.append(f"Batch size must be at least 1, got {self.polling.batch_size}")

        if self.polling.poll_timeout <= 0:
            errors.append(f"Poll timeout must be positive, got {self.polling.poll_timeout}")

        if self.polling.retry_attempts < 1:
            errors.append(f"Retry attempts must be at least 1, got {self.polling.retry_attempts}")

        if self.watchdog.interval <= 0:
            errors.append(f"Watchdog interval must be positive, got {self.watchdog.interval}")

        if self.watchdog.max_age <= 0:
            errors.append(f"Watchdog max age must be positive, got {self.watchdog.max_age}")

        if self.alarms.temperature_warning > self.alarms.temperature_critical:
            errors.append("Temperature warning threshold exceeds critical threshold")

        if self.alarms.cpu_warning > self.alarms.cpu_critical:
            errors.append("CPU warning threshold exceeds critical threshold")

        return errors


@lru_cache()
def get_monitor_settings() -> MonitorSettings:
    """
    Get cached monitor settings.

    Uses LRU cache to avoid re-reading environment variables on every access.
    """
    return MonitorSettings()
