"""
Monitor service.

Wires the poller, fleet scheduler, staleness watchdog and alarm ledger
together and exposes the process control surface used by a host
application.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from .alarms.ledger import AlarmLedger
from .clock import Clock, SystemClock
from .config import MonitorSettings, get_monitor_settings
from .devices.models import MetricClass
from .interfaces import (
    AlarmRepository,
    DeviceDirectory,
    MetricsRepository,
    NotificationSink,
    TelemetryClient,
)
from .monitoring.watchdog import HealthCheckReport, StalenessWatchdog
from .polling.poller import DevicePoller
from .polling.scheduler import FleetScheduler, SweepReport

logger = logging.getLogger(__name__)


class MonitorService:
    """
    Lifecycle owner for the polling and alarm engine.

    Provides:
    - Centralized start/stop
    - Manual fleet polls and health checks
    - Statistics aggregation
    """

    def __init__(
        self,
        directory: DeviceDirectory,
        client: TelemetryClient,
        metrics: MetricsRepository,
        alarms: AlarmRepository,
        sink: Optional[NotificationSink] = None,
        settings: Optional[MonitorSettings] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the monitor service.

        Args:
            directory: Device directory.
            client: Telemetry client.
            metrics: Metrics repository.
            alarms: Alarm repository.
            sink: Notification sink for alarm transitions.
            settings: Monitor settings.
            clock: Clock shared by all components.
        """
        self.settings = settings or get_monitor_settings()
        self.clock = clock or SystemClock()

        self.ledger = AlarmLedger(alarms, sink)
        self.poller = DevicePoller(
            directory,
            client,
            metrics,
            self.ledger,
            settings=self.settings,
            clock=self.clock,
        )
        self.scheduler = FleetScheduler(
            directory,
            self.poller,
            settings=self.settings,
            clock=self.clock,
        )
        self.watchdog = StalenessWatchdog(
            directory,
            self.ledger,
            settings=self.settings,
            clock=self.clock,
        )

        self._running = False
        self._started_at: Optional[datetime] = None

    async def start(
        self,
        intervals: Optional[Dict[MetricClass, float]] = None,
    ) -> None:
        """
        Load open alarms and start the polling timers and watchdog.

        Args:
            intervals: Per-class polling interval overrides in seconds.

        Raises:
            ConfigurationError: If the timer configuration is invalid.
        """
        if self._running:
            logger.warning("Monitor service already running")
            return

        logger.info(f"Starting {self.settings.app_name}")

        await self.ledger.load()
        await self.scheduler.start(intervals)
        try:
            await self.watchdog.start()
        except Exception:
            await self.scheduler.stop(drain=False)
            raise

        self._running = True
        self._started_at = self.clock.now()
        logger.info(f"{self.settings.app_name} started")

    async def stop(self, drain: bool = True) -> None:
        """
        Stop all timers. In-flight polls are never cancelled.

        Args:
            drain: Wait for in-flight sweeps and health checks to finish.
        """
        if not self._running:
            return

        logger.info(f"Stopping {self.settings.app_name}")
        self._running = False

        await self.watchdog.stop(drain=drain)
        await self.scheduler.stop(drain=drain)

        logger.info(f"{self.settings.app_name} stopped")

    async def poll_fleet(self, metric_class: MetricClass) -> SweepReport:
        """Poll the fleet for one metric class now."""
        return await self.scheduler.poll_fleet(metric_class)

    async def run_health_check(self) -> HealthCheckReport:
        """Run the staleness watchdog now."""
        return await self.watchdog.run_health_check()

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics from all components.

        Returns:
            Combined statistics dictionary.
        """
        return {
            "service": {
                "running": self._running,
                "started_at": self._started_at.isoformat() if self._started_at else None,
            },
            "scheduler": self.scheduler.get_stats(),
            "watchdog": self.watchdog.get_stats(),
            "alarms": self.ledger.get_stats(),
        }

    @property
    def is_running(self) -> bool:
        """Check if the service is running."""
        return self._running
