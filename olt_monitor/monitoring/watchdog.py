"""
Staleness watchdog.

Detects devices that silently stopped answering even though polls were
scheduled. The watchdog only ever demotes a device to offline; a device
comes back online through its next successful poll.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Set

from ..alarms.ledger import AlarmLedger
from ..alarms.models import AlarmTransition
from ..alarms.rules import evaluate_staleness
from ..clock import Clock, SystemClock
from ..config import MonitorSettings, get_monitor_settings
from ..devices.models import Device, DeviceStatus
from ..exceptions import ConfigurationError
from ..interfaces import DeviceDirectory

logger = logging.getLogger(__name__)


@dataclass
class HealthCheckReport:
    """Summary of one watchdog pass."""
    started_at: datetime
    skipped: bool = False
    checked: int = 0
    stale: int = 0
    demoted: int = 0
    alarms_raised: int = 0
    alarms_cleared: int = 0
    errors: int = 0
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "started_at": self.started_at.isoformat(),
            "skipped": self.skipped,
            "checked": self.checked,
            "stale": self.stale,
            "demoted": self.demoted,
            "alarms_raised": self.alarms_raised,
            "alarms_cleared": self.alarms_cleared,
            "errors": self.errors,
            "duration_ms": round(self.duration_ms, 2),
        }


class StalenessWatchdog:
    """
    Periodic sweep demoting devices whose last successful poll is too old.

    Runs on its own timer, independent of the polling timers.
    """

    def __init__(
        self,
        directory: DeviceDirectory,
        ledger: AlarmLedger,
        settings: Optional[MonitorSettings] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the watchdog.

        Args:
            directory: Device directory.
            ledger: Alarm dedup ledger shared with the pollers.
            settings: Monitor settings.
            clock: Clock driving the timer.
        """
        self.directory = directory
        self.ledger = ledger
        self.settings = settings or get_monitor_settings()
        self.clock = clock or SystemClock()

        self._task: Optional[asyncio.Task] = None
        self._check_tasks: Set[asyncio.Task] = set()
        self._running = False
        self._busy = False

        # Stats
        self._checks_completed = 0
        self._checks_skipped = 0
        self._last_report: Optional[HealthCheckReport] = None

    async def start(self, interval: Optional[float] = None) -> None:
        """
        Start the watchdog timer.

        Args:
            interval: Interval override in seconds.

        Raises:
            ConfigurationError: If the interval is not positive.
        """
        if self._running:
            logger.warning("Staleness watchdog already running")
            return

        interval = interval if interval is not None else self.settings.watchdog.interval
        if interval <= 0:
            raise ConfigurationError([f"Watchdog interval must be positive, got {interval}"])

        logger.info(
            f"Starting staleness watchdog (interval={interval:g}s, "
            f"max_age={self.settings.watchdog.max_age:g}s)"
        )
        self._running = True
        self._task = asyncio.create_task(
            self._timer_loop(interval),
            name="staleness_watchdog",
        )

    async def stop(self, drain: bool = True) -> None:
        """
        Stop the watchdog timer. A running health check is not cancelled.

        Args:
            drain: Wait for a running health check to finish.
        """
        if not self._running:
            return

        logger.info("Stopping staleness watchdog")
        self._running = False

        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        self._task = None

        if drain and self._check_tasks:
            logger.info(f"Waiting for {len(self._check_tasks)} in-flight health checks")
            await asyncio.gather(*list(self._check_tasks), return_exceptions=True)

    async def _timer_loop(self, interval: float) -> None:
        if self.settings.watchdog.check_on_start:
            self._spawn_check()

        while self._running:
            await self.clock.sleep(interval)
            if not self._running:
                break
            self._spawn_check()

    def _spawn_check(self) -> None:
        task = asyncio.create_task(
            self.run_health_check(),
            name="health_check",
        )
        self._check_tasks.add(task)
        task.add_done_callback(self._check_tasks.discard)

    async def run_health_check(self) -> HealthCheckReport:
        """
        Check every non-maintenance device for staleness.

        Returns:
            HealthCheckReport; ``skipped`` is set if a check was already running.
        """
        report = HealthCheckReport(started_at=self.clock.now())

        if self._busy:
            self._checks_skipped += 1
            report.skipped = True
            logger.warning("Previous health check still running, skipping")
            return report

        self._busy = True
        start_time = time.monotonic()

        try:
            try:
                devices = await self.directory.list_all()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                report.errors += 1
                logger.error(f"Failed to load devices for health check: {e}")
                return report

            for device in devices:
                if device.status == DeviceStatus.MAINTENANCE:
                    continue
                report.checked += 1
                try:
                    await self._check_device(device, report)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    report.errors += 1
                    logger.error(f"Health check failed for device {device.id}: {e}")

        finally:
            self._busy = False
            report.duration_ms = (time.monotonic() - start_time) * 1000
            self._checks_completed += 1
            self._last_report = report

        if report.demoted:
            logger.warning(f"Health check marked {report.demoted} devices offline")
        logger.debug(
            f"Health check finished: {report.checked} checked, {report.stale} stale"
        )
        return report

    async def _check_device(self, device: Device, report: HealthCheckReport) -> None:
        # The roster is a snapshot; a poll may have succeeded since it was read
        current = await self.directory.get_device(device.id)
        if current is None or current.status == DeviceStatus.MAINTENANCE:
            return
        device = current

        now = self.clock.now()
        max_age = self.settings.watchdog.max_age
        evaluation = evaluate_staleness(device.id, device.age_since_success(now), max_age)

        if evaluation.met:
            report.stale += 1
            if device.status != DeviceStatus.OFFLINE:
                await self.directory.update_device_status(
                    device.id,
                    DeviceStatus.OFFLINE,
                    last_error=device.last_error,
                )
                report.demoted += 1
                logger.warning(
                    f"Device {device.id} ({device.name}) marked offline: "
                    f"{evaluation.message}"
                )

        transition = await self.ledger.reconcile(evaluation, now)
        if transition in (AlarmTransition.RAISED, AlarmTransition.ESCALATED):
            report.alarms_raised += 1
        elif transition == AlarmTransition.CLEARED:
            report.alarms_cleared += 1

    def get_stats(self) -> Dict[str, Any]:
        """Get watchdog statistics."""
        return {
            "running": self._running,
            "busy": self._busy,
            "max_age": self.settings.watchdog.max_age,
            "checks_completed": self._checks_completed,
            "checks_skipped": self._checks_skipped,
            "last_check": self._last_report.to_dict() if self._last_report else None,
        }

    @property
    def is_running(self) -> bool:
        """Check if the watchdog is running."""
        return self._running
