"""
Fleet scheduler for device telemetry polling.

Runs one timer per metric class and fans each sweep out over the fleet in
fixed-size batches, so the number of in-flight device polls never exceeds
the batch size however large the fleet is.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from ..clock import Clock, SystemClock
from ..config import MonitorSettings, get_monitor_settings
from ..devices.models import Device, DeviceStatus, MetricClass
from ..exceptions import ConfigurationError
from ..interfaces import DeviceDirectory
from .poller import DevicePoller, PollOutcome

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Summary of one sweep of the fleet for a metric class."""
    metric_class: MetricClass
    started_at: datetime
    skipped: bool = False
    devices: int = 0
    succeeded: int = 0
    failed: int = 0
    not_found: int = 0
    error: Optional[str] = None
    duration_ms: float = 0.0
    outcomes: List[PollOutcome] = field(default_factory=list)

    def add(self, outcome: PollOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.not_found:
            self.not_found += 1
        elif outcome.success:
            self.succeeded += 1
        elif not outcome.skipped:
            self.failed += 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "metric_class": self.metric_class.value,
            "started_at": self.started_at.isoformat(),
            "skipped": self.skipped,
            "devices": self.devices,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "not_found": self.not_found,
            "error": self.error,
            "duration_ms": round(self.duration_ms, 2),
        }


class FleetScheduler:
    """
    Drives per-class polling cadences across the device fleet.

    Features:
    - Independent timer per metric class
    - Skip-if-busy per class (a slow sweep is never queued behind itself)
    - Sequential batches with concurrent polls inside a batch
    - Per-device failure isolation
    """

    def __init__(
        self,
        directory: DeviceDirectory,
        poller: DevicePoller,
        settings: Optional[MonitorSettings] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the fleet scheduler.

        Args:
            directory: Device directory for the roster.
            poller: Device poller.
            settings: Monitor settings.
            clock: Clock driving the timers.
        """
        self.directory = directory
        self.poller = poller
        self.settings = settings or get_monitor_settings()
        self.clock = clock or SystemClock()

        # Timer tasks per metric class
        self._timer_tasks: Dict[MetricClass, asyncio.Task] = {}
        self._intervals: Dict[MetricClass, float] = {}

        # In-flight sweeps
        self._busy: Set[MetricClass] = set()
        self._sweep_tasks: Set[asyncio.Task] = set()

        # Stats
        self._sweeps_completed: Dict[MetricClass, int] = {mc: 0 for mc in MetricClass}
        self._sweeps_skipped: Dict[MetricClass, int] = {mc: 0 for mc in MetricClass}
        self._last_reports: Dict[MetricClass, SweepReport] = {}

        # State
        self._running = False

    async def start(
        self,
        intervals: Optional[Dict[MetricClass, float]] = None,
    ) -> None:
        """
        Start one polling timer per metric class.

        Args:
            intervals: Per-class interval overrides in seconds.

        Raises:
            ConfigurationError: If an interval or the batch size is invalid.
        """
        if self._running:
            logger.warning("Fleet scheduler already running")
            return

        merged = self.settings.polling.intervals()
        if intervals:
            merged.update({MetricClass(mc): value for mc, value in intervals.items()})

        errors = self.settings.validate_settings(merged)
        if errors:
            raise ConfigurationError(errors)

        logger.info(
            "Starting fleet scheduler ("
            + ", ".join(f"{mc.value}={interval:g}s" for mc, interval in merged.items())
            + f", batch_size={self.settings.polling.batch_size})"
        )

        self._intervals = merged
        self._running = True

        for metric_class, interval in merged.items():
            self._timer_tasks[metric_class] = asyncio.create_task(
                self._timer_loop(metric_class, interval),
                name=f"poll_timer_{metric_class.value}",
            )

    async def stop(self, drain: bool = True) -> None:
        """
        Stop all timers.

        In-flight sweeps are never cancelled.

        Args:
            drain: Wait for in-flight sweeps to finish.
        """
        if not self._running:
            return

        logger.info("Stopping fleet scheduler")
        self._running = False

        for metric_class, task in list(self._timer_tasks.items()):
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._timer_tasks.clear()

        if drain and self._sweep_tasks:
            logger.info(f"Waiting for {len(self._sweep_tasks)} in-flight sweeps")
            await asyncio.gather(*list(self._sweep_tasks), return_exceptions=True)

        logger.info("Fleet scheduler stopped")

    async def _timer_loop(self, metric_class: MetricClass, interval: float) -> None:
        """
        Repeating timer for one metric class.

        Sweeps run as separate tasks so a slow sweep never delays the timer.
        """
        logger.debug(f"Starting {metric_class.value} timer (interval={interval:g}s)")

        if self.settings.polling.poll_on_start:
            self._trigger(metric_class)

        while self._running:
            await self.clock.sleep(interval)
            if not self._running:
                break
            self._trigger(metric_class)

        logger.debug(f"{metric_class.value} timer ended")

    def _trigger(self, metric_class: MetricClass) -> Optional[asyncio.Task]:
        """Start a sweep task unless one is already running for the class."""
        if metric_class in self._busy:
            self._sweeps_skipped[metric_class] += 1
            logger.warning(f"Previous {metric_class.value} sweep still running, skipping")
            return None

        self._busy.add(metric_class)
        task = asyncio.create_task(
            self._sweep(metric_class),
            name=f"sweep_{metric_class.value}",
        )
        self._sweep_tasks.add(task)
        task.add_done_callback(self._sweep_tasks.discard)
        return task

    async def poll_fleet(self, metric_class: MetricClass) -> SweepReport:
        """
        Sweep the fleet for one metric class now.

        Args:
            metric_class: Metric class to poll.

        Returns:
            SweepReport; ``skipped`` is set if a sweep for the class was
            already running.
        """
        metric_class = MetricClass(metric_class)

        if metric_class in self._busy:
            self._sweeps_skipped[metric_class] += 1
            logger.warning(f"{metric_class.value} sweep already running, skipping manual poll")
            return SweepReport(
                metric_class=metric_class,
                started_at=self.clock.now(),
                skipped=True,
            )

        self._busy.add(metric_class)
        return await self._sweep(metric_class)

    async def _sweep(self, metric_class: MetricClass) -> SweepReport:
        """Poll every pollable device in batches. The class must be marked busy."""
        report = SweepReport(metric_class=metric_class, started_at=self.clock.now())
        start_time = time.monotonic()

        try:
            try:
                devices = await self.directory.list_pollable()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                report.error = str(e)
                logger.error(f"Failed to load devices for {metric_class.value} sweep: {e}")
                return report

            devices = [d for d in devices if d.is_pollable]
            report.devices = len(devices)
            batch_size = self.settings.polling.batch_size

            logger.debug(f"Sweeping {len(devices)} devices for {metric_class.value}")

            for i in range(0, len(devices), batch_size):
                batch = devices[i:i + batch_size]
                outcomes = await asyncio.gather(
                    *(self._poll_one(device, metric_class) for device in batch)
                )
                for outcome in outcomes:
                    report.add(outcome)

        finally:
            self._busy.discard(metric_class)
            report.duration_ms = (time.monotonic() - start_time) * 1000
            self._sweeps_completed[metric_class] += 1
            self._last_reports[metric_class] = report

        logger.info(
            f"{metric_class.value} sweep finished: {report.succeeded} ok, "
            f"{report.failed} failed, {report.not_found} not found "
            f"in {report.duration_ms:.1f}ms"
        )
        return report

    async def _poll_one(self, device: Device, metric_class: MetricClass) -> PollOutcome:
        """Poll one device, containing any error it raises."""
        try:
            return await self.poller.poll_device(device.id, metric_class)

        except asyncio.CancelledError:
            raise

        except Exception as e:
            now = self.clock.now()
            logger.error(f"Poll of device {device.id} failed: {e}")

            status: Optional[DeviceStatus]
            try:
                status = await self.directory.record_poll_failure(
                    device.id,
                    last_poll_at=now,
                    last_error=str(e),
                )
            except Exception as update_error:
                logger.error(f"Failed to record poll failure for device {device.id}: {update_error}")
                status = None

            return PollOutcome(
                device_id=device.id,
                metric_class=metric_class,
                timestamp=now,
                status=status,
                error=str(e),
            )

    def is_busy(self, metric_class: MetricClass) -> bool:
        """Check if a sweep is running for a metric class."""
        return MetricClass(metric_class) in self._busy

    def get_stats(self) -> Dict[str, Any]:
        """
        Get scheduler statistics.

        Returns:
            Dictionary of scheduler stats.
        """
        return {
            "running": self._running,
            "batch_size": self.settings.polling.batch_size,
            "intervals": {mc.value: interval for mc, interval in self._intervals.items()},
            "busy": sorted(mc.value for mc in self._busy),
            "in_flight_sweeps": len(self._sweep_tasks),
            "sweeps_completed": {mc.value: n for mc, n in self._sweeps_completed.items()},
            "sweeps_skipped": {mc.value: n for mc, n in self._sweeps_skipped.items()},
            "last_sweeps": {
                mc.value: report.to_dict()
                for mc, report in self._last_reports.items()
            },
        }

    @property
    def is_running(self) -> bool:
        """Check if the scheduler is running."""
        return self._running
