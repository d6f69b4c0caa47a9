"""
Device poller.

Runs one full poll cycle for a single device: reads the requested metric
class, stores the samples, updates ports and units, evaluates alarm rules
and rolls the result up into the device status.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, TypeVar
from uuid import UUID

from ..alarms.ledger import AlarmLedger
from ..alarms.models import AlarmEvaluation, AlarmKind, AlarmTransition
from ..alarms.rules import evaluate_device_samples, evaluate_unit
from ..clock import Clock, SystemClock
from ..config import MonitorSettings, get_monitor_settings
from ..devices.models import (
    METRIC_CLASS_KINDS,
    REACHABLE_UNIT_STATUSES,
    Device,
    DeviceStatus,
    MetricClass,
    MetricKind,
    MetricSample,
    PortReading,
    PortStatus,
    enumerates_ports,
)
from ..devices.signal import classify_rx_power
from ..exceptions import RepositoryError, TelemetryError
from ..interfaces import DeviceDirectory, MetricsRepository, TelemetryClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class PollOutcome:
    """Result of one device poll cycle."""
    device_id: UUID
    metric_class: MetricClass
    timestamp: datetime
    success: bool = False
    status: Optional[DeviceStatus] = None
    error: Optional[str] = None
    not_found: bool = False
    skipped: bool = False
    samples_written: int = 0
    transitions: List[AlarmTransition] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def alarms_raised(self) -> int:
        return sum(
            1 for t in self.transitions
            if t in (AlarmTransition.RAISED, AlarmTransition.ESCALATED)
        )

    @property
    def alarms_cleared(self) -> int:
        return sum(1 for t in self.transitions if t == AlarmTransition.CLEARED)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "device_id": str(self.device_id),
            "metric_class": self.metric_class.value,
            "timestamp": self.timestamp.isoformat(),
            "success": self.success,
            "status": self.status.value if self.status else None,
            "error": self.error,
            "not_found": self.not_found,
            "skipped": self.skipped,
            "samples_written": self.samples_written,
            "alarms_raised": self.alarms_raised,
            "alarms_cleared": self.alarms_cleared,
            "duration_ms": round(self.duration_ms, 2),
        }


class DevicePoller:
    """
    Polls a single device.

    All per-device errors are caught here and converted into a warning
    status on the device; nothing but cancellation propagates to callers.
    """

    def __init__(
        self,
        directory: DeviceDirectory,
        client: TelemetryClient,
        metrics: MetricsRepository,
        ledger: AlarmLedger,
        settings: Optional[MonitorSettings] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the device poller.

        Args:
            directory: Device directory.
            client: Telemetry client for reading devices.
            metrics: Metrics repository.
            ledger: Alarm dedup ledger.
            settings: Monitor settings.
            clock: Clock for timestamps and retry delays.
        """
        self.directory = directory
        self.client = client
        self.metrics = metrics
        self.ledger = ledger
        self.settings = settings or get_monitor_settings()
        self.clock = clock or SystemClock()

    async def poll_device(
        self,
        device_id: UUID,
        metric_class: MetricClass,
    ) -> PollOutcome:
        """
        Run one poll cycle for a device.

        Args:
            device_id: Device to poll.
            metric_class: Metric class requested by the timer.

        Returns:
            PollOutcome describing what happened.
        """
        now = self.clock.now()
        outcome = PollOutcome(
            device_id=device_id,
            metric_class=metric_class,
            timestamp=now,
        )
        start_time = time.monotonic()

        try:
            device = await self.directory.get_device(device_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            outcome.error = f"Failed to load device: {e}"
            logger.error(f"Failed to load device {device_id}: {e}")
            return outcome

        if device is None:
            outcome.not_found = True
            outcome.error = "Device not found"
            logger.warning(f"Device {device_id} not found for polling")
            return outcome

        if not device.is_pollable:
            outcome.skipped = True
            outcome.status = device.status
            logger.debug(f"Device {device_id} in maintenance, skipping poll")
            return outcome

        logger.debug(f"Polling {metric_class.value} for device {device_id} ({device.name})")

        try:
            await self._run_cycle(device, metric_class, now, outcome)

        except asyncio.CancelledError:
            raise

        except (TelemetryError, RepositoryError) as e:
            outcome.error = e.message
            logger.warning(f"Poll failed for device {device_id} ({metric_class.value}): {e.message}")

        except Exception as e:
            outcome.error = str(e)
            logger.error(f"Unexpected error polling device {device_id} ({metric_class.value}): {e}")

        else:
            outcome.success = True

        if outcome.success:
            await self._record_success(device, now, outcome)
        else:
            await self._record_failure(device, now, outcome)

        outcome.duration_ms = (time.monotonic() - start_time) * 1000
        return outcome

    async def _run_cycle(
        self,
        device: Device,
        metric_class: MetricClass,
        now: datetime,
        outcome: PollOutcome,
    ) -> None:
        """Fetch, store and evaluate one metric class."""
        samples = await self._fetch(
            lambda: self.client.fetch_metrics(device, metric_class),
            device,
            metric_class,
        )

        allowed = METRIC_CLASS_KINDS[metric_class]
        written_kinds: Set[MetricKind] = set()

        for sample in samples:
            if sample.kind not in allowed:
                logger.debug(
                    f"Dropping {sample.kind.value} sample outside "
                    f"{metric_class.value} for device {device.id}"
                )
                continue
            await self._append(sample)
            written_kinds.add(sample.kind)
            outcome.samples_written += 1

        evaluations: List[AlarmEvaluation] = []

        if enumerates_ports(metric_class):
            readings = await self._fetch(
                lambda: self.client.fetch_ports(device),
                device,
                metric_class,
            )
            for sample in await self._apply_ports(device, readings, now):
                await self._append(sample)
                written_kinds.add(sample.kind)
                outcome.samples_written += 1

            for unit in await self.directory.list_units(device.id):
                evaluations.extend(
                    evaluate_unit(unit, now, self.settings.alarms)
                )

        latest: Dict[MetricKind, MetricSample] = {}
        for kind in written_kinds:
            newest = await self._latest(device.id, kind)
            if newest is not None:
                latest[kind] = newest

        evaluations = (
            evaluate_device_samples(device.id, latest, self.settings.alarms)
            + evaluations
        )
        outcome.transitions = await self.ledger.reconcile_all(evaluations, now)

    async def _apply_ports(
        self,
        device: Device,
        readings: List[PortReading],
        now: datetime,
    ) -> List[MetricSample]:
        """
        Update ports and units from port readings.

        Readings for ports or units unknown to the directory are ignored,
        since provisioning happens outside the engine.

        Returns:
            Port summary samples for the device.
        """
        ports = {port.id: port for port in await self.directory.list_ports(device.id)}
        units = None

        ports_online = 0
        ports_offline = 0

        for reading in readings:
            port = ports.get(reading.port_id)
            if port is None:
                logger.debug(f"Ignoring reading for unknown port {reading.port_id} on device {device.id}")
                continue

            active_units = max(0, min(reading.active_units, port.total_units))
            status = reading.derived_status
            await self.directory.update_port(port.id, active_units, status, now)

            if status == PortStatus.ONLINE:
                ports_online += 1
            else:
                ports_offline += 1

            if reading.units is None:
                continue

            if units is None:
                units = {unit.id: unit for unit in await self.directory.list_units(device.id)}

            for unit_reading in reading.units:
                unit = units.get(unit_reading.unit_id)
                if unit is None:
                    logger.debug(f"Ignoring reading for unknown unit {unit_reading.unit_id}")
                    continue

                if unit_reading.signal_quality is not None:
                    signal_quality = unit_reading.signal_quality
                elif unit_reading.rx_power is not None:
                    signal_quality = classify_rx_power(unit_reading.rx_power)
                else:
                    signal_quality = unit.signal_quality

                last_seen_at = unit.last_seen_at
                if unit_reading.status in REACHABLE_UNIT_STATUSES:
                    last_seen_at = now

                await self.directory.update_unit(
                    unit.id,
                    status=unit_reading.status,
                    signal_quality=signal_quality,
                    rx_power=(
                        unit_reading.rx_power
                        if unit_reading.rx_power is not None
                        else unit.rx_power
                    ),
                    last_seen_at=last_seen_at,
                    last_poll_at=now,
                )

        return [
            MetricSample(device.id, now, MetricKind.PORTS_ONLINE, float(ports_online)),
            MetricSample(device.id, now, MetricKind.PORTS_OFFLINE, float(ports_offline)),
        ]

    async def _fetch(
        self,
        call: Callable[[], Awaitable[T]],
        device: Device,
        metric_class: MetricClass,
    ) -> T:
        """
        Call the telemetry client with a timeout and retry backoff.

        Raises:
            TelemetryError: When every attempt failed.
        """
        polling = self.settings.polling
        delay = polling.retry_delay
        error: Optional[TelemetryError] = None

        for attempt in range(1, polling.retry_attempts + 1):
            try:
                return await asyncio.wait_for(call(), timeout=polling.poll_timeout)

            except asyncio.TimeoutError:
                error = TelemetryError(
                    f"Poll timeout after {polling.poll_timeout:g}s",
                    device.id,
                    metric_class.value,
                )

            except TelemetryError as e:
                error = e

            except Exception as e:
                error = TelemetryError(str(e), device.id, metric_class.value)

            if attempt < polling.retry_attempts:
                logger.debug(
                    f"Telemetry attempt {attempt} failed for device {device.id}, "
                    f"retrying in {delay:g}s: {error.message}"
                )
                await self.clock.sleep(delay)
                delay = min(delay * polling.backoff_multiplier, polling.max_backoff)

        raise error

    async def _append(self, sample: MetricSample) -> None:
        try:
            await self.metrics.append(sample)
        except RepositoryError:
            raise
        except Exception as e:
            raise RepositoryError(f"Failed to store {sample.kind.value} sample: {e}", "append") from e

    async def _latest(self, device_id: UUID, kind: MetricKind) -> Optional[MetricSample]:
        try:
            samples = await self.metrics.latest(device_id, kind, 1)
        except RepositoryError:
            raise
        except Exception as e:
            raise RepositoryError(f"Failed to read latest {kind.value}: {e}", "latest") from e
        return samples[0] if samples else None

    async def _record_success(
        self,
        device: Device,
        now: datetime,
        outcome: PollOutcome,
    ) -> None:
        """Roll a successful cycle up into the device status."""
        if self.ledger.has_device_alarm(device.id, exclude=(AlarmKind.OFFLINE,)):
            status = DeviceStatus.WARNING
        else:
            status = DeviceStatus.ONLINE

        try:
            await self.directory.update_device_status(
                device.id,
                status,
                last_poll_at=now,
                last_successful_poll_at=now,
                last_error=None,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            outcome.success = False
            outcome.error = f"Failed to update device status: {e}"
            logger.error(f"Failed to record poll success for device {device.id}: {e}")
            return

        outcome.status = status
        logger.debug(
            f"Polled device {device.id} ({outcome.metric_class.value}): "
            f"{outcome.samples_written} samples, status={status.value}"
        )

    async def _record_failure(
        self,
        device: Device,
        now: datetime,
        outcome: PollOutcome,
    ) -> None:
        """
        Mark the device as failing without advancing its success time.

        The directory decides against its stored status, so a demotion by
        the watchdog during a slow fetch is not overwritten.
        """
        try:
            status = await self.directory.record_poll_failure(
                device.id,
                last_poll_at=now,
                last_error=outcome.error,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Failed to record poll failure for device {device.id}: {e}")
            return

        outcome.status = status
