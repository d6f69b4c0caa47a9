"""
OLT Monitor - Main Entry Point.

Runs the polling and alarm engine against a simulated fleet:
1. Provisions simulated devices, ports and subscriber units
2. Starts one polling timer per metric class
3. Starts the staleness watchdog
4. Logs alarm transitions until interrupted
"""
import asyncio
import logging
import signal
import sys
from typing import Optional

from .config import MonitorSettings, get_monitor_settings
from .devices.models import ChildPort, Device, SubscriberUnit
from .service import MonitorService
from .storage.memory import (
    InMemoryAlarmRepository,
    InMemoryDeviceDirectory,
    InMemoryMetricsRepository,
    LoggingNotificationSink,
)
from .telemetry.simulator import SimulatedTelemetryClient

logger = logging.getLogger(__name__)


def configure_logging(settings: MonitorSettings) -> None:
    """Configure root logging to stdout."""
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )


def build_simulated_fleet(settings: MonitorSettings) -> InMemoryDeviceDirectory:
    """
    Provision an in-memory fleet.

    Args:
        settings: Monitor settings with simulation sizes.

    Returns:
        Directory holding the simulated devices.
    """
    sim = settings.simulation
    directory = InMemoryDeviceDirectory()

    for d in range(sim.devices):
        device = directory.add_device(Device(
            name=f"OLT-{d + 1:03d}",
            address=f"10.0.{d // 250}.{d % 250 + 1}",
            credentials_ref="snmp:public",
        ))
        for p in range(sim.ports_per_device):
            port = directory.add_port(ChildPort(
                device_id=device.id,
                name=f"0/{p + 1}",
            ))
            for u in range(sim.units_per_port):
                directory.add_unit(SubscriberUnit(
                    device_id=device.id,
                    port_id=port.id,
                    serial_number=f"SIM{d:03d}{p:02d}{u:03d}",
                ))

    logger.info(
        f"Provisioned {sim.devices} simulated devices "
        f"({sim.ports_per_device} ports, {sim.units_per_port} units per port)"
    )
    return directory


class MonitorServer:
    """
    Standalone monitor process.

    Coordinates the in-memory backends, the simulated telemetry client and
    the monitor service.
    """

    def __init__(
        self,
        settings: Optional[MonitorSettings] = None,
    ):
        """
        Initialize the monitor server.

        Args:
            settings: Monitor settings.
        """
        self.settings = settings or get_monitor_settings()

        self.directory = build_simulated_fleet(self.settings)
        self.client = SimulatedTelemetryClient(
            self.directory,
            failure_rate=self.settings.simulation.failure_rate,
            latency=self.settings.simulation.latency,
            seed=self.settings.simulation.seed,
        )
        self.service = MonitorService(
            directory=self.directory,
            client=self.client,
            metrics=InMemoryMetricsRepository(),
            alarms=InMemoryAlarmRepository(),
            sink=LoggingNotificationSink(),
            settings=self.settings,
        )

        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start the monitor."""
        await self.service.start()

    async def stop(self) -> None:
        """Stop the monitor and let in-flight sweeps drain."""
        await self.service.stop()
        self._shutdown_event.set()

    async def serve_forever(self) -> None:
        """Run until shutdown."""
        await self._shutdown_event.wait()

    def get_stats(self) -> dict:
        """Get server statistics."""
        stats = self.service.get_stats()
        stats["devices"] = self.directory.get_stats()
        stats["telemetry_requests"] = self.client.requests
        return stats


def setup_signal_handlers(server: MonitorServer, loop: asyncio.AbstractEventLoop):
    """Setup signal handlers for graceful shutdown."""
    def signal_handler():
        logger.info("Received shutdown signal")
        loop.create_task(server.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda s, f: signal_handler())


async def main():
    """Main entry point."""
    settings = get_monitor_settings()
    configure_logging(settings)

    server = MonitorServer(settings)
    setup_signal_handlers(server, asyncio.get_running_loop())

    try:
        await server.start()
        await server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        await server.stop()
        logger.info(f"Final stats: {server.get_stats()}")


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
