"""Background daemon for vmwatt."""

import asyncio
import signal
from dataclasses import dataclass
from datetime import datetime

import structlog

from vmwatt import logging as console
from vmwatt.config import Config
from vmwatt.errors import BaseDirectoryError, DirectoryCreationError, SensorUnavailable
from vmwatt.exporter import Exporter, IterationResult, LoopState
from vmwatt.sensors import RaplSensor, Topology
from vmwatt.tracker import ProcessTracker

log = structlog.get_logger()


@dataclass
class DaemonState:
    """Runtime state of the daemon."""

    running: bool = False
    sample_count: int = 0
    vm_count: int = 0
    published_uj: int = 0
    last_sample_time: datetime | None = None

    def update_sample(self, result: IterationResult) -> None:
        """Update state after an iteration."""
        self.sample_count += 1
        self.vm_count = result.vm_count
        self.published_uj += sum(result.published.values())
        self.last_sample_time = datetime.now()


def build_topology(config: Config) -> Topology:
    """Build the RAPL + psutil topology described by config.

    Raises:
        SensorUnavailable: If no RAPL domain is readable.
    """
    sensor = RaplSensor.discover(config.sensor.powercap_root)
    tracker = ProcessTracker(max_records_per_process=config.tracker.max_records_per_process)
    return Topology(sensor, tracker, history_size=config.sensor.history_size)


class Daemon:
    """Runs the exporter on a fixed cadence until shutdown."""

    def __init__(self, config: Config, topology: Topology | None = None):
        self.config = config
        self.state = DaemonState()
        self.loop_state = LoopState.initial(config.exporter)
        self.topology = topology if topology is not None else build_topology(config)
        self.exporter = Exporter(
            self.topology,
            config.exporter,
            min_history=config.tracker.min_history,
        )
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start the daemon.

        Raises:
            BaseDirectoryError: If the counters root can't be created.
            DirectoryCreationError: If a VM directory can't be created.
        """
        from importlib.metadata import version

        log.info("daemon_starting", version=version("vmwatt"))
        log.info(
            "daemon_config",
            base_path=self.config.exporter.base_path,
            sample_interval=self.config.exporter.sample_interval,
            cleanup_period=self.config.exporter.cleanup_period,
        )

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: self._handle_signal(s))

        try:
            self.exporter.ensure_base_dir()
        except BaseDirectoryError as e:
            console.base_dir_failed(self.config.exporter.base_path, str(e.__cause__ or e))
            raise

        self.state.running = True
        console.exporter_started(
            self.config.exporter.base_path, len(self.topology.sensor.domains)
        )
        log.info("daemon_started")

        await self._main_loop()

    def stop(self) -> None:
        """Stop the daemon."""
        self.state.running = False
        log.info("daemon_stopped", samples=self.state.sample_count)
        console.exporter_stopped()

    def _handle_signal(self, sig: signal.Signals) -> None:
        """Handle shutdown signals."""
        log.info("signal_received", signal=sig.name)
        console.signal_received(sig.name)
        self._shutdown_event.set()

    async def _main_loop(self) -> None:
        """Iterate, sleep one interval, count down to the next tracker cleanup.

        The sleep is a fixed interval, not the remainder of one: energy deltas
        use real timestamps, so drift doesn't skew them. A VM directory that
        can't be created stops the loop; any other iteration error is logged
        and the next interval retries.
        """
        interval = self.config.exporter.sample_interval

        while not self._shutdown_event.is_set():
            try:
                result = self.exporter.iterate()
                self.state.update_sample(result)
            except DirectoryCreationError as e:
                log.error("vm_directory_failed", path=str(e.path), error=str(e.cause))
                console.error(str(e), console.Icon.FAIL)
                raise
            except Exception as e:
                log.error("sample_failed", error=str(e))
                console.error(f"Sample failed: {e}", console.Icon.FAIL)

            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass

            removed = self.exporter.count_down(self.loop_state)
            if removed is not None:
                console.cleanup_ran(removed)


async def run_daemon(config: Config | None = None) -> None:
    """Run the daemon until shutdown.

    Args:
        config: Optional config, loads from file if not provided

    Raises:
        SensorUnavailable: If the host exposes no readable RAPL domain.
    """
    if config is None:
        config = Config.load()

    console.configure(config)

    try:
        daemon = Daemon(config)
    except SensorUnavailable as e:
        log.error("sensor_unavailable", error=str(e))
        console.sensor_unavailable(str(e))
        raise

    try:
        await daemon.start()
    except Exception as e:
        log.exception("daemon_crashed", error=str(e))
        raise
    finally:
        daemon.stop()
