"""One sampling iteration: refresh, classify, resolve, allocate, persist."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from vmwatt import logging as console
from vmwatt.allocator import allocate_energy, record_value
from vmwatt.classifier import MIN_HISTORY, filter_vm_process_groups
from vmwatt.config import ExporterConfig
from vmwatt.counters import VmLayout
from vmwatt.errors import BaseDirectoryError, CounterWriteError
from vmwatt.identity import resolve_vm_identity

if TYPE_CHECKING:
    from vmwatt.sensors import Topology

log = structlog.get_logger()


@dataclass
class LoopState:
    """Mutable state carried between iterations."""

    cleanup_countdown: float
    iterations: int = 0
    cleanups: int = 0

    @classmethod
    def initial(cls, config: ExporterConfig) -> "LoopState":
        return cls(cleanup_countdown=config.cleanup_period)


@dataclass
class VmPublishFailure:
    """A counter update that was dropped for this iteration."""

    identity: str
    path: Path
    error: str


@dataclass
class IterationResult:
    """Outcome of one iteration."""

    energy_available: bool = False
    vm_count: int = 0
    published: dict[str, int] = field(default_factory=dict)  # identity -> uJ added
    skipped: list[str] = field(default_factory=list)  # identities without a CPU share
    failures: list[VmPublishFailure] = field(default_factory=list)


class Exporter:
    """Publishes per-VM energy counters from a host Topology.

    CPU share is used to split host power between VMs; see vmwatt.allocator
    for the limits of that approximation.
    """

    def __init__(
        self,
        topology: Topology,
        config: ExporterConfig | None = None,
        min_history: int = MIN_HISTORY,
    ) -> None:
        self.topology = topology
        self.config = config or ExporterConfig()
        self.min_history = min_history
        self.base_path = Path(self.config.base_path)

    def ensure_base_dir(self) -> None:
        """Create the counters root.

        Raises:
            BaseDirectoryError: If it can't be created.
        """
        if self.base_path.is_dir():
            return
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log.error("base_dir_failed", path=str(self.base_path), error=str(e))
            raise BaseDirectoryError(f"Could not create {self.base_path}: {e}") from e
        log.info("base_dir_created", path=str(self.base_path))

    def iterate(self) -> IterationResult:
        """Run one refresh → classify → resolve → allocate → persist pass.

        Returns an empty result when the sensor has no energy delta yet.

        Raises:
            DirectoryCreationError: If a VM's directory can't be created.
        """
        result = IterationResult()

        self.topology.refresh()
        energy_record = self.topology.get_energy_delta_for_interval()
        energy_delta = record_value(energy_record)
        if energy_delta is None:
            log.debug("energy_delta_unavailable")
            return result
        result.energy_available = True

        groups = self.topology.proc_tracker.get_alive_process_groups()
        vm_groups = filter_vm_process_groups(groups, self.min_history)
        result.vm_count = len(vm_groups)

        for group in vm_groups:
            newest, oldest = group[0], group[-1]
            identity = resolve_vm_identity(oldest.cmdline, self.config.fallback_identity)
            layout = VmLayout(self.base_path, identity)
            layout.ensure_marker()

            share = record_value(self.topology.get_cpu_usage_percentage(newest.pid))
            if share is None:
                log.debug("cpu_share_unavailable", identity=identity, pid=newest.pid)
                result.skipped.append(identity)
                continue

            uj_to_add = allocate_energy(share, energy_delta)
            try:
                total = layout.add(uj_to_add)
            except CounterWriteError as e:
                log.error("counter_write_failed", path=str(e.path), error=str(e.cause))
                console.counter_write_failed(str(e.path), str(e.cause))
                result.failures.append(
                    VmPublishFailure(identity=identity, path=e.path, error=str(e.cause))
                )
                continue

            result.published[identity] = result.published.get(identity, 0) + uj_to_add
            log.debug(
                "vm_published",
                identity=identity,
                pid=newest.pid,
                cpu_share=round(share, 3),
                uj_added=uj_to_add,
                total_uj=total,
            )

        return result

    def count_down(self, state: LoopState) -> int | None:
        """Advance the cleanup countdown by one interval.

        Triggers the tracker's stale-record cleanup when the countdown runs
        out, then resets it to cleanup_period.

        Returns:
            Number of records removed if cleanup ran, else None.
        """
        state.iterations += 1
        step = self.config.sample_interval
        if state.cleanup_countdown > step:
            state.cleanup_countdown -= step
            return None

        removed = self.topology.proc_tracker.clean_terminated_process_records()
        state.cleanup_countdown = self.config.cleanup_period
        state.cleanups += 1
        log.info("tracker_cleanup", removed=removed, iterations=state.iterations)
        return removed
