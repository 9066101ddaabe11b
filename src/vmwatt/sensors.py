"""Host energy and CPU-time sampling.

Energy comes from the Linux powercap interface
(/sys/class/powercap/intel-rapl:N/energy_uj). Reading it requires root on most
systems. CPU time comes from psutil.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path

import psutil
import structlog

from vmwatt.errors import SensorUnavailable
from vmwatt.tracker import ProcessTracker

log = structlog.get_logger()


@dataclass(frozen=True)
class Record:
    """A sensor reading. Values are carried as text, as the kernel exposes them."""

    timestamp: float
    value: str
    unit: str


@dataclass(frozen=True)
class RaplDomain:
    """A top-level RAPL domain (one per CPU package)."""

    name: str
    energy_path: Path
    max_energy_range_uj: int


class RaplSensor:
    """Reads and sums the package energy counters of every RAPL domain."""

    def __init__(self, domains: list[RaplDomain]) -> None:
        if not domains:
            raise SensorUnavailable("no RAPL domain available")
        self.domains = domains

    @classmethod
    def discover(cls, powercap_root: str | Path = "/sys/class/powercap") -> "RaplSensor":
        """Build a sensor from the top-level intel-rapl:N domains under powercap_root.

        Subdomains (intel-rapl:N:M) are skipped because they are already
        included in their package's counter.

        Raises:
            SensorUnavailable: If no readable domain exists.
        """
        root = Path(powercap_root)
        if not root.is_dir():
            raise SensorUnavailable(f"{root} does not exist")

        domains: list[RaplDomain] = []
        try:
            entries = sorted(root.iterdir())
        except PermissionError as e:
            raise SensorUnavailable(f"cannot list {root}: {e}") from e

        for entry in entries:
            if not entry.name.startswith("intel-rapl:") or entry.name.count(":") != 1:
                continue
            energy_path = entry / "energy_uj"
            try:
                energy_path.read_text()
            except (FileNotFoundError, PermissionError):
                log.debug("rapl_domain_unreadable", path=str(energy_path))
                continue
            try:
                name = (entry / "name").read_text().strip()
            except (FileNotFoundError, PermissionError):
                name = entry.name
            try:
                max_range = int((entry / "max_energy_range_uj").read_text().strip())
            except (FileNotFoundError, PermissionError, ValueError):
                max_range = 0
            domains.append(
                RaplDomain(name=name, energy_path=energy_path, max_energy_range_uj=max_range)
            )

        if not domains:
            raise SensorUnavailable(f"no readable intel-rapl domain under {root}")
        log.info("rapl_domains_found", domains=[d.name for d in domains])
        return cls(domains)

    def read_uj(self) -> list[int]:
        """Read the raw cumulative counter of every domain, in microjoules."""
        return [int(d.energy_path.read_text().strip()) for d in self.domains]

    def diff_uj(self, previous: list[int], current: list[int]) -> int:
        """Energy consumed between two reads, accounting for counter wrap."""
        total = 0
        for domain, before, after in zip(self.domains, previous, current, strict=True):
            if after >= before:
                total += after - before
            elif domain.max_energy_range_uj:
                total += domain.max_energy_range_uj - before + after
            # Wrapped without a known range: drop this domain's interval
        return total


@dataclass(frozen=True)
class _EnergySample:
    timestamp: float
    counters: list[int]


class Topology:
    """Host-level view: RAPL energy, total CPU time and the process tracker.

    Every refresh() records one energy sample and one host CPU-time sample and
    snapshots all processes. Deltas are computed between the two newest
    samples, so the first refresh never yields a value.
    """

    def __init__(
        self,
        sensor: RaplSensor,
        proc_tracker: ProcessTracker,
        history_size: int = 3,
    ) -> None:
        self.sensor = sensor
        self.proc_tracker = proc_tracker
        self._energy: deque[_EnergySample] = deque(maxlen=history_size)
        self._cpu_time: deque[float] = deque(maxlen=history_size)

    def refresh(self) -> None:
        """Re-sample host energy, host CPU time and all processes."""
        now = time.time()
        try:
            self._energy.appendleft(_EnergySample(timestamp=now, counters=self.sensor.read_uj()))
        except (OSError, ValueError) as e:
            log.warning("rapl_read_failed", error=str(e))
        cpu = psutil.cpu_times()
        # guest time is already counted in user time on Linux
        guest = getattr(cpu, "guest", 0.0) + getattr(cpu, "guest_nice", 0.0)
        self._cpu_time.appendleft(sum(cpu) - guest)
        self.proc_tracker.refresh()

    def get_energy_delta_for_interval(self) -> Record | None:
        """Average host power over the last interval, in microwatts.

        Returns None until two energy samples exist.
        """
        if len(self._energy) < 2:
            return None
        last, previous = self._energy[0], self._energy[1]
        elapsed = last.timestamp - previous.timestamp
        if elapsed <= 0:
            return None
        uj = self.sensor.diff_uj(previous.counters, last.counters)
        return Record(timestamp=last.timestamp, value=str(uj / elapsed), unit="uW")

    def get_cpu_usage_percentage(self, pid: int) -> Record | None:
        """Share of host CPU time the pid used over its last interval (0-100).

        Returns None if the pid has fewer than two snapshots or host CPU time
        did not advance.
        """
        group = self.proc_tracker.get_process_group(pid)
        if len(group) < 2 or len(self._cpu_time) < 2:
            return None
        host_delta = self._cpu_time[0] - self._cpu_time[1]
        if host_delta <= 0:
            return None
        proc_delta = max(group[0].cpu_time - group[1].cpu_time, 0.0)
        percentage = min(proc_delta / host_delta * 100.0, 100.0)
        return Record(timestamp=group[0].captured_at, value=str(percentage), unit="%")
