"""Shared test fixtures for vmwatt."""

from pathlib import Path

import pytest

from vmwatt.config import ExporterConfig
from vmwatt.sensors import Record
from vmwatt.tracker import ProcessSnapshot, ProcessTracker

KVM_CMDLINE = (
    "/usr/bin/kvm",
    "-id",
    "101",
    "-name",
    "web01,debug-threads=on",
    "-smp",
    "4,sockets=1,cores=4,maxcpus=4",
)


def make_snapshot(
    pid: int = 4242,
    cmdline: tuple[str, ...] = KVM_CMDLINE,
    cpu_time: float = 0.0,
    captured_at: float = 1706000000.0,
) -> ProcessSnapshot:
    """Create a ProcessSnapshot for testing."""
    return ProcessSnapshot(pid=pid, cmdline=cmdline, cpu_time=cpu_time, captured_at=captured_at)


def make_group(
    pid: int = 4242,
    cmdline: tuple[str, ...] = KVM_CMDLINE,
    length: int = 3,
) -> list[ProcessSnapshot]:
    """Create a newest-first group of snapshots sharing one command line."""
    return [
        make_snapshot(
            pid=pid,
            cmdline=cmdline,
            cpu_time=float(length - i),
            captured_at=float(length - i),
        )
        for i in range(length)
    ]


class FakeTopology:
    """Topology stand-in with scripted energy and CPU shares.

    energy: value returned by get_energy_delta_for_interval (None = sensor not ready)
    shares: pid -> CPU percentage (missing pid = no share this interval)
    """

    def __init__(
        self,
        tracker: ProcessTracker | None = None,
        energy: str | None = "100000",
        shares: dict[int, str] | None = None,
    ) -> None:
        self.proc_tracker = tracker or ProcessTracker()
        self.energy = energy
        self.shares = shares or {}
        self.refresh_count = 0

    def refresh(self) -> None:
        self.refresh_count += 1

    def get_energy_delta_for_interval(self) -> Record | None:
        if self.energy is None:
            return None
        return Record(timestamp=0.0, value=self.energy, unit="uW")

    def get_cpu_usage_percentage(self, pid: int) -> Record | None:
        if pid not in self.shares:
            return None
        return Record(timestamp=0.0, value=self.shares[pid], unit="%")


def tracker_with(*groups: list[ProcessSnapshot]) -> ProcessTracker:
    """Build a ProcessTracker that holds the given newest-first groups."""
    tracker = ProcessTracker(max_records_per_process=5)
    for group in groups:
        for snapshot in reversed(group):
            tracker.record(snapshot)
    return tracker


@pytest.fixture
def base_path(tmp_path: Path) -> Path:
    """Counters root inside tmp_path (not created yet)."""
    return tmp_path / "vmwatt"


@pytest.fixture
def exporter_config(base_path: Path) -> ExporterConfig:
    """ExporterConfig pointing at the temporary counters root."""
    return ExporterConfig(base_path=str(base_path))
