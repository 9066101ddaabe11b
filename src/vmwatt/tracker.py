# src/vmwatt/tracker.py
"""Per-process snapshot history built from psutil."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass

import psutil
import structlog

log = structlog.get_logger()

ProcessGroup = list["ProcessSnapshot"]


@dataclass(frozen=True)
class ProcessSnapshot:
    """One observation of a process."""

    pid: int
    cmdline: tuple[str, ...]
    cpu_time: float  # Cumulative user + system seconds
    captured_at: float


@dataclass
class _History:
    create_time: float
    records: deque[ProcessSnapshot]


class ProcessTracker:
    """Keeps a bounded, newest-first snapshot history for every live pid.

    The exporter holds groups only for the duration of one iteration; this
    tracker owns them. Histories of pids that disappear are kept until
    clean_terminated_process_records() is called.
    """

    def __init__(self, max_records_per_process: int = 5) -> None:
        self.max_records = max_records_per_process
        self._histories: dict[int, _History] = {}
        self._alive: set[int] = set()

    def refresh(self) -> None:
        """Take one snapshot of every visible process."""
        now = time.time()
        alive: set[int] = set()

        for proc in psutil.process_iter(["pid", "cmdline", "cpu_times", "create_time"]):
            try:
                info = proc.info
                cpu_times = info.get("cpu_times")
                if cpu_times is None:
                    continue
                snapshot = ProcessSnapshot(
                    pid=info["pid"],
                    cmdline=tuple(info.get("cmdline") or ()),
                    cpu_time=cpu_times.user + cpu_times.system,
                    captured_at=now,
                )
                self.record(snapshot, info.get("create_time") or 0.0)
                alive.add(snapshot.pid)
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

        self._alive = alive

    def record(self, snapshot: ProcessSnapshot, create_time: float = 0.0) -> None:
        """Prepend a snapshot to its pid's history.

        A different create_time for a known pid means the pid was reused, so
        the old history is discarded.
        """
        history = self._histories.get(snapshot.pid)
        if history is None or history.create_time != create_time:
            if history is not None:
                log.debug("pid_reused", pid=snapshot.pid)
            history = _History(create_time=create_time, records=deque(maxlen=self.max_records))
            self._histories[snapshot.pid] = history
        history.records.appendleft(snapshot)
        self._alive.add(snapshot.pid)

    def get_process_group(self, pid: int) -> ProcessGroup:
        """Return the pid's snapshots, newest first (empty if unknown)."""
        history = self._histories.get(pid)
        return list(history.records) if history else []

    def get_alive_process_groups(self) -> list[ProcessGroup]:
        """Return snapshot groups for every pid seen on the latest refresh."""
        return [
            list(history.records)
            for pid, history in self._histories.items()
            if pid in self._alive and history.records
        ]

    def clean_terminated_process_records(self) -> int:
        """Drop histories of pids that are no longer alive.

        Returns:
            Number of pid histories removed.
        """
        stale = [pid for pid in self._histories if pid not in self._alive]
        for pid in stale:
            del self._histories[pid]
        log.debug("tracker_cleaned", removed=len(stale), remaining=len(self._histories))
        return len(stale)
