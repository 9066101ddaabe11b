"""Per-VM energy counters laid out like the powercap sysfs tree.

Layout under the base path::

    <base>/<vm-identity>/intel-rapl:0:0/           marker directory
    <base>/<vm-identity>/intel-rapl:0/energy_uj    cumulative microjoules

Guest-side RAPL readers can be pointed at a mounted view of
``<base>/<vm-identity>`` unchanged. The store assumes it is the only writer:
the read-modify-write of a counter file is not atomic.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import structlog

from vmwatt.errors import CounterWriteError, DirectoryCreationError

log = structlog.get_logger()

COUNTER_FILE = "energy_uj"
PACKAGE_DOMAIN = "intel-rapl:0"
MARKER_DOMAIN = "intel-rapl:0:0"


def ensure_directory(path: Path) -> None:
    """Create path and its parents if missing.

    Raises:
        DirectoryCreationError: If the directory can't be created.
    """
    if path.is_dir():
        return
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise DirectoryCreationError(path, e) from e
    log.info("directory_created", path=str(path))


def parse_counter(text: str) -> int | None:
    """Parse counter content as a plain ASCII decimal integer, or None."""
    text = text.strip()
    if not (text.isascii() and text.isdigit()):
        return None
    return int(text)


def read_counter(directory: Path) -> int | None:
    """Return the counter stored in directory, or None if absent or unreadable."""
    try:
        return parse_counter((directory / COUNTER_FILE).read_text(errors="replace"))
    except OSError:
        return None


def add_or_create(directory: Path, uj_value: int) -> int:
    """Add uj_value to the counter in directory, creating it if needed.

    Content that isn't a non-negative integer counts as 0 and is overwritten.

    Returns:
        The new counter value.

    Raises:
        DirectoryCreationError: If directory can't be created.
        CounterWriteError: If the counter file can't be written.
    """
    ensure_directory(directory)
    file_path = directory / COUNTER_FILE

    previous = 0
    try:
        content = file_path.read_text(errors="replace")
    except FileNotFoundError:
        content = None
    except OSError as e:
        raise CounterWriteError(file_path, e) from e

    if content is not None:
        parsed = parse_counter(content)
        if parsed is None:
            log.warning("counter_reset", path=str(file_path), content=content[:32])
        else:
            previous = parsed

    total = previous + uj_value
    try:
        file_path.write_text(str(total))
    except OSError as e:
        raise CounterWriteError(file_path, e) from e
    return total


@dataclass(frozen=True)
class VmLayout:
    """Paths published for one VM."""

    base: Path
    identity: str

    @property
    def root(self) -> Path:
        return self.base / self.identity

    @property
    def marker_dir(self) -> Path:
        return self.root / MARKER_DOMAIN

    @property
    def counter_dir(self) -> Path:
        return self.root / PACKAGE_DOMAIN

    @property
    def counter_path(self) -> Path:
        return self.counter_dir / COUNTER_FILE

    def ensure_marker(self) -> None:
        """Create the intel-rapl:0:0 marker directory."""
        ensure_directory(self.marker_dir)

    def add(self, uj_value: int) -> int:
        """Accumulate uj_value into this VM's counter."""
        return add_or_create(self.counter_dir, uj_value)


def list_counters(base: Path) -> dict[str, int | None]:
    """Return {identity: counter} for every VM directory under base.

    A VM directory without a readable counter maps to None.
    """
    if not base.is_dir():
        return {}
    return {
        entry.name: read_counter(entry / PACKAGE_DOMAIN)
        for entry in sorted(base.iterdir())
        if entry.is_dir()
    }
