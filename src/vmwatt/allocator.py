"""Split a host energy delta between processes by CPU share.

CPU time is only a proxy for power draw: a process that keeps the CPU busy
with cheap instructions is charged the same as one running heavy vector code,
and uncore/DRAM power is spread by CPU time too. The result is an
approximation, not a measurement.
"""

import math

import structlog

from vmwatt.sensors import Record

log = structlog.get_logger()


def allocate_energy(cpu_percentage: float, energy_delta: float) -> int:
    """Return floor(cpu_percentage / 100 * energy_delta), never negative."""
    if cpu_percentage <= 0 or energy_delta <= 0:
        return 0
    return math.floor(cpu_percentage / 100.0 * energy_delta)


def record_value(record: Record | None) -> float | None:
    """Parse a sensor record's text value, or None if absent or unparsable."""
    if record is None:
        return None
    try:
        value = float(record.value)
    except ValueError:
        log.warning("record_unparsable", value=record.value, unit=record.unit)
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value
