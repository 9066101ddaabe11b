"""Formatting utilities for CLI output."""

_UNITS = (
    (1_000_000_000_000, "MJ"),
    (1_000_000_000, "kJ"),
    (1_000_000, "J"),
    (1_000, "mJ"),
)


def format_energy(uj: int) -> str:
    """Format a microjoule count with the largest unit that keeps it >= 1.

    Returns:
        e.g. "12.35 kJ", "3.00 J", "512 µJ"
    """
    for scale, unit in _UNITS:
        if uj >= scale:
            return f"{uj / scale:.2f} {unit}"
    return f"{uj} µJ"
