"""Derive a stable VM identity from a hypervisor command line.

Proxmox starts guests as ``/usr/bin/kvm -id 101 -name web01,debug-threads=on ...``.
The identity is ``"<id>-<name>"`` with anything after the first comma in the
name dropped, e.g. ``"101-web01"``.
"""

import os
from collections.abc import Iterable
from enum import Enum

from vmwatt.config import FALLBACK_IDENTITY

ID_FLAG = "-id"
NAME_FLAG = "-name"
NAME_SEPARATOR = ","
RESERVED_NAMES = (".", "..")


class _ScanState(Enum):
    SEEKING_FLAG = "seeking_flag"
    CAPTURING_ID = "capturing_id"
    CAPTURING_NAME = "capturing_name"


def scan_id_and_name(cmdline: Iterable[str]) -> tuple[str, str]:
    """Return the raw (vmid, name) values found in cmdline.

    The token after a flag is always taken as its value, even if it looks like
    another flag. A flag with nothing after it captures nothing. When a flag
    repeats, the last value wins. Missing values come back as "".
    """
    vmid = ""
    name = ""
    state = _ScanState.SEEKING_FLAG

    for token in cmdline:
        if state is _ScanState.CAPTURING_ID:
            vmid = token
            state = _ScanState.SEEKING_FLAG
        elif state is _ScanState.CAPTURING_NAME:
            name = token
            state = _ScanState.SEEKING_FLAG
        elif token == ID_FLAG:
            state = _ScanState.CAPTURING_ID
        elif token == NAME_FLAG:
            state = _ScanState.CAPTURING_NAME

    return vmid, name


def clean_name(raw_name: str) -> str:
    """Drop the comma-separated options QEMU allows after the VM name."""
    return raw_name.split(NAME_SEPARATOR, 1)[0]


def is_safe_component(part: str) -> bool:
    """True if part can be used as a single directory name under the base path."""
    if not part or part in RESERVED_NAMES or "\0" in part:
        return False
    return os.sep not in part and (os.altsep is None or os.altsep not in part)


def resolve_vm_identity(cmdline: Iterable[str], fallback: str = FALLBACK_IDENTITY) -> str:
    """Return ``"<id>-<name>"`` for a hypervisor command line.

    Falls back to ``fallback`` when either part is missing or empty, or when
    either would not stay a single directory under the base path (a ``/``, or
    ``.``/``..``).
    """
    vmid, raw_name = scan_id_and_name(cmdline)
    name = clean_name(raw_name)
    if is_safe_component(vmid) and is_safe_component(name):
        return f"{vmid}-{name}"
    return fallback
