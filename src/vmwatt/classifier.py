"""Selection of QEMU/KVM hypervisor processes among tracked process groups."""

from collections.abc import Iterable

import structlog

from vmwatt.tracker import ProcessGroup

log = structlog.get_logger()

HYPERVISOR_SIGNATURES = ("qemu-system", "/usr/bin/kvm")
MIN_HISTORY = 3


def is_hypervisor_cmdline(cmdline: Iterable[str]) -> str | None:
    """Return the first argument carrying a hypervisor signature, or None."""
    for arg in cmdline:
        if any(signature in arg for signature in HYPERVISOR_SIGNATURES):
            return arg
    return None


def filter_vm_process_groups(
    groups: Iterable[ProcessGroup],
    min_history: int = MIN_HISTORY,
) -> list[ProcessGroup]:
    """Keep the groups that belong to a VM and have enough history.

    Only the newest snapshot (group[0]) is inspected for the signature. A
    group shorter than min_history is dropped even if it matches, since its
    CPU share can't be trusted yet.
    """
    vm_groups: list[ProcessGroup] = []
    for group in groups:
        if not group:
            continue
        match = is_hypervisor_cmdline(group[0].cmdline)
        if match is None:
            continue
        if len(group) < min_history:
            log.debug("vm_process_too_young", pid=group[0].pid, records=len(group))
            continue
        log.debug("vm_process_found", pid=group[0].pid, command=match)
        vm_groups.append(group)
    return vm_groups
