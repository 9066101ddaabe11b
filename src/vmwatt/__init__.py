"""vmwatt - per-VM energy counters for QEMU/KVM guests."""
