"""Tests for VM identity resolution."""

import pytest

from vmwatt.identity import (
    clean_name,
    is_safe_component,
    resolve_vm_identity,
    scan_id_and_name,
)


class TestResolveVmIdentity:
    """Tests for resolve_vm_identity."""

    def test_proxmox_cmdline(self) -> None:
        """id and name combine into '<id>-<name>'."""
        cmdline = ["/usr/bin/kvm", "-id", "101", "-name", "web01", "-m", "2048"]
        assert resolve_vm_identity(cmdline) == "101-web01"

    def test_name_suffix_dropped(self) -> None:
        """Everything after the first comma in the name is discarded."""
        cmdline = ["/usr/bin/kvm", "-id", "102", "-name", "db,debug-threads=on,process=x"]
        assert resolve_vm_identity(cmdline) == "102-db"

    def test_flags_in_any_order(self) -> None:
        """-name before -id still resolves."""
        cmdline = ["qemu-system-x86_64", "-name", "guest", "-id", "7"]
        assert resolve_vm_identity(cmdline) == "7-guest"

    @pytest.mark.parametrize(
        "cmdline",
        [
            ["/usr/bin/kvm", "-name", "web01"],
            ["/usr/bin/kvm", "-id", "101"],
            ["/usr/bin/kvm"],
            [],
        ],
    )
    def test_missing_part_falls_back(self, cmdline: list[str]) -> None:
        """Missing id or name gives the fallback identity."""
        assert resolve_vm_identity(cmdline) == "unknown-vm"

    def test_empty_clean_name_falls_back(self) -> None:
        """A name that is empty before the first comma counts as missing."""
        cmdline = ["/usr/bin/kvm", "-id", "101", "-name", ",debug-threads=on"]
        assert resolve_vm_identity(cmdline) == "unknown-vm"

    def test_custom_fallback(self) -> None:
        """The fallback identity is configurable."""
        assert resolve_vm_identity(["/usr/bin/kvm"], fallback="orphan") == "orphan"

    def test_flag_at_end_captures_nothing(self) -> None:
        """A trailing flag has no value to capture."""
        cmdline = ["/usr/bin/kvm", "-name", "web01", "-id"]
        assert resolve_vm_identity(cmdline) == "unknown-vm"

    @pytest.mark.parametrize(
        ("vmid", "name"),
        [
            ("7", "../../../escaped"),
            ("7", "a/b"),
            ("7", ".."),
            ("7", "."),
            ("../7", "web01"),
            ("..", "web01"),
        ],
    )
    def test_path_like_parts_fall_back(self, vmid: str, name: str) -> None:
        """An id or name that isn't a single directory name gives the fallback."""
        cmdline = ["qemu-system-x86_64", "-id", vmid, "-name", name]
        assert resolve_vm_identity(cmdline) == "unknown-vm"

    def test_dots_inside_name_allowed(self) -> None:
        cmdline = ["/usr/bin/kvm", "-id", "101", "-name", "web01.example..org"]
        assert resolve_vm_identity(cmdline) == "101-web01.example..org"


class TestScanIdAndName:
    """Tests for the flag scanner."""

    def test_repeated_flags_last_wins(self) -> None:
        """The last occurrence of a flag sets its value."""
        vmid, name = scan_id_and_name(["-id", "1", "-name", "a", "-id", "2", "-name", "b"])
        assert (vmid, name) == ("2", "b")

    def test_value_that_looks_like_flag(self) -> None:
        """The token after a flag is its value even if it is another flag."""
        vmid, name = scan_id_and_name(["-name", "-id", "5"])
        assert name == "-id"
        assert vmid == ""

    def test_flag_must_match_exactly(self) -> None:
        """Flags are whole tokens, not prefixes."""
        vmid, name = scan_id_and_name(["-identity", "9", "--name", "x"])
        assert (vmid, name) == ("", "")

    def test_accepts_tuple(self) -> None:
        """Any iterable of tokens works."""
        assert scan_id_and_name(("-id", "3", "-name", "c")) == ("3", "c")


class TestCleanName:
    """Tests for clean_name."""

    def test_no_separator(self) -> None:
        assert clean_name("web01") == "web01"

    def test_truncates_at_first_comma(self) -> None:
        assert clean_name("web01,a=b,c=d") == "web01"

    def test_empty(self) -> None:
        assert clean_name("") == ""


class TestIsSafeComponent:
    """Tests for is_safe_component."""

    @pytest.mark.parametrize("part", ["web01", "101", "db.local", "...", "a-b_c"])
    def test_plain_names(self, part: str) -> None:
        assert is_safe_component(part)

    @pytest.mark.parametrize("part", ["", ".", "..", "a/b", "/abs", "x\0y"])
    def test_rejected(self, part: str) -> None:
        assert not is_safe_component(part)
