"""Tests for CLI commands."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from vmwatt.cli import main
from vmwatt.counters import VmLayout
from vmwatt.errors import SensorUnavailable


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def no_config(tmp_path: Path) -> list[str]:
    """Arguments pointing --config at a file that doesn't exist."""
    return ["--config", str(tmp_path / "absent.toml")]


class TestStatusCommand:
    """Tests for the status command."""

    def test_no_counters(self, runner: CliRunner, no_config: list[str], base_path: Path) -> None:
        result = runner.invoke(main, ["status", *no_config, "--base-path", str(base_path)])
        assert result.exit_code == 0
        assert "No VM counters under" in result.output

    def test_table(self, runner: CliRunner, no_config: list[str], base_path: Path) -> None:
        VmLayout(base_path, "101-web01").add(2_500_000)
        (base_path / "102-db").mkdir()

        result = runner.invoke(main, ["status", *no_config, "--base-path", str(base_path)])

        assert result.exit_code == 0
        assert "101-web01" in result.output
        assert "2500000" in result.output
        assert "2.50 J" in result.output
        assert "unreadable" in result.output

    def test_json(self, runner: CliRunner, no_config: list[str], base_path: Path) -> None:
        VmLayout(base_path, "101-web01").add(42)
        (base_path / "102-db").mkdir()

        result = runner.invoke(
            main, ["status", *no_config, "--base-path", str(base_path), "--format", "json"]
        )

        assert result.exit_code == 0
        assert json.loads(result.output) == {"101-web01": 42, "102-db": None}

    def test_invalid_config(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text("[exporter]\nsample_interval = -1\n")
        result = runner.invoke(main, ["status", "--config", str(path)])
        assert result.exit_code == 1
        assert "sample_interval" in result.output


class TestConfigCommands:
    """Tests for config init/show."""

    def test_init_writes_defaults(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "conf" / "config.toml"
        result = runner.invoke(main, ["config", "init", "--path", str(path)])
        assert result.exit_code == 0
        assert "[exporter]" in path.read_text()

    def test_init_refuses_overwrite(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text("# mine\n")
        result = runner.invoke(main, ["config", "init", "--path", str(path)])
        assert result.exit_code == 1
        assert "already exists" in result.output
        assert path.read_text() == "# mine\n"

    def test_init_force(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text("# mine\n")
        result = runner.invoke(main, ["config", "init", "--path", str(path), "--force"])
        assert result.exit_code == 0
        assert "[exporter]" in path.read_text()

    def test_show(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text('[exporter]\nbase_path = "/srv/energy"\n')
        result = runner.invoke(main, ["config", "show", "--path", str(path)])
        assert result.exit_code == 0
        assert 'base_path = "/srv/energy"' in result.output
        assert "[tracker]" in result.output


class TestDaemonCommand:
    """Tests for the daemon command."""

    def test_base_path_override(
        self, runner: CliRunner, no_config: list[str], base_path: Path
    ) -> None:
        with patch("vmwatt.daemon.run_daemon", new_callable=AsyncMock) as mock_run:
            result = runner.invoke(main, ["daemon", *no_config, "--base-path", str(base_path)])

        assert result.exit_code == 0
        config = mock_run.call_args[0][0]
        assert config.exporter.base_path == str(base_path)

    def test_vmwatt_error_exits_1(self, runner: CliRunner, no_config: list[str]) -> None:
        with patch(
            "vmwatt.daemon.run_daemon",
            new_callable=AsyncMock,
            side_effect=SensorUnavailable("no RAPL domain available"),
        ):
            result = runner.invoke(main, ["daemon", *no_config])

        assert result.exit_code == 1
