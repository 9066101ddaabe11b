"""CLI commands for vmwatt."""

from pathlib import Path

import click


def _load_config(config_path: Path | None, base_path: str | None):
    """Load config from file and apply command-line overrides."""
    from vmwatt.config import Config

    try:
        config = Config.load(config_path)
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    if base_path is not None:
        config.exporter.base_path = base_path
    return config


@click.group()
@click.version_option(package_name="vmwatt")
def main() -> None:
    """Publish per-VM energy counters for QEMU/KVM guests."""
    pass


@main.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Config file (default: ~/.config/vmwatt/config.toml)",
)
@click.option("--base-path", help="Root of the published counters tree")
def daemon(config_path: Path | None, base_path: str | None) -> None:
    """Run the exporter in the foreground."""
    import asyncio

    from vmwatt.daemon import run_daemon
    from vmwatt.errors import VmwattError

    config = _load_config(config_path, base_path)
    try:
        asyncio.run(run_daemon(config))
    except VmwattError:
        raise SystemExit(1)


@main.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Config file (default: ~/.config/vmwatt/config.toml)",
)
@click.option("--base-path", help="Root of the published counters tree")
@click.option("--format", "-f", "fmt", type=click.Choice(["table", "json"]), default="table")
def status(config_path: Path | None, base_path: str | None, fmt: str) -> None:
    """List published VM counters."""
    import json

    from vmwatt.counters import list_counters
    from vmwatt.formatting import format_energy

    config = _load_config(config_path, base_path)
    counters = list_counters(config.base_path)

    if fmt == "json":
        click.echo(json.dumps(counters, indent=2))
        return

    if not counters:
        click.echo(f"No VM counters under {config.base_path}.")
        return

    click.echo(f"{'VM':30}  {'energy_uj':>16}  {'Energy':>12}")
    click.echo("-" * 62)
    for identity, uj in counters.items():
        if uj is None:
            click.echo(f"{identity[:30]:30}  {'?':>16}  {'unreadable':>12}")
        else:
            click.echo(f"{identity[:30]:30}  {uj:>16}  {format_energy(uj):>12}")


@main.group()
def config() -> None:
    """Manage the configuration file."""
    pass


@config.command("init")
@click.option(
    "--path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Where to write (default: ~/.config/vmwatt/config.toml)",
)
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def config_init(path: Path | None, force: bool) -> None:
    """Write a config file with default values."""
    from vmwatt import logging as console
    from vmwatt.config import Config

    cfg = Config()
    path = path or cfg.config_path
    if path.exists() and not force:
        click.echo(f"Error: {path} already exists (use --force to overwrite)", err=True)
        raise SystemExit(1)
    cfg.save(path)
    console.config_created(str(path))


@config.command("show")
@click.option(
    "--path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Config file (default: ~/.config/vmwatt/config.toml)",
)
def config_show(path: Path | None) -> None:
    """Print the effective configuration as TOML."""
    click.echo(_load_config(path, None).dumps(), nl=False)
