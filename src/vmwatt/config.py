"""Configuration system for vmwatt."""

from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit

FALLBACK_IDENTITY = "unknown-vm"


@dataclass
class ExporterConfig:
    """Sampling loop and output tree configuration."""

    base_path: str = "/var/lib/vmwatt"  # Root of the published counters tree
    sample_interval: float = 1.0  # Seconds between iterations
    cleanup_period: float = 120.0  # Seconds between tracker cleanups
    fallback_identity: str = FALLBACK_IDENTITY  # Used when -id/-name can't be parsed


@dataclass
class SensorConfig:
    """Host energy sensor configuration."""

    powercap_root: str = "/sys/class/powercap"
    history_size: int = 3  # Energy/CPU records kept per refresh


@dataclass
class TrackerConfig:
    """Process tracker configuration."""

    max_records_per_process: int = 5  # Snapshots kept per pid, newest first
    min_history: int = 3  # Snapshots a group needs before it gets energy


@dataclass
class LoggingConfig:
    """Log file rotation."""

    log_max_bytes: int = 5 * 1024 * 1024  # Max log file size (5MB)
    log_backup_count: int = 3  # Number of backup log files to keep


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        else:
            table.add(f.name, value)
    return table


@dataclass
class Config:
    """Main configuration container."""

    exporter: ExporterConfig = field(default_factory=ExporterConfig)
    sensor: SensorConfig = field(default_factory=SensorConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "vmwatt"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "vmwatt"

    @property
    def log_path(self) -> Path:
        """Daemon log path."""
        return self.state_dir / "daemon.log"

    @property
    def base_path(self) -> Path:
        """Root of the published counters tree."""
        return Path(self.exporter.base_path)

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.dumps())

    def dumps(self) -> str:
        """Render config as a TOML document."""
        doc = tomlkit.document()
        for name in ("exporter", "sensor", "tracker", "logging"):
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())
        return tomlkit.dumps(doc)

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        All defaults come from the dataclass definitions, so Config() and
        Config.load() on a missing file are identical.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f)
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        return cls(
            exporter=_load_exporter_config(data.get("exporter", {})),
            sensor=_load_sensor_config(data.get("sensor", {})),
            tracker=_load_tracker_config(data.get("tracker", {})),
            logging=_load_logging_config(data.get("logging", {})),
        )


def _load_exporter_config(data: dict) -> ExporterConfig:
    """Load exporter config from TOML data, using dataclass defaults for missing fields."""
    defaults = ExporterConfig()

    sample_interval = float(data.get("sample_interval", defaults.sample_interval))
    cleanup_period = float(data.get("cleanup_period", defaults.cleanup_period))
    fallback_identity = str(data.get("fallback_identity", defaults.fallback_identity))

    if sample_interval <= 0:
        raise ValueError(f"sample_interval must be > 0, got {sample_interval}")
    if cleanup_period < sample_interval:
        raise ValueError(
            f"cleanup_period must be >= sample_interval ({sample_interval}), got {cleanup_period}"
        )
    if not fallback_identity or "/" in fallback_identity:
        raise ValueError(f"Invalid fallback_identity: {fallback_identity!r}")

    return ExporterConfig(
        base_path=str(data.get("base_path", defaults.base_path)),
        sample_interval=sample_interval,
        cleanup_period=cleanup_period,
        fallback_identity=fallback_identity,
    )


def _load_sensor_config(data: dict) -> SensorConfig:
    """Load sensor config from TOML data."""
    defaults = SensorConfig()
    history_size = data.get("history_size", defaults.history_size)
    if history_size < 2:
        raise ValueError(f"history_size must be >= 2, got {history_size}")
    return SensorConfig(
        powercap_root=str(data.get("powercap_root", defaults.powercap_root)),
        history_size=history_size,
    )


def _load_tracker_config(data: dict) -> TrackerConfig:
    """Load tracker config from TOML data."""
    defaults = TrackerConfig()
    min_history = data.get("min_history", defaults.min_history)
    max_records = data.get("max_records_per_process", defaults.max_records_per_process)

    if min_history < 2:
        raise ValueError(f"min_history must be >= 2, got {min_history}")
    if max_records < min_history:
        raise ValueError(
            f"max_records_per_process must be >= min_history ({min_history}), got {max_records}"
        )

    return TrackerConfig(max_records_per_process=max_records, min_history=min_history)


def _load_logging_config(data: dict) -> LoggingConfig:
    """Load logging config from TOML data."""
    d = LoggingConfig()
    return LoggingConfig(
        log_max_bytes=data.get("log_max_bytes", d.log_max_bytes),
        log_backup_count=data.get("log_backup_count", d.log_backup_count),
    )
