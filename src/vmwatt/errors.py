"""Exception types raised by vmwatt."""


class VmwattError(Exception):
    """Base class for vmwatt errors."""


class BaseDirectoryError(VmwattError):
    """The counters root could not be created. Publishing is impossible."""


class DirectoryCreationError(VmwattError):
    """A VM's output directory could not be created."""

    def __init__(self, path, cause: OSError) -> None:
        super().__init__(f"Couldn't create {path}: {cause}")
        self.path = path
        self.cause = cause


class CounterWriteError(VmwattError):
    """Writing a counter file failed (usually permissions)."""

    def __init__(self, path, cause: OSError) -> None:
        super().__init__(f"Could not edit {path}: {cause}")
        self.path = path
        self.cause = cause


class SensorUnavailable(VmwattError):
    """No readable RAPL energy domain was found on this host."""
