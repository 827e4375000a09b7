"""Exceptions raised by cratework components."""

from pathlib import Path


class CrateworkError(Exception):
    """Base class for all cratework errors."""


class ManifestError(CrateworkError):
    """A Cargo.toml could not be turned into a manifest.

    Recoverable per file: scanners log it and move on.
    """

    def __init__(self, path: Path, message: str):
        super().__init__(f"{message} in {path}")
        self.path = path


class MissingFieldError(ManifestError):
    """package.name or package.version is absent."""

    def __init__(self, path: Path, field: str):
        super().__init__(path, f"Missing {field}")
        self.field = field


class ManifestParseError(ManifestError):
    """The file could not be read or is not valid TOML."""


class InvalidVersionError(ManifestError):
    """package.version is not a semantic version."""

    def __init__(self, path: Path, version: str):
        super().__init__(path, f"Invalid version '{version}'")
        self.version = version


class ManifestWriteError(CrateworkError):
    """Saving a manifest back to disk failed."""


class WorkspaceError(CrateworkError):
    """A workspace-wide operation cannot proceed."""


class NoPackagesFoundError(WorkspaceError):
    """No namespaced packages were found under the workspace root."""

    def __init__(self, namespace: str, root: Path):
        super().__init__(f"No {namespace} packages found in workspace {root}")
        self.namespace = namespace
        self.root = root


class PatchError(CrateworkError):
    """Reading or writing the overlay document failed."""


class HealthTaskError(CrateworkError):
    """A single health check failed internally."""

    def __init__(self, check_type: str, cause: BaseException):
        super().__init__(f"{check_type} check failed: {cause}")
        self.check_type = check_type
        self.cause = cause


class CommandError(CrateworkError):
    """An external command could not be spawned."""

    def __init__(self, argv: list[str], message: str):
        super().__init__(f"Failed to run {' '.join(argv)}: {message}")
        self.argv = argv


class CommandTimeoutError(CommandError):
    """An external command exceeded its time budget and was killed."""

    def __init__(self, argv: list[str], timeout: float):
        super().__init__(argv, f"timed out after {timeout:g}s")
        self.timeout = timeout
