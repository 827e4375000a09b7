"""Workspace configuration.

Settings come from, in increasing priority: built-in defaults, an optional
``cratework.toml`` at the workspace root (keys under ``[cratework]``), and
explicit arguments (usually CLI options).
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path

import tomlkit
from tomlkit.exceptions import TOMLKitError

from .errors import CrateworkError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "cratework.toml"
MANIFEST_NAME = "Cargo.toml"

# Never descended into while scanning
DEFAULT_SKIP_DIRS = frozenset({"target", ".git", "node_modules", ".cargo"})

# Path segments marking sub-crates that belong to another package
DEFAULT_NESTED_SEGMENTS = frozenset({"crates", "target"})

DEFAULT_TEST_COMMAND = (
    "cargo", "test", "--manifest-path", "{manifest}", "--all-features",
    "--", "--test-threads=1", "--quiet",
)
DEFAULT_DOC_COMMAND = (
    "cargo", "rustdoc", "--manifest-path", "{manifest}",
    "--", "-D", "warnings", "--document-private-items",
)
DEFAULT_VERIFY_COMMAND = ("cargo", "metadata", "--format-version=1")
DEFAULT_CLEAN_COMMAND = ("cargo", "clean")

DEFAULT_COMMAND_TIMEOUT = 900.0
DEFAULT_MAX_CONCURRENCY = 4


class ConfigError(CrateworkError):
    """cratework.toml exists but can't be used."""


@dataclass
class WorkspaceConfig:
    """Settings shared by the scanner, coordinator, patch engine and health checks."""

    root: Path
    namespace: str
    manifest_name: str = MANIFEST_NAME
    skip_dirs: frozenset[str] = DEFAULT_SKIP_DIRS
    nested_segments: frozenset[str] = DEFAULT_NESTED_SEGMENTS
    overlay_dir: str = ".cargo"
    overlay_file: str = "config.toml"
    patch_key: str = "patch"
    specs_dir: str = "specs"
    test_command: tuple[str, ...] = DEFAULT_TEST_COMMAND
    doc_command: tuple[str, ...] = DEFAULT_DOC_COMMAND
    verify_command: tuple[str, ...] = DEFAULT_VERIFY_COMMAND
    clean_command: tuple[str, ...] = DEFAULT_CLEAN_COMMAND
    command_timeout: float | None = DEFAULT_COMMAND_TIMEOUT
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY

    @property
    def overlay_path(self) -> Path:
        return self.root / self.overlay_dir / self.overlay_file

    def package_command(self, template: tuple[str, ...], manifest: Path) -> list[str]:
        """Fill a command template for one package manifest."""
        return [part.replace("{manifest}", str(manifest)) for part in template]


def _coerce(name: str, value: object) -> object:
    """Convert a TOML value to the type the dataclass field expects."""
    if name in ("skip_dirs", "nested_segments"):
        return frozenset(str(v) for v in value)
    if name.endswith("_command"):
        return tuple(str(v) for v in value)
    if name == "command_timeout":
        # 0 disables the timeout
        return float(value) or None
    if name == "max_concurrency":
        return max(1, int(value))
    return str(value)


def read_config_file(root: Path) -> dict:
    """Read the ``[cratework]`` table of ``cratework.toml``, if present."""
    path = root / CONFIG_FILENAME
    if not path.is_file():
        return {}

    try:
        document = tomlkit.parse(path.read_text(encoding="utf-8"))
    except (OSError, TOMLKitError) as e:
        raise ConfigError(f"Failed to read {path}: {e}") from e

    table = document.get("cratework")
    if table is None:
        return {}
    if not isinstance(table, Mapping):
        raise ConfigError(f"[cratework] in {path} must be a table")
    return table.unwrap()


def load_config(root: str | Path, namespace: str | None = None, **overrides) -> WorkspaceConfig:
    """Build the configuration for a workspace.

    Args:
        root: Workspace root directory
        namespace: Package name prefix; falls back to the config file, then
            to the workspace directory name
        **overrides: Explicit field values that win over the config file

    Returns:
        Resolved WorkspaceConfig
    """
    root = Path(root).expanduser().resolve()
    known = {f.name for f in fields(WorkspaceConfig)} - {"root"}

    values: dict = {}
    for key, value in read_config_file(root).items():
        name = key.replace("-", "_")
        if name in known:
            try:
                values[name] = _coerce(name, value)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Invalid value for {key} in {CONFIG_FILENAME}: {e}") from e
        else:
            logger.warning("Ignoring unknown setting %r in %s", key, CONFIG_FILENAME)

    values.update({k: v for k, v in overrides.items() if v is not None})
    if namespace:
        values["namespace"] = namespace
    if not values.get("namespace"):
        values["namespace"] = root.name
        logger.warning("No namespace configured, using workspace directory name %r", root.name)

    return WorkspaceConfig(root=root, **values)


def find_workspace_root(start: str | Path) -> Path | None:
    """Walk up from ``start`` to the nearest directory holding cratework.toml."""
    current = Path(start).expanduser().resolve()
    for candidate in (current, *current.parents):
        if (candidate / CONFIG_FILENAME).is_file():
            return candidate
    return None
