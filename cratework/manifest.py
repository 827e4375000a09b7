"""Cargo.toml loading and round-trip safe mutation."""

import logging
from collections.abc import Mapping
from pathlib import Path

import tomlkit
from semver import Version
from tomlkit.exceptions import TOMLKitError
from tomlkit.toml_document import TOMLDocument

from .errors import (
    InvalidVersionError,
    ManifestParseError,
    ManifestWriteError,
    MissingFieldError,
)
from .models import DEPENDENCY_SECTIONS, Dependency, DependencyType

logger = logging.getLogger(__name__)


def parse_version(value: object) -> Version | None:
    """Parse a version string, returning None for anything that isn't SemVer."""
    if not isinstance(value, str):
        return None
    try:
        return Version.parse(str(value))
    except ValueError:
        return None


def is_namespaced(name: str, namespace: str) -> bool:
    """Check whether a package name belongs to the workspace namespace."""
    return name.startswith(namespace)


class CargoManifest:
    """A parsed Cargo.toml backed by its editable TOML document.

    The document is authoritative: every mutation is written into it first,
    so ``save`` followed by ``load`` reproduces the parsed fields. Keys this
    class doesn't understand are carried through untouched.
    """

    def __init__(
        self,
        path: Path,
        package_name: str,
        version: Version,
        dependencies: list[Dependency],
        document: TOMLDocument,
    ):
        self.path = path
        self.package_name = package_name
        self.version = version
        self.dependencies = dependencies
        self._document = document

    def __repr__(self) -> str:
        return f"CargoManifest({self.package_name!r}, {str(self.version)!r}, {str(self.path)!r})"

    @classmethod
    def load(cls, path: str | Path) -> "CargoManifest":
        """Load a Cargo.toml from disk.

        Raises:
            ManifestParseError: The file can't be read or isn't valid TOML
            MissingFieldError: package.name or package.version is absent
            InvalidVersionError: package.version isn't a semantic version
        """
        path = Path(path)
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ManifestParseError(path, f"Failed to read: {e}") from e
        return cls.from_string(content, path)

    @classmethod
    def from_string(cls, content: str, path: str | Path) -> "CargoManifest":
        """Parse Cargo.toml content that lives (or will live) at ``path``."""
        path = Path(path)
        try:
            document = tomlkit.parse(content)
        except TOMLKitError as e:
            raise ManifestParseError(path, f"Failed to parse: {e}") from e

        package = document.get("package")
        if not isinstance(package, Mapping):
            raise MissingFieldError(path, "package.name")

        name = package.get("name")
        if not isinstance(name, str):
            raise MissingFieldError(path, "package.name")

        # `version.workspace = true` lands here too; it has no string to bump
        raw_version = package.get("version")
        if not isinstance(raw_version, str):
            raise MissingFieldError(path, "package.version")

        version = parse_version(raw_version)
        if version is None:
            raise InvalidVersionError(path, str(raw_version))

        dependencies: list[Dependency] = []
        for kind, section in DEPENDENCY_SECTIONS.items():
            table = document.get(section)
            if not isinstance(table, Mapping):
                continue
            for dep_name, item in table.items():
                dependencies.append(cls._parse_dependency(str(dep_name), item, kind))

        return cls(path, str(name), version, dependencies, document)

    @staticmethod
    def _parse_dependency(name: str, item: object, kind: DependencyType) -> Dependency:
        """Parse a single dependency entry, bare string or table."""
        if isinstance(item, str):
            return Dependency(name=name, version=parse_version(item), kind=kind)

        if isinstance(item, Mapping):
            git = item.get("git")
            ref = item.get("branch")
            if ref is None:
                ref = item.get("tag")
            path = item.get("path")
            return Dependency(
                name=name,
                version=parse_version(item.get("version")),
                kind=kind,
                git=str(git) if isinstance(git, str) else None,
                ref=str(ref) if isinstance(ref, str) else None,
                path=str(path) if isinstance(path, str) else None,
            )

        return Dependency(name=name, kind=kind)

    def set_version(self, new_version: Version) -> None:
        """Update the package version."""
        self.version = new_version
        self._document["package"]["version"] = str(new_version)

    def update_dependency(self, dep_name: str, new_version: Version) -> None:
        """Rewrite the version of ``dep_name`` in every dependency section.

        A bare version string is replaced wholesale. A table only has its
        ``version`` key replaced; git, branch, tag, path and any other keys
        stay exactly as they were.
        """
        for kind, section in DEPENDENCY_SECTIONS.items():
            table = self._document.get(section)
            if not isinstance(table, Mapping) or dep_name not in table:
                continue

            item = table[dep_name]
            if isinstance(item, str):
                table[dep_name] = str(new_version)
            elif isinstance(item, Mapping) and "version" in item:
                item["version"] = str(new_version)
            else:
                continue

            for dep in self.dependencies:
                if dep.name == dep_name and dep.kind == kind:
                    dep.version = new_version

    def dumps(self) -> str:
        return tomlkit.dumps(self._document)

    def save(self) -> None:
        """Write the manifest back to disk."""
        try:
            self.path.write_text(self.dumps(), encoding="utf-8")
        except OSError as e:
            raise ManifestWriteError(f"Failed to write {self.path}: {e}") from e
        logger.debug("Saved %s", self.path)

    def namespaced_dependencies(self, namespace: str) -> list[Dependency]:
        """Get all dependencies that belong to the workspace namespace."""
        return [d for d in self.dependencies if is_namespaced(d.name, namespace)]


def load_manifest(path: str | Path) -> CargoManifest:
    """Load a Cargo.toml into a CargoManifest.

    Args:
        path: Path to the Cargo.toml file

    Returns:
        Parsed CargoManifest
    """
    return CargoManifest.load(path)
