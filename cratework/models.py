"""Core data models for cratework."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from semver import Version


class DependencyType(str, Enum):
    """Which dependency section an entry was declared in."""

    NORMAL = "normal"
    DEV = "dev"
    BUILD = "build"

    @property
    def section(self) -> str:
        return DEPENDENCY_SECTIONS[self]


DEPENDENCY_SECTIONS = {
    DependencyType.NORMAL: "dependencies",
    DependencyType.DEV: "dev-dependencies",
    DependencyType.BUILD: "build-dependencies",
}


@dataclass
class Dependency:
    """A single dependency entry in a Cargo.toml."""

    name: str
    version: Version | None = None
    kind: DependencyType = DependencyType.NORMAL
    git: str | None = None
    ref: str | None = None  # branch or tag
    path: str | None = None

    @property
    def is_local(self) -> bool:
        """Path dependencies are already resolved locally."""
        return self.path is not None


@dataclass(frozen=True)
class VersionChange:
    """One computed version bump, produced before any file is touched."""

    package: str
    path: Path
    old_version: Version
    new_version: Version


@dataclass
class VersionInconsistency:
    """A dependency pinned to a version its target package no longer has."""

    package: str
    dependency: str
    expected: Version
    found: Version


@dataclass
class VersionReport:
    """Result of a workspace version consistency check."""

    total_packages: int = 0
    drift_detected: bool = False
    issues: list[str] = field(default_factory=list)
    inconsistencies: list[VersionInconsistency] = field(default_factory=list)
    package_versions: dict[str, Version] = field(default_factory=dict)

    def has_issues(self) -> bool:
        return self.drift_detected or bool(self.inconsistencies)


@dataclass
class GitDependency:
    """A git dependency that has a same-named package checked out locally."""

    name: str
    git_url: str
    branch_or_tag: str | None
    local_path: Path


@dataclass
class PatchReport:
    """Report of patches written to the overlay document."""

    patched_count: int
    config_path: Path
    verified: bool = False
    verification_error: str | None = None


@dataclass
class ResetReport:
    """Report of patches removed from the overlay document."""

    removed_count: int
    config_path: Path
    config_deleted: bool = False


@dataclass
class GitStatus:
    """Working tree and upstream state of one repository."""

    repo_path: Path
    branch: str
    ahead: int = 0
    behind: int = 0
    has_upstream: bool = False
    dirty_files: list[str] = field(default_factory=list)

    @property
    def is_dirty(self) -> bool:
        return bool(self.dirty_files)


@dataclass
class CommandResult:
    """Outcome of an external command."""

    exit_status: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.exit_status == 0
