"""Workspace scanning and repository discovery."""

import logging
import os
from collections.abc import Iterable, Iterator
from pathlib import Path

from .config import DEFAULT_NESTED_SEGMENTS, DEFAULT_SKIP_DIRS, MANIFEST_NAME
from .errors import ManifestError
from .manifest import CargoManifest, is_namespaced, load_manifest

logger = logging.getLogger(__name__)


class WorkspaceScanner:
    """Finds Cargo.toml manifests and git repositories under a workspace root."""

    def __init__(
        self,
        root: str | Path,
        namespace: str,
        skip_dirs: Iterable[str] = DEFAULT_SKIP_DIRS,
        nested_segments: Iterable[str] = DEFAULT_NESTED_SEGMENTS,
        manifest_name: str = MANIFEST_NAME,
    ):
        """Initialize workspace scanner.

        Args:
            root: Workspace root directory
            namespace: Name prefix shared by the workspace's own packages
            skip_dirs: Directory names that are never descended into
            nested_segments: Path segments that mark sub-crates of another package
            manifest_name: File name of package manifests
        """
        self.root = Path(root)
        self.namespace = namespace
        self.skip_dirs = frozenset(skip_dirs)
        self.nested_segments = frozenset(nested_segments)
        self.manifest_name = manifest_name

    @classmethod
    def from_config(cls, config) -> "WorkspaceScanner":
        return cls(
            config.root,
            config.namespace,
            skip_dirs=config.skip_dirs,
            nested_segments=config.nested_segments,
            manifest_name=config.manifest_name,
        )

    def _walk(self, max_depth: int | None = None) -> Iterator[tuple[Path, list[str], list[str]]]:
        """os.walk over the root, pruning skipped directories in place."""
        for dirpath, dirnames, filenames in os.walk(self.root, followlinks=False):
            current = Path(dirpath)
            depth = len(current.relative_to(self.root).parts)
            dirnames[:] = sorted(d for d in dirnames if d not in self.skip_dirs)
            if max_depth is not None and depth >= max_depth:
                dirnames[:] = []
            yield current, dirnames, filenames

    def manifest_paths(self) -> list[Path]:
        """Paths of every manifest file in the workspace."""
        return [
            directory / self.manifest_name
            for directory, _, filenames in self._walk()
            if self.manifest_name in filenames
        ]

    def find_manifests(self) -> list[CargoManifest]:
        """Load every manifest in the workspace.

        Files that fail to load are logged and skipped.
        """
        manifests = []
        for path in self.manifest_paths():
            try:
                manifests.append(load_manifest(path))
            except ManifestError as e:
                logger.warning("Skipping %s: %s", path, e)
        return manifests

    def is_nested(self, manifest_path: Path) -> bool:
        """Whether a manifest lives inside another package's sub-crate or build tree."""
        try:
            relative = manifest_path.relative_to(self.root)
        except ValueError:
            relative = manifest_path
        return any(part in self.nested_segments for part in relative.parts[:-1])

    def find_namespaced_packages(self) -> list[CargoManifest]:
        """Find the workspace's own top-level packages, sorted by package name."""
        packages = [
            m
            for m in self.find_manifests()
            if is_namespaced(m.package_name, self.namespace) and not self.is_nested(m.path)
        ]
        packages.sort(key=lambda m: m.package_name)
        return packages

    def find_repositories(self, max_depth: int = 1) -> list[Path]:
        """Find git repositories at most ``max_depth`` levels below the root."""
        repos = []
        for directory, _, _ in self._walk(max_depth=max_depth):
            # .git is a skipped directory, or a file in worktrees and submodules
            if (directory / ".git").exists():
                repos.append(directory)
        return sorted(repos)
