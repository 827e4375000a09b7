"""Version bumping and consistency checks across the workspace."""

import logging
from collections import defaultdict
from enum import Enum
from pathlib import Path

from semver import Version

from .errors import NoPackagesFoundError
from .manifest import CargoManifest
from .models import VersionChange, VersionInconsistency, VersionReport
from .workspace import WorkspaceScanner

logger = logging.getLogger(__name__)

INITIAL_PRERELEASE = "alpha.1"


class BumpType(str, Enum):
    """Type of version bump to perform."""

    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"
    PRERELEASE = "prerelease"


def _next_prerelease(label: str | None) -> str:
    """alpha.1 -> alpha.2; rc -> rc.1; nothing -> alpha.1."""
    if not label:
        return INITIAL_PRERELEASE
    prefix, dot, suffix = label.rpartition(".")
    if dot and suffix.isdigit():
        return f"{prefix}.{int(suffix) + 1}"
    return f"{label}.1"


def calculate_new_version(current: Version, bump_type: BumpType) -> Version:
    """Compute the version that follows ``current`` for a bump type.

    Major, minor and patch bumps zero every lower field and drop the
    prerelease label. A prerelease bump keeps the release numbers and
    advances the label.
    """
    if bump_type == BumpType.MAJOR:
        return current.replace(major=current.major + 1, minor=0, patch=0, prerelease=None)
    if bump_type == BumpType.MINOR:
        return current.replace(minor=current.minor + 1, patch=0, prerelease=None)
    if bump_type == BumpType.PATCH:
        return current.replace(patch=current.patch + 1, prerelease=None)
    if bump_type == BumpType.PRERELEASE:
        return current.replace(prerelease=_next_prerelease(current.prerelease))
    raise ValueError(f"Unknown bump type: {bump_type}")


class VersionManager:
    """Manages version updates across the workspace."""

    def __init__(
        self,
        workspace_root: str | Path,
        namespace: str,
        scanner: WorkspaceScanner | None = None,
    ):
        self.workspace_root = Path(workspace_root)
        self.namespace = namespace
        self.scanner = scanner or WorkspaceScanner(self.workspace_root, namespace)

    @classmethod
    def from_config(cls, config) -> "VersionManager":
        return cls(config.root, config.namespace, WorkspaceScanner.from_config(config))

    def _load_packages(self) -> list[CargoManifest]:
        packages = self.scanner.find_namespaced_packages()
        if not packages:
            raise NoPackagesFoundError(self.namespace, self.workspace_root)
        return packages

    def bump_versions(self, bump_type: BumpType, dry_run: bool = False) -> list[VersionChange]:
        """Bump every namespaced package and propagate the new versions.

        All changes are computed before anything is mutated, so a dry run
        returns exactly what a real run would apply.

        Args:
            bump_type: Which part of the version to bump
            dry_run: Compute the changes without touching any file

        Returns:
            One VersionChange per package, in package name order
        """
        manifests = self._load_packages()

        changes = [
            VersionChange(
                package=m.package_name,
                path=m.path,
                old_version=m.version,
                new_version=calculate_new_version(m.version, bump_type),
            )
            for m in manifests
        ]

        if dry_run:
            logger.info("Dry run: %d package(s) would be bumped", len(changes))
            return changes

        for manifest, change in zip(manifests, changes):
            manifest.set_version(change.new_version)

        self._update_dependencies(manifests, changes)

        for manifest in manifests:
            manifest.save()
        logger.info("Bumped %d package(s)", len(changes))

        return changes

    def _update_dependencies(self, manifests: list[CargoManifest], changes: list[VersionChange]) -> None:
        """Point every in-workspace dependency at its package's new version."""
        new_versions = {c.package: c.new_version for c in changes}

        for manifest in manifests:
            # One update covers all three sections
            names = {
                d.name
                for d in manifest.namespaced_dependencies(self.namespace)
                if d.name in new_versions
            }
            for name in sorted(names):
                manifest.update_dependency(name, new_versions[name])
                logger.debug("%s: %s -> %s", manifest.package_name, name, new_versions[name])

    def check_consistency(self) -> VersionReport:
        """Check for major version drift and stale dependency versions.

        Every offending package/dependency pair is reported, not just the first.
        """
        manifests = self._load_packages()
        package_versions = {m.package_name: m.version for m in manifests}
        report = VersionReport(total_packages=len(manifests), package_versions=package_versions)

        by_major: dict[int, list[str]] = defaultdict(list)
        for manifest in manifests:
            by_major[manifest.version.major].append(manifest.package_name)

        if len(by_major) > 1:
            report.drift_detected = True
            for major in sorted(by_major):
                packages = by_major[major]
                report.issues.append(
                    f"Version drift: {len(packages)} package(s) on major version {major}: "
                    + ", ".join(packages)
                )

        for manifest in manifests:
            for dep in manifest.namespaced_dependencies(self.namespace):
                # Path dependencies are resolved locally whatever they declare
                if dep.version is None or dep.is_local:
                    continue
                actual = package_versions.get(dep.name)
                if actual is not None and dep.version != actual:
                    report.inconsistencies.append(
                        VersionInconsistency(
                            package=manifest.package_name,
                            dependency=dep.name,
                            expected=actual,
                            found=dep.version,
                        )
                    )

        return report
