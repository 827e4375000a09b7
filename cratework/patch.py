"""Cargo patch management for local development.

Redirects git dependencies to local checkouts by writing
``[patch."<git url>"]`` sections into the workspace's ``.cargo/config.toml``,
and removes them again without disturbing anything else in that file.
"""

import logging
from collections import defaultdict
from collections.abc import Mapping
from pathlib import Path

import tomlkit
from tomlkit.exceptions import TOMLKitError
from tomlkit.toml_document import TOMLDocument

from .config import WorkspaceConfig
from .errors import CommandError, PatchError
from .manifest import is_namespaced
from .models import GitDependency, PatchReport, ResetReport
from .process import run_command
from .workspace import WorkspaceScanner

logger = logging.getLogger(__name__)


class PatchManager:
    """Applies and removes local path patches for git dependencies."""

    def __init__(self, workspace_root: str | Path, namespace: str, config: WorkspaceConfig | None = None):
        self.workspace_root = Path(workspace_root)
        self.namespace = namespace
        self.config = config or WorkspaceConfig(root=self.workspace_root, namespace=namespace)
        self.scanner = WorkspaceScanner.from_config(self.config)

    @classmethod
    def from_config(cls, config: WorkspaceConfig) -> "PatchManager":
        return cls(config.root, config.namespace, config)

    @property
    def config_path(self) -> Path:
        return self.config.overlay_path

    def discover_patchable_dependencies(self) -> list[GitDependency]:
        """Find git dependencies that have a matching package checked out locally.

        A dependency qualifies when it has a git URL, its name is one of the
        workspace's own packages, and ``<root>/<name>/Cargo.toml`` exists.
        When several manifests declare the same dependency, the last one
        scanned wins.
        """
        manifests = self.scanner.find_manifests()

        available = {
            m.package_name for m in manifests if is_namespaced(m.package_name, self.namespace)
        }

        found: dict[str, GitDependency] = {}
        for manifest in manifests:
            for dep in manifest.dependencies:
                if dep.git is None or dep.name not in available:
                    continue

                local_path = self.find_local_repo_path(dep.name)
                if local_path is None:
                    continue

                previous = found.get(dep.name)
                if previous and (previous.git_url, previous.branch_or_tag) != (dep.git, dep.ref):
                    logger.warning(
                        "%s is declared as %s (%s) and %s (%s); using the one from %s",
                        dep.name,
                        previous.git_url,
                        previous.branch_or_tag,
                        dep.git,
                        dep.ref,
                        manifest.path,
                    )

                found[dep.name] = GitDependency(
                    name=dep.name,
                    git_url=dep.git,
                    branch_or_tag=dep.ref,
                    local_path=local_path,
                )

        return sorted(found.values(), key=lambda d: d.name)

    def find_local_repo_path(self, name: str) -> Path | None:
        """Local checkout of a package, if one exists next to the others."""
        expected = self.workspace_root / name
        if (expected / self.config.manifest_name).is_file():
            return expected
        return None

    def _read_config(self) -> TOMLDocument:
        try:
            return tomlkit.parse(self.config_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, TOMLKitError) as e:
            raise PatchError(f"Failed to read {self.config_path}: {e}") from e

    def _write_config(self, document: TOMLDocument) -> None:
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            self.config_path.write_text(tomlkit.dumps(document), encoding="utf-8")
        except OSError as e:
            raise PatchError(f"Failed to write {self.config_path}: {e}") from e

    def apply_patches(self, deps: list[GitDependency], verify: bool = False) -> PatchReport:
        """Write local path patches into the overlay document.

        Dependencies fetched from the same git URL share one patch section.

        Args:
            deps: Dependencies to redirect to their local checkouts
            verify: Run the verification command afterwards

        Returns:
            PatchReport; a failed verification is recorded, not raised
        """
        document = self._read_config() if self.config_path.exists() else tomlkit.document()
        patch_key = self.config.patch_key

        by_url: dict[str, list[GitDependency]] = defaultdict(list)
        for dep in deps:
            by_url[dep.git_url].append(dep)

        if by_url and patch_key not in document:
            document[patch_key] = tomlkit.table(is_super_table=True)

        patched_count = 0
        for git_url, url_deps in by_url.items():
            patch_table = document[patch_key]
            if git_url not in patch_table:
                patch_table[git_url] = tomlkit.table()

            source_table = patch_table[git_url]
            for dep in url_deps:
                entry = tomlkit.inline_table()
                entry["path"] = str(dep.local_path)
                source_table[dep.name] = entry
                patched_count += 1

        self._write_config(document)
        logger.info("Wrote %d patch(es) to %s", patched_count, self.config_path)

        report = PatchReport(patched_count=patched_count, config_path=self.config_path)

        if verify:
            error = self.verify_patches()
            if error is None:
                report.verified = True
            else:
                report.verification_error = error

        return report

    def verify_patches(self) -> str | None:
        """Run the verification command; returns an error message on failure."""
        argv = list(self.config.verify_command)
        try:
            result = run_command(argv, cwd=self.workspace_root, timeout=self.config.command_timeout)
        except CommandError as e:
            return str(e)

        if not result.success:
            return f"{' '.join(argv)} failed:\n{result.stderr.strip()}"
        return None

    def remove_patches(self) -> ResetReport:
        """Remove every patch section from the overlay document.

        Handles both the nested ``[patch."<url>"]`` form and literal
        top-level ``"patch.<...>"`` keys. Everything else in the file is kept;
        if nothing else is left, the file is deleted.
        """
        if not self.config_path.exists():
            return ResetReport(removed_count=0, config_path=self.config_path)

        document = self._read_config()
        patch_key = self.config.patch_key

        removed_count = 0
        keys_to_remove = []
        for key, item in document.items():
            if key == patch_key:
                if isinstance(item, Mapping):
                    removed_count += sum(len(t) for t in item.values() if isinstance(t, Mapping))
                keys_to_remove.append(key)
            elif key.startswith(f"{patch_key}."):
                if isinstance(item, Mapping):
                    removed_count += len(item)
                keys_to_remove.append(key)

        for key in keys_to_remove:
            del document[key]

        if len(document) == 0:
            try:
                self.config_path.unlink()
            except OSError as e:
                raise PatchError(f"Failed to delete {self.config_path}: {e}") from e
            logger.info("Removed %d patch(es), deleted empty %s", removed_count, self.config_path)
            return ResetReport(removed_count=removed_count, config_path=self.config_path, config_deleted=True)

        self._write_config(document)
        logger.info("Removed %d patch(es) from %s", removed_count, self.config_path)
        return ResetReport(removed_count=removed_count, config_path=self.config_path)

    def clean_cache(self) -> None:
        """Run the clean command, useful after removing patches."""
        argv = list(self.config.clean_command)
        try:
            result = run_command(argv, cwd=self.workspace_root, timeout=self.config.command_timeout)
        except CommandError as e:
            raise PatchError(str(e)) from e

        if not result.success:
            raise PatchError(f"{' '.join(argv)} failed:\n{result.stderr.strip()}")
