"""Workspace health checks.

Runs independent checks (git status, version alignment, tests, docs, spec
coverage) concurrently and folds their results into one report. A check that
blows up is logged and left out of the report; it never takes the other
checks down with it.
"""

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from .config import WorkspaceConfig
from .errors import CommandError, CrateworkError, HealthTaskError
from .git import get_git_status
from .manifest import CargoManifest
from .models import CommandResult
from .process import run_command_async
from .version import VersionManager
from .workspace import WorkspaceScanner

logger = logging.getLogger(__name__)

SPEC_SUFFIXES = (".md", ".txt")


class HealthCheckType(str, Enum):
    """Types of health checks that can be performed."""

    GIT = "git"
    VERSION = "version"
    TESTS = "tests"
    DOCS = "docs"
    SPECS = "specs"

    @classmethod
    def parse(cls, value: str) -> "HealthCheckType":
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid = ", ".join(t.value for t in cls)
            raise ValueError(f"Unknown health check type: '{value}'. Valid types: {valid}") from None


class HealthStatus(str, Enum):
    """Outcome of a health check, ordered pass < warn < fail."""

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    def is_critical(self) -> bool:
        return self is HealthStatus.FAIL


_SEVERITY = {HealthStatus.PASS: 0, HealthStatus.WARN: 1, HealthStatus.FAIL: 2}


def fold_status(statuses: Iterable[HealthStatus]) -> HealthStatus:
    """Most severe status of the lot; pass when there are none."""
    return max(statuses, key=lambda s: s.severity, default=HealthStatus.PASS)


class HealthCheckResult(BaseModel):
    """Result of a single health check."""

    check_type: HealthCheckType
    status: HealthStatus
    message: str
    details: list[str] = Field(default_factory=list)


class HealthReport(BaseModel):
    """Overall health report for the workspace."""

    timestamp: str
    workspace_root: Path
    checks: list[HealthCheckResult]
    overall_status: HealthStatus

    def has_failures(self) -> bool:
        return any(c.status.is_critical() for c in self.checks)


ALL_CHECKS = tuple(HealthCheckType)

_CHECK_METHODS = {
    HealthCheckType.GIT: "check_git_status",
    HealthCheckType.VERSION: "check_version_alignment",
    HealthCheckType.TESTS: "check_tests",
    HealthCheckType.DOCS: "check_docs",
    HealthCheckType.SPECS: "check_spec_coverage",
}


class HealthChecker:
    """Health checker for the workspace."""

    def __init__(
        self,
        workspace_root: str | Path,
        namespace: str,
        config: WorkspaceConfig | None = None,
        max_concurrency: int | None = None,
    ):
        """Initialize health checker.

        Args:
            workspace_root: Workspace root directory
            namespace: Name prefix of the workspace's own packages
            config: Full workspace configuration, defaults derived from the above
            max_concurrency: Maximum cargo processes running at once
        """
        self.workspace_root = Path(workspace_root)
        self.namespace = namespace
        self.config = config or WorkspaceConfig(root=self.workspace_root, namespace=namespace)
        self.scanner = WorkspaceScanner.from_config(self.config)
        self.version_manager = VersionManager(self.workspace_root, namespace, self.scanner)
        self._semaphore = asyncio.Semaphore(max_concurrency or self.config.max_concurrency)

    @classmethod
    def from_config(cls, config: WorkspaceConfig) -> "HealthChecker":
        return cls(config.root, config.namespace, config)

    async def check_all(self, verbose: bool = False) -> HealthReport:
        """Run all health checks in parallel."""
        return await self.check_selected(ALL_CHECKS, verbose)

    async def check_selected(self, check_types: Iterable[HealthCheckType], verbose: bool = False) -> HealthReport:
        """Run selected health checks in parallel.

        Args:
            check_types: Checks to run; duplicates run once
            verbose: Include per-file detail where a check supports it

        Returns:
            Report holding every check that completed
        """
        requested = list(dict.fromkeys(check_types))
        outcomes = await asyncio.gather(
            *(self._run_check(check_type, verbose) for check_type in requested),
            return_exceptions=True,
        )

        results = []
        for check_type, outcome in zip(requested, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Health check %s failed: %s", check_type.value, outcome)
                continue
            results.append(outcome)

        return HealthReport(
            timestamp=datetime.now().astimezone().isoformat(timespec="seconds"),
            workspace_root=self.workspace_root,
            checks=results,
            overall_status=fold_status(r.status for r in results),
        )

    async def _run_check(self, check_type: HealthCheckType, verbose: bool) -> HealthCheckResult:
        check = getattr(self, _CHECK_METHODS[check_type])
        try:
            return await check(verbose)
        except Exception as e:
            raise HealthTaskError(check_type.value, e) from e

    def _display_name(self, path: Path) -> str:
        try:
            relative = path.relative_to(self.workspace_root)
        except ValueError:
            return str(path)
        return str(relative) if relative.parts else "."

    async def check_git_status(self, verbose: bool = False) -> HealthCheckResult:
        """Check git status across all repositories.

        Uncommitted changes fail the check. Divergence from upstream and
        missing upstreams only warn.
        """
        repos = await asyncio.to_thread(self.scanner.find_repositories)
        dirty_repos = 0
        details = []
        warnings = []

        for repo_path in repos:
            repo_name = self._display_name(repo_path)
            try:
                status = await get_git_status(repo_path, timeout=self.config.command_timeout)
            except CommandError as e:
                warnings.append(f"Failed to check {repo_name}: {e}")
                continue

            if status.is_dirty:
                dirty_repos += 1
                details.append(
                    f"{repo_name}: {len(status.dirty_files)} dirty file(s) on branch {status.branch}"
                )
                if verbose:
                    details.extend(f"  - {f}" for f in status.dirty_files)

            if status.ahead or status.behind:
                warnings.append(
                    f"{repo_name}: {status.ahead} ahead, {status.behind} behind upstream on {status.branch}"
                )

            if not status.has_upstream:
                warnings.append(f"{repo_name}: no upstream configured for {status.branch}")

        if dirty_repos:
            check_status = HealthStatus.FAIL
            message = f"Found {dirty_repos} repositories with uncommitted changes"
        elif warnings:
            check_status = HealthStatus.WARN
            message = f"All repositories clean, {len(warnings)} warning(s)"
        else:
            check_status = HealthStatus.PASS
            message = f"All {len(repos)} repositories are clean and synced"

        return HealthCheckResult(
            check_type=HealthCheckType.GIT,
            status=check_status,
            message=message,
            details=details + warnings,
        )

    async def check_version_alignment(self, verbose: bool = False) -> HealthCheckResult:
        """Check version alignment across packages."""
        try:
            report = await asyncio.to_thread(self.version_manager.check_consistency)
        except CrateworkError as e:
            return HealthCheckResult(
                check_type=HealthCheckType.VERSION,
                status=HealthStatus.FAIL,
                message=f"Failed to check versions: {e}",
            )

        if not report.has_issues():
            return HealthCheckResult(
                check_type=HealthCheckType.VERSION,
                status=HealthStatus.PASS,
                message=f"All {report.total_packages} packages have consistent versions",
            )

        details = list(report.issues)
        details.extend(
            f"{inc.package} depends on {inc.dependency} {inc.found} (expected: {inc.expected})"
            for inc in report.inconsistencies
        )
        return HealthCheckResult(
            check_type=HealthCheckType.VERSION,
            status=HealthStatus.FAIL,
            message=(
                f"Version inconsistencies detected: {len(report.issues)} issue(s), "
                f"{len(report.inconsistencies)} dependency mismatch(es)"
            ),
            details=details,
        )

    async def _run_package_command(
        self, template: tuple[str, ...], manifest: CargoManifest
    ) -> CommandResult | CommandError:
        """Run a per-package command; spawn failures and timeouts are returned, not raised."""
        argv = self.config.package_command(template, manifest.path)
        async with self._semaphore:
            try:
                return await run_command_async(
                    argv, cwd=manifest.path.parent, timeout=self.config.command_timeout
                )
            except CommandError as e:
                return e

    async def _run_for_packages(
        self, template: tuple[str, ...]
    ) -> list[tuple[CargoManifest, CommandResult | CommandError]]:
        packages = await asyncio.to_thread(self.scanner.find_namespaced_packages)
        outcomes = await asyncio.gather(
            *(self._run_package_command(template, pkg) for pkg in packages)
        )
        return list(zip(packages, outcomes))

    async def check_tests(self, verbose: bool = False) -> HealthCheckResult:
        """Run each package's tests; any failure fails the check."""
        outcomes = await self._run_for_packages(self.config.test_command)
        passed = 0
        failed = 0
        details = []

        for manifest, outcome in outcomes:
            name = manifest.package_name
            if isinstance(outcome, CommandError):
                failed += 1
                details.append(f"{name}: failed to run tests: {outcome}")
            elif outcome.success:
                passed += 1
            else:
                failed += 1
                details.append(f"{name}: tests failed")
                output = f"{outcome.stdout}\n{outcome.stderr}"
                details.extend(
                    f"  {line.strip()}"
                    for line in output.splitlines()
                    if "test result:" in line or "FAILED" in line
                )

        return HealthCheckResult(
            check_type=HealthCheckType.TESTS,
            status=HealthStatus.FAIL if failed else HealthStatus.PASS,
            message=f"Tests: {passed} passed, {failed} failed out of {len(outcomes)} packages",
            details=details,
        )

    async def check_docs(self, verbose: bool = False) -> HealthCheckResult:
        """Build each package's docs with warnings denied; failures only warn."""
        outcomes = await self._run_for_packages(self.config.doc_command)
        passed = 0
        warned = 0
        details = []

        for manifest, outcome in outcomes:
            name = manifest.package_name
            if isinstance(outcome, CommandError):
                warned += 1
                details.append(f"{name}: failed to check docs: {outcome}")
            elif outcome.success:
                passed += 1
            else:
                warned += 1
                warning_count = sum(
                    1
                    for line in outcome.stderr.splitlines()
                    if "warning:" in line or "missing documentation" in line
                )
                if warning_count:
                    details.append(f"{name}: {warning_count} documentation warning(s)")
                else:
                    details.append(f"{name}: doc build failed (exit status {outcome.exit_status})")

        return HealthCheckResult(
            check_type=HealthCheckType.DOCS,
            status=HealthStatus.WARN if warned else HealthStatus.PASS,
            message=(
                f"Documentation: {passed} clean, {warned} with warnings "
                f"out of {len(outcomes)} packages"
            ),
            details=details,
        )

    def _spec_coverage(self) -> tuple[int, int, list[str]]:
        with_specs = 0
        details = []
        packages = self.scanner.find_namespaced_packages()

        for manifest in packages:
            specs_dir = manifest.path.parent / self.config.specs_dir
            name = manifest.package_name
            if specs_dir.is_dir():
                with_specs += 1
                spec_count = sum(
                    1 for p in specs_dir.rglob("*") if p.is_file() and p.suffix in SPEC_SUFFIXES
                )
                if spec_count:
                    details.append(f"{name}: {spec_count} spec file(s)")
            else:
                details.append(f"{name}: missing {self.config.specs_dir}/ directory")

        return with_specs, len(packages), details

    async def check_spec_coverage(self, verbose: bool = False) -> HealthCheckResult:
        """Check which packages carry a specs/ directory."""
        with_specs, total, details = await asyncio.to_thread(self._spec_coverage)
        coverage = (with_specs / total) * 100.0 if total else 0.0

        return HealthCheckResult(
            check_type=HealthCheckType.SPECS,
            status=HealthStatus.WARN if with_specs < total else HealthStatus.PASS,
            message=(
                f"Spec coverage: {coverage:.1f}% "
                f"({with_specs}/{total} packages with {self.config.specs_dir}/)"
            ),
            details=details,
        )
