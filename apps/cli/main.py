"""CLI application for cratework."""

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from cratework.config import WorkspaceConfig, find_workspace_root, load_config
from cratework.health import HealthChecker, HealthCheckType, HealthReport, HealthStatus
from cratework.models import PatchReport, ResetReport, VersionChange, VersionReport
from cratework.patch import PatchManager
from cratework.version import BumpType, VersionManager

console = Console()
logger = logging.getLogger("cratework.cli")

DETAIL_LIMIT = 3

STATUS_STYLES = {
    HealthStatus.PASS: ("✓", "green"),
    HealthStatus.WARN: ("⚠", "yellow"),
    HealthStatus.FAIL: ("✗", "red"),
}

STATUS_EMOJI = {
    HealthStatus.PASS: "✅",
    HealthStatus.WARN: "⚠️",
    HealthStatus.FAIL: "❌",
}


def configure_logging(level: str) -> None:
    """Send log records to stderr through rich."""
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    logging.basicConfig(level=level.upper(), format="%(message)s", handlers=[handler], force=True)


def resolve_config(workspace_root: str | None, namespace: str | None) -> WorkspaceConfig:
    """Pick the workspace root (explicit, cratework.toml above cwd, or cwd) and load its config."""
    if workspace_root:
        root = Path(workspace_root)
    else:
        cwd = Path.cwd()
        root = find_workspace_root(cwd) or cwd
    return load_config(root, namespace=namespace)


def select_bump_type(major: bool, minor: bool, patch: bool, prerelease: bool) -> BumpType:
    """Map the bump flags to a BumpType; prerelease when none is given."""
    selected = [
        bump
        for bump, flag in (
            (BumpType.MAJOR, major),
            (BumpType.MINOR, minor),
            (BumpType.PATCH, patch),
            (BumpType.PRERELEASE, prerelease),
        )
        if flag
    ]
    if len(selected) > 1:
        raise typer.BadParameter("Use only one of --major, --minor, --patch, --prerelease")
    return selected[0] if selected else BumpType.PRERELEASE


def parse_check_types(values: list[str] | None) -> list[HealthCheckType]:
    """Parse ``--check`` values, each of which may be comma separated."""
    if not values:
        return list(HealthCheckType)
    names = [name for value in values for name in value.split(",") if name.strip()]
    return [HealthCheckType.parse(name) for name in names]


def print_version_changes(changes: list[VersionChange], dry_run: bool) -> None:
    console.print("\n[bold green]Version Changes:[/bold green]")
    for change in changes:
        console.print(
            f"  [bold]{change.package}[/bold] "
            f"[red]{change.old_version}[/red] → [green]{change.new_version}[/green]",
            soft_wrap=True,
        )

    if dry_run:
        console.print(f"\n[bold blue]Info:[/bold blue] {len(changes)} package(s) would be updated")
        console.print("[bold cyan]Next:[/bold cyan] re-run without --dry-run to apply")
    else:
        console.print(f"\n[bold green]✓[/bold green] {len(changes)} package(s) updated")
        console.print(
            f"\n[bold cyan]Next:[/bold cyan] git commit -am "
            f"\"chore: bump version to {changes[0].new_version}\"",
            soft_wrap=True,
        )


def print_version_report(report: VersionReport, verbose: bool) -> None:
    console.print(f"\n[bold blue]Scanned:[/bold blue] {report.total_packages} package(s) scanned")

    if report.has_issues():
        console.print("\n[bold red]Issues Found:[/bold red]")
        for issue in report.issues:
            console.print(f"  [red]•[/red] {escape(issue)}", soft_wrap=True)

        if report.inconsistencies:
            console.print("\n[bold yellow]Dependency Inconsistencies:[/bold yellow]")
            for inc in report.inconsistencies:
                console.print(
                    f"  [yellow]•[/yellow] [bold]{inc.package}[/bold] depends on {inc.dependency} "
                    f"[red]{inc.found}[/red] (expected: [green]{inc.expected}[/green])",
                    soft_wrap=True,
                )

        console.print(
            "\n[bold cyan]Suggestion:[/bold cyan] Run 'cratework bump-version --prerelease' to fix"
        )
        return

    console.print("\n[bold green]✓[/bold green] All versions are consistent!")
    if verbose:
        console.print("\n[bold blue]Package Versions:[/bold blue]")
        for name, version in report.package_versions.items():
            console.print(f"  {name} {version}", soft_wrap=True)


def print_patch_report(report: PatchReport) -> None:
    console.print(
        f"\n[bold green]✓[/bold green] {report.patched_count} patches written to {report.config_path}",
        soft_wrap=True,
    )

    if report.verified:
        console.print("[bold green]✓[/bold green] Patches verified successfully")
    elif report.verification_error:
        console.print(
            f"[bold red]✗[/bold red] Verification failed: {escape(report.verification_error)}",
            soft_wrap=True,
        )
        console.print("\n[bold cyan]Suggestion:[/bold cyan] Run 'cargo build' to diagnose the issue")


def print_reset_report(report: ResetReport) -> None:
    if report.removed_count == 0:
        console.print("[bold blue]Info:[/bold blue] No patches found to remove")
        return

    console.print(f"\n[bold green]✓[/bold green] {report.removed_count} patches removed")
    state = "deleted (empty)" if report.config_deleted else "updated"
    console.print(f"  [dim]{report.config_path}[/dim] {state}", soft_wrap=True)


def split_details(details: list[str], verbose: bool, limit: int = DETAIL_LIMIT) -> tuple[list[str], int]:
    """Details to show and how many were left out."""
    if verbose or len(details) <= limit:
        return details, 0
    return details[:limit], len(details) - limit


def print_health_report(report: HealthReport, verbose: bool) -> None:
    """Print a colorized terminal report."""
    console.rule("[bold]Workspace Health Report[/bold]")
    console.print(f"[cyan]Generated:[/cyan] {report.timestamp}")
    console.print(f"[cyan]Workspace:[/cyan] {report.workspace_root}", soft_wrap=True)

    _, color = STATUS_STYLES[report.overall_status]
    console.print(
        f"[cyan]Overall Status:[/cyan] [bold {color}]{report.overall_status.value.upper()}[/bold {color}]\n"
    )

    for check in report.checks:
        icon, color = STATUS_STYLES[check.status]
        console.print(
            f"[{color}]{icon}[/{color}] [bold]{check.check_type.value}[/bold] "
            f"[dim]\\[{check.status.value}][/dim]"
        )
        console.print(f"  {escape(check.message)}", soft_wrap=True)

        shown, hidden = split_details(check.details, verbose)
        for detail in shown:
            console.print(f"    • [dim]{escape(detail)}[/dim]", soft_wrap=True)
        if hidden:
            console.print(f"    [dim]... {hidden} more details (use --verbose)[/dim]")
        console.print()

    console.rule()


def format_markdown_report(report: HealthReport) -> str:
    """Generate a Markdown report."""
    lines = [
        "# Workspace Health Report",
        "",
        f"**Generated:** {report.timestamp}",
        f"**Workspace:** `{report.workspace_root}`",
        "",
        f"**Overall Status:** {STATUS_EMOJI[report.overall_status]} {report.overall_status.value.upper()}",
        "",
        "## Check Results",
        "",
    ]

    for check in report.checks:
        lines.append(f"### {STATUS_EMOJI[check.status]} {check.check_type.value} Check")
        lines.append("")
        lines.append(f"**Status:** {check.status.value.upper()}")
        lines.append("")
        lines.append(check.message)
        lines.append("")

        if check.details:
            lines.append("**Details:**")
            lines.append("")
            lines.extend(f"- {detail}" for detail in check.details)
            lines.append("")

    return "\n".join(lines)


def format_json_report(report: HealthReport) -> str:
    """Format the report as JSON."""
    return report.model_dump_json(indent=2)


app = typer.Typer(
    name="cratework",
    help="cratework - Keep versions, local patches and health consistent across a Cargo workspace",
    add_completion=False,
)

WorkspaceRootOption = typer.Option(
    None, "--workspace-root", "-w", help="Workspace root directory (defaults to current directory)"
)
NamespaceOption = typer.Option(
    None, "--namespace", "-n", help="Package name prefix of the workspace's own packages"
)


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level for diagnostics on stderr"),
) -> None:
    """cratework - Keep versions, local patches and health consistent across a Cargo workspace."""
    configure_logging(log_level)


@app.command("bump-version")
def bump_version(
    major: bool = typer.Option(False, "--major", help="Bump major version (X.0.0)"),
    minor: bool = typer.Option(False, "--minor", help="Bump minor version (0.X.0)"),
    patch: bool = typer.Option(False, "--patch", help="Bump patch version (0.0.X)"),
    prerelease: bool = typer.Option(False, "--prerelease", help="Bump prerelease version (0.0.0-alpha.X)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would change without writing"),
    workspace_root: str | None = WorkspaceRootOption,
    namespace: str | None = NamespaceOption,
) -> None:
    """Bump the version of every package and update their inter-dependencies."""
    try:
        bump_type = select_bump_type(major, minor, patch, prerelease)
        config = resolve_config(workspace_root, namespace)
        manager = VersionManager.from_config(config)

        if dry_run:
            console.print("[bold yellow]Dry run mode - no changes will be made[/bold yellow]")
        console.print(f"[bold cyan]Performing[/bold cyan] {bump_type.value} version bump...")

        changes = manager.bump_versions(bump_type, dry_run=dry_run)
        print_version_changes(changes, dry_run)

    except typer.Exit:
        raise
    except Exception as e:
        logger.debug("bump-version failed", exc_info=True)
        console.print(f"Error: {escape(str(e))}", style="red", soft_wrap=True)
        raise typer.Exit(1)


@app.command("check-versions")
def check_versions(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="List every package version"),
    workspace_root: str | None = WorkspaceRootOption,
    namespace: str | None = NamespaceOption,
) -> None:
    """Check version consistency across packages."""
    try:
        config = resolve_config(workspace_root, namespace)
        manager = VersionManager.from_config(config)

        console.print("[bold cyan]Checking version consistency...[/bold cyan]")
        report = manager.check_consistency()
        print_version_report(report, verbose)

        if report.has_issues():
            raise typer.Exit(1)

    except typer.Exit:
        raise
    except Exception as e:
        logger.debug("check-versions failed", exc_info=True)
        console.print(f"Error: {escape(str(e))}", style="red", soft_wrap=True)
        raise typer.Exit(1)


@app.command("patch-local")
def patch_local(
    verify: bool = typer.Option(False, "--verify", help="Verify patches with cargo metadata"),
    workspace_root: str | None = WorkspaceRootOption,
    namespace: str | None = NamespaceOption,
) -> None:
    """Redirect git dependencies to local checkouts via .cargo/config.toml."""
    try:
        config = resolve_config(workspace_root, namespace)
        manager = PatchManager.from_config(config)

        console.print(
            f"[bold cyan]Discovering:[/bold cyan] Scanning for patchable dependencies in {config.root}...",
            soft_wrap=True,
        )
        deps = manager.discover_patchable_dependencies()

        if not deps:
            console.print("[bold blue]Info:[/bold blue] No git dependencies with local equivalents found")
            return

        console.print(f"\n[bold green]Discovered:[/bold green] Found {len(deps)} patchable dependencies:")
        for dep in deps:
            console.print(f"  [green]•[/green] [bold]{dep.name}[/bold] → [dim]{dep.local_path}[/dim]", soft_wrap=True)

        console.print(f"\n[bold cyan]Patching:[/bold cyan] Applying patches to {manager.config_path}...", soft_wrap=True)
        report = manager.apply_patches(deps, verify=verify)
        print_patch_report(report)

        if report.verification_error:
            raise typer.Exit(1)

        console.print("\n[bold green]Success:[/bold green] Local development mode enabled!")
        console.print("[bold cyan]Note:[/bold cyan] Run 'cratework patch-reset' to restore git dependencies")

    except typer.Exit:
        raise
    except Exception as e:
        logger.debug("patch-local failed", exc_info=True)
        console.print(f"Error: {escape(str(e))}", style="red", soft_wrap=True)
        raise typer.Exit(1)


@app.command("patch-reset")
def patch_reset(
    clean: bool = typer.Option(False, "--clean", help="Run cargo clean after removing patches"),
    workspace_root: str | None = WorkspaceRootOption,
    namespace: str | None = NamespaceOption,
) -> None:
    """Remove local path patches and restore git dependencies."""
    try:
        config = resolve_config(workspace_root, namespace)
        manager = PatchManager.from_config(config)

        console.print(f"[bold cyan]Resetting:[/bold cyan] Removing patches from {config.root}...", soft_wrap=True)
        report = manager.remove_patches()
        print_reset_report(report)

        if clean and report.removed_count > 0:
            console.print("  [dim]Cleaning cargo cache...[/dim]")
            try:
                manager.clean_cache()
                console.print("[bold green]✓[/bold green] Cargo cache cleaned")
            except Exception as e:
                console.print(f"[bold yellow]Warning:[/bold yellow] Failed to clean cache: {escape(str(e))}")

        if report.removed_count > 0:
            console.print("\n[bold green]Success:[/bold green] Git dependencies restored!")

    except typer.Exit:
        raise
    except Exception as e:
        logger.debug("patch-reset failed", exc_info=True)
        console.print(f"Error: {escape(str(e))}", style="red", soft_wrap=True)
        raise typer.Exit(1)


@app.command()
def health(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show every detail line"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON instead of terminal text"),
    output: str | None = typer.Option(None, "--output", "-o", help="Write a Markdown report to this file"),
    check: list[str] | None = typer.Option(
        None, "--check", help="Run specific checks only (git, version, tests, docs, specs)"
    ),
    workspace_root: str | None = WorkspaceRootOption,
    namespace: str | None = NamespaceOption,
) -> None:
    """Check workspace health: git status, versions, tests, docs, specs."""
    try:
        try:
            check_types = parse_check_types(check)
        except ValueError as e:
            console.print(f"Error: {escape(str(e))}", style="red")
            raise typer.Exit(1)

        config = resolve_config(workspace_root, namespace)
        checker = HealthChecker.from_config(config)

        if not json_output:
            console.print(
                f"[bold cyan]Analyzing:[/bold cyan] Checking workspace health in {config.root}...",
                soft_wrap=True,
            )

        report = asyncio.run(checker.check_selected(check_types, verbose))

        if json_output:
            console.print_json(format_json_report(report))
        else:
            print_health_report(report, verbose)

        if output:
            Path(output).write_text(format_markdown_report(report), encoding="utf-8")
            console.print(f"\n[bold green]Saved:[/bold green] Report written to {output}", soft_wrap=True)

        if report.has_failures():
            raise typer.Exit(1)

    except typer.Exit:
        raise
    except Exception as e:
        logger.debug("health failed", exc_info=True)
        console.print(f"Error: {escape(str(e))}", style="red", soft_wrap=True)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
