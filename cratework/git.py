"""Git repository status probing."""

import re
from pathlib import Path

from .errors import CommandError
from .models import GitStatus
from .process import run_command_async

STATUS_COMMAND = ["git", "status", "--porcelain=v2", "--branch"]

_AHEAD_BEHIND = re.compile(r"^\+(\d+) -(\d+)$")

# Number of space-separated fields preceding the path, per entry type
_PATH_FIELD = {"1": 8, "2": 9, "u": 10}


def _entry_path(line: str) -> str | None:
    """Extract the path from one porcelain v2 entry line."""
    kind = line[:1]
    if kind == "?":
        return line[2:]
    if kind in _PATH_FIELD:
        parts = line.split(" ", _PATH_FIELD[kind])
        if len(parts) <= _PATH_FIELD[kind]:
            return None
        # Renames carry "<path>\t<original path>"
        return parts[-1].split("\t", 1)[0]
    return None


def parse_porcelain_v2(output: str, repo_path: Path) -> GitStatus:
    """Parse ``git status --porcelain=v2 --branch`` output."""
    status = GitStatus(repo_path=repo_path, branch="(unknown)")

    for line in output.splitlines():
        if line.startswith("# branch.head "):
            status.branch = line[len("# branch.head "):]
        elif line.startswith("# branch.upstream "):
            status.has_upstream = True
        elif line.startswith("# branch.ab "):
            match = _AHEAD_BEHIND.match(line[len("# branch.ab "):])
            if match:
                status.ahead = int(match.group(1))
                status.behind = int(match.group(2))
        elif line.startswith("#") or not line:
            continue
        else:
            path = _entry_path(line)
            if path:
                status.dirty_files.append(path)

    return status


async def get_git_status(repo_path: Path, timeout: float | None = None) -> GitStatus:
    """Probe branch, dirty files and upstream divergence of a repository.

    Raises:
        CommandError: git could not be run or rejected the directory
    """
    result = await run_command_async(STATUS_COMMAND, cwd=repo_path, timeout=timeout)
    if not result.success:
        raise CommandError(STATUS_COMMAND, result.stderr.strip() or f"exit status {result.exit_status}")
    return parse_porcelain_v2(result.stdout, repo_path)
