"""
Working-copy bridge for CCManager.

Runs clone, pull and diff against a local working copy through the git
executable and turns ``git diff --name-status`` output into FileChange
records.
"""

import asyncio
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path

from ccmanager.exceptions import CloneFailedError, CommandFailedError, NoLocalPathError
from ccmanager.logging import log_git_command
from ccmanager.types.changes import STATUS_CODES, ChangeType, FileChange
from ccmanager.types.repos import Repository

# Rename and copy codes carry a similarity score, e.g. "R087"
_SCORED_STATUS = re.compile(r"^([A-Z])(\d{0,3})$")


@dataclass(frozen=True)
class GitResult:
    """Outcome of a single git invocation."""

    returncode: int
    stdout: str
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def expand_path(path: str | Path) -> str:
    """Expand a ``~``-relative path and make it absolute."""
    return os.path.abspath(os.path.expanduser(str(path)))


def parse_name_status(output: str) -> list[FileChange]:
    """
    Parse ``git diff --name-status`` output.

    Each line is ``<status>\\t<path>`` (renames carry ``\\t<new path>``).
    A, M, D and R map to a ChangeType; any other status or malformed line is
    skipped. Output order follows input order. Additions and deletions are
    left at zero and no patch is attached.

    Args:
        output: Raw standard output of the diff command

    Returns:
        List of FileChange records
    """
    changes: list[FileChange] = []

    for line in output.splitlines():
        parts = line.rstrip("\r").split("\t")
        if len(parts) < 2 or not parts[1]:
            continue

        match = _SCORED_STATUS.match(parts[0])
        if not match:
            continue
        letter, score = match.groups()
        if score and letter != "R":
            continue

        change_type = STATUS_CODES.get(letter)
        if change_type is None:
            continue

        file_path = parts[-1] if change_type is ChangeType.RENAMED else parts[1]
        changes.append(FileChange(file_path=file_path, change_type=change_type))

    return changes


class GitExecutor:
    """
    Synchronous git process runner.

    Each call runs one git process to completion and captures its output.
    A git binary that cannot be started is reported as exit code 127.
    """

    def __init__(self, git: str = "git") -> None:
        self.git = git

    def run(self, args: list[str], cwd: str | None = None) -> GitResult:
        try:
            completed = subprocess.run(
                [self.git, *args],
                cwd=cwd,
                capture_output=True,
                text=True,
            )
            result = GitResult(completed.returncode, completed.stdout, completed.stderr)
        except OSError as e:
            result = GitResult(127, "", str(e))

        log_git_command(args, cwd, result.returncode)
        return result

    def clone(self, url: str, dest_path: str) -> GitResult:
        return self.run(["clone", url, dest_path])

    def pull(self, path: str) -> GitResult:
        return self.run(["pull", "--ff-only"], cwd=path)

    def diff_name_status(self, path: str, ref: str = "HEAD") -> GitResult:
        return self.run(["diff", "--name-status", ref], cwd=path)


class WorkingCopyBridge:
    """
    Async facade over a GitExecutor.

    Executor calls block, so they are run in a worker thread; the caller's
    event loop is never blocked.

    Example:
        ```python
        bridge = WorkingCopyBridge()
        await bridge.clone("https://github.com/octo/hello.git", "~/Developer/hello")
        changes = await bridge.fetch_changes(repository)
        ```
    """

    def __init__(self, executor: GitExecutor | None = None) -> None:
        self.executor = executor or GitExecutor()

    async def clone(self, url: str, local_path: str) -> str:
        """
        Clone url into local_path.

        Returns:
            The expanded absolute destination path

        Raises:
            CloneFailedError: If git exits non-zero
        """
        dest = expand_path(local_path)
        result = await asyncio.to_thread(self.executor.clone, url, dest)
        if not result.ok:
            raise CloneFailedError(result.stderr or None)
        return dest

    async def pull(self, repository: Repository) -> None:
        """
        Fast-forward the working copy to its upstream.

        Raises:
            NoLocalPathError: If the repository has not been cloned
            CommandFailedError: If git exits non-zero
        """
        path = self._working_copy(repository)
        result = await asyncio.to_thread(self.executor.pull, path)
        if not result.ok:
            raise CommandFailedError(result.stderr or None)

    async def fetch_changes(self, repository: Repository) -> list[FileChange]:
        """
        Diff the working copy against HEAD.

        Raises:
            NoLocalPathError: If the repository has not been cloned
            CommandFailedError: If git exits non-zero
        """
        path = self._working_copy(repository)
        result = await asyncio.to_thread(self.executor.diff_name_status, path)
        if not result.ok:
            raise CommandFailedError(result.stderr or None)
        return parse_name_status(result.stdout)

    def _working_copy(self, repository: Repository) -> str:
        if not repository.local_path:
            raise NoLocalPathError()
        return expand_path(repository.local_path)
