"""
Worklog Agent - Git Metadata Module

Thin wrapper around the `git` CLI. Every call is a blocking subprocess
with a fixed timeout; callers on the event loop should go through
asyncio.to_thread.
"""

import logging
import os
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

logger = logging.getLogger(__name__)


# Named constants
GIT_TIMEOUT_SEC = 10.0
GIT_MARKER = ".git"
LOG_FIELD_SEPARATOR = "\x1f"


class GitError(Exception):
    """Base class for git collaborator failures."""
    pass


class NotARepositoryError(GitError):
    """No .git marker on the path or any of its ancestors."""
    pass


class GitCommandError(GitError):
    """The git CLI failed, timed out, or is not installed."""
    pass


# ==============================================================================
# Data Classes
# ==============================================================================

@dataclass(frozen=True)
class RepositoryInfo:
    """Identity of a git working tree."""
    path: str
    name: str
    branch: str = ""
    user: str = ""
    email: str = ""
    remote: str = ""


@dataclass(frozen=True)
class HeadInfo:
    """Checked-out branch and commit of a working tree."""
    branch: str
    commit: str


@dataclass(frozen=True)
class Commit:
    """A single commit with author metadata."""
    hash: str
    author: str
    timestamp: datetime
    message: str

    def to_dict(self) -> dict:
        return {
            'hash': self.hash,
            'author': self.author,
            'timestamp': self.timestamp.isoformat(),
            'message': self.message,
        }


# ==============================================================================
# Git Client
# ==============================================================================

class GitClient:
    """
    Resolves repository metadata through the git CLI.

    Args:
        git_binary: Executable to invoke (default: "git").
        timeout: Per-command timeout in seconds.
    """

    def __init__(self, git_binary: str = "git", timeout: float = GIT_TIMEOUT_SEC):
        self.git_binary = git_binary
        self.timeout = timeout

    def _run(self, path: str, *args: str) -> str:
        """Run `git -C <path> <args>` and return trimmed stdout."""
        cmd = [self.git_binary, "-C", path, *args]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise GitCommandError(f"git {' '.join(args)}: timed out after {self.timeout}s") from e
        except OSError as e:
            raise GitCommandError(f"git {' '.join(args)}: {e}") from e

        if result.returncode != 0:
            raise GitCommandError(
                f"git {' '.join(args)}: exit {result.returncode}: {result.stderr.strip()}"
            )
        return result.stdout.strip()

    def _optional(self, path: str, *args: str) -> str:
        try:
            return self._run(path, *args)
        except GitCommandError:
            return ""

    def find_repo_root(self, path: str) -> str:
        """
        Walk up from `path` until a directory containing a .git marker is found.

        Raises:
            NotARepositoryError: If no ancestor holds a .git marker.
        """
        current = os.path.abspath(path)
        if not os.path.exists(current):
            raise NotARepositoryError(f"path does not exist: {path}")
        if not os.path.isdir(current):
            current = os.path.dirname(current)

        while True:
            if os.path.exists(os.path.join(current, GIT_MARKER)):
                return os.path.realpath(current)
            parent = os.path.dirname(current)
            if parent == current:
                break
            current = parent

        raise NotARepositoryError(f"not a git repository: {path}")

    def discover(self, path: str) -> RepositoryInfo:
        """
        Collect git metadata for the repository containing `path`.

        Raises:
            NotARepositoryError: If `path` is not inside a working tree.
            GitCommandError: If the branch cannot be resolved.
        """
        root = self.find_repo_root(path)
        branch = self.current_branch(root)

        return RepositoryInfo(
            path=root,
            name=os.path.basename(root),
            branch=branch,
            user=self._optional(root, "config", "--get", "user.name"),
            email=self._optional(root, "config", "--get", "user.email"),
            remote=self._optional(root, "config", "--get", "remote.origin.url"),
        )

    def current_branch(self, path: str) -> str:
        """Return the checked-out branch name ("HEAD" when detached)."""
        return self._run(path, "rev-parse", "--abbrev-ref", "HEAD")

    def head(self, path: str) -> HeadInfo:
        """Resolve branch and commit hash with a single git call."""
        # --abbrev-ref only applies to the revisions after it
        output = self._run(path, "rev-parse", "HEAD", "--abbrev-ref", "HEAD")
        lines = output.splitlines()
        if len(lines) != 2:
            raise GitCommandError(f"unexpected rev-parse output: {output!r}")
        return HeadInfo(branch=lines[1].strip(), commit=lines[0].strip())

    def commits_since(self, path: str, start_commit: Optional[str]) -> List[Commit]:
        """
        List commits made after `start_commit` up to HEAD, oldest first.

        With no start commit only the HEAD commit is returned.
        """
        rev_range = f"{start_commit}..HEAD" if start_commit else "-1"
        fmt = LOG_FIELD_SEPARATOR.join(("%H", "%an <%ae>", "%aI", "%s"))
        args = ["log", f"--pretty=format:{fmt}"]
        if start_commit:
            args.insert(1, "--reverse")
        args.append(rev_range)
        if not start_commit:
            args.append("HEAD")

        output = self._run(path, *args)
        if not output:
            return []

        commits = []
        for line in output.splitlines():
            parts = line.split(LOG_FIELD_SEPARATOR, 3)
            if len(parts) != 4:
                continue
            try:
                timestamp = datetime.fromisoformat(parts[2])
            except ValueError:
                timestamp = datetime.now(timezone.utc)
            commits.append(Commit(
                hash=parts[0],
                author=parts[1],
                timestamp=timestamp,
                message=parts[3],
            ))
        return commits
