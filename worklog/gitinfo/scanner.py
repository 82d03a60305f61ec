"""
Worklog Agent - Repository Scanner Module

Discovers git working trees from explicitly configured paths and by
breadth-first traversal of configured root directories.
"""

import logging
import os
from collections import deque
from typing import Dict, Iterable, Optional

from worklog.gitinfo.git import GIT_MARKER, GitClient, GitError, RepositoryInfo

logger = logging.getLogger(__name__)


# Vendor/build directories never worth descending into
SKIP_DIRS = frozenset({
    "node_modules",
    "vendor",
    "target",
    "build",
    "dist",
    "venv",
    "__pycache__",
    ".terraform",
    ".cache",
    "tmp",
    "temp",
})


def should_skip_dir(name: str) -> bool:
    """Return True for hidden and deny-listed directory names."""
    return name.startswith(".") or name in SKIP_DIRS


class RepositoryScanner:
    """
    Builds a fresh repository map on every scan.

    Args:
        git: Git collaborator used to resolve metadata.
        repositories: Paths resolved directly as repositories.
        roots: Directories searched for .git markers.
        max_depth: Traversal depth below each root (0 = unlimited,
                   1 = direct children only).
    """

    def __init__(
        self,
        git: GitClient,
        repositories: Iterable[str] = (),
        roots: Iterable[str] = (),
        max_depth: int = 5,
    ):
        self.git = git
        self.repositories = list(repositories)
        self.roots = list(roots)
        self.max_depth = max_depth

    def scan(self) -> Dict[str, RepositoryInfo]:
        """
        Resolve explicit paths, then walk every root.

        Returns:
            Mapping of canonical repository path to RepositoryInfo, in
            discovery order.
        """
        found: Dict[str, RepositoryInfo] = {}

        for path in self.repositories:
            info = self._discover(path)
            if info is None:
                logger.warning(f"Skipping configured repository {path}: not a usable git repository")
                continue
            found.setdefault(info.path, info)

        for root in self.roots:
            self._walk_root(root, found)

        logger.debug(f"Repository scan found {len(found)} repositories")
        return found

    def _discover(self, path: str) -> Optional[RepositoryInfo]:
        try:
            return self.git.discover(path)
        except GitError as e:
            logger.debug(f"discover {path}: {e}")
            return None

    def _walk_root(self, root: str, found: Dict[str, RepositoryInfo]) -> None:
        abs_root = os.path.abspath(root or ".")
        if not os.path.isdir(abs_root):
            logger.warning(f"Skipping scan root {abs_root}: not a directory")
            return

        queue = deque([(abs_root, 0)])
        while queue:
            path, depth = queue.popleft()

            if os.path.exists(os.path.join(path, GIT_MARKER)):
                canonical = os.path.realpath(path)
                if canonical not in found:
                    info = self._discover(path)
                    if info is None:
                        logger.warning(f"Skipping {path}: git metadata unavailable")
                    else:
                        found[info.path] = info
                # Nested repositories and submodules are not tracked separately
                continue

            if self.max_depth > 0 and depth >= self.max_depth:
                continue

            try:
                with os.scandir(path) as entries:
                    children = sorted(
                        entry.path for entry in entries
                        if entry.is_dir(follow_symlinks=False)
                        and not should_skip_dir(entry.name)
                    )
            except OSError as e:
                logger.warning(f"Skipping unreadable directory {path}: {e}")
                continue

            for child in children:
                queue.append((child, depth + 1))
