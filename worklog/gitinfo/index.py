"""
Worklog Agent - Repository Index Module

Holds the current set of known repositories. Each refresh replaces the
whole map; readers always get a consistent snapshot.

Usage:
    index = RepositoryIndex(scanner)
    index.refresh()
    repo = index.match_title("main.py - my-service - Visual Studio Code")
"""

import logging
import os
import threading
from typing import Dict, List, Optional, Tuple

from worklog.gitinfo.git import RepositoryInfo
from worklog.gitinfo.scanner import RepositoryScanner

logger = logging.getLogger(__name__)


def _identifiers(repo: RepositoryInfo) -> Tuple[str, ...]:
    """Lowercased strings a window title may mention for this repository."""
    names = {repo.name.lower(), os.path.basename(repo.path).lower(), repo.path.lower()}
    names.discard("")
    return tuple(names)


class RepositoryIndex:
    """
    Thread-safe, replace-on-refresh repository registry.

    Args:
        scanner: Source of fresh repository maps. May be None when the
                 index is populated directly through `replace`.
    """

    def __init__(self, scanner: Optional[RepositoryScanner] = None):
        self.scanner = scanner
        self._repos: Dict[str, RepositoryInfo] = {}
        self._lock = threading.Lock()

    def refresh(self) -> int:
        """
        Rebuild the map from the scanner and swap it in.

        Blocking; run it in a worker thread from async code.

        Returns:
            Number of repositories now indexed.
        """
        if self.scanner is None:
            return len(self)

        fresh = self.scanner.scan()
        self.replace(fresh.values())

        logger.info(f"Repository index refreshed: {len(fresh)} repositories")
        return len(fresh)

    def replace(self, repos) -> None:
        """Atomically replace the indexed repositories."""
        fresh = {repo.path: repo for repo in repos}
        with self._lock:
            self._repos = fresh

    def snapshot(self) -> List[RepositoryInfo]:
        """Return the indexed repositories in discovery order."""
        with self._lock:
            return list(self._repos.values())

    def get(self, path: str) -> Optional[RepositoryInfo]:
        with self._lock:
            return self._repos.get(path)

    def __len__(self) -> int:
        with self._lock:
            return len(self._repos)

    def match_title(self, title: str) -> Optional[RepositoryInfo]:
        """
        Find the repository a window title refers to.

        A repository matches when its lowercased name, directory basename or
        full path occurs in the lowercased title. When several match, the
        one with the longest matching identifier wins; equal lengths fall
        back to path order.
        """
        if not title:
            return None
        lowered = title.lower()

        best: Optional[RepositoryInfo] = None
        best_key: Tuple[int, str] = (0, "")
        for repo in self.snapshot():
            matched = [ident for ident in _identifiers(repo) if ident in lowered]
            if not matched:
                continue
            length = max(len(ident) for ident in matched)
            if best is None or length > best_key[0] or (
                length == best_key[0] and repo.path < best_key[1]
            ):
                best = repo
                best_key = (length, repo.path)

        return best

    def match_path(self, path: str) -> Optional[RepositoryInfo]:
        """Return the repository whose working tree contains `path` (deepest wins)."""
        target = os.path.abspath(path)
        best: Optional[RepositoryInfo] = None
        for repo in self.snapshot():
            if target == repo.path or target.startswith(repo.path.rstrip(os.sep) + os.sep):
                if best is None or len(repo.path) > len(best.path):
                    best = repo
        return best
