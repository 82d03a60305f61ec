"""
Git module for Worklog Agent.

Provides functionality for tracking git working trees:
- Git CLI metadata (branch, user, remote, commits)
- Repository discovery below configured roots
- Replace-on-refresh repository index with title/path matching
"""

from .git import (
    Commit,
    GitClient,
    GitCommandError,
    GitError,
    HeadInfo,
    NotARepositoryError,
    RepositoryInfo,
)
from .scanner import RepositoryScanner
from .index import RepositoryIndex

__all__ = [
    'Commit',
    'GitClient',
    'GitCommandError',
    'GitError',
    'HeadInfo',
    'NotARepositoryError',
    'RepositoryIndex',
    'RepositoryInfo',
    'RepositoryScanner',
]
