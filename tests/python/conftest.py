"""
Pytest configuration for Worklog Agent tests.

Ensures the project root is in PYTHONPATH for proper module imports and
provides in-memory stand-ins for the git CLI and the publisher.
"""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from worklog.gitinfo.git import (  # noqa: E402
    GitCommandError,
    HeadInfo,
    NotARepositoryError,
    RepositoryInfo,
)

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeGit:
    """Git collaborator backed by dictionaries instead of the git CLI."""

    def __init__(self):
        self.heads: Dict[str, HeadInfo] = {}
        self.failing: set = set()
        self.head_calls: List[str] = []
        self.commits: Dict[str, list] = {}

    def head(self, path: str) -> HeadInfo:
        self.head_calls.append(path)
        if path in self.failing:
            raise GitCommandError(f"git rev-parse failed for {path}")
        return self.heads.get(path, HeadInfo(branch="main", commit="c0ffee"))

    def discover(self, path: str) -> RepositoryInfo:
        real = os.path.realpath(path)
        if not os.path.exists(os.path.join(real, ".git")):
            raise NotARepositoryError(f"not a git repository: {path}")
        return RepositoryInfo(path=real, name=os.path.basename(real), branch="main")

    def commits_since(self, path: str, start_commit: Optional[str]) -> list:
        return self.commits.get(path, [])


class FakePublisher:
    """Records every session handed over for publishing."""

    def __init__(self):
        self.published = []

    async def publish(self, session) -> bool:
        self.published.append(session)
        return True


def make_repo(path: str = "/src/my-service", **kwargs) -> RepositoryInfo:
    defaults = {
        "name": os.path.basename(path),
        "branch": "main",
        "user": "Dev",
        "email": "dev@example.com",
        "remote": "git@example.com:dev/my-service.git",
    }
    defaults.update(kwargs)
    return RepositoryInfo(path=path, **defaults)


@pytest.fixture
def fake_git():
    return FakeGit()


@pytest.fixture
def fake_publisher():
    return FakePublisher()


@pytest.fixture
def repo():
    return make_repo()
