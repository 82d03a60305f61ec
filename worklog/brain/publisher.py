"""
Worklog Agent - Session Publisher Module

Turns closed work sessions into ActivityWatch events.

Bucket ids come from a configurable template whose fields are normalized
independently:
    "{prefix}.{repo}"          -> "awagent.my-service"
    "{prefix}.{repo}.{branch}" -> "awagent.my-service.feature-login"

Usage:
    publisher = SessionPublisher(client, BucketNamer("awagent"), machine="devbox")
    await publisher.publish(session)
"""

import asyncio
import logging
import re
import string
from typing import Any, Dict, Optional

from worklog.aggregation.session import WorkSession
from worklog.dal.activitywatch import (
    BUCKET_TYPE_WORK_SESSION,
    ActivityWatchClient,
    ActivityWatchError,
    WorkSessionEvent,
)
from worklog.gitinfo.git import GitClient, GitError
from worklog.system.config import DEFAULT_BUCKET_TEMPLATE, ConfigError

logger = logging.getLogger(__name__)


# Named constants
EMPTY_COMPONENT_PLACEHOLDER = "unknown"
TEMPLATE_FIELDS = frozenset({"prefix", "repo", "branch", "machine"})

_INVALID_CHARS = re.compile(r"[^a-z0-9_-]+")


def normalize_bucket_component(value: Optional[str]) -> str:
    """
    Normalize one bucket id component.

    Lowercases, collapses every run of characters outside [a-z0-9_-] into
    a single hyphen and trims hyphens. Empty results become "unknown".
    Idempotent.
    """
    normalized = _INVALID_CHARS.sub("-", (value or "").lower()).strip("-")
    return normalized or EMPTY_COMPONENT_PLACEHOLDER


class BucketNamer:
    """
    Renders bucket ids from a template.

    Args:
        prefix: Value of the {prefix} field; an empty prefix is dropped
                together with the separator that follows it.
        template: Format string using {prefix}, {repo}, {branch}, {machine}.
        machine: Value of the {machine} field.

    Raises:
        ConfigError: If the template uses an unrecognized field.
    """

    def __init__(self, prefix: str = "", template: str = DEFAULT_BUCKET_TEMPLATE, machine: str = ""):
        self.prefix = prefix
        self.template = template
        self.machine = machine
        self._validate_template(template)

    @staticmethod
    def _validate_template(template: str) -> None:
        try:
            fields = [name for _, name, _, _ in string.Formatter().parse(template) if name is not None]
        except ValueError as e:
            raise ConfigError(f"invalid bucket template {template!r}: {e}") from e

        unknown = [name for name in fields if name not in TEMPLATE_FIELDS]
        if unknown:
            raise ConfigError(
                f"bucket template {template!r} uses unknown fields: {', '.join(unknown)}; "
                f"allowed: {', '.join(sorted(TEMPLATE_FIELDS))}"
            )
        if "repo" not in fields:
            raise ConfigError(f"bucket template {template!r} must include {{repo}}")

    def bucket_id(self, repo_name: str, branch: str = "") -> str:
        template = self.template
        if not self.prefix:
            template = re.sub(r"\{prefix\}[^{]?", "", template, count=1)

        rendered = template.format(
            prefix=normalize_bucket_component(self.prefix),
            repo=normalize_bucket_component(repo_name),
            branch=normalize_bucket_component(branch),
            machine=normalize_bucket_component(self.machine),
        )
        return rendered.strip(".")

    def for_session(self, session: WorkSession) -> str:
        return self.bucket_id(session.repository.name, session.branch)


class SessionPublisher:
    """
    Publishes closed sessions, one event per session, no retries.

    Args:
        client: ActivityWatch client.
        namer: Bucket id renderer.
        machine: Machine identifier included in event data.
        git: Optional git client used to attach commits made during the
             session.
    """

    def __init__(
        self,
        client: ActivityWatchClient,
        namer: BucketNamer,
        machine: str = "",
        git: Optional[GitClient] = None,
    ):
        self.client = client
        self.namer = namer
        self.machine = machine
        self.git = git

    def build_event(self, session: WorkSession, commits: Optional[list] = None) -> WorkSessionEvent:
        """Derive the immutable event for a session."""
        repo = session.repository
        data: Dict[str, Any] = {
            "gitUser": repo.user,
            "gitEmail": repo.email,
            "repoName": repo.name,
            "repoPath": repo.path,
            "branch": session.branch,
            "remote": repo.remote,
            "eventCount": session.events,
        }
        if session.app:
            data["app"] = session.app
        if self.machine:
            data["machine"] = self.machine
        if commits:
            data["commits"] = [commit.to_dict() for commit in commits]

        return WorkSessionEvent(
            timestamp=session.start,
            end=session.last_activity,
            duration=session.duration,
            data=data,
        )

    async def _session_commits(self, session: WorkSession) -> list:
        if self.git is None or not session.start_commit:
            return []
        try:
            return await asyncio.to_thread(
                self.git.commits_since, session.repository.path, session.start_commit
            )
        except GitError as e:
            logger.debug(f"Commit lookup failed for {session.repository.path}: {e}")
            return []

    async def publish(self, session: WorkSession) -> bool:
        """
        Record a session on the server.

        Returns:
            True if the event was recorded; failures are logged and dropped.
        """
        bucket_id = self.namer.for_session(session)
        commits = await self._session_commits(session)
        event = self.build_event(session, commits)

        try:
            await self.client.record_event(bucket_id, event, BUCKET_TYPE_WORK_SESSION)
        except ActivityWatchError as e:
            logger.error(f"Failed to publish session {session.repository.path}: {e}")
            return False

        logger.info(
            f"📝 Session published: bucket={bucket_id} duration={session.duration} "
            f"events={session.events} branch={session.branch}"
        )
        return True
