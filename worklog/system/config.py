"""
Worklog Agent - Configuration Module

Loads the agent configuration from a JSON document and applies defaults,
path expansion and environment overrides.

Document layout:
    {
        "activityWatch": {"baseURL": ..., "bucketPrefix": ..., "bucketTemplate": ..., "machine": ...},
        "git": {"repositories": [...], "roots": [...], "maxDepth": 5, "rescanIntervalMin": 5},
        "session": {"idleTimeoutMinutes": 30, "pollInterval": "5s", "flushInterval": 15000, "mode": "activitywatch"}
    }

Durations accept either a number of milliseconds or a duration string
such as "15s", "1m30s", "500ms" or "1.5h".

Usage:
    config = load_config("~/.config/awagent/config.json")
"""

import json
import logging
import os
import re
import socket
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


# Named constants
DEFAULT_BASE_URL = "http://localhost:5600"
DEFAULT_BUCKET_PREFIX = "awagent"
DEFAULT_BUCKET_TEMPLATE = "{prefix}.{repo}"
DEFAULT_MAX_DEPTH = 5
DEFAULT_RESCAN_INTERVAL_MIN = 5
DEFAULT_IDLE_TIMEOUT_MIN = 30
DEFAULT_POLL_INTERVAL = timedelta(seconds=5)
DEFAULT_FLUSH_INTERVAL = timedelta(seconds=15)
FALLBACK_FLUSH_INTERVAL = timedelta(seconds=30)

MODE_ACTIVITYWATCH = "activitywatch"
MODE_WINDOW = "window"
MODE_FILESYSTEM = "filesystem"
COLLECTION_MODES = (MODE_ACTIVITYWATCH, MODE_WINDOW, MODE_FILESYSTEM)

ENV_CONFIG_PATH = "AWAGENT_CONFIG"
ENV_SERVER_URL = "AWAGENT_SERVER_URL"
ENV_MACHINE = "AWAGENT_MACHINE"

_DURATION_UNITS = {
    "ns": 1e-6,
    "us": 1e-3,
    "µs": 1e-3,
    "ms": 1.0,
    "s": 1000.0,
    "m": 60_000.0,
    "h": 3_600_000.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


class ConfigError(Exception):
    """Raised when the configuration document is unreadable or invalid."""
    pass


def parse_duration(value: Any) -> timedelta:
    """
    Parse a configured duration.

    Args:
        value: Integer/float milliseconds, or a duration string ("1h2m3s").

    Returns:
        The parsed duration.

    Raises:
        ConfigError: If the value has an unsupported type or format.
    """
    if isinstance(value, bool):
        raise ConfigError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(milliseconds=value)
    if not isinstance(value, str):
        raise ConfigError(f"invalid duration format: {value!r}")

    text = value.strip()
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    if text == "0":
        return timedelta(0)
    if not text:
        raise ConfigError(f"invalid duration: {value!r}")

    total_ms = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            raise ConfigError(f"invalid duration: {value!r}")
        total_ms += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos != len(text):
        raise ConfigError(f"invalid duration: {value!r}")

    return timedelta(milliseconds=sign * total_ms)


def expand_path(path: str) -> str:
    """Expand environment variables and a leading ~ in a path."""
    if not path:
        return path
    return os.path.expanduser(os.path.expandvars(path))


def _expand_paths(paths: List[str]) -> List[str]:
    expanded = []
    for raw in paths:
        trimmed = str(raw).strip()
        if not trimmed:
            continue
        expanded.append(os.path.normpath(expand_path(trimmed)))
    return expanded


def _hostname_or_unknown() -> str:
    try:
        return socket.gethostname() or "unknown"
    except OSError:
        return "unknown"


def _default_repositories() -> List[str]:
    try:
        return [os.getcwd()]
    except OSError:
        return []


def _default_roots() -> List[str]:
    try:
        return [str(Path.home())]
    except RuntimeError:
        return []


# ==============================================================================
# Configuration Sections
# ==============================================================================

@dataclass
class ActivityWatchConfig:
    """ActivityWatch server integration settings."""
    base_url: str = DEFAULT_BASE_URL
    bucket_prefix: str = DEFAULT_BUCKET_PREFIX
    bucket_template: str = DEFAULT_BUCKET_TEMPLATE
    machine: str = field(default_factory=_hostname_or_unknown)


@dataclass
class GitConfig:
    """Repository discovery settings."""
    repositories: List[str] = field(default_factory=_default_repositories)
    roots: List[str] = field(default_factory=_default_roots)
    max_depth: int = DEFAULT_MAX_DEPTH
    rescan_interval_min: int = DEFAULT_RESCAN_INTERVAL_MIN

    @property
    def rescan_interval(self) -> timedelta:
        return timedelta(minutes=self.rescan_interval_min)


@dataclass
class SessionConfig:
    """Session detection settings."""
    idle_timeout_minutes: int = DEFAULT_IDLE_TIMEOUT_MIN
    poll_interval: timedelta = DEFAULT_POLL_INTERVAL
    flush_interval: timedelta = DEFAULT_FLUSH_INTERVAL
    mode: str = MODE_ACTIVITYWATCH

    @property
    def idle_timeout(self) -> timedelta:
        return timedelta(minutes=self.idle_timeout_minutes)


@dataclass
class AgentConfig:
    """Complete agent configuration."""
    activitywatch: ActivityWatchConfig = field(default_factory=ActivityWatchConfig)
    git: GitConfig = field(default_factory=GitConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    source_path: Optional[str] = None

    def normalize(self) -> None:
        """
        Apply defaults for empty values and expand configured paths.

        Raises:
            ConfigError: If a value cannot be normalized.
        """
        self.git.repositories = _expand_paths(self.git.repositories)
        self.git.roots = _expand_paths(self.git.roots)

        # Zero or negative depth means unlimited
        if self.git.max_depth < 0:
            self.git.max_depth = 0
        if self.git.rescan_interval_min <= 0:
            self.git.rescan_interval_min = DEFAULT_RESCAN_INTERVAL_MIN

        aw = self.activitywatch
        if not aw.base_url:
            aw.base_url = DEFAULT_BASE_URL
        if not aw.bucket_prefix:
            aw.bucket_prefix = DEFAULT_BUCKET_PREFIX
        if not aw.bucket_template:
            aw.bucket_template = DEFAULT_BUCKET_TEMPLATE
        if not aw.machine:
            aw.machine = _hostname_or_unknown()

        session = self.session
        if session.idle_timeout_minutes <= 0:
            session.idle_timeout_minutes = DEFAULT_IDLE_TIMEOUT_MIN
        if session.flush_interval <= timedelta(0):
            session.flush_interval = session.poll_interval
        if session.flush_interval <= timedelta(0):
            session.flush_interval = FALLBACK_FLUSH_INTERVAL
        if session.poll_interval <= timedelta(0):
            session.poll_interval = DEFAULT_POLL_INTERVAL

        session.mode = (session.mode or MODE_ACTIVITYWATCH).strip().lower()
        if session.mode not in COLLECTION_MODES:
            raise ConfigError(
                f"session.mode must be one of {', '.join(COLLECTION_MODES)}, got {session.mode!r}"
            )


# ==============================================================================
# Loading
# ==============================================================================

def _section(document: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = document.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be an object")
    return value


def _as_int(section: Dict[str, Any], key: str, default: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{key}' must be a number, got {value!r}")
    return int(value)


def _as_str_list(section: Dict[str, Any], key: str, default: List[str]) -> List[str]:
    value = section.get(key)
    if value is None:
        return default
    if not isinstance(value, list):
        raise ConfigError(f"'{key}' must be a list of paths")
    return [str(item) for item in value]


def config_from_dict(document: Dict[str, Any]) -> AgentConfig:
    """
    Build an AgentConfig from a parsed JSON document.

    Missing keys keep their defaults. The result is normalized.

    Raises:
        ConfigError: On wrong value types or malformed durations.
    """
    if not isinstance(document, dict):
        raise ConfigError("configuration root must be an object")

    config = AgentConfig()

    aw_doc = _section(document, "activityWatch")
    aw = config.activitywatch
    aw.base_url = str(aw_doc.get("baseURL", aw.base_url) or "")
    aw.bucket_prefix = str(aw_doc.get("bucketPrefix", aw.bucket_prefix) or "")
    aw.bucket_template = str(aw_doc.get("bucketTemplate", aw.bucket_template) or "")
    aw.machine = str(aw_doc.get("machine", aw.machine) or "")

    git_doc = _section(document, "git")
    git = config.git
    git.repositories = _as_str_list(git_doc, "repositories", git.repositories)
    git.roots = _as_str_list(git_doc, "roots", git.roots)
    git.max_depth = _as_int(git_doc, "maxDepth", git.max_depth)
    git.rescan_interval_min = _as_int(git_doc, "rescanIntervalMin", git.rescan_interval_min)

    session_doc = _section(document, "session")
    session = config.session
    session.idle_timeout_minutes = _as_int(
        session_doc, "idleTimeoutMinutes", session.idle_timeout_minutes
    )
    if "pollInterval" in session_doc:
        session.poll_interval = parse_duration(session_doc["pollInterval"])
    if "flushInterval" in session_doc:
        session.flush_interval = parse_duration(session_doc["flushInterval"])
    session.mode = str(session_doc.get("mode", session.mode) or "")

    config.normalize()
    return config


def load_config(path: Optional[str] = None) -> AgentConfig:
    """
    Load configuration from a JSON file, falling back to defaults.

    Args:
        path: Config file path. Defaults to the AWAGENT_CONFIG env var;
              when neither is set only defaults are used.

    Returns:
        Normalized AgentConfig with environment overrides applied.

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    path = path or os.environ.get(ENV_CONFIG_PATH)

    if not path:
        config = AgentConfig()
        config.normalize()
    else:
        expanded = expand_path(path)
        try:
            raw = Path(expanded).read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"read config {expanded}: {e}") from e

        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigError(f"parse config {expanded}: {e}") from e

        config = config_from_dict(document)
        config.source_path = expanded
        logger.info(f"Loaded configuration from {expanded}")

    server_url = os.environ.get(ENV_SERVER_URL)
    if server_url:
        config.activitywatch.base_url = server_url
    machine = os.environ.get(ENV_MACHINE)
    if machine:
        config.activitywatch.machine = machine

    return config
