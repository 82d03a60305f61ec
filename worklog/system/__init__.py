"""
System module for Worklog Agent.

Configuration loading and duration parsing.
"""

from .config import (
    AgentConfig,
    ActivityWatchConfig,
    ConfigError,
    GitConfig,
    SessionConfig,
    load_config,
    parse_duration,
)

__all__ = [
    'AgentConfig',
    'ActivityWatchConfig',
    'ConfigError',
    'GitConfig',
    'SessionConfig',
    'load_config',
    'parse_duration',
]
