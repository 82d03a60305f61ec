"""
Aggregation module for Worklog Agent.

Mutable per-repository work session state.
"""

from .session import WorkSession

__all__ = ['WorkSession']
