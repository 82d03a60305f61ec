"""
Worklog Agent

Infers git work sessions from editor focus or filesystem activity and
publishes them as duration events to an ActivityWatch server.
"""

__version__ = "0.1.0"
