"""
Perception module for Worklog Agent.

This module provides functionality for reading what the user is focused on:
- Focused window probing (Linux, macOS, Windows)
- Editor/IDE allow-list
"""

from .editors import KNOWN_EDITORS, is_editor
from .window import WindowInfo, WindowProbe, WindowProbeError, select_window_probe

__all__ = [
    'KNOWN_EDITORS',
    'WindowInfo',
    'WindowProbe',
    'WindowProbeError',
    'is_editor',
    'select_window_probe',
]
