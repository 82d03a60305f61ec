"""
Ingestion module for Worklog Agent.

Observation sources feeding the session engine:
- WindowPollObserver: probes the focused window directly
- ActivityWatchWindowObserver: reads aw-watcher-window events
- FilesystemObserver: watches repository working trees
- SimulatedObserver: synthetic activity for test mode
"""

from .base import Observation, ObservationSource, new_observation_queue
from .window_poller import WindowPollObserver
from .aw_window import ActivityWatchWindowObserver
from .fs_watcher import FilesystemObserver
from .simulated import SimulatedObserver

__all__ = [
    'ActivityWatchWindowObserver',
    'FilesystemObserver',
    'Observation',
    'ObservationSource',
    'SimulatedObserver',
    'WindowPollObserver',
    'new_observation_queue',
]
