"""
Worklog Agent - Brain Package

Provides the session engine, the session publisher and the orchestrator
that drives them.

Usage:
    from worklog.brain import Agent

    agent = Agent(config)
    await agent.run()
"""

from worklog.brain.orchestrator import AgentOrchestrator as Agent
from worklog.brain.engine import SessionEngine
from worklog.brain.publisher import BucketNamer, SessionPublisher, normalize_bucket_component

__all__ = [
    "Agent",
    "BucketNamer",
    "SessionEngine",
    "SessionPublisher",
    "normalize_bucket_component",
]
