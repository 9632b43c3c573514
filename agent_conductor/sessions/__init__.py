"""
Sessions package.

The session registry, its value objects and the per-session process slot.
"""

from agent_conductor.sessions.models import (
    AgentSession,
    SessionOutput,
    SessionStatus,
)
from agent_conductor.sessions.process_slot import ProcessSlot
from agent_conductor.sessions.registry import SessionRegistry

__all__ = [
    "AgentSession",
    "ProcessSlot",
    "SessionOutput",
    "SessionRegistry",
    "SessionStatus",
]
