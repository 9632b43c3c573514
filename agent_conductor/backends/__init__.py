"""
CLI Backends Package.

Per-vendor argument tables for the session registry (Claude, Gemini, Codex,
Aider). Each backend knows how to:
- Build the command line for one message exchange
- Resume or continue a vendor conversation
- Spot the vendor session id in output

Uses @agent_backend decorator for registration.
"""

from agent_conductor.backends.base import AgentBackend, BackendOptions
from agent_conductor.backends.registry import (
    BACKEND_REGISTRY,
    agent_backend,
    get_backend,
    list_backends,
)

# Import backends to trigger registration via @agent_backend decorator
from agent_conductor.backends import claude as _claude  # noqa: F401
from agent_conductor.backends import gemini as _gemini  # noqa: F401
from agent_conductor.backends import codex as _codex  # noqa: F401
from agent_conductor.backends import aider as _aider  # noqa: F401

__all__ = [
    "AgentBackend",
    "BackendOptions",
    "BACKEND_REGISTRY",
    "agent_backend",
    "get_backend",
    "list_backends",
]
