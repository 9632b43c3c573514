"""
CLI Backend Registry.

Maps backend names to their argument builders. Uses the @agent_backend
decorator for registration.
"""

from typing import Callable, Dict, List, Optional, Type, TypeVar

from agent_conductor.backends.base import AgentBackend

# Global registry of all CLI backends
BACKEND_REGISTRY: Dict[str, AgentBackend] = {}

# Alternate spellings accepted from callers
BACKEND_ALIASES: Dict[str, str] = {
    "claude-code": "claude",
    "claude_code": "claude",
    "gemini-cli": "gemini",
    "codex-cli": "codex",
}

T = TypeVar("T")


def agent_backend(name: str) -> Callable[[Type[T]], Type[T]]:
    """
    Decorator that registers a CLI backend.

    Usage:
        @agent_backend("codex")
        class CodexBackend:
            executable = "codex"

            def build_message_args(self, message, cli_session_id, options):
                return ["exec", "--json", message]
    """

    def decorator(cls: Type[T]) -> Type[T]:
        instance = cls()
        BACKEND_REGISTRY[name] = instance  # type: ignore[assignment]
        return cls

    return decorator


def get_backend(name: str) -> Optional[AgentBackend]:
    """
    Get a backend by name or alias, case-insensitively.

    Returns:
        The AgentBackend implementation, or None if not found
    """
    key = name.lower()
    key = BACKEND_ALIASES.get(key, key)
    return BACKEND_REGISTRY.get(key)


def list_backends() -> List[str]:
    """List all registered backend names."""
    return list(BACKEND_REGISTRY.keys())
