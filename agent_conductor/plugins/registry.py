"""
Built-in Plugin Registry.

Maps plugin names to the classes that implement them. Uses the
@agent_plugin decorator for registration; PluginManager instantiates the
registered classes at startup.
"""

from typing import Callable, Dict, List, Type, TypeVar

# Global registry of built-in plugin classes
PLUGIN_REGISTRY: Dict[str, Type] = {}

T = TypeVar("T")


def agent_plugin(name: str) -> Callable[[Type[T]], Type[T]]:
    """
    Decorator that registers a built-in plugin class.

    Usage:
        @agent_plugin("claude-code")
        class ClaudeCodePlugin:
            ...
    """

    def decorator(cls: Type[T]) -> Type[T]:
        PLUGIN_REGISTRY[name] = cls
        return cls

    return decorator


def list_builtin_plugins() -> List[str]:
    """List all registered built-in plugin names."""
    return list(PLUGIN_REGISTRY.keys())
