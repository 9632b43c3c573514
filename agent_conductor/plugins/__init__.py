"""
Plugins package.

The AgentPlugin contract, the manifest-driven GenericCliPlugin, plugin
discovery/loading, the PluginManager and the built-in plugins.
"""

from agent_conductor.plugins.base import (
    AgentPlugin,
    ChunkType,
    FlagOption,
    FlagType,
    HistoryMessage,
    OutputChunk,
    PaginatedHistory,
    PluginCapability,
    PluginFlag,
    PluginInfo,
    SessionHandle,
    SessionInfo,
    SessionStatus,
    SessionUpdate,
    SessionUpdateType,
    WatchHandle,
)
from agent_conductor.plugins.generic_cli import GenericCliPlugin, ManifestBackend
from agent_conductor.plugins.history import paginate_history
from agent_conductor.plugins.loader import (
    DiscoveredPlugin,
    discover_plugins,
    load_plugin_module,
)
from agent_conductor.plugins.manager import PluginManager
from agent_conductor.plugins.manifest import PluginManifest, load_manifest
from agent_conductor.plugins.prompts import UserPrompt
from agent_conductor.plugins.registry import PLUGIN_REGISTRY, agent_plugin
from agent_conductor.plugins.settings_store import (
    PluginSettingsManager,
    build_flag_args,
)

__all__ = [
    "AgentPlugin",
    "ChunkType",
    "DiscoveredPlugin",
    "FlagOption",
    "FlagType",
    "GenericCliPlugin",
    "HistoryMessage",
    "ManifestBackend",
    "OutputChunk",
    "PLUGIN_REGISTRY",
    "PaginatedHistory",
    "PluginCapability",
    "PluginFlag",
    "PluginInfo",
    "PluginManager",
    "PluginManifest",
    "PluginSettingsManager",
    "SessionHandle",
    "SessionInfo",
    "SessionStatus",
    "SessionUpdate",
    "SessionUpdateType",
    "UserPrompt",
    "WatchHandle",
    "agent_plugin",
    "build_flag_args",
    "discover_plugins",
    "load_manifest",
    "load_plugin_module",
    "paginate_history",
]
