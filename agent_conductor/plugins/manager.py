"""
PluginManager: the table of available agent plugins.

Built-in plugins come from PLUGIN_REGISTRY. Plugins found on disk are
loaded from their module when they ship one, otherwise driven by their
manifest through GenericCliPlugin.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

from agent_conductor.cli_agents.executor import CLIExecutor
from agent_conductor.config import Settings, get_settings
from agent_conductor.errors import PluginNotFoundError
from agent_conductor.plugins.base import (
    AgentPlugin,
    PluginCapability,
    PluginFlag,
    PluginInfo,
)
from agent_conductor.plugins.generic_cli import GenericCliPlugin
from agent_conductor.plugins.loader import discover_plugins, load_plugin_module
from agent_conductor.plugins.registry import PLUGIN_REGISTRY

logger = logging.getLogger(__name__)


class PluginManager:
    """Registers, discovers and hands out plugins by name."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        executor: Optional[CLIExecutor] = None,
    ):
        self._settings = settings or get_settings()
        self._executor = executor
        self._plugins: Dict[str, AgentPlugin] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._plugins

    def register(self, plugin: AgentPlugin) -> None:
        if plugin.name in self._plugins:
            logger.warning(f"[PLUGINS] Replacing already registered plugin {plugin.name}")
        self._plugins[plugin.name] = plugin
        logger.info(f"[PLUGINS] Registered plugin {plugin.name}")

    def register_builtin_plugins(self) -> List[str]:
        """Instantiate and register every class in PLUGIN_REGISTRY."""
        # Import for the @agent_plugin side effect
        from agent_conductor.plugins import claude_code  # noqa: F401

        registered = []
        for name, plugin_cls in PLUGIN_REGISTRY.items():
            self.register(plugin_cls(settings=self._settings, executor=self._executor))
            registered.append(name)
        return registered

    def discover_and_load(self, root: Optional[Path] = None) -> List[str]:
        """
        Load every plugin under ``root`` (the configured plugin dir by default).

        A plugin module is tried first; on any failure the manifest is driven
        through GenericCliPlugin. A plugin that cannot be built either way is
        logged and skipped.

        Returns:
            Names of the plugins loaded
        """
        root = Path(root) if root else self._settings.plugins.plugin_dir
        loaded: List[str] = []

        for discovered in discover_plugins(root):
            name = discovered.manifest.name
            plugin = None
            try:
                plugin = load_plugin_module(discovered.path, name)
            except Exception as e:
                logger.warning(
                    f"[PLUGINS] Module load failed for {name}, "
                    f"falling back to manifest: {e}"
                )

            if plugin is None:
                try:
                    plugin = GenericCliPlugin(
                        discovered.manifest,
                        settings=self._settings,
                        executor=self._executor,
                    )
                except Exception as e:
                    logger.error(f"[PLUGINS] Skipping plugin {name}: {e}")
                    continue

            self.register(plugin)
            loaded.append(name)

        return loaded

    def get(self, name: str) -> AgentPlugin:
        try:
            return self._plugins[name]
        except KeyError:
            raise PluginNotFoundError(name) from None

    def list_plugins(self) -> List[PluginInfo]:
        return [plugin.info() for plugin in self._plugins.values()]

    def get_plugin_flags(self, name: str) -> List[PluginFlag]:
        return self.get(name).get_available_flags()

    def get_capabilities(self, name: str) -> List[PluginCapability]:
        return self.get(name).get_capabilities()

    async def shutdown(self) -> None:
        """Stop every live session of every plugin that tracks any."""
        for plugin in self._plugins.values():
            stop_all = getattr(plugin, "stop_all", None)
            if stop_all is not None:
                await stop_all()
