"""
Conductor: the async command surface of agent-conductor.

Wires the plugin manager, stored plugin flags and live sessions together.
Every UI or transport binds to these methods; unknown ids raise
NotFoundError subclasses whose str() is the short diagnostic.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from agent_conductor.config import Settings, get_settings
from agent_conductor.errors import (
    ConfigInvalidError,
    PluginNotFoundError,
    SessionNotFoundError,
)
from agent_conductor.plugins.base import (
    AgentPlugin,
    ChunkType,
    OutputChunk,
    PaginatedHistory,
    PluginInfo,
    SessionHandle,
    SessionInfo,
    SessionStatus,
    WatchCallback,
    WatchHandle,
)
from agent_conductor.plugins.manager import PluginManager
from agent_conductor.plugins.settings_store import PluginSettingsManager

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


class Conductor:
    """Facade over plugins, their stored flags and live sessions."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        manager: Optional[PluginManager] = None,
        settings_store: Optional[PluginSettingsManager] = None,
    ):
        self._settings = settings or get_settings()
        self.manager = manager or PluginManager(settings=self._settings)
        self.settings_store = settings_store or PluginSettingsManager(
            settings=self._settings
        )
        self._sessions: Dict[str, SessionHandle] = {}
        self._watches: Dict[str, WatchHandle] = {}

    async def initialize(self, plugin_dir: Optional[Path] = None) -> List[str]:
        """Register built-in plugins (if enabled) and load plugins from disk."""
        loaded: List[str] = []
        if self._settings.plugins.builtin_enabled:
            loaded.extend(self.manager.register_builtin_plugins())
        loaded.extend(self.manager.discover_and_load(plugin_dir))
        logger.info(f"[CONDUCTOR] {len(loaded)} plugins available: {', '.join(loaded)}")
        return loaded

    async def shutdown(self) -> None:
        for watch_id in list(self._watches):
            await self.stop_watching(watch_id)
        await self.manager.shutdown()
        self._sessions.clear()

    # ------------------------------------------------------------------
    # Plugins
    # ------------------------------------------------------------------

    def list_plugins(self) -> List[PluginInfo]:
        return self.manager.list_plugins()

    async def check_plugin(self, plugin_name: str) -> Dict[str, Any]:
        plugin = self.manager.get(plugin_name)
        installed = await plugin.check_installation()
        return {
            "name": plugin_name,
            "installed": installed,
            "version": await plugin.get_cli_version() if installed else None,
        }

    async def get_plugin_flags(self, plugin_name: str) -> Dict[str, Any]:
        """Declared flags of a plugin plus their stored values."""
        flags = self.manager.get_plugin_flags(plugin_name)
        values = await self.settings_store.get_plugin_settings(plugin_name)
        return {"flags": [f.to_dict() for f in flags], "values": values}

    async def set_plugin_flag(self, plugin_name: str, flag_id: str, value: Any) -> None:
        plugin = self.manager.get(plugin_name)
        if flag_id not in {f.id for f in plugin.get_available_flags()}:
            raise ConfigInvalidError(f"Unknown flag '{flag_id}'", source=plugin_name)
        plugin.validate_settings({flag_id: value})
        await self.settings_store.set_flag_value(plugin_name, flag_id, value)

    async def _effective_settings(
        self, plugin: AgentPlugin, overrides: Optional[Dict[str, Any]]
    ) -> Dict[str, Any]:
        stored = await self.settings_store.get_plugin_settings(plugin.name)
        settings = {**stored, **(overrides or {})}
        plugin.validate_settings(settings)
        return settings

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def _plugin_for(self, session_id: str) -> AgentPlugin:
        handle = self._sessions.get(session_id)
        if handle is None:
            raise SessionNotFoundError(session_id)
        return self.manager.get(handle.plugin_name)

    async def start_session(
        self,
        plugin_name: str,
        project_path: str,
        settings: Optional[Dict[str, Any]] = None,
    ) -> SessionHandle:
        plugin = self.manager.get(plugin_name)
        handle = await plugin.start_session(
            project_path, await self._effective_settings(plugin, settings)
        )
        self._sessions[handle.session_id] = handle
        return handle

    async def resume_session(
        self,
        plugin_name: str,
        cli_session_id: str,
        project_path: str,
        settings: Optional[Dict[str, Any]] = None,
    ) -> SessionHandle:
        plugin = self.manager.get(plugin_name)
        handle = await plugin.resume_session(
            cli_session_id,
            project_path,
            await self._effective_settings(plugin, settings),
        )
        self._sessions[handle.session_id] = handle
        return handle

    async def send_message(self, session_id: str, message: str) -> None:
        await self._plugin_for(session_id).send_message(session_id, message)

    async def read_output(self, session_id: str) -> List[OutputChunk]:
        chunks = await self._plugin_for(session_id).read_output(session_id)
        for chunk in chunks:
            if chunk.type == ChunkType.SESSION_ID:
                self._sessions[session_id].cli_session_id = chunk.content
        return chunks

    async def stop_session(self, session_id: str) -> None:
        plugin = self._plugin_for(session_id)
        try:
            await plugin.stop_session(session_id)
        finally:
            self._sessions.pop(session_id, None)

    async def get_session_status(self, session_id: str) -> SessionStatus:
        return await self._plugin_for(session_id).get_session_status(session_id)

    def list_sessions(self) -> List[SessionHandle]:
        return list(self._sessions.values())

    async def health_check(self, session_id: str) -> bool:
        """True if the session exists."""
        return session_id in self._sessions

    # ------------------------------------------------------------------
    # CLI-native history
    # ------------------------------------------------------------------

    async def list_cli_sessions(
        self, plugin_name: str, project_path: str
    ) -> List[SessionInfo]:
        if plugin_name not in self.manager:
            logger.warning(f"[CONDUCTOR] list_cli_sessions: unknown plugin {plugin_name}")
            return []
        return await self.manager.get(plugin_name).list_sessions(project_path)

    async def get_history(
        self,
        plugin_name: str,
        cli_session_id: str,
        offset: int = 0,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> PaginatedHistory:
        if plugin_name not in self.manager:
            logger.warning(f"[CONDUCTOR] get_history: unknown plugin {plugin_name}")
            return PaginatedHistory(messages=[], total_count=0, has_more=False, offset=0)
        plugin = self.manager.get(plugin_name)
        return await plugin.get_conversation_history_paginated(
            cli_session_id, offset, limit
        )

    async def watch_session(
        self,
        plugin_name: str,
        project_path: str,
        cli_session_id: str,
        callback: WatchCallback,
    ) -> str:
        """Start a watch; returns its id, or "" for an unknown plugin."""
        if plugin_name not in self.manager:
            logger.warning(f"[CONDUCTOR] watch_session: unknown plugin {plugin_name}")
            return ""
        plugin = self.manager.get(plugin_name)
        handle = await plugin.start_watching_session(
            project_path, cli_session_id, callback
        )
        self._watches[handle.id] = handle
        return handle.id

    async def stop_watching(self, watch_id: str) -> None:
        handle = self._watches.pop(watch_id, None)
        if handle is None:
            return
        try:
            plugin = self.manager.get(handle.plugin_name)
        except PluginNotFoundError:
            return
        await plugin.stop_watching_session(handle)
