"""
Claude Code built-in plugin.

Sessions run through the shared SessionRegistry with the claude backend.
History, listing and watching read Claude Code's own JSONL transcripts.
"""

import asyncio
import inspect
import json
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from agent_conductor.backends.base import BackendOptions
from agent_conductor.cli_agents.availability import (
    CLIAvailabilityChecker,
    get_cli_version,
)
from agent_conductor.cli_agents.executor import CLIExecutor
from agent_conductor.config import Settings, get_settings
from agent_conductor.errors import ConfigInvalidError, InvalidProjectPathError
from agent_conductor.plugins.base import (
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
    WatchCallback,
    WatchHandle,
)
from agent_conductor.plugins.claude_code.transcript import (
    ClaudeTranscripts,
    stream_json_to_chunks,
)
from agent_conductor.plugins.history import paginate_history
from agent_conductor.plugins.prompts import UserPrompt
from agent_conductor.plugins.registry import agent_plugin
from agent_conductor.plugins.settings_store import (
    build_flag_args,
    validate_flag_values,
)
from agent_conductor.sessions import SessionRegistry
from agent_conductor.sessions.models import SessionStatus as RegistryStatus
from agent_conductor.sessions.registry import STDERR_PREFIX

logger = logging.getLogger(__name__)

BACKEND_NAME = "claude"

# Flag ids that map onto BackendOptions fields rather than raw arguments
OPTION_FLAG_IDS = {"model", "permission_mode", "max_turns", "reasoning_effort"}

CLAUDE_FLAGS: List[PluginFlag] = [
    PluginFlag(
        id="model",
        flag="--model",
        label="Model",
        description="Model alias or full model name",
        flag_type=FlagType.SELECT,
        options=[
            FlagOption("sonnet", "Sonnet"),
            FlagOption("opus", "Opus"),
            FlagOption("haiku", "Haiku"),
        ],
        category="model",
    ),
    PluginFlag(
        id="permission_mode",
        flag="--permission-mode",
        label="Permission mode",
        flag_type=FlagType.SELECT,
        options=[
            FlagOption("default", "Default"),
            FlagOption("acceptEdits", "Accept edits"),
            FlagOption("bypassPermissions", "Bypass permissions"),
            FlagOption("plan", "Plan only"),
        ],
        category="permissions",
    ),
    PluginFlag(
        id="max_turns",
        flag="--max-turns",
        label="Max turns",
        description="Limit agentic turns per message",
        flag_type=FlagType.STRING,
        category="limits",
    ),
    PluginFlag(
        id="reasoning_effort",
        flag="MAX_THINKING_TOKENS",
        label="Reasoning effort",
        flag_type=FlagType.SELECT,
        options=[
            FlagOption("low", "Low"),
            FlagOption("medium", "Medium"),
            FlagOption("high", "High"),
            FlagOption("xhigh", "Extra high"),
        ],
        category="model",
    ),
    PluginFlag(
        id="dangerously_skip_permissions",
        flag="--dangerously-skip-permissions",
        label="Skip permission prompts",
        description="Run every tool without asking",
        flag_type=FlagType.TOGGLE,
        default_value="false",
        category="permissions",
    ),
]


@dataclass
class _Watch:
    handle: WatchHandle
    task: asyncio.Task


@agent_plugin("claude-code")
class ClaudeCodePlugin:
    """AgentPlugin for Anthropic's Claude Code CLI."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        executor: Optional[CLIExecutor] = None,
        checker: Optional[CLIAvailabilityChecker] = None,
        claude_home: Optional[Path] = None,
    ):
        self._settings = settings or get_settings()
        self._executor = executor or CLIExecutor()
        self._checker = checker or CLIAvailabilityChecker()
        self._registry = SessionRegistry(
            settings=self._settings, executor=self._executor
        )
        self.transcripts = ClaudeTranscripts(claude_home)
        self._watches: Dict[str, _Watch] = {}

    @property
    def name(self) -> str:
        return "claude-code"

    @property
    def display_name(self) -> str:
        return "Claude Code"

    @property
    def version(self) -> str:
        return "1.0.0"

    @property
    def description(self) -> str:
        return "Anthropic's agentic coding CLI"

    @property
    def icon(self) -> Optional[str]:
        return "claude"

    @property
    def color(self) -> Optional[str]:
        return "#D97757"

    # Health

    async def check_installation(self) -> bool:
        return await self._checker.is_available_async(BACKEND_NAME)

    async def get_cli_version(self) -> Optional[str]:
        return await get_cli_version(BACKEND_NAME, ["--version"], self._executor)

    def validate_settings(self, settings: Dict[str, Any]) -> None:
        validate_flag_values(self.name, CLAUDE_FLAGS, settings)
        max_turns = settings.get("max_turns")
        if max_turns not in (None, "") and not str(max_turns).isdigit():
            raise ConfigInvalidError(
                f"max_turns must be a positive integer, got '{max_turns}'",
                source=self.name,
            )

    def _options(self, settings: Optional[Dict[str, Any]]) -> BackendOptions:
        settings = settings or {}
        self.validate_settings(settings)
        options = BackendOptions.from_settings(settings)
        raw_flags = [f for f in CLAUDE_FLAGS if f.id not in OPTION_FLAG_IDS]
        options.extra_args = build_flag_args(raw_flags, settings) + options.extra_args
        return options

    def _handle(self, session) -> SessionHandle:
        return SessionHandle(
            session_id=session.session_id,
            plugin_name=self.name,
            cli_session_id=session.cli_session_id,
            process_id=session.process_id,
            started_at=session.started_at,
        )

    # Sessions

    async def start_session(
        self, project_path: str, settings: Dict[str, Any]
    ) -> SessionHandle:
        session = await self._registry.start_session(
            project_path, BACKEND_NAME, self._options(settings)
        )
        return self._handle(session)

    async def resume_session(
        self, cli_session_id: str, project_path: str, settings: Dict[str, Any]
    ) -> SessionHandle:
        session = await self._registry.start_session(
            project_path,
            BACKEND_NAME,
            self._options(settings),
            resume_session_id=cli_session_id,
        )
        return self._handle(session)

    async def stop_session(self, session_id: str) -> None:
        await self._registry.stop_session(session_id)

    async def stop_all(self) -> None:
        for watch in list(self._watches.values()):
            await self.stop_watching_session(watch.handle)
        await self._registry.stop_all()

    async def get_session_status(self, session_id: str) -> SessionStatus:
        session = await self._registry.get_status(session_id)
        return SessionStatus(
            is_running=session.status
            in (RegistryStatus.STARTING, RegistryStatus.RUNNING),
            is_waiting_for_input=session.awaiting_input,
            error=session.error,
            metadata={
                "cli_session_id": session.cli_session_id,
                "process_id": session.process_id,
                "started_at": session.started_at,
                "last_activity": session.last_activity,
            },
        )

    # Messaging

    async def send_message(self, session_id: str, message: str) -> None:
        await self._registry.send_message(session_id, message)

    async def read_output(self, session_id: str) -> List[OutputChunk]:
        output = await self._registry.read_output_and_events(session_id)
        chunks: List[OutputChunk] = []
        if output.new_cli_session_id and output.cli_session_id:
            chunks.append(OutputChunk(ChunkType.SESSION_ID, output.cli_session_id))

        for line in output.raw_output:
            if line.startswith(STDERR_PREFIX):
                chunks.append(
                    OutputChunk(ChunkType.STATUS_UPDATE, line[len(STDERR_PREFIX) :])
                )
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                chunks.append(OutputChunk(ChunkType.TEXT, line))
                continue
            if isinstance(data, dict):
                chunks.extend(stream_json_to_chunks(data))
        return chunks

    # CLI-native history

    async def list_sessions(self, project_path: str) -> List[SessionInfo]:
        if not await asyncio.to_thread(Path(project_path).expanduser().is_dir):
            raise InvalidProjectPathError(project_path)
        return await asyncio.to_thread(self.transcripts.list_sessions, project_path)

    async def get_conversation_history(
        self, cli_session_id: str, project_path: Optional[str] = None
    ) -> List[HistoryMessage]:
        path = await asyncio.to_thread(
            self.transcripts.locate, cli_session_id, project_path
        )
        if path is None:
            logger.debug(f"[CLAUDE-CODE] No transcript for session {cli_session_id}")
            return []
        return await asyncio.to_thread(self.transcripts.read_history, path)

    async def get_conversation_history_paginated(
        self, cli_session_id: str, offset: int, limit: int
    ) -> PaginatedHistory:
        messages = await self.get_conversation_history(cli_session_id)
        return paginate_history(messages, offset, limit)

    async def get_pending_prompt(self, cli_session_id: str) -> Optional[UserPrompt]:
        """The unanswered AskUserQuestion of a session, if any."""
        messages = await self.get_conversation_history(cli_session_id)
        return UserPrompt.get_pending_from_messages(messages)

    # Watching

    async def start_watching_session(
        self, project_path: str, cli_session_id: str, callback: WatchCallback
    ) -> WatchHandle:
        """
        Poll the session transcript and push SessionUpdates.

        Only messages appended after the watch starts are reported.
        """
        handle = WatchHandle(
            id=str(uuid.uuid4()), plugin_name=self.name, cli_session_id=cli_session_id
        )
        baseline = len(await self.get_conversation_history(cli_session_id, project_path))
        task = asyncio.create_task(
            self._watch_loop(handle, project_path, baseline, callback)
        )
        self._watches[handle.id] = _Watch(handle=handle, task=task)
        logger.info(
            f"[CLAUDE-CODE] Watching session {cli_session_id} (watch {handle.id})"
        )
        return handle

    async def stop_watching_session(self, handle: WatchHandle) -> None:
        watch = self._watches.pop(handle.id, None)
        if watch is None:
            return
        watch.task.cancel()
        try:
            await watch.task
        except asyncio.CancelledError:
            pass
        logger.info(f"[CLAUDE-CODE] Stopped watch {handle.id}")

    async def _watch_loop(
        self,
        handle: WatchHandle,
        project_path: str,
        seen: int,
        callback: WatchCallback,
    ) -> None:
        interval = self._settings.watch.poll_interval
        cli_session_id = handle.cli_session_id
        announced_prompt: Optional[str] = None

        while True:
            await asyncio.sleep(interval)
            try:
                messages = await self.get_conversation_history(
                    cli_session_id, project_path
                )
            except OSError as e:
                logger.warning(f"[CLAUDE-CODE] Watch {handle.id} read failed: {e}")
                await self._notify(
                    callback,
                    SessionUpdate(
                        SessionUpdateType.ERROR, cli_session_id, error=str(e)
                    ),
                )
                continue

            if len(messages) <= seen:
                continue
            for message in messages[seen:]:
                await self._notify(
                    callback,
                    SessionUpdate(
                        SessionUpdateType.NEW_MESSAGE, cli_session_id, message=message
                    ),
                )
            seen = len(messages)

            prompt = UserPrompt.get_pending_from_messages(messages)
            if prompt is not None:
                key = prompt.tool_use_id or messages[-1].id
                if key != announced_prompt:
                    announced_prompt = key
                    await self._notify(
                        callback,
                        SessionUpdate(
                            SessionUpdateType.USER_PROMPT_REQUIRED,
                            cli_session_id,
                            prompt=prompt,
                        ),
                    )

    async def _notify(self, callback: WatchCallback, update: SessionUpdate) -> None:
        try:
            result = callback(update)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"[CLAUDE-CODE] Watch callback failed for {update.type.value}")

    # Introspection

    def get_capabilities(self) -> List[PluginCapability]:
        return list(PluginCapability)

    def get_available_flags(self) -> List[PluginFlag]:
        return list(CLAUDE_FLAGS)

    def info(self) -> PluginInfo:
        return PluginInfo(
            name=self.name,
            display_name=self.display_name,
            version=self.version,
            description=self.description,
            capabilities=self.get_capabilities(),
            icon=self.icon,
            color=self.color,
            flags=self.get_available_flags(),
        )
