"""
Config-driven CLI adapter.

GenericCliPlugin drives any vendor CLI described by a PluginManifest. The
manifest's command templates become a backend for a private
SessionRegistry, so subprocess control and output classification are the
same as for the built-in backends.
"""

import asyncio
import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from agent_conductor.backends.base import BackendOptions, first_group
from agent_conductor.cli_agents.availability import (
    CLIAvailabilityChecker,
    get_cli_version,
)
from agent_conductor.cli_agents.executor import CLIExecutor
from agent_conductor.config import Settings, get_settings
from agent_conductor.errors import (
    CapabilityUnsupportedError,
    ExternalProcessError,
    InvalidProjectPathError,
)
from agent_conductor.parsing.events import RawOutput
from agent_conductor.plugins.base import (
    ChunkType,
    HistoryMessage,
    OutputChunk,
    PaginatedHistory,
    PluginCapability,
    PluginFlag,
    PluginInfo,
    SessionHandle,
    SessionInfo,
    SessionStatus,
    WatchCallback,
    WatchHandle,
)
from agent_conductor.plugins.chunks import event_to_chunk
from agent_conductor.plugins.history import paginate_history, parse_timestamp
from agent_conductor.plugins.manifest import PluginManifest, replace_variables
from agent_conductor.plugins.settings_store import (
    build_flag_args,
    validate_flag_values,
)
from agent_conductor.sessions import SessionRegistry
from agent_conductor.sessions.models import SessionStatus as RegistryStatus

logger = logging.getLogger(__name__)

FLAGS_PLACEHOLDER = "{flags}"

# Bound for list/history commands
QUERY_TIMEOUT = 30


def _lookup_json_path(data: Any, path: str) -> Optional[str]:
    """Follow a dotted path (``a.b.0.c``) through parsed JSON."""
    current = data
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current if isinstance(current, str) and current else None


class ManifestBackend:
    """AgentBackend built from a manifest's command templates."""

    def __init__(self, manifest: PluginManifest):
        self.manifest = manifest
        pattern = manifest.output_parsing.session_id_pattern
        self._pattern = re.compile(pattern) if pattern else None

    @property
    def executable(self) -> str:
        return self.manifest.plugin.cli_command

    @property
    def needs_session_init(self) -> bool:
        return False

    @property
    def supports_stdin(self) -> bool:
        return False

    def select_template(self, cli_session_id: Optional[str]) -> List[str]:
        """resume_session when a vendor id is known and configured, else send_message."""
        commands = self.manifest.commands
        if cli_session_id and commands.resume_session:
            return commands.resume_session
        return commands.send_message

    def build_message_args(
        self,
        message: Optional[str],
        cli_session_id: Optional[str],
        options: BackendOptions,
        project_path: Optional[str] = None,
    ) -> List[str]:
        variables = {"message": message or "", "project_path": project_path or ""}
        if cli_session_id:
            variables["session_id"] = cli_session_id

        args: List[str] = []
        placed = False
        for arg in self.select_template(cli_session_id):
            if arg == FLAGS_PLACEHOLDER:
                args.extend(options.extra_args)
                placed = True
            else:
                args.extend(replace_variables([arg], variables))
        if not placed:
            args.extend(options.extra_args)
        return args

    def build_init_args(self, prompt: str, options: BackendOptions) -> List[str]:
        return self.build_message_args(prompt, None, options)

    def parse_init_output(self, output: str) -> Optional[str]:
        for line in output.splitlines():
            session_id = self.extract_session_id(line)
            if session_id:
                return session_id
        return None

    def extract_session_id(self, line: str) -> Optional[str]:
        json_path = self.manifest.output_parsing.session_id_json_path
        if json_path and line.lstrip().startswith(("{", "[")):
            try:
                found = _lookup_json_path(json.loads(line), json_path)
            except json.JSONDecodeError:
                found = None
            if found:
                return found
        if self._pattern is not None and self._pattern.groups == 0:
            match = self._pattern.search(line)
            return match.group(0) if match else None
        return first_group(self._pattern, line)

    def build_env(self, options: BackendOptions) -> Dict[str, str]:
        return dict(options.env)


class GenericCliPlugin:
    """
    AgentPlugin for any CLI described by a manifest.

    The CLI is invoked once per message. Listing and history work only when
    the manifest configures the matching commands; watching is unsupported.
    """

    def __init__(
        self,
        manifest: PluginManifest,
        settings: Optional[Settings] = None,
        executor: Optional[CLIExecutor] = None,
        checker: Optional[CLIAvailabilityChecker] = None,
    ):
        manifest.validate_manifest()
        self.manifest = manifest
        self.backend = ManifestBackend(manifest)
        self._event_patterns = [
            (ChunkType(chunk_type), re.compile(pattern))
            for chunk_type, pattern in manifest.output_parsing.event_patterns.items()
        ]
        self._executor = executor or CLIExecutor()
        self._checker = checker or CLIAvailabilityChecker()
        self._registry = SessionRegistry(
            backends={manifest.name: self.backend},
            settings=settings or get_settings(),
            executor=self._executor,
        )
        logger.info(
            f"[GENERIC-CLI] Configured plugin {manifest.name} "
            f"({manifest.plugin.cli_command})"
        )

    @property
    def name(self) -> str:
        return self.manifest.name

    @property
    def display_name(self) -> str:
        return self.manifest.plugin.display_name

    @property
    def version(self) -> str:
        return self.manifest.plugin.version

    @property
    def description(self) -> str:
        return self.manifest.plugin.description

    @property
    def icon(self) -> Optional[str]:
        return self.manifest.plugin.icon

    @property
    def color(self) -> Optional[str]:
        return self.manifest.plugin.color

    async def check_installation(self) -> bool:
        return await self._checker.is_available_async(self.manifest.plugin.cli_command)

    async def get_cli_version(self) -> Optional[str]:
        return await get_cli_version(
            self.manifest.plugin.cli_command,
            self.manifest.commands.get_version,
            self._executor,
        )

    def validate_settings(self, settings: Dict[str, Any]) -> None:
        validate_flag_values(self.name, self.get_available_flags(), settings)

    def _options(self, settings: Optional[Mapping[str, Any]]) -> BackendOptions:
        settings = settings or {}
        self.validate_settings(dict(settings))
        env = settings.get("env") or {}
        return BackendOptions(
            extra_args=build_flag_args(self.get_available_flags(), settings),
            env={str(k): str(v) for k, v in env.items()},
        )

    def _handle(self, session) -> SessionHandle:
        return SessionHandle(
            session_id=session.session_id,
            plugin_name=self.name,
            cli_session_id=session.cli_session_id,
            process_id=session.process_id,
            started_at=session.started_at,
        )

    async def start_session(
        self, project_path: str, settings: Dict[str, Any]
    ) -> SessionHandle:
        session = await self._registry.start_session(
            project_path, self.name, self._options(settings)
        )
        return self._handle(session)

    async def resume_session(
        self, cli_session_id: str, project_path: str, settings: Dict[str, Any]
    ) -> SessionHandle:
        if not self.manifest.capabilities.session_resume:
            raise CapabilityUnsupportedError(
                self.name,
                "session resume",
                f"Plugin '{self.name}' does not support session resume; "
                f"set capabilities.session_resume in its manifest",
            )
        session = await self._registry.start_session(
            project_path,
            self.name,
            self._options(settings),
            resume_session_id=cli_session_id,
        )
        return self._handle(session)

    async def stop_session(self, session_id: str) -> None:
        await self._registry.stop_session(session_id)

    async def stop_all(self) -> None:
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

    async def send_message(self, session_id: str, message: str) -> None:
        await self._registry.send_message(session_id, message)

    async def read_output(self, session_id: str) -> List[OutputChunk]:
        output = await self._registry.read_output_and_events(session_id)
        chunks: List[OutputChunk] = []
        if output.new_cli_session_id and output.cli_session_id:
            chunks.append(OutputChunk(ChunkType.SESSION_ID, output.cli_session_id))
        for event in output.events:
            custom = (
                self._match_event_pattern(event.line)
                if isinstance(event, RawOutput)
                else None
            )
            chunks.append(custom or event_to_chunk(event))
        return chunks

    def _match_event_pattern(self, line: str) -> Optional[OutputChunk]:
        """Chunk for a raw line matching a manifest event pattern; first pattern wins."""
        for chunk_type, pattern in self._event_patterns:
            match = pattern.search(line)
            if match:
                content = match.group(1) if pattern.groups else line
                return OutputChunk(chunk_type, content or line)
        return None

    async def _run_query(
        self, template: List[str], variables: Mapping[str, str], cwd: Optional[str]
    ) -> Optional[Any]:
        command = [
            self.manifest.plugin.cli_command,
            *replace_variables(template, variables),
        ]
        result = await self._executor.execute(command, timeout=QUERY_TIMEOUT, cwd=cwd)
        if not result.ok:
            raise ExternalProcessError(
                f"{self.name}: '{' '.join(command)}' failed",
                return_code=result.return_code,
                stderr=result.stderr,
            )
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            logger.warning(f"[GENERIC-CLI] {self.name}: unparseable JSON output: {e}")
            return None

    async def list_sessions(self, project_path: str) -> List[SessionInfo]:
        template = self.manifest.commands.list_sessions
        if not template:
            return []
        if not await asyncio.to_thread(Path(project_path).expanduser().is_dir):
            raise InvalidProjectPathError(project_path)

        data = await self._run_query(
            template, {"project_path": project_path}, project_path
        )
        if not isinstance(data, list):
            return []

        sessions: List[SessionInfo] = []
        for entry in data:
            if not isinstance(entry, dict) or not entry.get("session_id"):
                continue
            started_at = parse_timestamp(entry.get("started_at"))
            if started_at is None:
                logger.warning(
                    f"[GENERIC-CLI] {self.name}: skipping session {entry['session_id']} "
                    f"without a readable started_at"
                )
                continue
            message_count = entry.get("message_count")
            sessions.append(
                SessionInfo(
                    cli_session_id=str(entry["session_id"]),
                    started_at=started_at,
                    last_activity=parse_timestamp(entry.get("last_activity"))
                    or started_at,
                    message_count=message_count
                    if isinstance(message_count, int) and not isinstance(message_count, bool)
                    else 0,
                    status=str(entry.get("status") or "unknown"),
                )
            )
        return sessions

    async def get_conversation_history(
        self, cli_session_id: str
    ) -> List[HistoryMessage]:
        template = self.manifest.commands.get_history
        if not template:
            return []

        data = await self._run_query(template, {"session_id": cli_session_id}, None)
        if not isinstance(data, list):
            return []

        messages: List[HistoryMessage] = []
        for index, entry in enumerate(data):
            if not isinstance(entry, dict):
                continue
            role, content = entry.get("role"), entry.get("content")
            if not isinstance(role, str) or not isinstance(content, str):
                continue
            timestamp = parse_timestamp(entry.get("timestamp")) or int(time.time())
            messages.append(
                HistoryMessage(
                    id=str(entry.get("id") or f"msg-{timestamp}-{index:x}"),
                    role=role,
                    content=content,
                    timestamp=timestamp,
                )
            )
        return messages

    async def get_conversation_history_paginated(
        self, cli_session_id: str, offset: int, limit: int
    ) -> PaginatedHistory:
        messages = await self.get_conversation_history(cli_session_id)
        return paginate_history(messages, offset, limit)

    async def start_watching_session(
        self, project_path: str, cli_session_id: str, callback: WatchCallback
    ) -> WatchHandle:
        raise CapabilityUnsupportedError(
            self.name,
            "session watching",
            f"Session watching not supported by {self.name}",
        )

    async def stop_watching_session(self, handle: WatchHandle) -> None:
        return None

    def get_capabilities(self) -> List[PluginCapability]:
        return self.manifest.capabilities.enabled()

    def get_available_flags(self) -> List[PluginFlag]:
        return self.manifest.plugin_flags()

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
