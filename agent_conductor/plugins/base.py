"""
Base types for agent plugins.

Defines the AgentPlugin protocol every backend implements, plus the plain
value objects that cross the plugin boundary. Value objects carry no
behaviour beyond ``to_dict()`` so any transport can move them.
"""

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    runtime_checkable,
)


def _now() -> int:
    return int(time.time())


class PluginCapability(str, Enum):
    SESSION_RESUME = "session_resume"
    STREAMING_OUTPUT = "streaming_output"
    TOOL_USE = "tool_use"
    MULTI_TURN = "multi_turn"
    FILE_CONTEXT = "file_context"
    THINKING = "thinking"


class FlagType(str, Enum):
    TOGGLE = "toggle"
    SELECT = "select"
    STRING = "string"


@dataclass
class FlagOption:
    """One choice of a select flag."""

    value: str
    label: str
    description: Optional[str] = None


@dataclass
class PluginFlag:
    """A UI-configurable CLI option."""

    id: str
    flag: str
    label: str
    description: str = ""
    flag_type: FlagType = FlagType.TOGGLE
    default_value: Optional[str] = None
    options: List[FlagOption] = field(default_factory=list)
    category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["flag_type"] = self.flag_type.value
        return data


@dataclass
class PluginInfo:
    name: str
    display_name: str
    version: str
    description: str
    capabilities: List[PluginCapability] = field(default_factory=list)
    icon: Optional[str] = None
    color: Optional[str] = None
    flags: List[PluginFlag] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "version": self.version,
            "description": self.description,
            "capabilities": [c.value for c in self.capabilities],
            "icon": self.icon,
            "color": self.color,
            "flags": [f.to_dict() for f in self.flags],
        }


@dataclass
class SessionHandle:
    """Returned from start/resume; identifies a live plugin session."""

    session_id: str
    plugin_name: str
    cli_session_id: Optional[str] = None
    process_id: Optional[int] = None
    started_at: int = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SessionStatus:
    is_running: bool
    is_waiting_for_input: bool = False
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SessionInfo:
    """A vendor session found in the CLI's own storage."""

    cli_session_id: str
    started_at: int
    last_activity: int
    message_count: int = 0
    status: str = "unknown"
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class HistoryMessage:
    id: str
    role: str
    content: str
    timestamp: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PaginatedHistory:
    messages: List[HistoryMessage]
    total_count: int
    has_more: bool
    offset: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "messages": [m.to_dict() for m in self.messages],
            "total_count": self.total_count,
            "has_more": self.has_more,
            "offset": self.offset,
        }


@dataclass
class WatchHandle:
    """Opaque unsubscribe handle for a real-time watch."""

    id: str
    plugin_name: str
    cli_session_id: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ChunkType(str, Enum):
    TEXT = "text"
    THINKING = "thinking"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"
    ERROR = "error"
    STATUS_UPDATE = "status_update"
    SESSION_ID = "session_id"


@dataclass
class OutputChunk:
    """Transport-neutral piece of session output.

    ``name`` is set for tool_use/tool_result chunks only.
    """

    type: ChunkType
    content: str
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type.value}
        if self.type == ChunkType.TOOL_USE:
            data.update(name=self.name, input=self.content)
        elif self.type == ChunkType.TOOL_RESULT:
            data.update(name=self.name, output=self.content)
        else:
            data["content"] = self.content
        return data


class SessionUpdateType(str, Enum):
    NEW_MESSAGE = "new_message"
    USER_PROMPT_REQUIRED = "user_prompt_required"
    STATUS_CHANGED = "status_changed"
    SESSION_ENDED = "session_ended"
    ERROR = "error"


@dataclass
class SessionUpdate:
    """Pushed to a watch callback when a vendor session changes."""

    type: SessionUpdateType
    cli_session_id: str
    message: Optional[HistoryMessage] = None
    prompt: Optional[Any] = None
    status: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type.value,
            "cli_session_id": self.cli_session_id,
        }
        if self.message is not None:
            data["message"] = self.message.to_dict()
        if self.prompt is not None:
            data["prompt"] = self.prompt.to_dict()
        if self.status is not None:
            data["status"] = self.status
        if self.error is not None:
            data["error"] = self.error
        return data


WatchCallback = Callable[[SessionUpdate], Optional[Awaitable[None]]]


@runtime_checkable
class AgentPlugin(Protocol):
    """
    Protocol that every agent backend implements.

    Optional capabilities (history, session listing) degrade to empty
    results. Watching raises CapabilityUnsupportedError when a backend has
    no way to observe a vendor session.
    """

    @property
    def name(self) -> str:
        """Unique plugin name (e.g. 'claude-code')."""
        ...

    @property
    def display_name(self) -> str: ...

    @property
    def version(self) -> str: ...

    @property
    def description(self) -> str: ...

    @property
    def icon(self) -> Optional[str]: ...

    @property
    def color(self) -> Optional[str]: ...

    # Health
    async def check_installation(self) -> bool:
        """True when the wrapped CLI is on PATH."""
        ...

    async def get_cli_version(self) -> Optional[str]: ...

    def validate_settings(self, settings: Dict[str, Any]) -> None:
        """Raise ConfigInvalidError when settings are unusable."""
        ...

    # Sessions
    async def start_session(
        self, project_path: str, settings: Dict[str, Any]
    ) -> SessionHandle: ...

    async def resume_session(
        self, cli_session_id: str, project_path: str, settings: Dict[str, Any]
    ) -> SessionHandle: ...

    async def stop_session(self, session_id: str) -> None: ...

    async def get_session_status(self, session_id: str) -> SessionStatus: ...

    # Messaging
    async def send_message(self, session_id: str, message: str) -> None: ...

    async def read_output(self, session_id: str) -> List[OutputChunk]: ...

    # CLI-native history
    async def list_sessions(self, project_path: str) -> List[SessionInfo]: ...

    async def get_conversation_history(
        self, cli_session_id: str
    ) -> List[HistoryMessage]: ...

    async def get_conversation_history_paginated(
        self, cli_session_id: str, offset: int, limit: int
    ) -> PaginatedHistory: ...

    # Watching
    async def start_watching_session(
        self, project_path: str, cli_session_id: str, callback: WatchCallback
    ) -> WatchHandle: ...

    async def stop_watching_session(self, handle: WatchHandle) -> None: ...

    # Introspection
    def get_capabilities(self) -> List[PluginCapability]: ...

    def get_available_flags(self) -> List[PluginFlag]: ...

    def info(self) -> PluginInfo: ...
