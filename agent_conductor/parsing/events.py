"""
Structured events classified from CLI output.

Every event is an immutable value object carrying the time it was
classified. ``to_dict()`` yields a plain mapping tagged with ``"type"`` so
any transport can move it.
"""

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Optional


class FileChangeType(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


class ErrorSeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


@dataclass(frozen=True, kw_only=True)
class AgentEvent:
    """Base class for all classified output events."""

    type: ClassVar[str] = "event"

    # Excluded from equality so that classifying the same line twice
    # compares equal regardless of wall-clock time.
    timestamp: int = field(default_factory=lambda: int(time.time()), compare=False)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
        data["type"] = self.type
        return data


@dataclass(frozen=True, kw_only=True)
class FileChanged(AgentEvent):
    type: ClassVar[str] = "file_changed"

    path: str
    change_type: FileChangeType


@dataclass(frozen=True, kw_only=True)
class TestRan(AgentEvent):
    type: ClassVar[str] = "test_ran"
    __test__: ClassVar[bool] = False  # not a pytest test class

    name: str
    passed: bool
    details: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class TaskCompleted(AgentEvent):
    type: ClassVar[str] = "task_completed"

    description: str


@dataclass(frozen=True, kw_only=True)
class TaskCreated(AgentEvent):
    type: ClassVar[str] = "task_created"

    description: str


@dataclass(frozen=True, kw_only=True)
class ErrorEvent(AgentEvent):
    type: ClassVar[str] = "error"

    message: str
    severity: ErrorSeverity = ErrorSeverity.ERROR


@dataclass(frozen=True, kw_only=True)
class WarningEvent(AgentEvent):
    type: ClassVar[str] = "warning"

    message: str


@dataclass(frozen=True, kw_only=True)
class CommandExecuted(AgentEvent):
    type: ClassVar[str] = "command_executed"

    command: str
    exit_code: Optional[int] = None
    output: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class Thinking(AgentEvent):
    type: ClassVar[str] = "thinking"

    message: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class MessageReceived(AgentEvent):
    type: ClassVar[str] = "message_received"

    content: str


@dataclass(frozen=True, kw_only=True)
class InputRequired(AgentEvent):
    type: ClassVar[str] = "input_required"

    prompt: str


@dataclass(frozen=True, kw_only=True)
class RawOutput(AgentEvent):
    type: ClassVar[str] = "raw_output"

    line: str
