"""Session value objects returned by the session registry."""

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from agent_conductor.backends.base import BackendOptions
from agent_conductor.parsing.events import AgentEvent


def now() -> int:
    return int(time.time())


class SessionStatus(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


@dataclass
class SessionState:
    """Mutable per-session record owned by the registry. Never handed out."""

    session_id: str
    project_root: str
    backend: str
    options: BackendOptions
    cli_session_id: Optional[str] = None
    status: SessionStatus = SessionStatus.STARTING
    error: Optional[str] = None
    started_at: int = field(default_factory=now)
    last_activity: int = field(default_factory=now)
    raw_output: List[str] = field(default_factory=list)
    events: List[AgentEvent] = field(default_factory=list)
    awaiting_input: bool = False
    # False from the moment a vendor id is first seen until a drain reports it
    session_id_announced: bool = True


@dataclass(frozen=True)
class AgentSession:
    """Read-only snapshot of a session."""

    session_id: str
    project_root: str
    backend: str
    status: SessionStatus
    cli_session_id: Optional[str]
    process_id: Optional[int]
    started_at: int
    last_activity: int
    error: Optional[str] = None
    awaiting_input: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass(frozen=True)
class SessionOutput:
    """What one drain of a session's buffers returned."""

    raw_output: List[str]
    events: List[AgentEvent]
    cli_session_id: Optional[str] = None
    new_cli_session_id: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raw_output": list(self.raw_output),
            "events": [e.to_dict() for e in self.events],
            "cli_session_id": self.cli_session_id,
        }
