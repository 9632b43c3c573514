"""
Output parsing package.

Turns raw CLI output lines into structured AgentEvents.
"""

from agent_conductor.parsing.events import (
    AgentEvent,
    CommandExecuted,
    ErrorEvent,
    ErrorSeverity,
    FileChanged,
    FileChangeType,
    InputRequired,
    MessageReceived,
    RawOutput,
    TaskCompleted,
    TaskCreated,
    TestRan,
    Thinking,
    WarningEvent,
)
from agent_conductor.parsing.output_parser import (
    OutputParser,
    is_thinking,
    is_waiting_for_input,
)

__all__ = [
    "AgentEvent",
    "CommandExecuted",
    "ErrorEvent",
    "ErrorSeverity",
    "FileChanged",
    "FileChangeType",
    "InputRequired",
    "MessageReceived",
    "OutputParser",
    "RawOutput",
    "TaskCompleted",
    "TaskCreated",
    "TestRan",
    "Thinking",
    "WarningEvent",
    "is_thinking",
    "is_waiting_for_input",
]
