"""Conversion of classified events into transport-neutral output chunks."""

from agent_conductor.parsing.events import (
    AgentEvent,
    CommandExecuted,
    ErrorEvent,
    FileChanged,
    InputRequired,
    MessageReceived,
    RawOutput,
    TaskCompleted,
    TaskCreated,
    TestRan,
    Thinking,
    WarningEvent,
)
from agent_conductor.plugins.base import ChunkType, OutputChunk


def event_to_chunk(event: AgentEvent) -> OutputChunk:
    if isinstance(event, Thinking):
        return OutputChunk(ChunkType.THINKING, event.message or "")
    if isinstance(event, ErrorEvent):
        return OutputChunk(ChunkType.ERROR, event.message)
    if isinstance(event, WarningEvent):
        return OutputChunk(ChunkType.STATUS_UPDATE, f"Warning: {event.message}")
    if isinstance(event, CommandExecuted):
        content = event.command
        if event.exit_code is not None:
            content = f"{content} (exit code: {event.exit_code})"
        return OutputChunk(ChunkType.TOOL_USE, content, name="bash")
    if isinstance(event, FileChanged):
        kind = event.change_type.value.capitalize()
        return OutputChunk(
            ChunkType.TOOL_USE, f"{kind}: {event.path}", name="file_operation"
        )
    if isinstance(event, TestRan):
        outcome = "passed" if event.passed else "failed"
        content = f"Test '{event.name}' {outcome}"
        if event.details:
            content = f"{content}: {event.details}"
        return OutputChunk(ChunkType.TOOL_RESULT, content, name="test")
    if isinstance(event, TaskCompleted):
        return OutputChunk(
            ChunkType.STATUS_UPDATE, f"Task completed: {event.description}"
        )
    if isinstance(event, TaskCreated):
        return OutputChunk(ChunkType.STATUS_UPDATE, f"Task created: {event.description}")
    if isinstance(event, InputRequired):
        return OutputChunk(ChunkType.STATUS_UPDATE, f"Input required: {event.prompt}")
    if isinstance(event, MessageReceived):
        return OutputChunk(ChunkType.TEXT, event.content)
    if isinstance(event, RawOutput):
        return OutputChunk(ChunkType.TEXT, event.line)
    return OutputChunk(ChunkType.TEXT, str(event.to_dict()))
