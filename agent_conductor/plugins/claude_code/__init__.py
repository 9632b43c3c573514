"""Claude Code built-in plugin."""

from agent_conductor.plugins.claude_code.plugin import CLAUDE_FLAGS, ClaudeCodePlugin
from agent_conductor.plugins.claude_code.transcript import (
    ClaudeTranscripts,
    compute_project_hash,
)

__all__ = [
    "CLAUDE_FLAGS",
    "ClaudeCodePlugin",
    "ClaudeTranscripts",
    "compute_project_hash",
]
