"""
Claude Code transcript access.

Claude Code stores each conversation as JSONL in:
    ~/.claude/projects/<path-hash>/<session>.jsonl
The path hash is the project directory path with / replaced by -.

Each line is one entry; user and assistant entries carry a ``message``
whose content is either a string or a list of content blocks.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from agent_conductor.plugins.base import ChunkType, HistoryMessage, OutputChunk, SessionInfo
from agent_conductor.plugins.history import parse_timestamp

logger = logging.getLogger(__name__)

MESSAGE_TYPES = ("user", "assistant")


def default_claude_home() -> Path:
    home = Path(os.environ.get("HOME", os.path.expanduser("~")))
    return home / ".claude"


def compute_project_hash(project_dir: str) -> str:
    """
    Compute Claude's project hash from a directory path.

    e.g., /Users/luka/src/raik -> -Users-luka-src-raik
    """
    return os.path.normpath(project_dir).replace("/", "-")


def _content_to_text(content: Any) -> str:
    """
    Flatten message content.

    Plain text blocks are joined; content holding tool blocks is kept as its
    JSON so tool_use/tool_result pairs stay machine-readable.
    """
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    if all(isinstance(block, dict) and block.get("type") == "text" for block in content):
        return "\n".join(block.get("text", "") for block in content)
    return json.dumps(content)


class ClaudeTranscripts:
    """Reads Claude Code's on-disk session store."""

    def __init__(self, claude_home: Optional[Path] = None):
        self.claude_home = Path(claude_home) if claude_home else default_claude_home()

    @property
    def projects_dir(self) -> Path:
        return self.claude_home / "projects"

    def project_dir(self, project_path: str) -> Path:
        return self.projects_dir / compute_project_hash(project_path)

    def locate(
        self, cli_session_id: str, project_path: Optional[str] = None
    ) -> Optional[Path]:
        """
        Find the transcript of one session.

        Looks in the project's folder when ``project_path`` is given,
        otherwise in every project folder.
        """
        if project_path:
            candidates = [self.project_dir(project_path)]
        elif self.projects_dir.is_dir():
            candidates = [p for p in self.projects_dir.iterdir() if p.is_dir()]
        else:
            return None

        for folder in candidates:
            for name in (f"{cli_session_id}.jsonl", f"agent-{cli_session_id}.jsonl"):
                path = folder / name
                if path.is_file():
                    return path
        return None

    def read_entries(self, path: Path) -> List[Dict[str, Any]]:
        """Parsed JSON objects of a transcript; malformed lines are skipped."""
        entries: List[Dict[str, Any]] = []
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if isinstance(data, dict):
                    entries.append(data)
        return entries

    def read_history(self, path: Path) -> List[HistoryMessage]:
        """Chronological user/assistant messages of a transcript."""
        fallback_ts = int(path.stat().st_mtime)
        messages: List[HistoryMessage] = []
        for index, entry in enumerate(self.read_entries(path)):
            if entry.get("type") not in MESSAGE_TYPES:
                continue
            message = entry.get("message")
            if not isinstance(message, dict):
                continue
            content = _content_to_text(message.get("content"))
            if not content:
                continue
            timestamp = parse_timestamp(entry.get("timestamp")) or fallback_ts
            metadata: Dict[str, Any] = {}
            if message.get("model"):
                metadata["model"] = message["model"]
            if entry.get("isSidechain"):
                metadata["sidechain"] = True
            messages.append(
                HistoryMessage(
                    id=str(entry.get("uuid") or f"msg-{timestamp}-{index:x}"),
                    role=str(message.get("role") or entry["type"]),
                    content=content,
                    timestamp=timestamp,
                    metadata=metadata,
                )
            )
        return messages

    def list_sessions(self, project_path: str) -> List[SessionInfo]:
        """Sessions stored for a project, most recently active first."""
        folder = self.project_dir(project_path)
        if not folder.is_dir():
            return []

        sessions: List[SessionInfo] = []
        for path in folder.glob("*.jsonl"):
            try:
                stat = path.stat()
                entries = self.read_entries(path)
            except OSError as e:
                logger.warning(f"[CLAUDE-CODE] Skipping unreadable transcript {path}: {e}")
                continue

            timestamps = [
                ts for ts in (parse_timestamp(e.get("timestamp")) for e in entries) if ts
            ]
            last_activity = int(stat.st_mtime)
            sessions.append(
                SessionInfo(
                    cli_session_id=path.stem,
                    started_at=min(timestamps) if timestamps else last_activity,
                    last_activity=last_activity,
                    message_count=sum(
                        1 for e in entries if e.get("type") in MESSAGE_TYPES
                    ),
                    status="stored",
                    metadata={"path": str(path)},
                )
            )
        sessions.sort(key=lambda s: s.last_activity, reverse=True)
        return sessions


def stream_json_to_chunks(data: Dict[str, Any]) -> List[OutputChunk]:
    """Convert one ``--output-format stream-json`` event into chunks."""
    event_type = data.get("type")
    chunks: List[OutputChunk] = []

    if event_type in MESSAGE_TYPES:
        content = (data.get("message") or {}).get("content")
        if isinstance(content, str):
            if event_type == "assistant" and content:
                chunks.append(OutputChunk(ChunkType.TEXT, content))
            return chunks
        for block in content or []:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type")
            if block_type == "text" and event_type == "assistant":
                chunks.append(OutputChunk(ChunkType.TEXT, block.get("text", "")))
            elif block_type == "thinking":
                chunks.append(OutputChunk(ChunkType.THINKING, block.get("thinking", "")))
            elif block_type == "tool_use":
                chunks.append(
                    OutputChunk(
                        ChunkType.TOOL_USE,
                        json.dumps(block.get("input", {})),
                        name=block.get("name", ""),
                    )
                )
            elif block_type == "tool_result":
                chunks.append(
                    OutputChunk(
                        ChunkType.TOOL_RESULT,
                        _content_to_text(block.get("content", "")),
                        name=block.get("tool_use_id", ""),
                    )
                )
    elif event_type == "result":
        if data.get("is_error"):
            chunks.append(
                OutputChunk(ChunkType.ERROR, str(data.get("result") or "Claude Code failed"))
            )
        else:
            chunks.append(
                OutputChunk(
                    ChunkType.STATUS_UPDATE,
                    f"Completed ({data.get('num_turns', 0)} turns)",
                )
            )
    return chunks
