"""
Claude Code backend.

Command formats:
- Message: claude --print --output-format stream-json --verbose [...] "<message>"
- Resume:  claude --print --resume <session_id> [...] "<message>"
- Harvest: claude --print --output-format json "<init prompt>"

With stream-json, the first line is a system/init event carrying the
session_id; with json, the single result object carries it.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from agent_conductor.backends.base import BackendOptions, first_group
from agent_conductor.backends.registry import agent_backend

logger = logging.getLogger(__name__)

# Mapping from reasoning effort levels to MAX_THINKING_TOKENS values
# Based on Claude Code's default of 31,999 tokens
REASONING_EFFORT_TO_TOKENS: Dict[str, int] = {
    "low": 16_000,
    "medium": 31_999,  # Claude Code default
    "high": 63_999,
    "xhigh": 127_999,
}

SESSION_ID_RE = re.compile(r'"session_id"\s*:\s*"([^"]+)"')


@agent_backend("claude")
class ClaudeBackend:
    """Backend for Anthropic's Claude Code CLI."""

    @property
    def executable(self) -> str:
        return "claude"

    @property
    def needs_session_init(self) -> bool:
        return True

    @property
    def supports_stdin(self) -> bool:
        return True

    def build_message_args(
        self,
        message: Optional[str],
        cli_session_id: Optional[str],
        options: BackendOptions,
        project_path: Optional[str] = None,
    ) -> List[str]:
        output_format = options.output_format or "stream-json"
        args = ["--print", "--output-format", output_format]
        # stream-json requires --verbose in print mode
        if output_format == "stream-json":
            args.append("--verbose")

        if options.permission_mode:
            args.extend(["--permission-mode", options.permission_mode])
        if options.model:
            args.extend(["--model", options.model])
        if options.max_turns:
            args.extend(["--max-turns", str(options.max_turns)])

        if cli_session_id:
            args.extend(["--resume", cli_session_id])
        elif options.continue_last:
            args.append("--continue")

        args.extend(options.extra_args)

        # Message goes last; omitted when delivered on stdin
        if message is not None:
            args.append(message)
        return args

    def build_init_args(self, prompt: str, options: BackendOptions) -> List[str]:
        args = ["--print", "--output-format", "json"]
        if options.model:
            args.extend(["--model", options.model])
        args.append(prompt)
        return args

    def parse_init_output(self, output: str) -> Optional[str]:
        """
        Extract session_id from json/stream-json output.

        Accepts a single result object, a JSON array of events, or JSONL.
        """
        text = output.strip()
        if not text:
            return None

        try:
            data: Any = json.loads(text)
        except json.JSONDecodeError:
            # Probably JSONL; take the first line that carries an id
            for line in text.splitlines():
                session_id = self.extract_session_id(line)
                if session_id:
                    return session_id
            return None

        events = data if isinstance(data, list) else [data]
        for event in events:
            if isinstance(event, dict) and event.get("session_id"):
                return str(event["session_id"])
        return None

    def extract_session_id(self, line: str) -> Optional[str]:
        return first_group(SESSION_ID_RE, line)

    def build_env(self, options: BackendOptions) -> Dict[str, str]:
        env = dict(options.env)
        effort = options.reasoning_effort
        if effort:
            tokens = REASONING_EFFORT_TO_TOKENS.get(effort)
            if tokens is None:
                logger.warning(f"[CLAUDE] Unknown reasoning_effort '{effort}' ignored")
            else:
                env["MAX_THINKING_TOKENS"] = str(tokens)
        return env
