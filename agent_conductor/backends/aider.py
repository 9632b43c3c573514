"""
Aider backend.

Command format:
- Message: aider --yes-always --no-pretty --no-stream [...] --message "<message>"

Aider keeps its chat history per working directory rather than by id, so
"resume" means restoring that history. It has no stdin prompt mode, so long
messages still travel on argv.
"""

import logging
from typing import Dict, List, Optional

from agent_conductor.backends.base import BackendOptions
from agent_conductor.backends.registry import agent_backend

logger = logging.getLogger(__name__)


@agent_backend("aider")
class AiderBackend:
    """Backend for the Aider CLI."""

    @property
    def executable(self) -> str:
        return "aider"

    @property
    def needs_session_init(self) -> bool:
        return False

    @property
    def supports_stdin(self) -> bool:
        return False

    def build_message_args(
        self,
        message: Optional[str],
        cli_session_id: Optional[str],
        options: BackendOptions,
        project_path: Optional[str] = None,
    ) -> List[str]:
        args = ["--yes-always", "--no-pretty", "--no-stream"]
        if cli_session_id or options.continue_last:
            args.append("--restore-chat-history")
        if options.model:
            args.extend(["--model", options.model])
        if options.reasoning_effort:
            args.extend(["--reasoning-effort", options.reasoning_effort])

        args.extend(options.extra_args)

        if message is not None:
            args.extend(["--message", message])
        return args

    def build_init_args(self, prompt: str, options: BackendOptions) -> List[str]:
        return self.build_message_args(prompt, None, options)

    def parse_init_output(self, output: str) -> Optional[str]:
        return None

    def extract_session_id(self, line: str) -> Optional[str]:
        return None

    def build_env(self, options: BackendOptions) -> Dict[str, str]:
        return dict(options.env)
