"""
Codex CLI backend.

Command formats:
- Message: codex exec --json --skip-git-repo-check [...] "<message>"
- Resume:  codex exec resume <thread_id> --json --skip-git-repo-check [...] "<message>"

Codex reads the prompt from stdin when it is given as "-".
Note: Codex uses thread_id, NOT session_id.
"""

import logging
import re
from typing import Dict, List, Optional

from agent_conductor.backends.base import BackendOptions, first_group
from agent_conductor.backends.registry import agent_backend

logger = logging.getLogger(__name__)

THREAD_ID_RE = re.compile(r'"thread_id"\s*:\s*"([^"]+)"')


@agent_backend("codex")
class CodexBackend:
    """Backend for OpenAI's Codex CLI."""

    @property
    def executable(self) -> str:
        return "codex"

    @property
    def needs_session_init(self) -> bool:
        return False

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
        if cli_session_id:
            args = ["exec", "resume", cli_session_id]
        elif options.continue_last:
            args = ["exec", "resume", "--last"]
        else:
            args = ["exec"]

        # Codex only speaks JSONL in exec mode; output_format is not configurable
        args.extend(["--json", "--skip-git-repo-check"])

        if options.permission_mode:
            args.extend(["--sandbox", options.permission_mode])
        else:
            args.append("--full-auto")
        if options.model:
            args.extend(["--model", options.model])
        if options.max_turns:
            logger.debug("[CODEX] max_turns is not supported; ignored")

        # Codex supports: low, medium, high, xhigh
        if options.reasoning_effort and options.reasoning_effort != "medium":
            args.extend(["-c", f'model_reasoning_effort="{options.reasoning_effort}"'])

        args.extend(options.extra_args)

        args.append(message if message is not None else "-")
        return args

    def build_init_args(self, prompt: str, options: BackendOptions) -> List[str]:
        return self.build_message_args(prompt, None, options)

    def parse_init_output(self, output: str) -> Optional[str]:
        return first_group(THREAD_ID_RE, output)

    def extract_session_id(self, line: str) -> Optional[str]:
        return first_group(THREAD_ID_RE, line)

    def build_env(self, options: BackendOptions) -> Dict[str, str]:
        return dict(options.env)
