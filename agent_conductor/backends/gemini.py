"""
Gemini CLI backend.

Command formats:
- Message: gemini --output-format json [...] "<message>"
- Resume:  gemini --resume <session_id> --output-format json [...] "<message>"

Gemini has no turn limit and no thinking-budget flag; those options are
ignored with a one-time warning.
"""

import logging
import re
from typing import Dict, List, Optional

from agent_conductor.backends.base import BackendOptions, first_group
from agent_conductor.backends.registry import agent_backend

logger = logging.getLogger(__name__)

SESSION_ID_RE = re.compile(r'"session_?[iI]d"\s*:\s*"([^"]+)"')

# Track which unsupported options we've already warned about
_warned_options: set = set()


def _warn_unsupported(option: str) -> None:
    if option not in _warned_options:
        logger.warning(f"[GEMINI] {option} is not supported by Gemini CLI; ignored")
        _warned_options.add(option)


@agent_backend("gemini")
class GeminiBackend:
    """Backend for Google's Gemini CLI."""

    @property
    def executable(self) -> str:
        return "gemini"

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
        args: List[str] = []
        if cli_session_id:
            args.extend(["--resume", cli_session_id])
        elif options.continue_last:
            args.extend(["--resume", "latest"])

        args.extend(["--output-format", options.output_format or "json"])

        if options.permission_mode:
            args.extend(["--approval-mode", options.permission_mode])
        else:
            args.append("--yolo")
        if options.model:
            args.extend(["--model", options.model])
        if options.max_turns:
            _warn_unsupported("max_turns")
        if options.reasoning_effort and options.reasoning_effort != "medium":
            _warn_unsupported("reasoning_effort")

        args.extend(options.extra_args)

        if message is not None:
            args.append(message)
        return args

    def build_init_args(self, prompt: str, options: BackendOptions) -> List[str]:
        return self.build_message_args(prompt, None, options)

    def parse_init_output(self, output: str) -> Optional[str]:
        return first_group(SESSION_ID_RE, output)

    def extract_session_id(self, line: str) -> Optional[str]:
        return first_group(SESSION_ID_RE, line)

    def build_env(self, options: BackendOptions) -> Dict[str, str]:
        return dict(options.env)
