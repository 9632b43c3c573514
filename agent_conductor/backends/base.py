"""
Base types for CLI backends.

A backend knows how to turn one message exchange into a command line for a
specific vendor CLI: which flags resume a conversation, how output format,
permission mode, model and turn limits are spelled, and how to spot the
vendor session id in output.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol


@dataclass
class BackendOptions:
    """Per-session knobs, resolved from plugin flags or caller settings."""

    model: Optional[str] = None
    permission_mode: Optional[str] = None
    max_turns: Optional[int] = None
    output_format: Optional[str] = None
    reasoning_effort: Optional[str] = None
    continue_last: bool = False
    extra_args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Optional[Mapping[str, Any]]) -> "BackendOptions":
        """Build options from a loose settings mapping, ignoring unknown keys."""
        if not settings:
            return cls()

        max_turns = settings.get("max_turns")
        extra_args = settings.get("extra_args") or []
        if isinstance(extra_args, str):
            extra_args = extra_args.split()

        return cls(
            model=settings.get("model") or None,
            permission_mode=settings.get("permission_mode") or None,
            max_turns=int(max_turns) if max_turns not in (None, "") else None,
            output_format=settings.get("output_format") or None,
            reasoning_effort=settings.get("reasoning_effort") or None,
            continue_last=bool(settings.get("continue_last", False)),
            extra_args=list(extra_args),
            env={str(k): str(v) for k, v in (settings.get("env") or {}).items()},
        )


class AgentBackend(Protocol):
    """Protocol every CLI backend implements."""

    @property
    def executable(self) -> str:
        """The CLI executable name (e.g., 'claude')."""
        ...

    @property
    def needs_session_init(self) -> bool:
        """Whether a one-shot call is needed up front to obtain a vendor id."""
        ...

    @property
    def supports_stdin(self) -> bool:
        """Whether the message may be delivered on stdin instead of argv."""
        ...

    def build_message_args(
        self,
        message: Optional[str],
        cli_session_id: Optional[str],
        options: BackendOptions,
        project_path: Optional[str] = None,
    ) -> List[str]:
        """
        Build args for one message exchange.

        ``message`` is None when it will be written to stdin. ``project_path``
        is the directory the CLI will run in.
        """
        ...

    def build_init_args(self, prompt: str, options: BackendOptions) -> List[str]:
        """Build args for the one-shot session-id harvest call."""
        ...

    def parse_init_output(self, output: str) -> Optional[str]:
        """Extract the vendor session id from the harvest call's stdout."""
        ...

    def extract_session_id(self, line: str) -> Optional[str]:
        """Return the vendor session id if this output line carries one."""
        ...

    def build_env(self, options: BackendOptions) -> Dict[str, str]:
        """Extra environment variables for the child process."""
        ...


def first_group(pattern: Optional["re.Pattern[str]"], line: str) -> Optional[str]:
    """Return capture group 1 of the first match, or None."""
    if pattern is None:
        return None
    match = pattern.search(line)
    if not match or not match.groups():
        return None
    return match.group(1) or None
