"""
Installation checks for agent CLIs.

Resolves executables on PATH, explains how to install the known ones, and
probes version strings.
"""

import asyncio
import logging
import re
import shutil
from dataclasses import dataclass
from typing import Dict, List, Optional

from agent_conductor.cli_agents.executor import CLIExecutor
from agent_conductor.errors import ExternalProcessError

logger = logging.getLogger(__name__)

VERSION_PROBE_ARGS: List[List[str]] = [["--version"], ["-v"], ["-V"], ["version"]]
VERSION_RE = re.compile(r"\d+\.\d+(?:\.\d+)?(?:[-+.][0-9A-Za-z.]+)?")
VERSION_TIMEOUT = 15


@dataclass
class CLIInfo:
    """Display name, executable and install hints for a known CLI."""

    name: str
    executable: str
    install_command: str
    documentation_url: str


CLI_REGISTRY: Dict[str, CLIInfo] = {
    "claude": CLIInfo(
        name="Claude Code",
        executable="claude",
        install_command="npm install -g @anthropic-ai/claude-code",
        documentation_url="https://docs.anthropic.com/claude-code",
    ),
    "gemini": CLIInfo(
        name="Gemini CLI",
        executable="gemini",
        install_command="npm install -g @google/gemini-cli",
        documentation_url="https://github.com/google-gemini/gemini-cli",
    ),
    "codex": CLIInfo(
        name="Codex CLI",
        executable="codex",
        install_command="npm install -g @openai/codex",
        documentation_url="https://github.com/openai/codex",
    ),
    "aider": CLIInfo(
        name="Aider",
        executable="aider",
        install_command="python -m pip install aider-install && aider-install",
        documentation_url="https://aider.chat/docs/install.html",
    ),
}


class CLIAvailabilityChecker:
    """
    PATH lookups for agent CLIs, cached per checker.

    Any executable name can be checked. Names listed in CLI_REGISTRY also
    get install instructions in their error messages.
    """

    def __init__(self):
        self._cache: Dict[str, bool] = {}

    def _executable_for(self, cli_name: str) -> str:
        known = CLI_REGISTRY.get(cli_name)
        return known.executable if known else cli_name

    def is_available(self, cli_name: str) -> bool:
        """
        Whether ``cli_name`` resolves on PATH.

        Args:
            cli_name: Registry key (claude, gemini, codex, aider) or a bare executable
        """
        cached = self._cache.get(cli_name)
        if cached is not None:
            return cached

        found = shutil.which(self._executable_for(cli_name)) is not None
        self._cache[cli_name] = found
        if not found:
            logger.warning(f"[AVAILABILITY] {cli_name} not found on PATH")
        return found

    async def is_available_async(self, cli_name: str) -> bool:
        """PATH lookup off the event loop."""
        if cli_name in self._cache:
            return self._cache[cli_name]
        return await asyncio.to_thread(self.is_available, cli_name)

    def clear_cache(self) -> None:
        self._cache.clear()

    def get_install_instructions(self, cli_name: str) -> str:
        known = CLI_REGISTRY.get(cli_name)
        if known is None:
            return f"Unknown CLI: {cli_name}"
        return (
            f"{known.name} is not installed.\n"
            f"Install it with `{known.install_command}` "
            f"(see {known.documentation_url})"
        )

    def get_error_message(self, cli_name: str) -> str:
        """Message shown when a session or one-shot call needs a missing CLI."""
        known = CLI_REGISTRY.get(cli_name)
        if known is None:
            return f"'{cli_name}' is not installed or is missing from PATH."
        return (
            f"{known.name} ({known.executable}) is not installed or is missing "
            f"from PATH.\n  Install: {known.install_command}\n"
            f"  Docs: {known.documentation_url}"
        )

    def check_all(self) -> Dict[str, bool]:
        """Availability of every CLI in CLI_REGISTRY, keyed by registry name."""
        return {name: self.is_available(name) for name in CLI_REGISTRY}

    def log_startup_status(self) -> None:
        status = self.check_all()
        found = sorted(name for name, ok in status.items() if ok)
        missing = sorted(name for name, ok in status.items() if not ok)

        if found:
            logger.info(f"[AVAILABILITY] Installed: {', '.join(found)}")
        for name in missing:
            logger.info(
                f"[AVAILABILITY] {name} missing; install with "
                f"{CLI_REGISTRY[name].install_command}"
            )


async def get_cli_version(
    executable: str,
    command: Optional[List[str]] = None,
    executor: Optional[CLIExecutor] = None,
) -> Optional[str]:
    """
    Query a CLI's version.

    Uses ``command`` when given, otherwise probes the usual version flags
    in turn. Returns the first version-looking string, the raw first line
    when nothing looks like a version, or None when every probe failed.
    """
    executor = executor or CLIExecutor()
    probes = [command] if command else VERSION_PROBE_ARGS

    for args in probes:
        result = await executor.execute([executable, *args], timeout=VERSION_TIMEOUT)
        if not result.ok:
            continue
        text = (result.stdout or result.stderr).strip()
        if not text:
            continue
        match = VERSION_RE.search(text)
        return match.group(0) if match else text.splitlines()[0]
    return None


class CLINotAvailableError(ExternalProcessError):
    """Raised when a required CLI is not available."""

    def __init__(self, cli_name: str, message: Optional[str] = None):
        self.cli_name = cli_name
        if message is None:
            checker = CLIAvailabilityChecker()
            message = checker.get_error_message(cli_name)
        super().__init__(message, return_code=127)
