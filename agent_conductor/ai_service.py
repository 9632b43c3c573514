"""
AIService: one-shot prompts through the Claude CLI.

Used for auxiliary text generation (summaries, titles) outside any agent
session. The prompt goes to stdin so length is not bounded by argv.
"""

import logging
from typing import Optional

from agent_conductor.cli_agents.availability import (
    CLIAvailabilityChecker,
    CLINotAvailableError,
)
from agent_conductor.cli_agents.executor import CLIExecutor
from agent_conductor.config import Settings, get_settings
from agent_conductor.errors import ExternalProcessError

logger = logging.getLogger(__name__)

PRINT_ARGS = ["--print", "--dangerously-skip-permissions"]


class AIService:
    """Runs single prompts through the configured CLI in print mode."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        executor: Optional[CLIExecutor] = None,
        checker: Optional[CLIAvailabilityChecker] = None,
    ):
        self._settings = settings or get_settings()
        self._executor = executor or CLIExecutor()
        self._checker = checker or CLIAvailabilityChecker()

    @property
    def command(self) -> str:
        return self._settings.ai.command

    async def is_available(self) -> bool:
        return await self._checker.is_available_async(self.command)

    async def prompt(self, prompt: str, cwd: Optional[str] = None) -> str:
        """
        Send one prompt and return the full response text.

        Raises:
            ExternalProcessError: empty prompt, timeout, non-zero exit or
                empty response
            CLINotAvailableError: the CLI is not installed
        """
        if not prompt.strip():
            raise ExternalProcessError("No prompt given")

        timeout = self._settings.ai.timeout_seconds
        logger.info(f"[AI] Calling {self.command} with prompt length {len(prompt)}")

        result = await self._executor.execute(
            [self.command, *PRINT_ARGS],
            timeout=timeout,
            cwd=cwd,
            stdin_data=prompt,
        )

        if result.timed_out:
            raise ExternalProcessError(f"{self.command} timed out after {timeout}s")
        if result.return_code == 127 and "Command not found" in result.stderr:
            raise CLINotAvailableError(self.command)
        if result.return_code != 0:
            raise ExternalProcessError(
                f"{self.command} exited with error (code: {result.return_code}): "
                f"{result.stderr.strip()}",
                return_code=result.return_code,
                stderr=result.stderr,
            )

        response = result.stdout.strip()
        if not response:
            raise ExternalProcessError(f"{self.command} returned empty response")

        logger.info(f"[AI] Received response ({len(response)} bytes)")
        return response
