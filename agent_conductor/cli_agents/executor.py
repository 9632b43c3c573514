"""
CLIExecutor: bounded one-shot CLI invocations.

Used where a caller needs a CLI's complete output before continuing: the
session-id harvest call, version probes, manifest history commands and
one-shot prompts. Per-message session traffic does not go through here; it
is streamed by the session registry.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

# Maximum output capture size (10MB)
MAX_OUTPUT_SIZE = 10 * 1024 * 1024


@dataclass
class CLIResult:
    """Result from a CLI execution."""

    stdout: str
    stderr: str
    return_code: int
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.return_code == 0 and not self.timed_out


class CLIExecutor:
    """
    Executes a CLI to completion as a subprocess.

    Provides:
    - Optional stdin payload followed by EOF
    - Total timeout with process termination
    - Command/working-directory-not-found mapped to return code 127
    """

    async def execute(
        self,
        command: List[str],
        timeout: float,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        stdin_data: Optional[str] = None,
    ) -> CLIResult:
        """
        Execute a command and collect its output.

        Args:
            command: Command and arguments to execute
            timeout: Maximum total execution time in seconds
            cwd: Working directory (optional)
            env: Extra environment variables layered over os.environ
            stdin_data: Text written to stdin before closing it (optional)

        Returns:
            CLIResult with stdout, stderr, return_code and timeout flag
        """
        logger.debug(f"Executing: {' '.join(command)}")
        logger.debug(f"CWD: {cwd}, timeout: {timeout}s")

        full_env = {**os.environ, **env} if env else None

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                env=full_env,
                cwd=cwd,
                stdin=(
                    asyncio.subprocess.PIPE
                    if stdin_data is not None
                    else asyncio.subprocess.DEVNULL
                ),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            # Could be command not found OR cwd not found
            if cwd and not Path(cwd).exists():
                logger.error(f"Working directory not found: {cwd}")
                return CLIResult(
                    stdout="",
                    stderr=f"Working directory not found: {cwd}",
                    return_code=127,
                )
            logger.error(f"Command not found: {command[0]}")
            return CLIResult(
                stdout="", stderr=f"Command not found: {command[0]}", return_code=127
            )
        except Exception as e:
            logger.error(f"Execution error: {e}")
            return CLIResult(stdout="", stderr=str(e), return_code=-1)

        payload = stdin_data.encode("utf-8") if stdin_data is not None else None

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(payload), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Total timeout ({timeout}s) exceeded, killing process")
            await self._kill(process)
            return CLIResult(
                stdout="",
                stderr=f"Timed out after {timeout}s",
                return_code=-1,
                timed_out=True,
            )
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        return CLIResult(
            stdout=stdout[:MAX_OUTPUT_SIZE].decode("utf-8", errors="replace"),
            stderr=stderr[:MAX_OUTPUT_SIZE].decode("utf-8", errors="replace"),
            return_code=process.returncode if process.returncode is not None else -1,
        )

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()
