"""
CLI Agents package.

Subprocess helpers shared by backends and plugins: PATH availability
checks, version probes and bounded one-shot execution.
"""

from agent_conductor.cli_agents.availability import (
    CLIAvailabilityChecker,
    CLINotAvailableError,
    get_cli_version,
)
from agent_conductor.cli_agents.executor import CLIExecutor, CLIResult

__all__ = [
    "CLIAvailabilityChecker",
    "CLINotAvailableError",
    "CLIExecutor",
    "CLIResult",
    "get_cli_version",
]
