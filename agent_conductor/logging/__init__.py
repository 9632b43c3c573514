"""Logging setup for agent-conductor."""

from agent_conductor.logging.setup import setup_logging, shutdown_logging

__all__ = ["setup_logging", "shutdown_logging"]
