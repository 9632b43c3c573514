"""Logging system setup: stderr plus optional non-blocking VictoriaLogs shipping."""

import atexit
import logging
import logging.handlers
import os
import queue
import sys
import uuid
from pathlib import Path

from ..config import get_settings

APP_LOGGER_NAME = "agent_conductor"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def generate_instance_id() -> str:
    """Generate semantic instance ID based on runtime context."""
    project = Path.cwd().name
    session = str(uuid.uuid4())[:8]
    return f"{project}_{session}"


def setup_logging() -> logging.Logger:
    """Configure the agent_conductor logger from settings."""
    settings = get_settings()

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(settings.logging.level)
    app_logger.propagate = False

    shutdown_logging()
    if app_logger.hasHandlers():
        app_logger.handlers.clear()

    if settings.logging.stderr_enabled:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        app_logger.addHandler(stderr_handler)

    if settings.logging.victoria_logs_enabled and settings.logging.victoria_logs_url:
        _add_victoria_logs_handler(app_logger, settings)

    if not app_logger.handlers:
        app_logger.addHandler(logging.NullHandler())

    return app_logger


def _add_victoria_logs_handler(app_logger: logging.Logger, settings) -> None:
    from .handlers import TimeoutLokiHandler

    instance_id = generate_instance_id()

    try:
        log_queue: queue.Queue = queue.Queue(-1)

        loki_handler = TimeoutLokiHandler(
            url=f"{settings.logging.victoria_logs_url}/insert/loki/api/v1/push?_stream_fields=app,instance_id",
            tags={
                "app": settings.logging.loki_app_tag,
                "instance_id": instance_id,
                "project": os.getcwd(),
            },
            version="1",
            timeout=10.0,
        )
        loki_handler.setLevel(settings.logging.level)

        queue_handler = logging.handlers.QueueHandler(log_queue)
        queue_listener = logging.handlers.QueueListener(
            log_queue, loki_handler, respect_handler_level=True
        )
        queue_listener.start()

        app_logger._queue_listener = queue_listener  # type: ignore[attr-defined]
        atexit.register(shutdown_logging)

        app_logger.addHandler(queue_handler)
        app_logger.info(
            f"Non-blocking VictoriaLogs handler configured for instance {instance_id}"
        )
    except Exception as e:
        # Logging must never block startup
        print(
            f"Warning: Could not set up VictoriaLogs queue handler: {e}",
            file=sys.stderr,
        )


def shutdown_logging() -> None:
    """Stop the queue listener if it exists."""
    app_logger = logging.getLogger(APP_LOGGER_NAME)
    listener = getattr(app_logger, "_queue_listener", None)
    if listener is not None:
        listener.stop()
        delattr(app_logger, "_queue_listener")
