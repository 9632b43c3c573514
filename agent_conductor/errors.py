"""Common errors for agent-conductor.

Every error raised across the command boundary carries a short, human
readable message; ``str(error)`` is what callers show to users.
"""

from typing import Optional


class ConductorError(Exception):
    """Base class for all agent-conductor errors."""


class NotFoundError(ConductorError):
    """Raised when a caller refers to an unknown session or plugin."""


class SessionNotFoundError(NotFoundError):
    """Raised when a session id is not in the registry."""

    def __init__(self, session_id: str, message: Optional[str] = None):
        if message is None:
            message = f"Session not found: {session_id}"
        super().__init__(message)
        self.session_id = session_id


class PluginNotFoundError(NotFoundError):
    """Raised when no plugin is registered under the given name."""

    def __init__(self, plugin_name: str, message: Optional[str] = None):
        if message is None:
            message = f"Plugin not found: {plugin_name}"
        super().__init__(message)
        self.plugin_name = plugin_name


class ExternalProcessError(ConductorError):
    """Raised when a wrapped CLI cannot be spawned, fails, or times out."""

    def __init__(
        self,
        message: str,
        return_code: Optional[int] = None,
        stderr: Optional[str] = None,
    ):
        super().__init__(message)
        self.return_code = return_code
        self.stderr = stderr


class ConfigInvalidError(ConductorError):
    """Raised when a plugin manifest or settings value fails validation."""

    def __init__(self, message: str, source: Optional[str] = None):
        if source:
            message = f"{source}: {message}"
        super().__init__(message)
        self.source = source


class CapabilityUnsupportedError(ConductorError):
    """Raised when a plugin actively refuses an operation it cannot provide."""

    def __init__(self, plugin_name: str, capability: str, message: Optional[str] = None):
        if message is None:
            message = f"Plugin '{plugin_name}' does not support {capability}"
        super().__init__(message)
        self.plugin_name = plugin_name
        self.capability = capability


class InvalidProjectPathError(ConductorError):
    """Raised when a session is started for a directory that does not exist."""

    def __init__(self, project_path: str, message: Optional[str] = None):
        if message is None:
            message = f"Project path does not exist: {project_path}"
        super().__init__(message)
        self.project_path = project_path
