"""Unified configuration management using YAML with environment overlay."""

import os
import sys
import yaml
import logging
from pathlib import Path
from functools import lru_cache
from typing import Optional, Dict, Any, List, Tuple
from pydantic import BaseModel, Field, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Configuration file paths
CONFIG_FILE = Path("config.yaml")
LOCAL_CONFIG_FILE = Path("config.local.yaml")

DEFAULT_CONTINUATION_MARKERS = [
    "This session is being continued",
    "Conversation Flow Analysis",
    "Summary:",
    "conversation was summarized",
    "summarized below",
    "## Summary",
]


def default_plugin_dir() -> Path:
    """Platform specific directory that holds plugin bundles."""
    home = Path(os.environ.get("HOME", os.path.expanduser("~")))
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / "AgentConductor" / "plugins"
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        base = Path(appdata) if appdata else home / "AppData" / "Roaming"
        return base / "AgentConductor" / "plugins"
    return home / ".config" / "agent-conductor" / "plugins"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field("INFO", description="Logging level")
    stderr_enabled: bool = Field(True, description="Mirror logs to stderr")
    victoria_logs_url: str = Field(
        "http://localhost:9428", description="Victoria Logs URL"
    )
    victoria_logs_enabled: bool = Field(False, description="Enable Victoria Logs")
    loki_app_tag: str = Field("agent-conductor", description="Loki app tag")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()


class PluginsConfig(BaseModel):
    """Plugin discovery configuration."""

    dir: Optional[str] = Field(
        None, description="Plugin root directory (platform default when unset)"
    )
    settings_file: str = Field(
        "plugin_settings.json", description="Where plugin flag values are stored"
    )
    builtin_enabled: bool = Field(True, description="Register built-in plugins")

    @property
    def plugin_dir(self) -> Path:
        if self.dir:
            return Path(self.dir).expanduser()
        return default_plugin_dir()


class SessionsConfig(BaseModel):
    """Session registry configuration."""

    stdin_threshold: int = Field(
        16 * 1024,
        description="Messages longer than this many bytes are sent via stdin",
        ge=0,
    )
    kill_timeout: float = Field(
        5.0, description="Seconds to wait after terminate before kill", gt=0
    )
    init_timeout: int = Field(
        120, description="Timeout for the one-shot session-id harvest call", gt=0
    )
    init_prompt: str = Field(
        "Reply with OK.", description="Prompt sent when harvesting a vendor session id"
    )


class HistoryConfig(BaseModel):
    """Continuation detection for CLI-native history."""

    continuation_markers: List[str] = Field(
        default_factory=lambda: list(DEFAULT_CONTINUATION_MARKERS),
        description="Substrings marking a summarized/continued conversation",
    )
    analysis_marker: str = Field("Analysis:", description="Long analysis block marker")
    analysis_min_length: int = Field(
        500, description="Minimum content length for the analysis marker to count"
    )


class AIConfig(BaseModel):
    """One-shot AI call configuration."""

    command: str = Field("claude", description="CLI used for one-shot prompts")
    timeout_seconds: int = Field(300, description="Bounded wait for one call", gt=0)


class WatchConfig(BaseModel):
    """Transcript watching configuration."""

    poll_interval: float = Field(
        1.0, description="Seconds between transcript polls", gt=0
    )


class Settings(BaseSettings):
    """Unified settings for agent-conductor."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",  # Allows SESSIONS__STDIN_THRESHOLD env var
        extra="ignore",
        validate_default=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        """Customize settings sources to include YAML files and legacy env vars."""
        from pydantic_settings.sources import PydanticBaseSettingsSource

        class YamlConfigSource(PydanticBaseSettingsSource):
            """Load settings from YAML files."""

            def get_field_value(
                self, field: FieldInfo, field_name: str
            ) -> Tuple[Any, str, bool]:
                data = self()
                if field_name in data:
                    return data[field_name], field_name, True
                return None, field_name, False

            def __call__(self) -> Dict[str, Any]:
                return cls._yaml_config_source()

        class LegacyEnvVars(PydanticBaseSettingsSource):
            """Load legacy flat environment variables."""

            def get_field_value(
                self, field: FieldInfo, field_name: str
            ) -> Tuple[Any, str, bool]:
                data = self()
                if field_name in data:
                    return data[field_name], field_name, True
                return None, field_name, False

            def __call__(self) -> Dict[str, Any]:
                return cls._legacy_env_source()

        # Precedence (left to right - first source wins):
        # env_settings > legacy_env > yaml > defaults
        return (
            init_settings,
            env_settings,
            LegacyEnvVars(settings_cls),
            YamlConfigSource(settings_cls),
            file_secret_settings,
        )

    @classmethod
    def _yaml_config_source(cls) -> Dict[str, Any]:
        """Load configuration from YAML files."""
        config_data: Dict[str, Any] = {}

        # Under pytest, ignore a stray config.yaml unless one is requested explicitly
        if (
            "pytest" in sys.modules
            and "CONDUCTOR_CONFIG_FILE" not in os.environ
            and "CONDUCTOR_LOCAL_CONFIG_FILE" not in os.environ
        ):
            return {}

        config_file = Path(os.getenv("CONDUCTOR_CONFIG_FILE", str(CONFIG_FILE)))
        local_file = Path(
            os.getenv("CONDUCTOR_LOCAL_CONFIG_FILE", str(LOCAL_CONFIG_FILE))
        )

        if config_file.exists():
            try:
                with open(config_file) as f:
                    config_data = yaml.safe_load(f) or {}
                logger.debug(f"Loaded configuration from {config_file}")
            except Exception as e:
                logger.warning(f"Failed to load {config_file}: {e}")

        # Machine-local overrides win over the shared file
        if local_file.exists():
            try:
                with open(local_file) as f:
                    local_data = yaml.safe_load(f) or {}
                config_data = _deep_merge(config_data, local_data)
                logger.debug(f"Loaded local overrides from {local_file}")
            except Exception as e:
                logger.warning(f"Failed to load {local_file}: {e}")

        # Handle None values from YAML (e.g., "sessions:" with no content)
        for key in list(config_data.keys()):
            if config_data[key] is None:
                config_data[key] = {}

        return config_data

    @classmethod
    def _legacy_env_source(cls) -> Dict[str, Any]:
        """Support flat environment variables."""
        config_data: Dict[str, Any] = {}

        legacy_mappings = {
            # Logging
            "LOG_LEVEL": ("logging", "level"),
            "VICTORIA_LOGS_URL": ("logging", "victoria_logs_url"),
            "DISABLE_VICTORIA_LOGS": (
                "logging",
                "victoria_logs_enabled",
            ),  # Note: inverted logic
            "LOKI_APP_TAG": ("logging", "loki_app_tag"),
            # Plugins
            "CONDUCTOR_PLUGIN_DIR": ("plugins", "dir"),
            "CONDUCTOR_PLUGIN_SETTINGS": ("plugins", "settings_file"),
            # Sessions
            "CONDUCTOR_STDIN_THRESHOLD": ("sessions", "stdin_threshold"),
            "CONDUCTOR_KILL_TIMEOUT": ("sessions", "kill_timeout"),
            # One-shot calls
            "CONDUCTOR_AI_TIMEOUT": ("ai", "timeout_seconds"),
        }

        for env_key, path in legacy_mappings.items():
            value = os.getenv(env_key)
            if value is None:
                value = os.getenv(env_key.lower())

            if value is not None:
                current = config_data
                for key in path[:-1]:
                    if key not in current:
                        current[key] = {}
                    current = current[key]

                if env_key == "DISABLE_VICTORIA_LOGS":
                    current[path[-1]] = value.lower() not in ("1", "true", "yes")
                else:
                    current[path[-1]] = value

        return config_data


def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries, with b taking precedence."""
    result = a.copy()

    for key, value in b.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
