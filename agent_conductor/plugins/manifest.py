"""
Plugin manifest: the declarative description of a CLI plugin.

A plugin directory holds ``plugin.toml`` (or ``plugin.yaml``) with these
sections:

    [plugin]          name, display_name, version, description, cli_command, ...
    [capabilities]    session_resume, streaming_output, tool_use, ...
    [commands]        start_session, send_message, resume_session, ...
    [output_parsing]  session_id_pattern, output_format, event_patterns, ...
    [[flags]]         UI-configurable CLI options

Command templates are argument arrays whose ``{variable}`` placeholders are
substituted verbatim.
"""

import logging
import re
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from agent_conductor.errors import ConfigInvalidError
from agent_conductor.plugins.base import (
    FlagOption,
    FlagType,
    PluginCapability,
    PluginFlag,
)

logger = logging.getLogger(__name__)

MANIFEST_FILENAMES = ("plugin.toml", "plugin.yaml", "plugin.yml")

_VARIABLE_RE = re.compile(r"\{(\w+)\}")

# Chunk types a manifest may assign to matching output lines
EVENT_PATTERN_TYPES = ("thinking", "error", "status_update", "text")


class PluginMetadata(BaseModel):
    name: str
    display_name: str
    version: str
    description: str = ""
    author: Optional[str] = None
    homepage: Optional[str] = None
    cli_command: str
    icon: Optional[str] = None
    color: Optional[str] = None


class CapabilitiesSection(BaseModel):
    session_resume: bool = False
    streaming_output: bool = True
    tool_use: bool = False
    multi_turn: bool = True
    file_context: bool = False
    thinking: bool = False

    def enabled(self) -> List[PluginCapability]:
        return [cap for cap in PluginCapability if getattr(self, cap.value)]


class CommandsSection(BaseModel):
    start_session: List[str] = Field(default_factory=list)
    send_message: List[str] = Field(default_factory=list)
    resume_session: Optional[List[str]] = None
    list_sessions: Optional[List[str]] = None
    get_history: Optional[List[str]] = None
    get_version: Optional[List[str]] = None


class OutputParsingSection(BaseModel):
    session_id_pattern: Optional[str] = None
    output_format: str = "text"
    session_id_json_path: Optional[str] = None
    event_patterns: Dict[str, str] = Field(default_factory=dict)

    @field_validator("session_id_pattern")
    @classmethod
    def validate_pattern(cls, v: Optional[str]) -> Optional[str]:
        if v:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"Invalid session_id_pattern: {e}")
        return v

    @field_validator("event_patterns")
    @classmethod
    def validate_event_patterns(cls, v: Dict[str, str]) -> Dict[str, str]:
        for chunk_type, pattern in v.items():
            if chunk_type not in EVENT_PATTERN_TYPES:
                raise ValueError(
                    f"Unknown event_patterns key '{chunk_type}', expected one of: "
                    f"{', '.join(EVENT_PATTERN_TYPES)}"
                )
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid event_patterns.{chunk_type}: {e}")
        return v


class FlagOptionEntry(BaseModel):
    value: str
    label: str
    description: Optional[str] = None


class FlagEntry(BaseModel):
    id: str
    flag: str
    label: str
    description: str = ""
    flag_type: FlagType = FlagType.TOGGLE
    default_value: Optional[str] = None
    options: List[FlagOptionEntry] = Field(default_factory=list)
    category: Optional[str] = None

    def to_flag(self) -> PluginFlag:
        return PluginFlag(
            id=self.id,
            flag=self.flag,
            label=self.label,
            description=self.description,
            flag_type=self.flag_type,
            default_value=self.default_value,
            options=[
                FlagOption(value=o.value, label=o.label, description=o.description)
                for o in self.options
            ],
            category=self.category,
        )


class PluginManifest(BaseModel):
    """Parsed and validated plugin manifest."""

    plugin: PluginMetadata
    capabilities: CapabilitiesSection = Field(default_factory=CapabilitiesSection)
    commands: CommandsSection
    output_parsing: OutputParsingSection = Field(default_factory=OutputParsingSection)
    flags: List[FlagEntry] = Field(default_factory=list)

    @property
    def name(self) -> str:
        return self.plugin.name

    def validate_manifest(self) -> None:
        """
        Check the fields the adapter cannot work without.

        Raises:
            ConfigInvalidError: cli_command, start_session or send_message empty
        """
        if not self.plugin.cli_command.strip():
            raise ConfigInvalidError("cli_command cannot be empty", source=self.name)
        if not self.commands.start_session:
            raise ConfigInvalidError(
                "start_session command cannot be empty", source=self.name
            )
        if not self.commands.send_message:
            raise ConfigInvalidError(
                "send_message command cannot be empty", source=self.name
            )

    def plugin_flags(self) -> List[PluginFlag]:
        return [entry.to_flag() for entry in self.flags]


def replace_variables(template: List[str], variables: Mapping[str, str]) -> List[str]:
    """
    Substitute ``{name}`` placeholders in each argument.

    Values are inserted verbatim; unknown placeholders are left untouched.
    """

    def substitute(match: "re.Match[str]") -> str:
        key = match.group(1)
        return variables[key] if key in variables else match.group(0)

    return [_VARIABLE_RE.sub(substitute, arg) for arg in template]


def parse_manifest(data: Mapping[str, Any], source: Optional[str] = None) -> PluginManifest:
    """Validate raw manifest data."""
    try:
        manifest = PluginManifest.model_validate(data)
    except ValidationError as e:
        raise ConfigInvalidError(str(e), source=source) from e
    manifest.validate_manifest()
    return manifest


def find_manifest_file(plugin_dir: Path) -> Optional[Path]:
    for filename in MANIFEST_FILENAMES:
        candidate = plugin_dir / filename
        if candidate.is_file():
            return candidate
    return None


def load_manifest(path: Path) -> PluginManifest:
    """
    Load a manifest from a TOML or YAML file.

    Raises:
        ConfigInvalidError: unreadable, malformed or incomplete manifest
    """
    try:
        if path.suffix == ".toml":
            with open(path, "rb") as f:
                data = tomllib.load(f)
        else:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
    except (OSError, tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise ConfigInvalidError(f"Failed to read manifest: {e}", source=str(path)) from e

    if not isinstance(data, dict):
        raise ConfigInvalidError("Manifest must be a mapping", source=str(path))

    manifest = parse_manifest(data, source=str(path))
    logger.debug(f"[PLUGINS] Loaded manifest {manifest.name} from {path}")
    return manifest
