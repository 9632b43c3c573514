"""
Persistence of per-plugin flag values.

Stored as one JSON document:

    {"plugins": {"<plugin>": {"flags": {"<flag id>": "<value>"}}}}
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from agent_conductor.config import Settings, get_settings
from agent_conductor.errors import ConfigInvalidError
from agent_conductor.plugins.base import FlagType, PluginFlag

logger = logging.getLogger(__name__)

_TRUTHY = {"true", "1", "yes", "on"}


def _is_enabled(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


def build_flag_args(
    flags: Sequence[PluginFlag], values: Optional[Mapping[str, Any]] = None
) -> List[str]:
    """
    Resolve flag values to CLI arguments.

    A flag without a stored value falls back to its default. Toggles add the
    bare flag when enabled; select and string flags add ``flag value`` when
    the value is non-empty.
    """
    values = values or {}
    args: List[str] = []
    for flag in flags:
        value = values.get(flag.id, flag.default_value)
        if value is None:
            continue
        if flag.flag_type == FlagType.TOGGLE:
            if _is_enabled(value):
                args.append(flag.flag)
        elif str(value) != "":
            args.extend([flag.flag, str(value)])
    return args


def validate_flag_values(
    plugin_name: str, flags: Sequence[PluginFlag], values: Mapping[str, Any]
) -> None:
    """
    Reject select values outside the declared options.

    Keys that are not flag ids are ignored.
    """
    by_id = {flag.id: flag for flag in flags}
    for key, value in values.items():
        flag = by_id.get(key)
        if flag is None or flag.flag_type != FlagType.SELECT or not flag.options:
            continue
        allowed = [option.value for option in flag.options]
        if str(value) not in allowed:
            raise ConfigInvalidError(
                f"Invalid value '{value}' for flag '{key}' "
                f"(expected one of: {', '.join(allowed)})",
                source=plugin_name,
            )


class PluginSettingsManager:
    """JSON-file backed store of plugin flag values."""

    def __init__(self, path: Optional[Path] = None, settings: Optional[Settings] = None):
        if path is None:
            plugins_cfg = (settings or get_settings()).plugins
            path = plugins_cfg.plugin_dir.parent / plugins_cfg.settings_file
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {"plugins": {}}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigInvalidError(
                f"Corrupt plugin settings: {e}", source=str(self.path)
            ) from e
        if not isinstance(data, dict):
            raise ConfigInvalidError(
                "Plugin settings must be a JSON object", source=str(self.path)
            )
        data.setdefault("plugins", {})
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        tmp_path.replace(self.path)

    async def get_all_settings(self) -> Dict[str, Dict[str, Any]]:
        """Flag values for every plugin, keyed by plugin name."""
        data = await asyncio.to_thread(self._read)
        return {
            name: dict(entry.get("flags", {}))
            for name, entry in data["plugins"].items()
        }

    async def get_plugin_settings(self, plugin_name: str) -> Dict[str, Any]:
        data = await asyncio.to_thread(self._read)
        return dict(data["plugins"].get(plugin_name, {}).get("flags", {}))

    async def get_flag_value(self, plugin_name: str, flag_id: str) -> Optional[Any]:
        return (await self.get_plugin_settings(plugin_name)).get(flag_id)

    async def set_flag_value(self, plugin_name: str, flag_id: str, value: Any) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            entry = data["plugins"].setdefault(plugin_name, {"flags": {}})
            entry.setdefault("flags", {})[flag_id] = value
            await asyncio.to_thread(self._write, data)
        logger.debug(f"[PLUGINS] {plugin_name}.{flag_id} = {value!r}")

    async def set_plugin_settings(
        self, plugin_name: str, flags: Mapping[str, Any]
    ) -> None:
        """Replace every stored flag value of one plugin."""
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            data["plugins"][plugin_name] = {"flags": dict(flags)}
            await asyncio.to_thread(self._write, data)
