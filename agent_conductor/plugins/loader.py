"""
Plugin discovery and dynamic loading.

Layout of a plugin root:

    <root>/<plugin>/plugin.toml      manifest (or plugin.yaml)
    <root>/<plugin>/<name>.<ext>     optional compiled module (.so, .pyd, ...)
    <root>/<plugin>/plugin.py        optional Python module

A loadable module exports ``create_plugin()`` returning an AgentPlugin.
"""

import importlib.machinery
import importlib.util
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, List, Optional

from agent_conductor.errors import ConfigInvalidError
from agent_conductor.plugins.manifest import (
    PluginManifest,
    find_manifest_file,
    load_manifest,
)

logger = logging.getLogger(__name__)

ENTRY_POINT = "create_plugin"
PYTHON_MODULE = "plugin.py"

# Loaded plugin modules stay referenced for the life of the process
_LOADED_MODULES: Dict[str, ModuleType] = {}


@dataclass
class DiscoveredPlugin:
    path: Path
    manifest: PluginManifest


def discover_plugins(root: Path) -> List[DiscoveredPlugin]:
    """
    Find every subdirectory of ``root`` holding a valid manifest.

    A missing root yields an empty list. Invalid manifests are logged and
    skipped; they never abort discovery.
    """
    root = Path(root).expanduser()
    if not root.is_dir():
        logger.warning(f"[PLUGINS] Plugin directory does not exist: {root}")
        return []

    logger.info(f"[PLUGINS] Discovering plugins in {root}")
    discovered: List[DiscoveredPlugin] = []
    for path in sorted(p for p in root.iterdir() if p.is_dir()):
        manifest_file = find_manifest_file(path)
        if manifest_file is None:
            continue
        try:
            manifest = load_manifest(manifest_file)
        except ConfigInvalidError as e:
            logger.error(f"[PLUGINS] Failed to load manifest at {manifest_file}: {e}")
            continue
        logger.info(f"[PLUGINS] Found plugin {manifest.name} at {path}")
        discovered.append(DiscoveredPlugin(path=path, manifest=manifest))

    logger.info(f"[PLUGINS] Discovered {len(discovered)} plugins")
    return discovered


def find_module_file(plugin_dir: Path) -> Optional[Path]:
    """A compiled extension module if present, else plugin.py, else None."""
    suffixes = tuple(importlib.machinery.EXTENSION_SUFFIXES)
    for candidate in sorted(plugin_dir.iterdir()):
        if candidate.is_file() and candidate.name.endswith(suffixes):
            return candidate
    python_module = plugin_dir / PYTHON_MODULE
    return python_module if python_module.is_file() else None


def _module_name(path: Path, plugin_name: str) -> str:
    if path.name == PYTHON_MODULE:
        safe = "".join(c if c.isalnum() else "_" for c in plugin_name)
        return f"agent_conductor_plugin_{safe}"
    # Extension modules must be imported under the name they were built with
    return path.name.split(".", 1)[0]


def load_plugin_module(plugin_dir: Path, plugin_name: str) -> Optional[Any]:
    """
    Import a plugin's module and call its ``create_plugin()``.

    Returns:
        The plugin instance, or None when the directory holds no module

    Raises:
        ConfigInvalidError: the module has no callable create_plugin
        Exception: whatever importing or calling the module raised
    """
    path = find_module_file(plugin_dir)
    if path is None:
        return None

    module_name = _module_name(path, plugin_name)
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ConfigInvalidError(f"Cannot import {path}", source=plugin_name)

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(module_name, None)
        raise

    factory = getattr(module, ENTRY_POINT, None)
    if not callable(factory):
        sys.modules.pop(module_name, None)
        raise ConfigInvalidError(f"{path} does not export {ENTRY_POINT}()", source=plugin_name)

    plugin = factory()
    _LOADED_MODULES[plugin_name] = module
    logger.info(f"[PLUGINS] Loaded module plugin {plugin_name} from {path}")
    return plugin
