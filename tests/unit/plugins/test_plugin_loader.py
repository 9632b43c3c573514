"""
Unit Tests: plugin discovery, module loading and the plugin manager.
"""

import textwrap
from unittest.mock import patch

import pytest

MANIFEST = """
[plugin]
name = "{name}"
display_name = "{name}"
version = "1.0.0"
cli_command = "{name}-cli"

[commands]
start_session = ["start"]
send_message = ["send", "{{message}}"]
"""

MODULE_PLUGIN = """
class _Plugin:
    name = "{name}"
    display_name = "From module"

    def info(self):
        return self

    def get_available_flags(self):
        return []

    def get_capabilities(self):
        return []


def create_plugin():
    return _Plugin()
"""


def _write_plugin(root, name, module=None, manifest=None):
    plugin_dir = root / name
    plugin_dir.mkdir(parents=True)
    (plugin_dir / "plugin.toml").write_text(manifest or MANIFEST.format(name=name))
    if module is not None:
        (plugin_dir / "plugin.py").write_text(textwrap.dedent(module))
    return plugin_dir


class TestDiscoverPlugins:
    """Tests for discover_plugins."""

    def test_missing_root_yields_nothing(self, tmp_path):
        from agent_conductor.plugins.loader import discover_plugins

        assert discover_plugins(tmp_path / "nowhere") == []

    def test_invalid_manifest_skipped(self, tmp_path):
        """
        Given: One valid plugin, one with a broken manifest, one plain dir
        When: discover_plugins runs
        Then: Only the valid plugin is returned
        """
        from agent_conductor.plugins.loader import discover_plugins

        _write_plugin(tmp_path, "alpha")
        _write_plugin(tmp_path, "broken", manifest="[plugin]\nname = 'broken'\n")
        (tmp_path / "not-a-plugin").mkdir()

        found = discover_plugins(tmp_path)

        assert [d.manifest.name for d in found] == ["alpha"]
        assert found[0].path == tmp_path / "alpha"


class TestLoadPluginModule:
    """Tests for load_plugin_module."""

    def test_no_module_returns_none(self, tmp_path):
        from agent_conductor.plugins.loader import load_plugin_module

        plugin_dir = _write_plugin(tmp_path, "manifest-only")

        assert load_plugin_module(plugin_dir, "manifest-only") is None

    def test_python_module_create_plugin(self, tmp_path):
        from agent_conductor.plugins.loader import load_plugin_module

        plugin_dir = _write_plugin(
            tmp_path, "modular", module=MODULE_PLUGIN.format(name="modular")
        )

        plugin = load_plugin_module(plugin_dir, "modular")

        assert plugin.name == "modular"
        assert plugin.display_name == "From module"

    def test_missing_entry_point(self, tmp_path):
        from agent_conductor.errors import ConfigInvalidError
        from agent_conductor.plugins.loader import load_plugin_module

        plugin_dir = _write_plugin(tmp_path, "empty-module", module="VALUE = 1\n")

        with pytest.raises(ConfigInvalidError, match="create_plugin"):
            load_plugin_module(plugin_dir, "empty-module")

    def test_import_error_propagates(self, tmp_path):
        import sys

        from agent_conductor.plugins.loader import load_plugin_module

        plugin_dir = _write_plugin(tmp_path, "crashy", module="raise RuntimeError('boom')\n")

        with pytest.raises(RuntimeError, match="boom"):
            load_plugin_module(plugin_dir, "crashy")
        assert "agent_conductor_plugin_crashy" not in sys.modules


class TestPluginManager:
    """Tests for PluginManager."""

    def test_module_plugin_preferred_over_manifest(self, tmp_path, settings):
        from agent_conductor.plugins.generic_cli import GenericCliPlugin
        from agent_conductor.plugins.manager import PluginManager

        _write_plugin(tmp_path, "modded", module=MODULE_PLUGIN.format(name="modded"))
        _write_plugin(tmp_path, "plain")

        manager = PluginManager(settings=settings)
        loaded = manager.discover_and_load(tmp_path)

        assert loaded == ["modded", "plain"]
        assert not isinstance(manager.get("modded"), GenericCliPlugin)
        assert isinstance(manager.get("plain"), GenericCliPlugin)

    def test_broken_module_falls_back_to_manifest(self, tmp_path, settings):
        """
        Given: A plugin whose module raises on import
        When: discover_and_load runs
        Then: The plugin is still available through its manifest
        """
        from agent_conductor.plugins.generic_cli import GenericCliPlugin
        from agent_conductor.plugins.manager import PluginManager

        _write_plugin(tmp_path, "fragile", module="raise ImportError('missing dep')\n")

        manager = PluginManager(settings=settings)
        manager.discover_and_load(tmp_path)

        assert isinstance(manager.get("fragile"), GenericCliPlugin)

    def test_unbuildable_plugin_skipped(self, tmp_path, settings):
        from agent_conductor.errors import ConfigInvalidError
        from agent_conductor.plugins.generic_cli import GenericCliPlugin as real_generic
        from agent_conductor.plugins.manager import PluginManager

        _write_plugin(tmp_path, "ok")
        _write_plugin(tmp_path, "bad")

        def build(manifest, **kwargs):
            if manifest.name == "bad":
                raise ConfigInvalidError("nope")
            return real_generic(manifest, **kwargs)

        manager = PluginManager(settings=settings)
        with patch("agent_conductor.plugins.manager.GenericCliPlugin", side_effect=build):
            loaded = manager.discover_and_load(tmp_path)

        assert loaded == ["ok"]
        assert "bad" not in manager

    def test_unknown_plugin(self, settings):
        from agent_conductor.errors import PluginNotFoundError
        from agent_conductor.plugins.manager import PluginManager

        manager = PluginManager(settings=settings)

        with pytest.raises(PluginNotFoundError, match="Plugin not found: ghost"):
            manager.get("ghost")

    def test_builtin_plugins_registered(self, settings):
        from agent_conductor.plugins.manager import PluginManager

        manager = PluginManager(settings=settings)

        names = manager.register_builtin_plugins()

        assert "claude-code" in names
        assert manager.get("claude-code").display_name == "Claude Code"

    def test_default_root_from_settings(self, tmp_path, settings):
        from agent_conductor.plugins.manager import PluginManager

        _write_plugin(tmp_path / "plugins", "configured")

        manager = PluginManager(settings=settings)

        assert manager.discover_and_load() == ["configured"]
