"""
Unit Tests: agent-conductor command-line interface.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner

runner = CliRunner()

MANIFEST = """
[plugin]
name = "echo-agent"
display_name = "Echo Agent"
version = "0.1.0"
cli_command = "{cli}"

[commands]
start_session = ["--new"]
send_message = ["{{message}}"]
"""

ECHO_CLI = """
print("argv:" + " ".join(sys.argv[1:]))
"""


@pytest.fixture
def cli_env(tmp_path, monkeypatch, make_cli):
    """Quiet logging and one manifest plugin in the configured plugin dir."""
    from agent_conductor.config import get_settings

    monkeypatch.setenv("LOGGING__STDERR_ENABLED", "false")
    monkeypatch.setenv("DISABLE_VICTORIA_LOGS", "1")
    plugin_dir = tmp_path / "plugins" / "echo"
    plugin_dir.mkdir(parents=True)
    (plugin_dir / "plugin.toml").write_text(
        MANIFEST.format(cli=make_cli("echo-agent", ECHO_CLI))
    )
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


class TestPluginsCommands:
    """Tests for `plugins` and `flags`."""

    def test_plugins_list_json(self, cli_env):
        from agent_conductor.cli.main import app

        result = runner.invoke(app, ["plugins", "list", "--json"])

        assert result.exit_code == 0, result.output
        names = {p["name"] for p in json.loads(result.stdout)}
        assert names == {"claude-code", "echo-agent"}

    def test_plugins_list_text(self, cli_env):
        from agent_conductor.cli.main import app

        result = runner.invoke(app, ["plugins", "list"])

        assert result.exit_code == 0
        assert "Echo Agent 0.1.0" in result.stdout

    def test_plugins_check_installed(self, cli_env):
        from agent_conductor.cli.main import app

        result = runner.invoke(app, ["plugins", "check", "echo-agent"])

        assert result.exit_code == 0
        assert "[OK] echo-agent installed" in result.stdout

    def test_unknown_plugin_exits_1(self, cli_env):
        from agent_conductor.cli.main import app

        result = runner.invoke(app, ["plugins", "check", "ghost"])

        assert result.exit_code == 1
        assert "[ERROR] Plugin not found: ghost" in result.output

    def test_flags_set_then_show(self, cli_env):
        """
        Given: The built-in claude-code plugin
        When: A model value is stored and flags are shown
        Then: The stored value is listed and persisted next to the plugin dir
        """
        from agent_conductor.cli.main import app

        set_result = runner.invoke(app, ["flags", "set", "claude-code", "model", "opus"])
        show_result = runner.invoke(app, ["flags", "show", "claude-code"])

        assert set_result.exit_code == 0
        assert "[OK] claude-code.model = opus" in set_result.stdout
        assert "model\t--model\tselect\topus" in show_result.stdout
        stored = json.loads((cli_env / "plugin_settings.json").read_text())
        assert stored["plugins"]["claude-code"]["flags"]["model"] == "opus"

    def test_flags_set_invalid_value(self, cli_env):
        from agent_conductor.cli.main import app

        result = runner.invoke(app, ["flags", "set", "claude-code", "model", "gpt"])

        assert result.exit_code == 1
        assert "[ERROR]" in result.output


class TestSessionCommands:
    """Tests for `run`, `history` and `ask`."""

    def test_run_streams_output(self, cli_env, temp_project):
        from agent_conductor.cli.main import app

        result = runner.invoke(
            app, ["run", "echo-agent", "hello", "--project", str(temp_project)]
        )

        assert result.exit_code == 0, result.output
        assert "[text] argv:hello" in result.stdout

    def test_history_show_unknown_plugin_is_empty(self, cli_env):
        from agent_conductor.cli.main import app

        result = runner.invoke(app, ["history", "show", "ghost", "abc"])

        assert result.exit_code == 0
        assert "[0 of 0 messages]" in result.stdout

    def test_history_list_no_sessions(self, cli_env, temp_project):
        from agent_conductor.cli.main import app

        result = runner.invoke(app, ["history", "list", "claude-code", str(temp_project)])

        assert result.exit_code == 0
        assert "No sessions found" in result.stdout

    def test_ask(self, cli_env):
        from agent_conductor.cli.main import app

        with patch(
            "agent_conductor.cli.main.AIService.prompt",
            new_callable=AsyncMock,
            return_value="Short answer",
        ) as prompt:
            result = runner.invoke(app, ["ask", "Summarise"])

        assert result.exit_code == 0
        assert result.stdout.strip() == "Short answer"
        prompt.assert_awaited_once_with("Summarise")


class TestConfigCommands:
    """Tests for `config`."""

    def test_config_show_json(self, cli_env):
        from agent_conductor.cli.main import app

        result = runner.invoke(app, ["config", "show", "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["sessions"]["stdin_threshold"] == 16 * 1024
        assert data["logging"]["stderr_enabled"] is False

    def test_config_show_key(self, cli_env):
        from agent_conductor.cli.main import app

        result = runner.invoke(app, ["config", "show", "ai.command"])

        assert result.exit_code == 0
        assert result.stdout.strip() == "claude"

    def test_config_show_missing_key(self, cli_env):
        from agent_conductor.cli.main import app

        result = runner.invoke(app, ["config", "show", "nope.nothing"])

        assert result.exit_code == 1
        assert "Key 'nope.nothing' not found" in result.output

    def test_config_validate(self, cli_env):
        from agent_conductor.cli.main import app

        result = runner.invoke(app, ["config", "validate"])

        assert result.exit_code == 0
        assert "[OK] Configuration is valid!" in result.stdout
