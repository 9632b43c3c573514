"""
Unit Tests: plugin manifest parsing and validation.
"""

import pytest

VALID_TOML = """
[plugin]
name = "echo-agent"
display_name = "Echo Agent"
version = "0.1.0"
description = "Echoes messages"
cli_command = "echo-agent"

[capabilities]
session_resume = true

[commands]
start_session = ["--new"]
send_message = ["--print", "{message}"]
resume_session = ["--resume", "{session_id}", "{message}"]

[output_parsing]
session_id_pattern = "session: (\\\\S+)"

[[flags]]
id = "model"
flag = "--model"
label = "Model"
flag_type = "select"
default_value = "small"
options = [{ value = "small", label = "Small" }, { value = "large", label = "Large" }]
"""


def manifest_data(**commands):
    data = {
        "plugin": {
            "name": "demo",
            "display_name": "Demo",
            "version": "1.0",
            "cli_command": "demo-cli",
        },
        "commands": {
            "start_session": ["start"],
            "send_message": ["send", "{message}"],
        },
    }
    data["commands"].update(commands)
    return data


class TestManifestValidation:
    """Tests for required fields."""

    def test_valid_manifest(self):
        from agent_conductor.plugins.manifest import parse_manifest

        manifest = parse_manifest(manifest_data())

        assert manifest.name == "demo"
        assert manifest.capabilities.session_resume is False
        assert manifest.capabilities.streaming_output is True

    @pytest.mark.parametrize("command", ["start_session", "send_message"])
    def test_empty_required_command_is_invalid(self, command):
        """
        start_session and send_message must be non-empty.

        Given: A manifest with one of them empty
        When: parse_manifest is called
        Then: ConfigInvalidError naming the command
        """
        from agent_conductor.errors import ConfigInvalidError
        from agent_conductor.plugins.manifest import parse_manifest

        with pytest.raises(ConfigInvalidError, match=command):
            parse_manifest(manifest_data(**{command: []}))

    def test_blank_cli_command_is_invalid(self):
        from agent_conductor.errors import ConfigInvalidError
        from agent_conductor.plugins.manifest import parse_manifest

        data = manifest_data()
        data["plugin"]["cli_command"] = "  "

        with pytest.raises(ConfigInvalidError, match="cli_command"):
            parse_manifest(data)

    def test_missing_section_is_invalid(self):
        from agent_conductor.errors import ConfigInvalidError
        from agent_conductor.plugins.manifest import parse_manifest

        with pytest.raises(ConfigInvalidError):
            parse_manifest({"plugin": manifest_data()["plugin"]})

    def test_bad_session_id_pattern_is_invalid(self):
        from agent_conductor.errors import ConfigInvalidError
        from agent_conductor.plugins.manifest import parse_manifest

        data = manifest_data()
        data["output_parsing"] = {"session_id_pattern": "("}

        with pytest.raises(ConfigInvalidError):
            parse_manifest(data)

    @pytest.mark.parametrize(
        "patterns",
        [{"progress": "step"}, {"thinking": "("}],
    )
    def test_bad_event_patterns_are_invalid(self, patterns):
        from agent_conductor.errors import ConfigInvalidError
        from agent_conductor.plugins.manifest import parse_manifest

        data = manifest_data()
        data["output_parsing"] = {"event_patterns": patterns}

        with pytest.raises(ConfigInvalidError, match="event_patterns"):
            parse_manifest(data)


class TestReplaceVariables:
    """Tests for template substitution."""

    def test_values_inserted_verbatim(self):
        from agent_conductor.plugins.manifest import replace_variables

        args = replace_variables(
            ["--cwd={project_path}", "{message}"],
            {"project_path": "/tmp/p", "message": "it's {fine}; rm -rf"},
        )

        assert args == ["--cwd=/tmp/p", "it's {fine}; rm -rf"]

    def test_unknown_placeholders_kept(self):
        from agent_conductor.plugins.manifest import replace_variables

        assert replace_variables(["{session_id}"], {}) == ["{session_id}"]


class TestLoadManifest:
    """Tests for reading manifests from disk."""

    def test_load_toml(self, tmp_path):
        from agent_conductor.plugins.base import FlagType
        from agent_conductor.plugins.manifest import find_manifest_file, load_manifest

        (tmp_path / "plugin.toml").write_text(VALID_TOML)

        path = find_manifest_file(tmp_path)
        manifest = load_manifest(path)

        assert manifest.name == "echo-agent"
        assert manifest.commands.resume_session == ["--resume", "{session_id}", "{message}"]
        flags = manifest.plugin_flags()
        assert flags[0].flag_type == FlagType.SELECT
        assert [o.value for o in flags[0].options] == ["small", "large"]

    def test_load_yaml(self, tmp_path):
        import yaml

        from agent_conductor.plugins.manifest import load_manifest

        path = tmp_path / "plugin.yaml"
        path.write_text(yaml.safe_dump(manifest_data()))

        assert load_manifest(path).name == "demo"

    def test_malformed_toml(self, tmp_path):
        from agent_conductor.errors import ConfigInvalidError
        from agent_conductor.plugins.manifest import load_manifest

        path = tmp_path / "plugin.toml"
        path.write_text("[plugin\nname=")

        with pytest.raises(ConfigInvalidError):
            load_manifest(path)

    def test_no_manifest_file(self, tmp_path):
        from agent_conductor.plugins.manifest import find_manifest_file

        assert find_manifest_file(tmp_path) is None
