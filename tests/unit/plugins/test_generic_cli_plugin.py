"""
Unit Tests: manifest-driven GenericCliPlugin.

The wrapped CLI is a small Python script that echoes its argv as JSON, so
tests can assert exactly which command template was used.
"""

import asyncio
import json
import time
from unittest.mock import AsyncMock

import pytest

ECHO_CLI = """
import json
print(json.dumps(sys.argv[1:]))
print("session: abc123")
sys.stdout.flush()
"""


def _manifest(cli_command, flags=None, **overrides):
    from agent_conductor.plugins.manifest import parse_manifest

    data = {
        "plugin": {
            "name": "echo-agent",
            "display_name": "Echo Agent",
            "version": "0.1.0",
            "cli_command": cli_command,
        },
        "capabilities": {"session_resume": True},
        "commands": {
            "start_session": ["--new"],
            "send_message": ["--print", "{message}"],
            "resume_session": ["--resume", "{session_id}", "{message}"],
        },
        "output_parsing": {"session_id_pattern": r"session: (\S+)"},
    }
    if flags is not None:
        data["flags"] = flags
    for section, values in overrides.items():
        data.setdefault(section, {}).update(values)
    return parse_manifest(data)


async def _collect(plugin, session_id, predicate, timeout=10.0):
    """Poll read_output until the accumulated chunks satisfy predicate."""
    chunks = []
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        chunks.extend(await plugin.read_output(session_id))
        if predicate(chunks):
            return chunks
        await asyncio.sleep(0.05)
    raise AssertionError(f"Timed out waiting for output, got {chunks!r}")


def _texts(chunks):
    from agent_conductor.plugins.base import ChunkType

    return [c.content for c in chunks if c.type == ChunkType.TEXT]


class TestManifestBackend:
    """Tests for template selection and substitution."""

    def test_send_template_without_session_id(self):
        from agent_conductor.backends import BackendOptions
        from agent_conductor.plugins.generic_cli import ManifestBackend

        backend = ManifestBackend(_manifest("echo-cli"))

        args = backend.build_message_args("hi there", None, BackendOptions())

        assert args == ["--print", "hi there"]

    def test_resume_template_with_session_id(self):
        from agent_conductor.backends import BackendOptions
        from agent_conductor.plugins.generic_cli import ManifestBackend

        backend = ManifestBackend(_manifest("echo-cli"))

        args = backend.build_message_args(
            "go", "s-1", BackendOptions(extra_args=["--fast"])
        )

        assert args == ["--resume", "s-1", "go", "--fast"]

    def test_flags_placeholder_positions_extra_args(self):
        from agent_conductor.backends import BackendOptions
        from agent_conductor.plugins.generic_cli import ManifestBackend

        manifest = _manifest(
            "echo-cli", commands={"send_message": ["run", "{flags}", "--", "{message}"]}
        )
        backend = ManifestBackend(manifest)

        args = backend.build_message_args(
            "m", None, BackendOptions(extra_args=["--model", "x"])
        )

        assert args == ["run", "--model", "x", "--", "m"]

    def test_project_path_substituted(self):
        from agent_conductor.backends import BackendOptions
        from agent_conductor.plugins.generic_cli import ManifestBackend

        manifest = _manifest(
            "echo-cli", commands={"send_message": ["--cwd={project_path}", "{message}"]}
        )

        args = ManifestBackend(manifest).build_message_args(
            "m", None, BackendOptions(), project_path="/work"
        )

        assert args == ["--cwd=/work", "m"]

    def test_session_id_from_json_path(self):
        from agent_conductor.plugins.generic_cli import ManifestBackend

        manifest = _manifest(
            "echo-cli",
            output_parsing={
                "session_id_pattern": None,
                "session_id_json_path": "result.session.id",
            },
        )
        backend = ManifestBackend(manifest)

        line = json.dumps({"result": {"session": {"id": "json-42"}}})

        assert backend.extract_session_id(line) == "json-42"
        assert backend.extract_session_id("plain text") is None

    def test_pattern_without_group_uses_whole_match(self):
        from agent_conductor.plugins.generic_cli import ManifestBackend

        manifest = _manifest(
            "echo-cli", output_parsing={"session_id_pattern": r"sess-[0-9]+"}
        )

        assert ManifestBackend(manifest).extract_session_id("id sess-77 ok") == "sess-77"


class TestGenericCliSessions:
    """Tests that spawn the echoing CLI."""

    @pytest.mark.asyncio
    async def test_first_send_then_resume_template(self, make_cli, temp_project, settings):
        """
        The vendor id seen in output switches later sends to resume_session.

        Given: A CLI that prints its argv and "session: abc123"
        When: Two messages are sent one after another
        Then: The first uses send_message, the second resume_session with abc123
        """
        from agent_conductor.plugins.base import ChunkType
        from agent_conductor.plugins.generic_cli import GenericCliPlugin

        plugin = GenericCliPlugin(_manifest(make_cli("echo-cli", ECHO_CLI)), settings=settings)
        handle = await plugin.start_session(str(temp_project), {})
        assert handle.cli_session_id is None

        try:
            await plugin.send_message(handle.session_id, "hello")
            first = await _collect(
                plugin,
                handle.session_id,
                lambda cs: any(c.type == ChunkType.SESSION_ID for c in cs)
                and json.dumps(["--print", "hello"]) in _texts(cs),
            )
            session_ids = [c.content for c in first if c.type == ChunkType.SESSION_ID]
            assert session_ids == ["abc123"]

            await plugin.send_message(handle.session_id, "again")
            expected = json.dumps(["--resume", "abc123", "again"])
            await _collect(plugin, handle.session_id, lambda cs: expected in _texts(cs))

            status = await plugin.get_session_status(handle.session_id)
            assert status.metadata["cli_session_id"] == "abc123"
        finally:
            await plugin.stop_all()

    @pytest.mark.asyncio
    async def test_status_reports_running(self, make_cli, temp_project, settings):
        from agent_conductor.plugins.generic_cli import GenericCliPlugin

        plugin = GenericCliPlugin(_manifest(make_cli("echo-cli", ECHO_CLI)), settings=settings)
        handle = await plugin.start_session(str(temp_project), {})

        try:
            status = await plugin.get_session_status(handle.session_id)
            assert status.is_running is True
            assert status.error is None
            assert status.metadata["process_id"] is None
        finally:
            await plugin.stop_session(handle.session_id)

    @pytest.mark.asyncio
    async def test_stop_unknown_session(self, settings):
        from agent_conductor.errors import SessionNotFoundError
        from agent_conductor.plugins.generic_cli import GenericCliPlugin

        plugin = GenericCliPlugin(_manifest("echo-cli"), settings=settings)

        with pytest.raises(SessionNotFoundError):
            await plugin.stop_session("nope")

    @pytest.mark.asyncio
    async def test_invalid_select_flag_rejected(self, temp_project, settings):
        from agent_conductor.errors import ConfigInvalidError
        from agent_conductor.plugins.generic_cli import GenericCliPlugin

        manifest = _manifest(
            "echo-cli",
            flags=[
                {
                    "id": "model",
                    "flag": "--model",
                    "label": "Model",
                    "flag_type": "select",
                    "options": [{"value": "a", "label": "A"}],
                }
            ],
        )
        plugin = GenericCliPlugin(manifest, settings=settings)

        with pytest.raises(ConfigInvalidError):
            await plugin.start_session(str(temp_project), {"model": "zzz"})


class TestGenericCliCapabilities:
    """Tests for optional capabilities."""

    @pytest.mark.asyncio
    async def test_resume_refused_without_capability(self, temp_project, settings):
        from agent_conductor.errors import CapabilityUnsupportedError
        from agent_conductor.plugins.generic_cli import GenericCliPlugin

        plugin = GenericCliPlugin(
            _manifest("echo-cli", capabilities={"session_resume": False}),
            settings=settings,
        )

        with pytest.raises(CapabilityUnsupportedError, match="session resume"):
            await plugin.resume_session("abc", str(temp_project), {})

    @pytest.mark.asyncio
    async def test_watching_unsupported(self, temp_project, settings):
        from agent_conductor.errors import CapabilityUnsupportedError
        from agent_conductor.plugins.generic_cli import GenericCliPlugin

        plugin = GenericCliPlugin(_manifest("echo-cli"), settings=settings)

        with pytest.raises(CapabilityUnsupportedError, match="not supported by echo-agent"):
            await plugin.start_watching_session(str(temp_project), "abc", lambda u: None)

    @pytest.mark.asyncio
    async def test_history_and_listing_empty_when_unconfigured(self, temp_project, settings):
        from agent_conductor.plugins.generic_cli import GenericCliPlugin

        plugin = GenericCliPlugin(_manifest("echo-cli"), settings=settings)

        assert await plugin.list_sessions(str(temp_project)) == []
        assert await plugin.get_conversation_history("abc") == []
        page = await plugin.get_conversation_history_paginated("abc", 0, 10)
        assert page.total_count == 0

    @pytest.mark.asyncio
    async def test_history_via_configured_command(self, settings):
        """
        Given: A manifest with get_history and a CLI returning JSON messages
        When: get_conversation_history is called
        Then: Well-formed entries become HistoryMessages, others are skipped
        """
        from agent_conductor.cli_agents.executor import CLIResult
        from agent_conductor.plugins.generic_cli import GenericCliPlugin

        payload = [
            {"id": "a", "role": "user", "content": "hi", "timestamp": 10},
            {"role": "assistant", "content": "hello", "timestamp": 11},
            {"role": "assistant"},
            "junk",
        ]
        executor = AsyncMock()
        executor.execute.return_value = CLIResult(
            stdout=json.dumps(payload), stderr="", return_code=0
        )
        plugin = GenericCliPlugin(
            _manifest("echo-cli", commands={"get_history": ["history", "{session_id}"]}),
            settings=settings,
            executor=executor,
        )

        messages = await plugin.get_conversation_history("s-9")

        executor.execute.assert_awaited_once()
        assert executor.execute.call_args.args[0] == ["echo-cli", "history", "s-9"]
        assert [m.role for m in messages] == ["user", "assistant"]
        assert messages[0].id == "a"
        assert messages[1].id == "msg-11-1"

    @pytest.mark.asyncio
    async def test_history_tolerates_non_numeric_timestamps(self, settings):
        """
        Given: History entries with ISO-8601, unreadable and boolean timestamps
        When: get_conversation_history is called
        Then: ISO values are converted and the rest fall back to the current time
        """
        from agent_conductor.cli_agents.executor import CLIResult
        from agent_conductor.plugins.generic_cli import GenericCliPlugin

        payload = [
            {"role": "user", "content": "hi", "timestamp": "2024-05-01T10:00:00Z"},
            {"role": "assistant", "content": "hello", "timestamp": "yesterday"},
            {"role": "assistant", "content": "again", "timestamp": True},
        ]
        executor = AsyncMock()
        executor.execute.return_value = CLIResult(
            stdout=json.dumps(payload), stderr="", return_code=0
        )
        plugin = GenericCliPlugin(
            _manifest("echo-cli", commands={"get_history": ["history", "{session_id}"]}),
            settings=settings,
            executor=executor,
        )

        before = int(time.time())
        page = await plugin.get_conversation_history_paginated("s-9", 0, 10)
        after = int(time.time())

        by_content = {m.content: m.timestamp for m in page.messages}
        assert page.total_count == 3
        assert by_content["hi"] == 1714557600
        assert before <= by_content["hello"] <= after
        assert before <= by_content["again"] <= after

    @pytest.mark.asyncio
    async def test_list_sessions_skips_unreadable_started_at(self, temp_project, settings):
        from agent_conductor.cli_agents.executor import CLIResult
        from agent_conductor.plugins.generic_cli import GenericCliPlugin

        payload = [
            {"session_id": "bad", "started_at": "yesterday"},
            {"session_id": "missing"},
            {"session_id": "iso", "started_at": "2024-05-01T10:00:00Z", "message_count": "x"},
            {"session_id": "num", "started_at": 100, "last_activity": "later"},
        ]
        executor = AsyncMock()
        executor.execute.return_value = CLIResult(
            stdout=json.dumps(payload), stderr="", return_code=0
        )
        plugin = GenericCliPlugin(
            _manifest("echo-cli", commands={"list_sessions": ["sessions"]}),
            settings=settings,
            executor=executor,
        )

        sessions = await plugin.list_sessions(str(temp_project))

        assert [s.cli_session_id for s in sessions] == ["iso", "num"]
        assert sessions[0].started_at == 1714557600
        assert sessions[0].message_count == 0
        assert sessions[1].last_activity == 100

    @pytest.mark.asyncio
    async def test_list_sessions_via_configured_command(self, temp_project, settings):
        from agent_conductor.cli_agents.executor import CLIResult
        from agent_conductor.plugins.generic_cli import GenericCliPlugin

        payload = [
            {"session_id": "s1", "started_at": 100, "message_count": 3},
            {"started_at": 5},
        ]
        executor = AsyncMock()
        executor.execute.return_value = CLIResult(
            stdout=json.dumps(payload), stderr="", return_code=0
        )
        plugin = GenericCliPlugin(
            _manifest("echo-cli", commands={"list_sessions": ["ls", "{project_path}"]}),
            settings=settings,
            executor=executor,
        )

        sessions = await plugin.list_sessions(str(temp_project))

        assert len(sessions) == 1
        assert sessions[0].cli_session_id == "s1"
        assert sessions[0].last_activity == 100
        assert sessions[0].message_count == 3

    @pytest.mark.asyncio
    async def test_list_sessions_command_failure(self, temp_project, settings):
        from agent_conductor.cli_agents.executor import CLIResult
        from agent_conductor.errors import ExternalProcessError
        from agent_conductor.plugins.generic_cli import GenericCliPlugin

        executor = AsyncMock()
        executor.execute.return_value = CLIResult(stdout="", stderr="boom", return_code=2)
        plugin = GenericCliPlugin(
            _manifest("echo-cli", commands={"list_sessions": ["ls"]}),
            settings=settings,
            executor=executor,
        )

        with pytest.raises(ExternalProcessError) as exc_info:
            await plugin.list_sessions(str(temp_project))
        assert exc_info.value.return_code == 2

    @pytest.mark.asyncio
    async def test_list_sessions_invalid_path(self, tmp_path, settings):
        from agent_conductor.errors import InvalidProjectPathError
        from agent_conductor.plugins.generic_cli import GenericCliPlugin

        plugin = GenericCliPlugin(
            _manifest("echo-cli", commands={"list_sessions": ["ls"]}), settings=settings
        )

        with pytest.raises(InvalidProjectPathError):
            await plugin.list_sessions(str(tmp_path / "missing"))

    def test_info_reflects_manifest(self, settings):
        from agent_conductor.plugins.base import PluginCapability
        from agent_conductor.plugins.generic_cli import GenericCliPlugin

        plugin = GenericCliPlugin(_manifest("echo-cli"), settings=settings)

        info = plugin.info()

        assert info.name == "echo-agent"
        assert info.display_name == "Echo Agent"
        assert PluginCapability.SESSION_RESUME in info.capabilities
        assert PluginCapability.STREAMING_OUTPUT in info.capabilities


class TestEventPatterns:
    """Tests for manifest-configured output classification."""

    @pytest.mark.asyncio
    async def test_raw_lines_matching_patterns_use_configured_type(self, settings):
        """
        Given: A manifest mapping output lines to thinking and error chunks
        When: Buffered output is read
        Then: Matching raw lines take the configured type, others stay text
        """
        from agent_conductor.parsing.events import RawOutput, Thinking
        from agent_conductor.plugins.base import ChunkType
        from agent_conductor.plugins.generic_cli import GenericCliPlugin
        from agent_conductor.sessions.models import SessionOutput

        plugin = GenericCliPlugin(
            _manifest(
                "echo-cli",
                output_parsing={
                    "event_patterns": {
                        "thinking": r"^\.\.\. (.+)$",
                        "error": r"^E\d+",
                    }
                },
            ),
            settings=settings,
        )
        plugin._registry.read_output_and_events = AsyncMock(
            return_value=SessionOutput(
                raw_output=[],
                events=[
                    RawOutput(line="... planning", timestamp=1),
                    RawOutput(line="E42 boom", timestamp=1),
                    RawOutput(line="plain", timestamp=1),
                    Thinking(message="considering", timestamp=1),
                ],
            )
        )

        chunks = await plugin.read_output("s-1")

        assert [(c.type, c.content) for c in chunks] == [
            (ChunkType.THINKING, "planning"),
            (ChunkType.ERROR, "E42 boom"),
            (ChunkType.TEXT, "plain"),
            (ChunkType.THINKING, "considering"),
        ]
