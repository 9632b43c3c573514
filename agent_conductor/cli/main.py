"""Command-line interface for agent-conductor."""

import asyncio
import json
import time
from pathlib import Path
from typing import Any, Dict, Optional

import click
import typer
import yaml

from agent_conductor.ai_service import AIService
from agent_conductor.commands import Conductor
from agent_conductor.config import get_settings
from agent_conductor.errors import ConductorError
from agent_conductor.logging import setup_logging, shutdown_logging

app = typer.Typer(help="Drive coding-agent CLIs through one plugin interface")
plugins_app = typer.Typer(help="Inspect available agent plugins")
flags_app = typer.Typer(help="Show and store plugin flag values")
history_app = typer.Typer(help="Browse CLI-native session history")
config_app = typer.Typer(help="Inspect configuration")

app.add_typer(plugins_app, name="plugins")
app.add_typer(flags_app, name="flags")
app.add_typer(history_app, name="history")
app.add_typer(config_app, name="config")

# Seconds between output polls in `run`
RUN_POLL_INTERVAL = 0.5


@app.callback()
def main(
    plugin_dir: Optional[Path] = typer.Option(
        None, "--plugin-dir", help="Override the plugin directory"
    ),
):
    """Configure logging before any command runs."""
    setup_logging()
    ctx = click.get_current_context()
    ctx.obj = {"plugin_dir": plugin_dir}
    ctx.call_on_close(shutdown_logging)


def _run(coro_factory) -> Any:
    """Build a Conductor, run one coroutine against it, map errors to exit 1."""
    plugin_dir = (click.get_current_context().obj or {}).get("plugin_dir")

    async def runner():
        conductor = Conductor()
        await conductor.initialize(plugin_dir)
        try:
            return await coro_factory(conductor)
        finally:
            await conductor.shutdown()

    try:
        return asyncio.run(runner())
    except ConductorError as e:
        typer.echo(f"[ERROR] {e}", err=True)
        raise typer.Exit(1)


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


# ---------------------------------------------------------------------------
# plugins
# ---------------------------------------------------------------------------


@plugins_app.command("list")
def plugins_list(
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
):
    """List available plugins."""

    async def run(conductor: Conductor):
        return conductor.list_plugins()

    infos = _run(run)
    if as_json:
        _echo_json([info.to_dict() for info in infos])
        return
    if not infos:
        typer.echo("No plugins available")
        return
    for info in infos:
        capabilities = ", ".join(c.value for c in info.capabilities)
        typer.echo(f"{info.name}\t{info.display_name} {info.version}\t[{capabilities}]")


@plugins_app.command("check")
def plugins_check(name: str = typer.Argument(..., help="Plugin name")):
    """Check that a plugin's CLI is installed."""

    async def run(conductor: Conductor):
        return await conductor.check_plugin(name)

    status = _run(run)
    if status["installed"]:
        typer.echo(f"[OK] {name} installed (version: {status['version'] or 'unknown'})")
    else:
        typer.echo(f"[ERROR] {name} CLI not found on PATH", err=True)
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# flags
# ---------------------------------------------------------------------------


@flags_app.command("show")
def flags_show(name: str = typer.Argument(..., help="Plugin name")):
    """Show a plugin's flags and stored values."""

    async def run(conductor: Conductor):
        return await conductor.get_plugin_flags(name)

    data = _run(run)
    values: Dict[str, Any] = data["values"]
    for flag in data["flags"]:
        value = values.get(flag["id"], flag["default_value"])
        typer.echo(f"{flag['id']}\t{flag['flag']}\t{flag['flag_type']}\t{value}")


@flags_app.command("set")
def flags_set(
    name: str = typer.Argument(..., help="Plugin name"),
    flag_id: str = typer.Argument(..., help="Flag id"),
    value: str = typer.Argument(..., help="Flag value"),
):
    """Store a flag value for a plugin."""

    async def run(conductor: Conductor):
        await conductor.set_plugin_flag(name, flag_id, value)

    _run(run)
    typer.echo(f"[OK] {name}.{flag_id} = {value}")


# ---------------------------------------------------------------------------
# history
# ---------------------------------------------------------------------------


@history_app.command("list")
def history_list(
    name: str = typer.Argument(..., help="Plugin name"),
    project: Path = typer.Argument(Path("."), help="Project directory"),
):
    """List a project's stored CLI sessions."""

    async def run(conductor: Conductor):
        return await conductor.list_cli_sessions(name, str(project.resolve()))

    sessions = _run(run)
    if not sessions:
        typer.echo("No sessions found")
        return
    for info in sessions:
        last = time.strftime("%Y-%m-%d %H:%M", time.localtime(info.last_activity))
        typer.echo(f"{info.cli_session_id}\t{last}\t{info.message_count} messages")


@history_app.command("show")
def history_show(
    name: str = typer.Argument(..., help="Plugin name"),
    cli_session_id: str = typer.Argument(..., help="CLI session id"),
    offset: int = typer.Option(0, "--offset", help="Skip this many recent messages"),
    limit: int = typer.Option(20, "--limit", "-n", help="Page size"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
):
    """Show a page of a session's history, most recent first."""

    async def run(conductor: Conductor):
        return await conductor.get_history(name, cli_session_id, offset, limit)

    page = _run(run)
    if as_json:
        _echo_json(page.to_dict())
        return
    for message in page.messages:
        typer.echo(f"--- {message.role} ({message.id})")
        typer.echo(message.content)
    more = ", more available" if page.has_more else ""
    typer.echo(f"[{len(page.messages)} of {page.total_count} messages{more}]")


# ---------------------------------------------------------------------------
# sessions
# ---------------------------------------------------------------------------


@app.command("run")
def run_message(
    name: str = typer.Argument(..., help="Plugin name"),
    message: str = typer.Argument(..., help="Message for the agent"),
    project: Path = typer.Option(Path("."), "--project", "-p", help="Project directory"),
    resume: Optional[str] = typer.Option(None, "--resume", help="CLI session id to resume"),
    timeout: float = typer.Option(600.0, "--timeout", help="Give up after this many seconds"),
):
    """Send one message to an agent and stream its output."""

    async def run(conductor: Conductor):
        project_path = str(project.resolve())
        if resume:
            handle = await conductor.resume_session(name, resume, project_path)
        else:
            handle = await conductor.start_session(name, project_path)
        await conductor.send_message(handle.session_id, message)

        deadline = time.monotonic() + timeout
        while True:
            for chunk in await conductor.read_output(handle.session_id):
                typer.echo(f"[{chunk.type.value}] {chunk.content}")
            status = await conductor.get_session_status(handle.session_id)
            if status.metadata.get("process_id") is None:
                for chunk in await conductor.read_output(handle.session_id):
                    typer.echo(f"[{chunk.type.value}] {chunk.content}")
                return status
            if time.monotonic() > deadline:
                await conductor.stop_session(handle.session_id)
                return None
            await asyncio.sleep(RUN_POLL_INTERVAL)

    status = _run(run)
    if status is None:
        typer.echo(f"[ERROR] Timed out after {timeout}s", err=True)
        raise typer.Exit(1)
    if status.error:
        typer.echo(f"[ERROR] {status.error}", err=True)
        raise typer.Exit(1)


@app.command("ask")
def ask(prompt: str = typer.Argument(..., help="Prompt text")):
    """Run a one-shot prompt through the configured AI CLI."""
    try:
        response = asyncio.run(AIService().prompt(prompt))
    except ConductorError as e:
        typer.echo(f"[ERROR] {e}", err=True)
        raise typer.Exit(1)
    typer.echo(response)


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


def _get_config_value(config: Dict[str, Any], key: str) -> Any:
    value: Any = config
    for part in key.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


@config_app.command("show")
def config_show(
    key: Optional[str] = typer.Argument(None, help="Specific configuration key to show"),
    format: str = typer.Option("yaml", "--format", "-f", help="Output format (yaml/json)"),
):
    """Show current configuration."""
    try:
        config_dict = get_settings().model_dump(mode="json")
    except Exception as e:
        typer.echo(f"[ERROR] Failed to show configuration: {e}", err=True)
        raise typer.Exit(1)

    if key:
        value = _get_config_value(config_dict, key)
        if value is None:
            typer.echo(f"[ERROR] Key '{key}' not found", err=True)
            raise typer.Exit(1)
        typer.echo(json.dumps(value) if isinstance(value, (dict, list)) else value)
    elif format == "json":
        _echo_json(config_dict)
    else:
        typer.echo(yaml.safe_dump(config_dict, default_flow_style=False, allow_unicode=True))


@config_app.command("validate")
def config_validate():
    """Validate configuration and report the plugin directory."""
    try:
        settings = get_settings()
    except Exception as e:
        typer.echo(f"[ERROR] Configuration validation failed: {e}", err=True)
        raise typer.Exit(1)

    typer.echo("[OK] Configuration is valid!")
    plugin_dir = settings.plugins.plugin_dir
    if not plugin_dir.is_dir():
        typer.echo(f"[WARN] Plugin directory does not exist: {plugin_dir}")


if __name__ == "__main__":
    app()
