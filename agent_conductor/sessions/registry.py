"""
SessionRegistry: concurrent session map with kill-then-respawn subprocess control.

Each session runs its CLI once per message. Sending a message first kills
whatever the previous message left running, so output from different
messages never interleaves. Per invocation three tasks run independently:
a stdout reader, a stderr reader and an exit waiter. Readers classify each
line and append it to the session's buffers; callers drain the buffers by
polling.

The map is guarded by one asyncio.Lock that is only ever held to read or
mutate a single entry, never across process I/O. Each session's child
process lives in its own ProcessSlot with its own lock.
"""

import asyncio
import logging
import os
import uuid
from pathlib import Path
from typing import Any, Coroutine, Dict, List, Mapping, Optional, Set

from agent_conductor.backends import BackendOptions, get_backend
from agent_conductor.backends.base import AgentBackend
from agent_conductor.cli_agents.executor import CLIExecutor
from agent_conductor.config import Settings, get_settings
from agent_conductor.errors import (
    ConfigInvalidError,
    ExternalProcessError,
    InvalidProjectPathError,
    SessionNotFoundError,
)
from agent_conductor.parsing import AgentEvent, OutputParser, is_waiting_for_input
from agent_conductor.sessions.models import (
    AgentSession,
    SessionOutput,
    SessionState,
    SessionStatus,
    now,
)
from agent_conductor.sessions.process_slot import READER_DRAIN_TIMEOUT, ProcessSlot

logger = logging.getLogger(__name__)

# StreamReader line limit; stream-json lines can be large
STREAM_LIMIT = 10 * 1024 * 1024

STDERR_PREFIX = "[stderr] "


class SessionRegistry:
    """
    Owns all live sessions for a set of CLI backends.

    Sessions are addressed only by their opaque id; callers receive
    snapshots (AgentSession) and never the live record.
    """

    def __init__(
        self,
        backends: Optional[Mapping[str, AgentBackend]] = None,
        settings: Optional[Settings] = None,
        executor: Optional[CLIExecutor] = None,
        parser: Optional[OutputParser] = None,
    ):
        """
        Args:
            backends: Backend table to use instead of the global registry
            settings: Settings override (defaults to get_settings())
            executor: Executor for the one-shot session-id harvest call
            parser: Output classifier
        """
        self._backends = dict(backends) if backends is not None else None
        self._settings = settings or get_settings()
        self._executor = executor or CLIExecutor()
        self._parser = parser or OutputParser()
        self._lock = asyncio.Lock()
        self._sessions: Dict[str, SessionState] = {}
        self._slots: Dict[str, ProcessSlot] = {}
        self._tasks: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._sessions)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start_session(
        self,
        project_root: str,
        backend: str,
        options: Optional[BackendOptions] = None,
        resume_session_id: Optional[str] = None,
    ) -> AgentSession:
        """
        Register a new session.

        Args:
            project_root: Existing directory the CLI runs in
            backend: Backend name (claude, gemini, codex, aider, ...)
            options: Per-session backend options
            resume_session_id: Known vendor session id to resume, if any

        Returns:
            Snapshot of the new session
        """
        cli_backend = self._resolve_backend(backend)
        root = Path(project_root).expanduser()
        if not await asyncio.to_thread(root.is_dir):
            raise InvalidProjectPathError(project_root)

        options = options or BackendOptions()
        session_id = str(uuid.uuid4())
        state = SessionState(
            session_id=session_id,
            project_root=str(root),
            backend=backend,
            options=options,
            cli_session_id=resume_session_id,
        )

        async with self._lock:
            self._sessions[session_id] = state
            self._slots[session_id] = ProcessSlot(
                kill_timeout=self._settings.sessions.kill_timeout
            )

        logger.info(
            f"[REGISTRY] Started {backend} session {session_id} in {root}"
            + (f" (resuming {resume_session_id})" if resume_session_id else "")
        )

        harvested = None
        if resume_session_id is None and cli_backend.needs_session_init:
            harvested = await self._harvest_session_id(cli_backend, str(root), options)

        async with self._lock:
            state = self._sessions.get(session_id)
            if state is None:
                # Stopped while the harvest call was running
                raise SessionNotFoundError(session_id)
            if harvested and state.cli_session_id is None:
                state.cli_session_id = harvested
            if state.status == SessionStatus.STARTING:
                state.status = SessionStatus.RUNNING
            return self._snapshot(state)

    async def stop_session(self, session_id: str) -> AgentSession:
        """Remove a session and kill its active child, if any."""
        async with self._lock:
            state = self._sessions.pop(session_id, None)
            slot = self._slots.pop(session_id, None)
        if state is None or slot is None:
            raise SessionNotFoundError(session_id)

        pid = await slot.kill()
        state.status = SessionStatus.STOPPED
        logger.info(
            f"[REGISTRY] Stopped session {session_id}"
            + (f" (killed PID {pid})" if pid else "")
        )
        return self._snapshot(state, process_id=None)

    async def stop_all(self) -> None:
        """Stop every session; used at shutdown."""
        for session_id in list(self._sessions):
            try:
                await self.stop_session(session_id)
            except SessionNotFoundError:
                pass

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def send_message(self, session_id: str, message: str) -> AgentSession:
        """
        Run the session's CLI for one message and return immediately.

        Any child still running for this session is killed first. Long
        messages go to stdin when the backend accepts it.
        """
        async with self._lock:
            state = self._require(session_id)
            slot = self._slots[session_id]
            backend_name = state.backend
            project_root = state.project_root
            cli_session_id = state.cli_session_id
            options = state.options

        backend = self._resolve_backend(backend_name)
        payload = message.encode("utf-8")
        use_stdin = (
            backend.supports_stdin
            and len(payload) > self._settings.sessions.stdin_threshold
        )
        args = backend.build_message_args(
            None if use_stdin else message,
            cli_session_id,
            options,
            project_path=project_root,
        )
        command = [backend.executable, *args]
        env = {**os.environ, **backend.build_env(options)}

        logger.info(
            f"[REGISTRY] Session {session_id}: spawning {backend.executable} "
            f"({'resume ' + cli_session_id if cli_session_id else 'new'}, "
            f"{'stdin' if use_stdin else 'argv'}, {len(payload)} bytes)"
        )

        async def spawn() -> asyncio.subprocess.Process:
            return await asyncio.create_subprocess_exec(
                *command,
                cwd=project_root,
                env=env,
                stdin=(
                    asyncio.subprocess.PIPE
                    if use_stdin
                    else asyncio.subprocess.DEVNULL
                ),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )

        readers: List[asyncio.Task] = []

        def start_readers(process: asyncio.subprocess.Process) -> List[asyncio.Task]:
            readers.extend(
                [
                    self._spawn(self._read_stream(session_id, backend, process.stdout, False)),
                    self._spawn(self._read_stream(session_id, backend, process.stderr, True)),
                ]
            )
            return readers

        try:
            process = await slot.swap(spawn, start_readers)
        except OSError as e:
            error = f"Failed to spawn {backend.executable}: {e}"
            logger.error(f"[REGISTRY] Session {session_id}: {error}")
            async with self._lock:
                state = self._sessions.get(session_id)
                if state is not None:
                    state.status = SessionStatus.ERROR
                    state.error = error
            raise ExternalProcessError(error) from e

        if use_stdin:
            self._spawn(self._feed_stdin(process, payload))
        self._spawn(self._wait_for_exit(session_id, slot, process, readers))

        async with self._lock:
            state = self._require(session_id)
            state.status = SessionStatus.RUNNING
            state.error = None
            state.awaiting_input = False
            state.last_activity = now()
            return self._snapshot(state, process_id=process.pid)

    async def kill_active(self, session_id: str) -> Optional[int]:
        """Kill the session's running child, if any. Returns its pid."""
        async with self._lock:
            self._require(session_id)
            slot = self._slots[session_id]
        return await slot.kill()

    async def read_output(self, session_id: str) -> List[str]:
        """Drain and return raw output lines."""
        return (await self.read_output_and_events(session_id)).raw_output

    async def read_events(self, session_id: str) -> List[AgentEvent]:
        """Drain and return classified events."""
        return (await self.read_output_and_events(session_id)).events

    async def read_output_and_events(self, session_id: str) -> SessionOutput:
        """Drain both buffers at once."""
        async with self._lock:
            state = self._require(session_id)
            raw, events = state.raw_output, state.events
            state.raw_output, state.events = [], []
            announce = not state.session_id_announced
            state.session_id_announced = True
            if raw or events:
                state.last_activity = now()
            return SessionOutput(
                raw_output=raw,
                events=events,
                cli_session_id=state.cli_session_id,
                new_cli_session_id=announce,
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_status(self, session_id: str) -> AgentSession:
        async with self._lock:
            return self._snapshot(self._require(session_id))

    async def list_sessions(self) -> List[AgentSession]:
        async with self._lock:
            return [self._snapshot(state) for state in self._sessions.values()]

    async def health_check(self, session_id: str) -> bool:
        """Cheap liveness: is the session still registered?"""
        async with self._lock:
            return session_id in self._sessions

    async def get_cli_session_id(self, session_id: str) -> Optional[str]:
        async with self._lock:
            return self._require(session_id).cli_session_id

    async def set_cli_session_id(self, session_id: str, cli_session_id: str) -> None:
        """Bind a vendor id discovered out of band (e.g. from a transcript)."""
        async with self._lock:
            state = self._require(session_id)
            if state.cli_session_id != cli_session_id:
                state.cli_session_id = cli_session_id
                state.session_id_announced = False

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve_backend(self, name: str) -> AgentBackend:
        if self._backends is not None:
            backend = self._backends.get(name)
        else:
            backend = get_backend(name)
        if backend is None:
            raise ConfigInvalidError(f"Unsupported backend: {name}")
        return backend

    def _require(self, session_id: str) -> SessionState:
        state = self._sessions.get(session_id)
        if state is None:
            raise SessionNotFoundError(session_id)
        return state

    def _snapshot(self, state: SessionState, **overrides: Any) -> AgentSession:
        slot = self._slots.get(state.session_id)
        fields: Dict[str, Any] = dict(
            session_id=state.session_id,
            project_root=state.project_root,
            backend=state.backend,
            status=state.status,
            cli_session_id=state.cli_session_id,
            process_id=slot.process_id if slot else None,
            started_at=state.started_at,
            last_activity=state.last_activity,
            error=state.error,
            awaiting_input=state.awaiting_input,
        )
        fields.update(overrides)
        return AgentSession(**fields)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _harvest_session_id(
        self, backend: AgentBackend, project_root: str, options: BackendOptions
    ) -> Optional[str]:
        """One-shot call to learn the vendor session id. Failures are not fatal."""
        sessions_cfg = self._settings.sessions
        command = [
            backend.executable,
            *backend.build_init_args(sessions_cfg.init_prompt, options),
        ]
        try:
            result = await self._executor.execute(
                command,
                timeout=sessions_cfg.init_timeout,
                cwd=project_root,
                env=backend.build_env(options),
            )
            if not result.ok:
                logger.warning(
                    f"[REGISTRY] Session-id harvest via {backend.executable} failed "
                    f"(code {result.return_code}): {result.stderr.strip()[:200]}"
                )
                return None
            cli_session_id = backend.parse_init_output(result.stdout)
        except Exception as e:
            logger.warning(f"[REGISTRY] Session-id harvest raised: {e}")
            return None

        if cli_session_id:
            logger.info(f"[REGISTRY] Harvested vendor session id {cli_session_id}")
        else:
            logger.warning("[REGISTRY] Harvest output carried no session id")
        return cli_session_id

    async def _read_stream(
        self,
        session_id: str,
        backend: AgentBackend,
        stream: Optional[asyncio.StreamReader],
        is_stderr: bool,
    ) -> None:
        """
        Feed one pipe into the session line by line until EOF.

        A line longer than STREAM_LIMIT is discarded whole and reading goes
        on with the next line, so the pipe keeps draining.
        """
        if stream is None:
            return
        discarding = False
        while True:
            try:
                raw = await stream.readuntil(b"\n")
            except asyncio.IncompleteReadError as e:
                # EOF; the last line may lack a newline
                if e.partial and not discarding:
                    await self._append_line(
                        session_id, backend, self._decode(e.partial), is_stderr
                    )
                return
            except asyncio.LimitOverrunError as e:
                if not discarding:
                    logger.warning(
                        f"[REGISTRY] Session {session_id}: dropping line over "
                        f"{STREAM_LIMIT} bytes"
                    )
                discarding = True
                await stream.readexactly(e.consumed)
                continue

            if discarding:
                # Tail of the oversized line
                discarding = False
                continue
            # A stopped session still drains the pipe so the child never blocks
            await self._append_line(session_id, backend, self._decode(raw), is_stderr)

    @staticmethod
    def _decode(raw: bytes) -> str:
        return raw.decode("utf-8", errors="replace").rstrip("\r\n")

    async def _append_line(
        self, session_id: str, backend: AgentBackend, line: str, is_stderr: bool
    ) -> bool:
        events = self._parser.parse_line(line)
        found_id = backend.extract_session_id(line)
        waiting = (
            is_waiting_for_input(line) if not is_stderr and line.strip() else None
        )

        async with self._lock:
            state = self._sessions.get(session_id)
            if state is None:
                return False
            if found_id and state.cli_session_id is None:
                state.cli_session_id = found_id
                state.session_id_announced = False
                logger.info(
                    f"[REGISTRY] Session {session_id}: detected vendor session id {found_id}"
                )
            state.events.extend(events)
            state.raw_output.append(STDERR_PREFIX + line if is_stderr else line)
            if waiting is not None:
                state.awaiting_input = waiting
            state.last_activity = now()
            return True

    async def _feed_stdin(self, process: asyncio.subprocess.Process, payload: bytes) -> None:
        stdin = process.stdin
        if stdin is None:
            return
        try:
            stdin.write(payload)
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.warning(f"[REGISTRY] PID {process.pid} closed stdin early: {e}")
        finally:
            stdin.close()

    async def _wait_for_exit(
        self,
        session_id: str,
        slot: ProcessSlot,
        process: asyncio.subprocess.Process,
        readers: List[asyncio.Task],
    ) -> None:
        error: Optional[str] = None
        try:
            returncode = await process.wait()
        except Exception as e:
            returncode = None
            error = f"Failed to wait for process {process.pid}: {e}"

        # Output is fully buffered by the time the slot reports no child
        if readers:
            await asyncio.wait(readers, timeout=READER_DRAIN_TIMEOUT)

        await slot.clear_if(process.pid)
        if slot.consume_killed(process):
            return
        if error is None and returncode != 0:
            error = f"Process exited with code {returncode}"

        async with self._lock:
            state = self._sessions.get(session_id)
            if state is None:
                return
            state.last_activity = now()
            if error:
                state.status = SessionStatus.ERROR
                state.error = error
                logger.warning(f"[REGISTRY] Session {session_id}: {error}")
            else:
                logger.info(f"[REGISTRY] Session {session_id}: PID {process.pid} finished")
