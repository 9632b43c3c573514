"""
ProcessSlot: a single-owner holder for at most one live child process.

The slot serialises "kill the current child, spawn the next one" behind its
own lock, so two racing sends on one session still leave exactly one live
child, and a kill racing a natural exit never double-kills.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, List, Optional, Set

logger = logging.getLogger(__name__)

# How long a killed child's stream readers get to drain before cancellation
READER_DRAIN_TIMEOUT = 1.0

Spawner = Callable[[], Awaitable[asyncio.subprocess.Process]]
ReaderStarter = Callable[[asyncio.subprocess.Process], Iterable[asyncio.Task]]


class ProcessSlot:
    """Holds the active child process of one session."""

    def __init__(self, kill_timeout: float = 5.0):
        self._kill_timeout = kill_timeout
        self._lock = asyncio.Lock()
        self._process: Optional[asyncio.subprocess.Process] = None
        self._readers: List[asyncio.Task] = []
        self._killed: Set[asyncio.subprocess.Process] = set()

    @property
    def process_id(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    @property
    def is_occupied(self) -> bool:
        return self._process is not None

    def consume_killed(self, process: asyncio.subprocess.Process) -> bool:
        """
        True if ``process`` was terminated through the slot.

        The mark is removed, so each kill is reported to exactly one caller.
        """
        if process in self._killed:
            self._killed.discard(process)
            return True
        return False

    async def swap(
        self, spawn: Spawner, start_readers: Optional[ReaderStarter] = None
    ) -> asyncio.subprocess.Process:
        """
        Kill the current child (if any), spawn a new one and store it.

        ``start_readers`` runs under the slot lock right after the spawn and
        returns the tasks draining the new child's streams. Exceptions from
        ``spawn`` propagate; the slot is left empty.
        """
        async with self._lock:
            await self._kill_locked()
            process = await spawn()
            self._process = process
            self._readers = list(start_readers(process)) if start_readers else []
            return process

    async def kill(self) -> Optional[int]:
        """
        Terminate the current child and clear the slot.

        Tolerates a child that already exited. Returns the pid that was
        held, if any.
        """
        async with self._lock:
            return await self._kill_locked()

    async def clear_if(self, pid: int) -> bool:
        """Clear the slot after a natural exit, if it still holds ``pid``."""
        async with self._lock:
            if self._process is not None and self._process.pid == pid:
                self._process = None
                self._readers = []
                return True
            return False

    async def _kill_locked(self) -> Optional[int]:
        process, readers = self._process, self._readers
        self._process, self._readers = None, []
        if process is None:
            return None

        pid = process.pid
        if process.returncode is None:
            self._killed.add(process)
            try:
                process.terminate()
                try:
                    await asyncio.wait_for(process.wait(), timeout=self._kill_timeout)
                except asyncio.TimeoutError:
                    logger.warning(
                        f"[PROCESS-SLOT] PID {pid} ignored SIGTERM for "
                        f"{self._kill_timeout}s, killing"
                    )
                    process.kill()
                    await process.wait()
            except ProcessLookupError:
                # Exited between the returncode check and the signal
                pass
            logger.debug(f"[PROCESS-SLOT] Killed PID {pid}")

        # Let the old readers flush what the pipe still holds
        if readers:
            _, pending = await asyncio.wait(readers, timeout=READER_DRAIN_TIMEOUT)
            for task in pending:
                task.cancel()
        return pid
