"""Supervised execution of external processes.

ProcessSupervisor runs one command at a time per call and enforces:
- An admission cap on concurrently live processes (over-cap calls are
  rejected immediately, never queued)
- A timeout, escalated through a two-stage TerminationToken: graceful
  terminate first, forceful kill after a grace period
- Exit-status mapping to BrokerError kinds, with debug noise filtered out of
  stderr before it is surfaced

Typical usage:
    supervisor = ProcessSupervisor(max_concurrent=5, timeout=30.0)
    stdout = await supervisor.run("voicepeak", ["--list-narrator"])
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from voicepeak_broker.errors import (
    AdmissionRejected,
    ProcessFailed,
    ProcessSpawnFailed,
    ProcessTimeout,
)

logger = logging.getLogger(__name__)

DEBUG_MARKER = "[debug]"


def filter_debug_lines(text: str, marker: str = DEBUG_MARKER) -> str:
    """Drop lines containing the engine's debug marker."""
    return "\n".join(line for line in text.split("\n") if marker not in line)


class TerminationState(Enum):
    """States of the timeout escalation state machine."""

    IDLE = "idle"
    ARMED = "armed"
    GRACE = "grace"  # terminate sent, waiting for exit
    KILLED = "killed"  # kill sent
    DISARMED = "disarmed"


class TerminationToken:
    """Two-stage timeout escalation bound to one process.

    The token is process-agnostic: it only calls the supplied terminate, kill
    and is_alive callables, so any termination primitive can back it.

    State machine:
        IDLE -arm-> ARMED -timeout-> GRACE -grace-> KILLED
        any state -disarm-> DISARMED (timers cancelled, fired flag kept)
    """

    def __init__(
        self,
        terminate: Callable[[], None],
        kill: Callable[[], None],
        is_alive: Callable[[], bool],
        timeout: float,
        grace: float = 5.0,
    ) -> None:
        self._terminate = terminate
        self._kill = kill
        self._is_alive = is_alive
        self.timeout = timeout
        self.grace = grace

        self.state = TerminationState.IDLE
        self._fired = False
        self._handle: asyncio.TimerHandle | None = None

    @property
    def fired(self) -> bool:
        """True once the timeout has expired and termination began."""
        return self._fired

    def arm(self) -> None:
        """Start the timeout countdown on the running loop."""
        if self.state is not TerminationState.IDLE:
            return
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.timeout, self._on_timeout)
        self.state = TerminationState.ARMED

    def disarm(self) -> None:
        """Cancel any pending timer. Safe to call in any state."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.state = TerminationState.DISARMED

    def _on_timeout(self) -> None:
        if self.state is not TerminationState.ARMED:
            return
        self._fired = True
        self.state = TerminationState.GRACE
        logger.warning("Process exceeded %gs timeout, terminating", self.timeout)
        self._signal(self._terminate)
        self._handle = asyncio.get_running_loop().call_later(self.grace, self._on_grace_expired)

    def _on_grace_expired(self) -> None:
        if self.state is not TerminationState.GRACE:
            return
        self._handle = None
        if self._is_alive():
            logger.warning("Process ignored terminate for %gs, killing", self.grace)
            self._signal(self._kill)
            self.state = TerminationState.KILLED

    @staticmethod
    def _signal(action: Callable[[], None]) -> None:
        # Process may have exited between the timer firing and the signal.
        with contextlib.suppress(ProcessLookupError):
            action()


@dataclass(eq=False)
class ManagedProcess:
    """A live process owned by the supervisor."""

    command: str
    process: asyncio.subprocess.Process
    token: TerminationToken
    started_at: float = field(default_factory=time.monotonic)

    @property
    def deadline(self) -> float:
        """Monotonic time at which the timeout fires."""
        return self.started_at + self.token.timeout

    @property
    def is_alive(self) -> bool:
        """True until the process has exited."""
        return self.process.returncode is None


class ProcessSupervisor:
    """Runs external commands under an admission cap and a timeout.

    Attributes:
        max_concurrent: Maximum number of live processes across all callers.
        timeout: Default timeout in seconds.
        kill_grace: Seconds between terminate and kill on timeout.
        debug_marker: Marker of stderr lines dropped from failure messages.
    """

    def __init__(
        self,
        max_concurrent: int = 5,
        timeout: float = 30.0,
        kill_grace: float = 5.0,
        debug_marker: str = DEBUG_MARKER,
    ) -> None:
        self.max_concurrent = max_concurrent
        self.timeout = timeout
        self.kill_grace = kill_grace
        self.debug_marker = debug_marker

        # Slots are taken before spawn and released after exit, so a
        # spawn in progress already counts against the cap.
        self._slots_in_use = 0
        self._processes: set[ManagedProcess] = set()

    @property
    def active_count(self) -> int:
        """Number of admission slots currently held."""
        return self._slots_in_use

    async def run(
        self,
        executable: str,
        args: list[str],
        timeout: float | None = None,
        stdin: str | None = None,
    ) -> str:
        """Run a command to completion and return its stdout.

        Args:
            executable: Program to run.
            args: Program arguments.
            timeout: Timeout in seconds (defaults to the supervisor timeout).
            stdin: Optional text written to the process stdin.

        Returns:
            Captured stdout text.

        Raises:
            AdmissionRejected: Cap reached; nothing was spawned.
            ProcessSpawnFailed: Executable could not be started.
            ProcessTimeout: Process was terminated by its timeout.
            ProcessFailed: Process exited with a nonzero status.
        """
        if self._slots_in_use >= self.max_concurrent:
            raise AdmissionRejected(self.max_concurrent)

        timeout = self.timeout if timeout is None else timeout
        self._slots_in_use += 1
        try:
            return await self._run_in_slot(executable, args, timeout, stdin)
        finally:
            self._slots_in_use -= 1

    async def _run_in_slot(
        self, executable: str, args: list[str], timeout: float, stdin: str | None
    ) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                executable,
                *args,
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Failed to spawn %s: %s", executable, e)
            raise ProcessSpawnFailed(executable, e) from e

        token = TerminationToken(
            terminate=proc.terminate,
            kill=proc.kill,
            is_alive=lambda: proc.returncode is None,
            timeout=timeout,
            grace=self.kill_grace,
        )
        managed = ManagedProcess(command=executable, process=proc, token=token)
        self._processes.add(managed)
        logger.debug("Spawned %s (PID: %d)", executable, proc.pid)

        token.arm()
        try:
            stdout_bytes, stderr_bytes = await proc.communicate(
                stdin.encode("utf-8") if stdin is not None else None
            )
        finally:
            token.disarm()
            self._processes.discard(managed)
            if managed.is_alive:
                # Caller was cancelled while the process was still running.
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        logger.debug("%s exited with code %s", executable, proc.returncode)

        if token.fired:
            raise ProcessTimeout(timeout)
        if proc.returncode != 0:
            raise ProcessFailed(proc.returncode, filter_debug_lines(stderr, self.debug_marker))
        return stdout

    def terminate_all(self) -> int:
        """Send a graceful terminate to every live process.

        Returns:
            Number of processes signalled.
        """
        signalled = 0
        for managed in list(self._processes):
            if not managed.is_alive:
                continue
            with contextlib.suppress(ProcessLookupError):
                managed.process.terminate()
                signalled += 1
        if signalled:
            logger.info("Terminated %d live process(es)", signalled)
        return signalled
