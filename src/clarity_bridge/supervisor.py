"""Lifecycle management for the persistent MCP worker process.

The supervisor spawns the worker with three pipes, pumps its stdout into
a line callback and its stderr into the log, and watches stderr for the
readiness marker.  When the worker terminates, pending work is failed via
``on_terminated`` and exactly one restart is scheduled after a fixed delay.

State machine::

    NOT_STARTED -> STARTING -> READY -> DEAD -> (delay) -> STARTING -> ...
                                  any -> STOPPED   (explicit shutdown only)

Spawning and timers are injectable so tests can drive the state machine
with fake processes and manually fired timers.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
from collections.abc import Awaitable, Callable, Sequence
from enum import StrEnum
from typing import Any, Protocol

from clarity_bridge.config import DEFAULT_READY_MARKER, DEFAULT_RESTART_DELAY
from clarity_bridge.correlator import Scheduler, TimerHandle, call_later
from clarity_bridge.framing import LineFramer

logger = logging.getLogger(__name__)
worker_logger = logging.getLogger("clarity_bridge.worker")

_READ_SIZE = 64 * 1024
_STOP_GRACE_SECONDS = 5.0
_EXIT_DRAIN_SECONDS = 1.0


class SubprocessState(StrEnum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    READY = "ready"
    DEAD = "dead"
    STOPPED = "stopped"


class WorkerProcess(Protocol):
    """The subset of ``asyncio.subprocess.Process`` the supervisor relies on."""

    pid: int
    returncode: int | None
    stdin: Any
    stdout: Any
    stderr: Any

    async def wait(self) -> int: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


SpawnFn = Callable[[Sequence[str]], Awaitable[WorkerProcess]]


async def spawn_worker(command: Sequence[str]) -> WorkerProcess:
    """Start *command* with piped stdin, stdout and stderr."""
    return await asyncio.create_subprocess_exec(
        *command,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )


class WorkerSupervisor:
    """Own one long-lived worker process at a time."""

    def __init__(
        self,
        command: Sequence[str],
        *,
        ready_marker: str = DEFAULT_READY_MARKER,
        restart_delay: float = DEFAULT_RESTART_DELAY,
        exit_drain_timeout: float = _EXIT_DRAIN_SECONDS,
        on_stdout_line: Callable[[str], None] | None = None,
        on_terminated: Callable[[int | None], None] | None = None,
        spawn: SpawnFn | None = None,
        schedule: Scheduler | None = None,
    ) -> None:
        self.command = list(command)
        self.ready_marker = ready_marker
        self.restart_delay = restart_delay
        self.exit_drain_timeout = exit_drain_timeout
        self.restarts = 0
        self._on_stdout_line = on_stdout_line
        self._on_terminated = on_terminated
        self._spawn = spawn or spawn_worker
        self._schedule = schedule or call_later
        self._state = SubprocessState.NOT_STARTED
        self._process: WorkerProcess | None = None
        self._monitor: asyncio.Task[None] | None = None
        self._restart_timer: TimerHandle | None = None
        self._restart_tasks: set[asyncio.Task[None]] = set()

    # -- public API --

    @property
    def state(self) -> SubprocessState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state is SubprocessState.READY

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def restart_pending(self) -> bool:
        return self._restart_timer is not None

    @property
    def command_line(self) -> str:
        return shlex.join(self.command)

    async def start(self) -> None:
        """Spawn the worker and begin monitoring it.

        A no-op while a worker is already live or after ``stop()``.
        Spawn failures are logged and leave the supervisor ``DEAD``; they
        do not schedule a restart because no termination event follows.
        """
        if self._state is SubprocessState.STOPPED:
            logger.debug("Supervisor stopped; not starting worker")
            return
        if self._process is not None and self._process.returncode is None:
            logger.warning("Worker already running (pid %s); start ignored", self._process.pid)
            return

        self._state = SubprocessState.STARTING
        logger.info("Starting persistent MCP process: %s", self.command_line)
        try:
            proc = await self._spawn(self.command)
        except OSError as exc:
            self._state = SubprocessState.DEAD
            logger.error("Failed to spawn MCP process %s: %s", self.command_line, exc)
            return

        if self._state is SubprocessState.STOPPED:
            # stop() ran while we were spawning.
            proc.kill()
            await proc.wait()
            return
        self._process = proc
        self._monitor = asyncio.create_task(self._monitor_process(proc))

    async def send_line(self, line: str) -> None:
        """Write one newline-terminated line to the worker's stdin."""
        proc = self._process
        if proc is None or proc.stdin is None or proc.stdin.is_closing():
            msg = "MCP process stdin is closed"
            raise BrokenPipeError(msg)
        proc.stdin.write(line.encode("utf-8") + b"\n")
        await proc.stdin.drain()

    async def stop(self, grace: float = _STOP_GRACE_SECONDS) -> None:
        """Terminate the worker for good; no restart follows."""
        self._state = SubprocessState.STOPPED
        if self._restart_timer is not None:
            self._restart_timer.cancel()
            self._restart_timer = None
        for task in list(self._restart_tasks):
            task.cancel()

        proc = self._process
        if proc is not None and proc.returncode is None:
            logger.info("Stopping MCP process (pid %s)", proc.pid)
            try:
                proc.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(proc.wait(), grace)
            except TimeoutError:
                logger.warning("MCP process (pid %s) ignored SIGTERM; killing", proc.pid)
                proc.kill()
                await proc.wait()
        if self._monitor is not None:
            await self._monitor
            self._monitor = None

    # -- internals --

    async def _monitor_process(self, proc: WorkerProcess) -> None:
        # Output written before the exit is drained first, so no trailing
        # response line is lost behind the termination event.  The drain is
        # bounded: a grandchild holding the pipes open must not hide the exit.
        pumps = asyncio.gather(
            self._pump(proc.stdout, self._handle_stdout_line),
            self._pump(proc.stderr, self._handle_stderr_line),
            return_exceptions=True,
        )
        code = await proc.wait()
        done, _ = await asyncio.wait({pumps}, timeout=self.exit_drain_timeout)
        if pumps in done:
            for result in pumps.result():
                if isinstance(result, Exception):
                    logger.error("Error reading MCP process output", exc_info=result)
        else:
            logger.warning(
                "MCP process output still open %gs after exit (pid %s); closing", self.exit_drain_timeout, proc.pid
            )
            pumps.cancel()
        self._handle_exit(proc, code)

    async def _pump(self, stream: Any, handle_line: Callable[[str], None]) -> None:
        if stream is None:
            return
        framer = LineFramer()
        while chunk := await stream.read(_READ_SIZE):
            for line in framer.feed(chunk):
                handle_line(line)
        tail = framer.flush()
        if tail is not None:
            handle_line(tail)

    def _handle_stdout_line(self, line: str) -> None:
        if self._on_stdout_line is not None:
            self._on_stdout_line(line)

    def _handle_stderr_line(self, line: str) -> None:
        worker_logger.info("%s", line.strip())
        if self._state is SubprocessState.STARTING and self.ready_marker in line:
            self._state = SubprocessState.READY
            logger.info("MCP process ready (pid %s)", self.pid)

    def _handle_exit(self, proc: WorkerProcess, code: int | None) -> None:
        if proc is not self._process:
            return
        self._process = None
        stopping = self._state is SubprocessState.STOPPED
        if not stopping:
            self._state = SubprocessState.DEAD
        logger.warning("MCP process exited with code %s", code)

        if self._on_terminated is not None:
            self._on_terminated(code)
        if stopping:
            return
        self._restart_timer = self._schedule(self.restart_delay, self._restart)
        logger.info("Restarting MCP process in %gs", self.restart_delay)

    def _restart(self) -> None:
        self._restart_timer = None
        if self._state is not SubprocessState.DEAD:
            return
        self.restarts += 1
        self._state = SubprocessState.STARTING
        task = asyncio.get_running_loop().create_task(self.start())
        self._restart_tasks.add(task)
        task.add_done_callback(self._restart_tasks.discard)
