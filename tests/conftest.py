"""Shared pytest fixtures for clarity-bridge tests.

The relay is driven by fake worker processes and a manually fired timer
scheduler, so no test spawns a real subprocess or sleeps for real.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from typing import Any

import pytest
from click.testing import CliRunner

from clarity_bridge.config import DEFAULT_READY_MARKER
from clarity_bridge.relay import Relay

WORKER_COMMAND = ["fake-worker", "--stdio"]


class FakeStdin:
    def __init__(self) -> None:
        self.data = b""
        self.closed = False
        self.fail_with: BaseException | None = None
        self.stalled = False
        self.drain_cancelled = False

    def write(self, data: bytes) -> None:
        self.data += data

    async def drain(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        if self.stalled:
            # A worker that stopped reading: the pipe buffer never empties.
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.drain_cancelled = True
                raise

    def is_closing(self) -> bool:
        return self.closed

    @property
    def lines(self) -> list[str]:
        return [line for line in self.data.decode().split("\n") if line]

    @property
    def messages(self) -> list[dict[str, Any]]:
        return [json.loads(line) for line in self.lines]


class FakeProcess:
    """Stands in for ``asyncio.subprocess.Process``."""

    def __init__(self, pid: int) -> None:
        self.pid = pid
        self.returncode: int | None = None
        self.stdin = FakeStdin()
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self._exited = asyncio.Event()

    def emit_stdout(self, data: str | bytes) -> None:
        self.stdout.feed_data(data.encode() if isinstance(data, str) else data)

    def emit_stderr(self, data: str | bytes) -> None:
        self.stderr.feed_data(data.encode() if isinstance(data, str) else data)

    def respond(self, message: dict[str, Any]) -> None:
        self.emit_stdout(json.dumps(message) + "\n")

    def signal_ready(self) -> None:
        self.emit_stderr(f"{DEFAULT_READY_MARKER}\n")

    def exit(self, code: int = 0, *, close_pipes: bool = True) -> None:
        """Exit with *code*; ``close_pipes=False`` mimics a grandchild holding them open."""
        if self.returncode is not None:
            return
        self.returncode = code
        self.stdin.closed = True
        if close_pipes:
            self.stdout.feed_eof()
            self.stderr.feed_eof()
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode

    def terminate(self) -> None:
        self.exit(-15)

    def kill(self) -> None:
        self.exit(-9)


class FakeSpawner:
    """Async spawn function recording every process it hands out."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.processes: list[FakeProcess] = []
        self.error: OSError | None = None

    async def __call__(self, command: Sequence[str]) -> FakeProcess:
        self.calls.append(list(command))
        if self.error is not None:
            raise self.error
        proc = FakeProcess(pid=1000 + len(self.processes))
        self.processes.append(proc)
        return proc

    @property
    def current(self) -> FakeProcess:
        return self.processes[-1]


class ManualTimer:
    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Timer factory whose timers only fire when a test says so."""

    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(delay, callback)
        self.timers.append(timer)
        return timer

    def active(self, delay: float | None = None) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired and (delay is None or t.delay == delay)]

    def fire(self, delay: float | None = None) -> int:
        due = self.active(delay)
        for timer in due:
            timer.fired = True
            timer.callback()
        return len(due)


async def _settle(rounds: int = 50) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            msg = "condition not met before timeout"
            raise AssertionError(msg)
        await asyncio.sleep(0.001)


@pytest.fixture
def settle() -> Callable[..., Awaitable[None]]:
    """Let pending callbacks and pipe pumps run to quiescence."""
    return _settle


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    return _wait_until


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
async def relay(spawner: FakeSpawner, scheduler: ManualScheduler) -> AsyncIterator[Relay]:
    """A relay wired to fake processes; not started."""
    r = Relay(WORKER_COMMAND, spawn=spawner, schedule=scheduler)
    yield r
    await r.stop()


@pytest.fixture
async def ready_relay(relay: Relay, spawner: FakeSpawner) -> Relay:
    """A started relay whose worker has printed the readiness marker."""
    await relay.start()
    spawner.current.signal_ready()
    await _wait_until(lambda: relay.ready)
    return relay
