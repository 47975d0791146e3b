"""Pipe-wired process handle shared by the non-PTY strategies.

stdout and stderr are pumped by two reader tasks into the same output
callback, so the consumer sees a single byte stream. Each stream stays
in order; the interleaving between them is whatever the event loop
surfaces first.

Exit is taken from the transport's ``process_exited`` notification rather
than ``Process.wait()``, which only resolves once every pipe has closed.
A background job that inherited the pipes would otherwise hide the exit.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess

from swivel.backends.base import ProcessHandle, SpawnError, child_environment
from swivel.domain.models import SpawnOptions, StrategyName

logger = logging.getLogger(__name__)

READ_CHUNK = 4096
STREAM_LIMIT = 2 ** 16
# How long to keep reading output after the process itself has exited.
DRAIN_TIMEOUT = 1.0


class _PipeProtocol(asyncio.subprocess.SubprocessStreamProtocol):
    """Stream protocol that resolves ``exited`` as soon as the child dies."""

    def __init__(self, limit: int, loop: asyncio.AbstractEventLoop) -> None:
        super().__init__(limit=limit, loop=loop)
        self.exited: asyncio.Future[None] = loop.create_future()
        self.transport: asyncio.SubprocessTransport | None = None

    def connection_made(self, transport) -> None:
        super().connection_made(transport)
        self.transport = transport

    def process_exited(self) -> None:
        super().process_exited()
        if not self.exited.done():
            self.exited.set_result(None)


class PipeProcessHandle(ProcessHandle):
    """Process handle over plain stdin/stdout/stderr pipes."""

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        protocol: _PipeProtocol,
        strategy: StrategyName,
        kill_grace: float = 2.0,
    ) -> None:
        super().__init__(strategy)
        self._process = process
        self._protocol = protocol
        self._kill_grace = kill_grace
        self._killed = False
        self._loop = asyncio.get_running_loop()
        self._pumps = [
            self._loop.create_task(self._pump(stream))
            for stream in (process.stdout, process.stderr)
            if stream is not None
        ]
        self._watcher = self._loop.create_task(self._watch())

    @property
    def pid(self) -> int | None:
        return self._process.pid

    def write(self, data: bytes) -> None:
        stdin = self._process.stdin
        if not self.is_alive or stdin is None or stdin.is_closing() or not data:
            return
        try:
            stdin.write(data)
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug("Write to pid %s dropped: %s", self.pid, e)

    def kill(self) -> None:
        if self._killed or not self.is_alive:
            return
        self._killed = True
        stdin = self._process.stdin
        if stdin is not None and not stdin.is_closing():
            stdin.close()
        self._signal(force=False)
        self._loop.call_later(self._kill_grace, self._force_kill)

    def _signal(self, force: bool) -> None:
        # The child leads its own session, so its background jobs share its group.
        if os.name == "posix":
            sig = signal.SIGKILL if force else signal.SIGTERM
            try:
                os.killpg(self._process.pid, sig)
                return
            except (ProcessLookupError, PermissionError):
                pass
        try:
            if force:
                self._process.kill()
            else:
                self._process.terminate()
        except ProcessLookupError:
            pass

    def _force_kill(self) -> None:
        if not self.is_alive:
            return
        logger.warning("pid %s ignored SIGTERM, killing", self.pid)
        self._signal(force=True)

    async def _pump(self, stream: asyncio.StreamReader) -> None:
        while True:
            chunk = await stream.read(READ_CHUNK)
            if not chunk:
                return
            self._emit_data(chunk)

    async def _watch(self) -> None:
        await self._protocol.exited
        returncode = self._process.returncode
        if self._pumps:
            _, pending = await asyncio.wait(self._pumps, timeout=DRAIN_TIMEOUT)
            if pending:
                logger.debug(
                    "pid %s exited but a descendant still holds its output; detaching",
                    self.pid,
                )
                for task in pending:
                    task.cancel()
                if self._protocol.transport is not None:
                    self._protocol.transport.close()
        self._emit_exit(returncode)


async def spawn_piped(
    argv: list[str],
    options: SpawnOptions,
    strategy: StrategyName,
    kill_grace: float = 2.0,
) -> PipeProcessHandle:
    """Start ``argv`` wired through pipes and wrap it in a handle.

    Raises:
        SpawnError: If the executable is missing or cannot be started.
    """
    loop = asyncio.get_running_loop()
    try:
        transport, protocol = await loop.subprocess_exec(
            lambda: _PipeProtocol(limit=STREAM_LIMIT, loop=loop),
            *argv,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=options.cwd,
            env=child_environment(options),
            start_new_session=True,
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise SpawnError(f"Failed to start {argv[0]!r}: {e}", strategy=strategy) from e

    process = asyncio.subprocess.Process(transport, protocol, loop)
    logger.info("Started %s via %s (pid=%d)", " ".join(argv), strategy.value, process.pid)
    return PipeProcessHandle(process, protocol, strategy, kill_grace=kill_grace)
