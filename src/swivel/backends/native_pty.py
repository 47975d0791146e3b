"""Native pseudo-terminal backend.

Allocates a real PTY pair, starts the shell on the slave side as a new
session leader with the slave as its controlling terminal, and reads the
master side from the event loop. This is the only backend with real
resizing and job control.

The POSIX terminal modules are imported at call time so this module can
be imported on hosts that lack them; the probe reports their absence.
"""

from __future__ import annotations

import asyncio
import importlib
import logging
import os
import signal
import struct
import subprocess

from swivel.backends.base import BackendStrategy, ProcessHandle, SpawnError, child_environment
from swivel.domain.models import SpawnOptions, StrategyName

logger = logging.getLogger(__name__)

READ_CHUNK = 65536


def native_pty_available() -> bool:
    """Return True when this host can allocate pseudo-terminals."""
    try:
        for name in ("pty", "termios", "fcntl"):
            importlib.import_module(name)
    except ImportError as e:
        logger.info("Native PTY modules unavailable: %s", e)
        return False
    return hasattr(os, "openpty")


def _set_winsize(fd: int, rows: int, cols: int) -> None:
    import fcntl
    import termios

    winsize = struct.pack("HHHH", rows, cols, 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)


def _acquire_controlling_tty() -> None:
    # Runs in the child after setsid(); stdin is already the PTY slave.
    import fcntl
    import termios

    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class PtyProcessHandle(ProcessHandle):
    """Process handle over the master side of a PTY."""

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        master_fd: int,
        kill_grace: float = 2.0,
    ) -> None:
        super().__init__(StrategyName.NATIVE_PTY)
        self._process = process
        self._master_fd: int | None = master_fd
        self._kill_grace = kill_grace
        self._killed = False
        self._loop = asyncio.get_running_loop()
        self._outbuf = bytearray()
        self._writer_registered = False

        os.set_blocking(master_fd, False)
        self._loop.add_reader(master_fd, self._on_readable)
        self._waiter = self._loop.create_task(self._wait())

    @property
    def pid(self) -> int | None:
        return self._process.pid

    def write(self, data: bytes) -> None:
        if not self.is_alive or self._master_fd is None or not data:
            return
        self._outbuf.extend(data)
        self._flush()

    def resize(self, rows: int, cols: int) -> bool:
        if not self.is_alive or self._master_fd is None:
            return False
        try:
            _set_winsize(self._master_fd, max(1, rows), max(1, cols))
        except OSError as e:
            logger.debug("Resize of pid %s failed: %s", self.pid, e)
            return False
        logger.debug("Resized pid %s to %dx%d", self.pid, cols, rows)
        return True

    def kill(self) -> None:
        if self._killed or not self.is_alive:
            return
        self._killed = True
        # Hang up the whole session, like closing a terminal window.
        self._signal(signal.SIGHUP)
        self._loop.call_later(self._kill_grace, self._force_kill)

    def _signal(self, sig: int) -> None:
        try:
            os.killpg(self._process.pid, sig)
        except (ProcessLookupError, PermissionError):
            try:
                self._process.send_signal(sig)
            except ProcessLookupError:
                pass

    def _force_kill(self) -> None:
        if self.is_alive:
            logger.warning("pid %s ignored SIGHUP, sending SIGKILL", self.pid)
            self._signal(signal.SIGKILL)

    def _on_readable(self) -> None:
        if self._master_fd is None:
            return
        try:
            data = os.read(self._master_fd, READ_CHUNK)
        except BlockingIOError:
            return
        except OSError:
            # EIO: the slave side closed.
            self._stop_reading()
            return
        if not data:
            self._stop_reading()
            return
        self._emit_data(data)

    def _flush(self) -> None:
        while self._outbuf and self._master_fd is not None:
            try:
                written = os.write(self._master_fd, self._outbuf)
            except BlockingIOError:
                break
            except OSError as e:
                logger.debug("Write to pid %s failed: %s", self.pid, e)
                self._outbuf.clear()
                break
            del self._outbuf[:written]
        if self._outbuf and self._master_fd is not None:
            if not self._writer_registered:
                self._loop.add_writer(self._master_fd, self._flush)
                self._writer_registered = True
        elif self._writer_registered:
            if self._master_fd is not None:
                self._loop.remove_writer(self._master_fd)
            self._writer_registered = False

    def _stop_reading(self) -> None:
        if self._master_fd is not None:
            self._loop.remove_reader(self._master_fd)

    def _drain(self) -> None:
        """Read whatever the child wrote before it exited."""
        if self._master_fd is None:
            return
        while True:
            try:
                data = os.read(self._master_fd, READ_CHUNK)
            except OSError:
                return
            if not data:
                return
            self._emit_data(data)

    def _close(self) -> None:
        if self._master_fd is None:
            return
        fd, self._master_fd = self._master_fd, None
        self._loop.remove_reader(fd)
        if self._writer_registered:
            self._loop.remove_writer(fd)
            self._writer_registered = False
        self._outbuf.clear()
        try:
            os.close(fd)
        except OSError:
            pass

    async def _wait(self) -> None:
        returncode = await self._process.wait()
        self._drain()
        self._close()
        self._emit_exit(returncode)


class NativePtyStrategy(BackendStrategy):
    """Spawns the shell attached to a freshly allocated pseudo-terminal."""

    name = StrategyName.NATIVE_PTY

    def __init__(self, kill_grace: float = 2.0) -> None:
        self._kill_grace = kill_grace

    async def spawn(
        self,
        command: str,
        args: list[str],
        options: SpawnOptions,
    ) -> ProcessHandle:
        try:
            pty = importlib.import_module("pty")
            master_fd, slave_fd = pty.openpty()
        except (ImportError, OSError) as e:
            raise SpawnError(f"Cannot allocate a pseudo-terminal: {e}", strategy=self.name) from e

        try:
            _set_winsize(slave_fd, options.rows, options.cols)
            env = child_environment(options)
            env.setdefault("COLUMNS", str(options.cols))
            env.setdefault("LINES", str(options.rows))
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=options.cwd,
                env=env,
                start_new_session=True,
                preexec_fn=_acquire_controlling_tty,
            )
        except (OSError, subprocess.SubprocessError) as e:
            os.close(master_fd)
            raise SpawnError(
                f"Failed to start {command!r} on a PTY: {e}", strategy=self.name
            ) from e
        finally:
            os.close(slave_fd)

        logger.info(
            "Started %s on PTY (pid=%d, %dx%d)",
            command, process.pid, options.cols, options.rows,
        )
        return PtyProcessHandle(process, master_fd, kill_grace=self._kill_grace)
