"""Abstract base classes for process spawning backends.

Every strategy (native PTY, compatibility shell, direct spawn) returns a
ProcessHandle, so the session manager can relay bytes without knowing
which technique produced the process.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from typing import Callable

from swivel.domain.models import ProcessExit, SpawnOptions, StrategyName

logger = logging.getLogger(__name__)

OutputCallback = Callable[[bytes], None]
ExitCallback = Callable[[ProcessExit], None]


class ProcessHandle(ABC):
    """Uniform contract for a running interactive process.

    Output is delivered to a single, replaceable subscriber. Chunks
    produced before the first subscriber is attached are held and
    flushed to it, so a shell prompt printed during spawn is not lost.
    The exit event is delivered at most once.

    Example usage::

        handle = await strategy.spawn("bash", [], SpawnOptions())
        handle.on_data(lambda chunk: print(chunk))
        handle.on_exit(lambda event: print("exited", event.returncode))
        handle.write(b"ls\\n")
        handle.kill()
    """

    def __init__(self, strategy: StrategyName) -> None:
        self._strategy = strategy
        self._on_data: OutputCallback | None = None
        self._on_exit: ExitCallback | None = None
        self._backlog: list[bytes] | None = []
        self._exit: ProcessExit | None = None
        self._exit_delivered = False

    @property
    def strategy(self) -> StrategyName:
        return self._strategy

    @property
    def is_alive(self) -> bool:
        return self._exit is None

    @property
    def returncode(self) -> int | None:
        return self._exit.returncode if self._exit else None

    @property
    @abstractmethod
    def pid(self) -> int | None:
        """OS process id of the spawned child."""
        ...

    def on_data(self, callback: OutputCallback | None) -> None:
        """Set (or clear) the output subscriber."""
        self._on_data = callback
        if callback is not None and self._backlog is not None:
            pending, self._backlog = self._backlog, None
            for chunk in pending:
                callback(chunk)

    def on_exit(self, callback: ExitCallback | None) -> None:
        """Set (or clear) the exit subscriber.

        If the process already exited, the callback fires immediately.
        """
        self._on_exit = callback
        if callback is not None and self._exit is not None:
            self._deliver_exit()

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Write bytes to the process input.

        Writing after the process exited is a silent no-op.
        """
        ...

    @abstractmethod
    def kill(self) -> None:
        """Terminate the process. Safe to call any number of times."""
        ...

    def resize(self, rows: int, cols: int) -> bool:
        """Change the terminal dimensions. Returns False when unsupported."""
        return False

    def _emit_data(self, data: bytes) -> None:
        if not data:
            return
        if self._on_data is not None:
            self._on_data(data)
        elif self._backlog is not None:
            self._backlog.append(data)

    def _emit_exit(self, returncode: int | None) -> None:
        if self._exit is not None:
            return
        self._exit = ProcessExit(returncode=returncode, strategy=self._strategy)
        logger.debug("Process %s (%s) exited with %s", self.pid, self._strategy.value, returncode)
        if self._on_exit is not None:
            self._deliver_exit()

    def _deliver_exit(self) -> None:
        if self._exit_delivered or self._on_exit is None or self._exit is None:
            return
        self._exit_delivered = True
        self._on_exit(self._exit)


class BackendStrategy(ABC):
    """One technique for obtaining an interactive process handle."""

    name: StrategyName

    @abstractmethod
    async def spawn(
        self,
        command: str,
        args: list[str],
        options: SpawnOptions,
    ) -> ProcessHandle:
        """Start ``command`` with ``args`` and return its handle.

        Raises:
            SpawnError: If this strategy cannot produce a process.
        """
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name.value})"


def child_environment(options: SpawnOptions) -> dict[str, str]:
    """Build the environment for a spawned shell."""
    env = dict(os.environ) if options.env is None else dict(options.env)
    env.setdefault("TERM", options.term)
    return env


class SpawnError(Exception):
    """Raised when a strategy fails to produce a process handle."""

    def __init__(self, message: str, strategy: StrategyName | None = None) -> None:
        super().__init__(message)
        self.strategy = strategy
