"""Shared test fixtures for the swivel test suite.

Provides in-memory process handles and scripted backend strategies so
the selector, the session manager and the gateway can be exercised
without spawning real shells.
"""

from __future__ import annotations

import pytest

from swivel.backends.base import BackendStrategy, ProcessHandle, SpawnError
from swivel.backends.selector import BackendSelector
from swivel.config.settings import RelayConfig
from swivel.domain.models import SpawnOptions, StrategyName
from swivel.relay.sessions import SessionManager


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeHandle(ProcessHandle):
    """In-memory process: records input, optionally echoes it back.

    Writing ``b"exit\\n"`` makes the fake process exit with code 0.
    """

    def __init__(self, strategy: StrategyName, banner: bytes = b"", echo: bool = False) -> None:
        super().__init__(strategy)
        self.written: list[bytes] = []
        self.kill_calls = 0
        self.sizes: list[tuple[int, int]] = []
        self.echo = echo
        if banner:
            self._emit_data(banner)

    @property
    def pid(self) -> int | None:
        return 4242

    def write(self, data: bytes) -> None:
        if not self.is_alive:
            return
        self.written.append(data)
        if self.echo:
            self._emit_data(data)
        if data == b"exit\n":
            self._emit_exit(0)

    def kill(self) -> None:
        self.kill_calls += 1
        if self.is_alive:
            self._emit_exit(-15)

    def resize(self, rows: int, cols: int) -> bool:
        self.sizes.append((rows, cols))
        return True

    # Test helpers

    def produce(self, data: bytes) -> None:
        self._emit_data(data)

    def finish(self, returncode: int = 0) -> None:
        self._emit_exit(returncode)


class FakeStrategy(BackendStrategy):
    """Strategy that either fails with SpawnError or returns FakeHandles."""

    def __init__(
        self,
        name: StrategyName,
        fail: bool = False,
        banner: bytes = b"",
        echo: bool = False,
    ) -> None:
        self.name = name
        self.fail = fail
        self.banner = banner
        self.echo = echo
        self.calls: list[tuple[str, list[str], SpawnOptions]] = []
        self.handles: list[FakeHandle] = []

    async def spawn(self, command: str, args: list[str], options: SpawnOptions) -> ProcessHandle:
        self.calls.append((command, list(args), options))
        if self.fail:
            raise SpawnError(f"{self.name.value} unavailable", strategy=self.name)
        handle = FakeHandle(self.name, banner=self.banner, echo=self.echo)
        self.handles.append(handle)
        return handle


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def relay_config() -> RelayConfig:
    return RelayConfig(shell_command="bash", shell_args=["-l"], cwd="/tmp")


@pytest.fixture
def strategies() -> dict[StrategyName, FakeStrategy]:
    """One healthy fake strategy per backend."""
    return {name: FakeStrategy(name) for name in StrategyName}


@pytest.fixture
def selector() -> BackendSelector:
    """Selector whose probe reports native PTY support."""
    return BackendSelector(probe=lambda: True)


@pytest.fixture
def manager(
    selector: BackendSelector,
    strategies: dict[StrategyName, FakeStrategy],
    relay_config: RelayConfig,
) -> SessionManager:
    return SessionManager(selector, strategies, relay_config)


@pytest.fixture
def make_strategy() -> type[FakeStrategy]:
    """The FakeStrategy class, for tests that script their own failures."""
    return FakeStrategy


@pytest.fixture
def make_handle() -> type[FakeHandle]:
    return FakeHandle
