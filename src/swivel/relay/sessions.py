"""Session manager: one connection bound to one spawned process.

The manager owns the registry from connection id to Session, spawns
with bounded fallback across the backend strategies, wires output and
input through verbatim, and guarantees each connection is cleaned up
exactly once no matter whether disconnect or process exit comes first.
"""

from __future__ import annotations

import logging
from typing import Callable, Mapping

from swivel.backends.base import BackendStrategy, ProcessHandle, SpawnError
from swivel.backends.selector import BackendSelector
from swivel.config.settings import RelayConfig
from swivel.domain.models import (
    DEMOTION_ORDER,
    HealthStatus,
    ProcessExit,
    Session,
    SpawnOptions,
    StrategyName,
)

logger = logging.getLogger(__name__)

OutboundChannel = Callable[[bytes], None]

EXIT_NOTICE = b"\r\n[Process exited]\r\n"


class SessionManager:
    """Binds connections to shell processes with automatic fallback.

    All methods are meant to run on a single event loop. The only
    awaited operation is the spawn itself; registry mutations never
    straddle an await, so a teardown observed during a spawn wins over
    the registration that would follow it.

    Example usage::

        manager = SessionManager(selector, build_strategies(config), config)
        await manager.connect("c1", outbound.put_nowait)
        manager.input("c1", b"ls\\n")
        manager.teardown("c1")
    """

    def __init__(
        self,
        selector: BackendSelector,
        strategies: Mapping[StrategyName, BackendStrategy],
        config: RelayConfig | None = None,
    ) -> None:
        self._selector = selector
        self._strategies = dict(strategies)
        self._config = config or RelayConfig()
        self._sessions: dict[str, Session] = {}
        self._pending: set[str] = set()
        self._abandoned: set[str] = set()

    @property
    def selector(self) -> BackendSelector:
        return self._selector

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._sessions

    def get(self, connection_id: str) -> Session | None:
        return self._sessions.get(connection_id)

    async def spawn_with_fallback(
        self,
        connection_id: str,
        command: str,
        args: list[str],
        options: SpawnOptions,
        identity: str | None = None,
    ) -> ProcessHandle:
        """Spawn via the current strategy, demoting and retrying on failure.

        Tries at most one spawn per strategy in the demotion order.

        Raises:
            SessionExistsError: The connection already has a session or a
                spawn in flight.
            TerminalUnavailableError: Every strategy failed.
            SessionClosedError: The connection was torn down while the
                spawn was in flight; the new process has been killed.
        """
        if connection_id in self._sessions or connection_id in self._pending:
            raise SessionExistsError(connection_id)

        self._pending.add(connection_id)
        attempted: list[StrategyName] = []
        try:
            for _ in range(len(DEMOTION_ORDER)):
                strategy = self._selector.current_strategy()
                attempted.append(strategy)
                try:
                    handle = await self._spawn_once(strategy, command, args, options)
                except SpawnError as e:
                    logger.warning(
                        "Spawn via %s failed for connection %s: %s",
                        strategy.value, connection_id, e,
                    )
                    if self._selector.demote(strategy) is None:
                        break
                    continue

                if connection_id in self._abandoned:
                    logger.info(
                        "Connection %s closed during spawn, discarding pid %s",
                        connection_id, handle.pid,
                    )
                    handle.kill()
                    raise SessionClosedError(connection_id)

                self._sessions[connection_id] = Session(
                    connection_id=connection_id,
                    handle=handle,
                    strategy=strategy,
                    identity=identity,
                )
                logger.info(
                    "Session %s started on %s (pid=%s)",
                    connection_id, strategy.value, handle.pid,
                )
                return handle
        finally:
            self._pending.discard(connection_id)
            self._abandoned.discard(connection_id)

        logger.error(
            "No terminal backend could start a shell for connection %s (tried %s)",
            connection_id, ", ".join(s.value for s in attempted),
        )
        raise TerminalUnavailableError(connection_id, attempted)

    async def _spawn_once(
        self,
        strategy: StrategyName,
        command: str,
        args: list[str],
        options: SpawnOptions,
    ) -> ProcessHandle:
        backend = self._strategies.get(strategy)
        if backend is None:
            raise SpawnError(f"No backend registered for {strategy.value}", strategy=strategy)
        return await backend.spawn(command, args, options)

    async def connect(
        self,
        connection_id: str,
        send: OutboundChannel,
        identity: str | None = None,
    ) -> Session:
        """Spawn the configured shell for a new connection and wire it up.

        Process output goes to ``send`` verbatim. When the process exits on
        its own, ``send`` receives one final notice and the session is torn
        down.
        """
        handle = await self.spawn_with_fallback(
            connection_id,
            self._config.resolved_command(),
            list(self._config.shell_args),
            self._config.spawn_options(),
            identity=identity,
        )
        session = self._sessions[connection_id]
        handle.on_data(send)
        # May fire right away if the shell already died during spawn.
        handle.on_exit(lambda event: self._on_process_exit(connection_id, handle, send, event))
        return session

    def _on_process_exit(
        self,
        connection_id: str,
        handle: ProcessHandle,
        send: OutboundChannel,
        event: ProcessExit,
    ) -> None:
        session = self._sessions.get(connection_id)
        if session is None or session.handle is not handle:
            return
        logger.info(
            "Process for connection %s exited (code=%s, backend=%s)",
            connection_id, event.returncode, event.strategy.value,
        )
        send(EXIT_NOTICE)
        self.teardown(connection_id)

    def input(self, connection_id: str, data: bytes) -> None:
        """Forward input bytes to the bound process; no-op without a session."""
        session = self._sessions.get(connection_id)
        if session is None:
            logger.debug("Dropping input for unknown connection %s", connection_id)
            return
        session.handle.write(data)

    def resize(self, connection_id: str, rows: int, cols: int) -> bool:
        session = self._sessions.get(connection_id)
        if session is None:
            return False
        return session.handle.resize(rows, cols)

    def teardown(self, connection_id: str) -> bool:
        """Kill the connection's process and forget the session.

        Idempotent; unknown ids are ignored. Returns True only for the call
        that actually removed a session.
        """
        if connection_id in self._pending:
            self._abandoned.add(connection_id)

        session = self._sessions.pop(connection_id, None)
        if session is None:
            return False

        handle = session.handle
        handle.on_data(None)
        handle.on_exit(None)
        handle.kill()
        logger.info("Session %s torn down", connection_id)
        return True

    def shutdown(self) -> None:
        """Tear down every session and abandon spawns in flight."""
        self._abandoned.update(self._pending)
        for connection_id in list(self._sessions):
            self.teardown(connection_id)

    def health(self) -> HealthStatus:
        return HealthStatus(
            strategy=self._selector.current_strategy(),
            sessions=len(self._sessions),
        )


class TerminalUnavailableError(Exception):
    """Raised when every backend strategy failed for a connection."""

    def __init__(self, connection_id: str, attempted: list[StrategyName]) -> None:
        tried = ", ".join(s.value for s in attempted) or "none"
        super().__init__(f"Unable to start a terminal for {connection_id} (tried: {tried})")
        self.connection_id = connection_id
        self.attempted = list(attempted)


class SessionExistsError(Exception):
    """Raised when a connection id already has a session."""

    def __init__(self, connection_id: str) -> None:
        super().__init__(f"Connection {connection_id} already has a session")
        self.connection_id = connection_id


class SessionClosedError(Exception):
    """Raised when a connection was torn down while its spawn was in flight."""

    def __init__(self, connection_id: str) -> None:
        super().__init__(f"Connection {connection_id} closed before its shell started")
        self.connection_id = connection_id
