"""Direct-spawn backend.

The last resort: the command runs as a plain child process with pipes,
no pseudo-terminal and no helper environment. Works wherever the binary
exists.
"""

from __future__ import annotations

from swivel.backends.base import BackendStrategy, ProcessHandle
from swivel.backends.pipes import spawn_piped
from swivel.domain.models import SpawnOptions, StrategyName


class DirectSpawnStrategy(BackendStrategy):
    """Spawns the command directly as a pipe-wired child process."""

    name = StrategyName.DIRECT_SPAWN

    def __init__(self, kill_grace: float = 2.0) -> None:
        self._kill_grace = kill_grace

    async def spawn(
        self,
        command: str,
        args: list[str],
        options: SpawnOptions,
    ) -> ProcessHandle:
        return await spawn_piped(
            [command, *args], options, self.name, kill_grace=self._kill_grace
        )
