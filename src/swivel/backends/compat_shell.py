"""Compatibility-shell backend.

Runs the target inside a secondary POSIX environment launcher (``wsl.exe``
by default) for hosts that lack native pseudo-terminals but ship such an
environment. The child is wired through plain pipes, so there is no
resizing and echo/cursor behaviour is degraded.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import PurePath

from swivel.backends.base import BackendStrategy, ProcessHandle, SpawnError
from swivel.backends.pipes import spawn_piped
from swivel.domain.models import SpawnOptions, StrategyName

logger = logging.getLogger(__name__)

# Native Windows shells are swapped for the environment's own shell.
HOST_SHELLS = frozenset({"powershell.exe", "powershell", "pwsh.exe", "pwsh", "cmd.exe", "cmd"})


class CompatShellStrategy(BackendStrategy):
    """Spawns the command through a compatibility environment launcher."""

    name = StrategyName.COMPAT_SHELL

    def __init__(
        self,
        launcher: str = "wsl.exe",
        shell: str = "bash",
        kill_grace: float = 2.0,
    ) -> None:
        self._launcher = launcher
        self._shell = shell
        self._kill_grace = kill_grace

    @property
    def launcher(self) -> str:
        return self._launcher

    def build_argv(self, command: str, args: list[str]) -> list[str]:
        """Translate a host command line into the launcher's command line."""
        if PurePath(command.replace("\\", "/")).name.lower() in HOST_SHELLS:
            return [self._launcher, self._shell]
        return [self._launcher, command, *args]

    async def spawn(
        self,
        command: str,
        args: list[str],
        options: SpawnOptions,
    ) -> ProcessHandle:
        if shutil.which(self._launcher) is None:
            raise SpawnError(
                f"Compatibility launcher {self._launcher!r} not found on PATH",
                strategy=self.name,
            )
        argv = self.build_argv(command, args)
        logger.debug("Compatibility shell command line: %s", argv)
        return await spawn_piped(argv, options, self.name, kill_grace=self._kill_grace)
