"""Process spawning backends for swivel.

Three strategies produce the same ProcessHandle contract, in order of
fidelity: a native pseudo-terminal, a compatibility shell launched
inside a secondary environment, and a direct pipe-wired child process.

Public API:
    ProcessHandle -- Abstract running-process contract
    BackendStrategy -- Abstract spawner
    BackendSelector -- Process-wide strategy state with one-way demotion
    build_strategies -- Strategy table built from RelayConfig
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from swivel.backends.base import BackendStrategy, ProcessHandle, SpawnError
from swivel.backends.selector import BackendSelector
from swivel.domain.models import StrategyName

if TYPE_CHECKING:
    from swivel.config.settings import RelayConfig

__all__ = [
    "BackendSelector",
    "BackendStrategy",
    "CompatShellStrategy",
    "DirectSpawnStrategy",
    "NativePtyStrategy",
    "ProcessHandle",
    "SpawnError",
    "build_strategies",
]


def build_strategies(config: RelayConfig) -> dict[StrategyName, BackendStrategy]:
    """Build the dispatch table from strategy name to spawner."""
    from swivel.backends.compat_shell import CompatShellStrategy
    from swivel.backends.direct import DirectSpawnStrategy
    from swivel.backends.native_pty import NativePtyStrategy

    return {
        StrategyName.NATIVE_PTY: NativePtyStrategy(kill_grace=config.kill_grace),
        StrategyName.COMPAT_SHELL: CompatShellStrategy(
            launcher=config.compat_launcher,
            shell=config.compat_shell,
            kill_grace=config.kill_grace,
        ),
        StrategyName.DIRECT_SPAWN: DirectSpawnStrategy(kill_grace=config.kill_grace),
    }


def __getattr__(name: str) -> type:
    """Lazy import for the concrete strategies."""
    if name == "NativePtyStrategy":
        from swivel.backends.native_pty import NativePtyStrategy
        return NativePtyStrategy
    if name == "CompatShellStrategy":
        from swivel.backends.compat_shell import CompatShellStrategy
        return CompatShellStrategy
    if name == "DirectSpawnStrategy":
        from swivel.backends.direct import DirectSpawnStrategy
        return DirectSpawnStrategy
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
