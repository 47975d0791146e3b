"""Core domain models for the swivel relay.

These models describe what flows between the gateway, the session
manager and the backend strategies: spawn options, the binding between
a connection and its process, process exit events and the health
snapshot exposed to monitoring.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class StrategyName(str, enum.Enum):
    """Backend strategies, highest fidelity first."""

    NATIVE_PTY = "native-pty"
    COMPAT_SHELL = "compatibility-shell"
    DIRECT_SPAWN = "direct-spawn"


# Fixed demotion path. A strategy is only ever replaced by one further
# down this tuple.
DEMOTION_ORDER: tuple[StrategyName, ...] = (
    StrategyName.NATIVE_PTY,
    StrategyName.COMPAT_SHELL,
    StrategyName.DIRECT_SPAWN,
)


# ---------------------------------------------------------------------------
# Spawning
# ---------------------------------------------------------------------------


class SpawnOptions(BaseModel):
    """Options passed to every backend strategy's spawn call.

    Dimensions only matter to the native PTY strategy; pipe-based
    strategies ignore them.
    """

    model_config = ConfigDict(frozen=True)

    cwd: str | None = Field(default=None, description="Working directory for the shell")
    env: dict[str, str] | None = Field(
        default=None, description="Full child environment; None inherits the server's"
    )
    rows: int = Field(default=30, gt=0)
    cols: int = Field(default=80, gt=0)
    term: str = Field(default="xterm-color", description="TERM value exported to the child")


class ProcessExit(BaseModel):
    """Lifecycle event emitted once when a spawned process terminates."""

    model_config = ConfigDict(frozen=True)

    returncode: int | None = None
    strategy: StrategyName
    timestamp: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class Session(BaseModel):
    """The live binding between one connection and one spawned process.

    Immutable once created: a connection never rebinds to another process.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    connection_id: str
    handle: Any = Field(description="The ProcessHandle owned by this session")
    strategy: StrategyName
    created_at: datetime = Field(default_factory=_utcnow)
    identity: str | None = Field(
        default=None, description="Pre-validated identity supplied by the upstream gate"
    )


class HealthStatus(BaseModel):
    """Liveness snapshot for the HTTP health probe."""

    status: str = "ok"
    service: str = "Swivel PTY engine"
    strategy: StrategyName | None = None
    sessions: int = Field(default=0, ge=0)
    timestamp: datetime = Field(default_factory=_utcnow)
