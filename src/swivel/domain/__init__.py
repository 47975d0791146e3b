"""Domain models for swivel.

Pure data structures shared by the backends, the session manager and
the gateway. No I/O happens here.
"""

from swivel.domain.models import (
    DEMOTION_ORDER,
    HealthStatus,
    ProcessExit,
    Session,
    SpawnOptions,
    StrategyName,
)

__all__ = [
    "DEMOTION_ORDER",
    "HealthStatus",
    "ProcessExit",
    "Session",
    "SpawnOptions",
    "StrategyName",
]
