"""Process-wide backend selection with one-way demotion.

The selector probes native PTY support once at startup and afterwards
only ever moves down the fixed order::

    native-pty -> compatibility-shell -> direct-spawn

A failed native allocation means the host lacks the capability, so
there is no re-probing and no promotion back up.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from swivel.backends.native_pty import native_pty_available
from swivel.domain.models import DEMOTION_ORDER, StrategyName

logger = logging.getLogger(__name__)


class BackendSelector:
    """Tracks which strategy is authoritative for new spawns.

    Args:
        probe: Callable reporting native PTY support. Defaults to
               importing the POSIX terminal modules.
    """

    def __init__(self, probe: Callable[[], bool] | None = None) -> None:
        self._probe = probe or native_pty_available
        self._current = DEMOTION_ORDER[0]
        self._probed = False
        self._lock = threading.Lock()

    @property
    def order(self) -> tuple[StrategyName, ...]:
        return DEMOTION_ORDER

    def probe_native_capability(self) -> StrategyName:
        """Probe native PTY support once; demote immediately if missing.

        Never raises. Later calls return the current strategy untouched.
        """
        with self._lock:
            if self._probed:
                return self._current
            self._probed = True

        try:
            available = bool(self._probe())
        except Exception as e:
            logger.warning("Native PTY probe failed: %s", e)
            available = False

        if available:
            logger.info("Using %s for terminal sessions", StrategyName.NATIVE_PTY.value)
        else:
            logger.warning("Native PTY not available on this host")
            self.demote(StrategyName.NATIVE_PTY)
        return self.current_strategy()

    def current_strategy(self) -> StrategyName:
        return self._current

    def demote(self, failed: StrategyName | None = None) -> StrategyName | None:
        """Advance to the next strategy in the fixed order.

        Args:
            failed: The strategy that just failed. If the selector has
                    already moved past it, nothing changes and the
                    current strategy is returned.

        Returns:
            The strategy now in effect, or None when no fallback is left.
        """
        with self._lock:
            current = self._current
            position = DEMOTION_ORDER.index(current)
            if failed is not None and failed != current:
                if DEMOTION_ORDER.index(failed) < position:
                    return current
            if position + 1 >= len(DEMOTION_ORDER):
                logger.error("No terminal backend left after %s", current.value)
                return None
            self._current = DEMOTION_ORDER[position + 1]

        logger.warning("Demoted terminal backend %s -> %s", current.value, self._current.value)
        return self._current

    def __repr__(self) -> str:
        return f"BackendSelector(current={self._current.value!r})"
