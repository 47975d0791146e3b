"""Tests for the BackendSelector demotion state machine."""

from __future__ import annotations

import pytest

from swivel.backends.selector import BackendSelector
from swivel.domain.models import StrategyName


class TestProbe:
    def test_probe_success_keeps_native(self) -> None:
        selector = BackendSelector(probe=lambda: True)
        assert selector.probe_native_capability() == StrategyName.NATIVE_PTY
        assert selector.current_strategy() == StrategyName.NATIVE_PTY

    def test_probe_failure_demotes_to_compat_shell(self) -> None:
        selector = BackendSelector(probe=lambda: False)
        assert selector.probe_native_capability() == StrategyName.COMPAT_SHELL

    def test_probe_exception_is_absorbed(self) -> None:
        def broken() -> bool:
            raise OSError("no /dev/ptmx")

        selector = BackendSelector(probe=broken)
        assert selector.probe_native_capability() == StrategyName.COMPAT_SHELL

    def test_probe_runs_once(self) -> None:
        calls = []

        def probe() -> bool:
            calls.append(1)
            return False

        selector = BackendSelector(probe=probe)
        selector.probe_native_capability()
        selector.probe_native_capability()
        assert len(calls) == 1
        assert selector.current_strategy() == StrategyName.COMPAT_SHELL

    def test_default_probe_on_posix(self) -> None:
        pytest.importorskip("termios")
        selector = BackendSelector()
        assert selector.probe_native_capability() == StrategyName.NATIVE_PTY


class TestDemote:
    def test_visits_strategies_in_order_and_exhausts_once(self) -> None:
        selector = BackendSelector(probe=lambda: True)
        seen = [selector.current_strategy()]
        outcomes = []
        for _ in range(3):
            outcome = selector.demote()
            outcomes.append(outcome)
            if outcome is not None:
                seen.append(outcome)

        assert seen == [
            StrategyName.NATIVE_PTY,
            StrategyName.COMPAT_SHELL,
            StrategyName.DIRECT_SPAWN,
        ]
        assert outcomes == [StrategyName.COMPAT_SHELL, StrategyName.DIRECT_SPAWN, None]

    def test_exhausted_keeps_direct_spawn(self) -> None:
        selector = BackendSelector(probe=lambda: True)
        selector.demote()
        selector.demote()
        assert selector.demote() is None
        assert selector.current_strategy() == StrategyName.DIRECT_SPAWN

    def test_never_promotes_after_probe(self) -> None:
        selector = BackendSelector(probe=lambda: True)
        selector.demote()
        assert selector.probe_native_capability() == StrategyName.COMPAT_SHELL

    def test_stale_failure_does_not_skip_a_strategy(self) -> None:
        """Two sessions failing on native-pty demote only one step."""
        selector = BackendSelector(probe=lambda: True)
        assert selector.demote(StrategyName.NATIVE_PTY) == StrategyName.COMPAT_SHELL
        assert selector.demote(StrategyName.NATIVE_PTY) == StrategyName.COMPAT_SHELL
        assert selector.current_strategy() == StrategyName.COMPAT_SHELL

    def test_failure_of_current_strategy_advances(self) -> None:
        selector = BackendSelector(probe=lambda: False)
        selector.probe_native_capability()
        assert selector.demote(StrategyName.COMPAT_SHELL) == StrategyName.DIRECT_SPAWN
        assert selector.demote(StrategyName.DIRECT_SPAWN) is None

    def test_order_property(self) -> None:
        assert BackendSelector().order == (
            StrategyName.NATIVE_PTY,
            StrategyName.COMPAT_SHELL,
            StrategyName.DIRECT_SPAWN,
        )
