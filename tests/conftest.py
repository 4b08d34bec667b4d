from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import Any

import pytest

from assumption_governance import GovernanceKernel, KernelConfig, Outcome, merge_config
from assumption_governance._compat import UTC


T0 = datetime(2026, 2, 11, tzinfo=UTC)


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def at() -> Callable[..., datetime]:
    def _at(*, minutes: float = 0.0, hours: float = 0.0) -> datetime:
        return T0 + timedelta(minutes=minutes, hours=hours)

    return _at


@pytest.fixture
def make_config() -> Callable[..., KernelConfig]:
    def _make_config(overrides: Mapping[str, Any] | None = None) -> KernelConfig:
        return merge_config(overrides or {})

    return _make_config


@pytest.fixture
def make_kernel() -> Callable[..., GovernanceKernel]:
    """Kernel whose clock is pinned to ``T0`` so audit timestamps are deterministic."""

    def _make_kernel(config: KernelConfig | None = None, *, now: datetime = T0) -> GovernanceKernel:
        return GovernanceKernel(config, clock=lambda: now)

    return _make_kernel


@pytest.fixture
def kernel(make_kernel: Callable[..., GovernanceKernel]) -> GovernanceKernel:
    return make_kernel()


@pytest.fixture
def drive_outcomes() -> Callable[..., None]:
    """Record a run of outcomes against a dependency-free heartbeat action."""

    def _drive(kernel: GovernanceKernel, outcome: Outcome, count: int, *, action_id: str = "heartbeat") -> None:
        if action_id not in kernel.action_ids():
            kernel.register_action(action_id, "state heartbeat", [], 1, allow_no_dependencies=True, now=T0)
        for _ in range(count):
            kernel.record_outcome(action_id, outcome, now=T0)

    return _drive
