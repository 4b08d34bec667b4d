# assumption_governance/state.py
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque

from assumption_governance.config import StatePolicy
from assumption_governance.contracts import Outcome, SystemState, SystemStateSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateTransition:
    prior: SystemState
    next: SystemState
    reason: str
    failure_rate: float
    samples: int

    def to_breadcrumb(self) -> dict[str, Any]:
        return {
            "prior_state": self.prior.value,
            "next_state": self.next.value,
            "transition": f"{self.prior.name}->{self.next.name}",
            "reason": self.reason,
            "failure_rate": self.failure_rate,
            "samples": self.samples,
        }


class SystemStateTracker:
    """Holds the governance state and the rolling outcome window that drives it.

    Transitions move one level per check. After a transition at least
    ``policy.effective_dwell`` new outcomes must arrive before the next one,
    so a burst of failures cannot walk NORMAL to SAFE_MODE.
    """

    def __init__(self, policy: StatePolicy) -> None:
        self._policy = policy
        self._state = SystemState.NORMAL
        self._recent: Deque[Outcome] = deque(maxlen=policy.window_size)
        self._since_transition = 0

    @property
    def state(self) -> SystemState:
        return self._state

    @property
    def recent_outcomes(self) -> tuple[Outcome, ...]:
        return tuple(self._recent)

    @property
    def failure_rate(self) -> float:
        return self.snapshot().failure_rate

    def snapshot(self) -> SystemStateSnapshot:
        return SystemStateSnapshot(
            state=self._state,
            recent_outcomes=tuple(self._recent),
            outcomes_since_transition=self._since_transition,
        )

    def restore(self, snapshot: SystemStateSnapshot) -> None:
        self._state = snapshot.state
        self._recent = deque(snapshot.recent_outcomes, maxlen=self._policy.window_size)
        self._since_transition = snapshot.outcomes_since_transition

    def record(self, outcome: Outcome) -> StateTransition | None:
        if outcome not in (Outcome.SUCCESS, Outcome.FAILURE):
            raise ValueError(f"only SUCCESS or FAILURE outcomes enter the window, got {outcome!r}")
        self._recent.append(outcome)
        self._since_transition += 1
        return self.check_transition()

    def check_transition(self) -> StateTransition | None:
        policy = self._policy
        if self._since_transition < policy.effective_dwell:
            return None

        samples = len(self._recent)
        rate = self.snapshot().failure_rate
        prior = self._state

        run = policy.recovery_run
        recovered = samples >= run and all(o == Outcome.SUCCESS for o in list(self._recent)[-run:])
        if prior != SystemState.NORMAL and recovered:
            return self._move(prior.deescalated(), f"last {run} outcomes succeeded", rate, samples)

        if prior != SystemState.SAFE_MODE and samples >= policy.min_samples:
            limit = policy.escalation_thresholds[prior]
            if rate > limit:
                return self._move(
                    prior.escalated(),
                    f"failure rate {rate:.2f} over {samples} outcomes exceeds {limit:.2f}",
                    rate,
                    samples,
                )
        return None

    def _move(self, target: SystemState, reason: str, rate: float, samples: int) -> StateTransition:
        transition = StateTransition(prior=self._state, next=target, reason=reason, failure_rate=rate, samples=samples)
        self._state = target
        self._since_transition = 0
        logger.info("system state %s -> %s: %s", transition.prior.value, target.value, reason)
        return transition


__all__ = ["StateTransition", "SystemStateTracker"]
