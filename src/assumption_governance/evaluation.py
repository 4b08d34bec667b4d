# assumption_governance/evaluation.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from assumption_governance._compat import as_utc
from assumption_governance.actions import ActionRegistry
from assumption_governance.aggregation import AggregateScore, ConfidenceTerm, aggregate_confidence
from assumption_governance.assumptions import AssumptionRegistry
from assumption_governance.audit import AuditLog
from assumption_governance.config import EvaluationPolicy, KernelConfig
from assumption_governance.contracts import Action, AuditKind, Decision, EvaluationResult, SystemState
from assumption_governance.state import StateTransition, SystemStateTracker

logger = logging.getLogger(__name__)


class BindingConstraint:
    NONE = "none"
    SAFE_MODE = "safe_mode_criticality_ceiling"
    CRITICALITY = "auto_approve_criticality_ceiling"
    SYSTEM_STATE = "system_state_escalation"
    CRITICAL_FLOOR = "critical_dependency_floor"
    WEAKEST_DEPENDENCY = "lowest_confidence_dependency"
    THRESHOLD = "confidence_threshold"


def required_threshold(criticality: int, state: SystemState, policy: EvaluationPolicy) -> float:
    """Confidence an action must reach; rises with criticality and with state severity."""
    raw = (
        policy.base_threshold
        + policy.criticality_factor * (criticality - 1)
        + policy.state_factor * state.severity
    )
    return min(raw, policy.max_threshold)


def _weakness_reasons(score: AggregateScore, policy: EvaluationPolicy) -> tuple[str, list[str]]:
    if score.capped_by is not None:
        t = score.capped_by
        return BindingConstraint.CRITICAL_FLOOR, [
            f"critical dependency '{t.key}' at {t.confidence:.3f} is below hard floor "
            f"{policy.critical_floor:.2f}; aggregate capped at its value"
        ]
    if score.weakest is not None:
        t = score.weakest
        return BindingConstraint.WEAKEST_DEPENDENCY, [
            f"lowest-confidence dependency '{t.key}' ({t.category.value}) at {t.confidence:.3f}"
        ]
    return BindingConstraint.THRESHOLD, []


def decide(
    *,
    action: Action,
    score: AggregateScore,
    threshold: float,
    state: SystemState,
    policy: EvaluationPolicy,
) -> tuple[Decision, bool, str, list[str]]:
    """Apply the ordered decision policy. Returns (decision, requires_approval, binding, reasons)."""
    aggregate = score.value
    summary = (
        f"aggregate confidence {aggregate:.3f} against required {threshold:.3f} "
        f"(criticality {action.criticality}, state {state.name})"
    )

    if state == SystemState.SAFE_MODE and action.criticality >= policy.safe_mode_criticality_ceiling:
        return (
            Decision.DENIED,
            False,
            BindingConstraint.SAFE_MODE,
            [
                f"SAFE_MODE blocks actions with criticality >= {policy.safe_mode_criticality_ceiling} "
                f"(action criticality {action.criticality})",
                summary,
            ],
        )

    meets = aggregate >= threshold
    if meets and action.criticality <= policy.auto_approve_ceiling and state == SystemState.NORMAL:
        return Decision.APPROVED, False, BindingConstraint.NONE, [summary]

    if meets:
        reasons: list[str] = []
        binding = BindingConstraint.SYSTEM_STATE
        if action.criticality > policy.auto_approve_ceiling:
            binding = BindingConstraint.CRITICALITY
            reasons.append(
                f"criticality {action.criticality} exceeds auto-approve ceiling {policy.auto_approve_ceiling}"
            )
        if state != SystemState.NORMAL:
            reasons.append(f"system state {state.name} requires human sign-off")
        reasons.append(summary)
        return Decision.REQUIRES_APPROVAL, True, binding, reasons

    binding, weakness = _weakness_reasons(score, policy)
    if aggregate >= threshold - policy.restricted_margin:
        return (
            Decision.RESTRICTED,
            True,
            binding,
            [
                *weakness,
                f"aggregate within restricted margin {policy.restricted_margin:.2f} below threshold",
                summary,
            ],
        )

    return Decision.DENIED, False, binding, [*weakness, summary]


class EvaluationEngine:
    """Turns decayed assumption confidence, action criticality and system state into a decision.

    Reads stored records without mutating them; the only writes are the
    audit append and a state transition check on the tracker.
    """

    def __init__(
        self,
        config: KernelConfig,
        assumptions: AssumptionRegistry,
        actions: ActionRegistry,
        tracker: SystemStateTracker,
        audit: AuditLog,
    ) -> None:
        self._config = config
        self._assumptions = assumptions
        self._actions = actions
        self._tracker = tracker
        self._audit = audit

    def score(self, action: Action, now: datetime) -> tuple[AggregateScore, dict[str, float]]:
        confidences = self._assumptions.effective_confidences(action.depends_on, now)
        terms = [
            ConfidenceTerm(key=aid, confidence=value, category=self._assumptions.category_of(aid))
            for aid, value in confidences.items()
        ]
        return aggregate_confidence(terms, self._config), confidences

    def evaluate(self, action_id: str, now: datetime) -> EvaluationResult:
        action = self._actions.get(action_id)
        ts = as_utc(now)
        policy = self._config.evaluation

        # Only fires when the tracker was restored under a different state policy,
        # e.g. an audit log replayed with new escalation thresholds.
        transition = self._tracker.check_transition()
        state = self._tracker.state

        score, confidences = self.score(action, ts)
        threshold = required_threshold(action.criticality, state, policy)
        decision, requires_approval, binding, reasons = decide(
            action=action, score=score, threshold=threshold, state=state, policy=policy
        )
        if transition is not None:
            reasons.append(f"state moved {transition.prior.name} -> {transition.next.name}: {transition.reason}")

        result = EvaluationResult(
            action_id=action.id,
            aggregate_confidence=score.value,
            decision=decision,
            requires_approval=requires_approval,
            reasons=tuple(reasons),
            threshold=threshold,
            system_state=state,
            criticality=action.criticality,
            dependency_confidences=confidences,
            binding_constraint=binding,
            evaluated_at=ts,
        )
        self._audit.append(AuditKind.EVALUATION, _evaluation_payload(result, transition, self._tracker), timestamp=ts)

        if decision in (Decision.DENIED, Decision.RESTRICTED):
            logger.warning("action %s %s: %s", action.id, decision.value, reasons[0])
        else:
            logger.info("action %s %s (aggregate=%.3f threshold=%.3f)", action.id, decision.value, score.value, threshold)
        return result


def _evaluation_payload(
    result: EvaluationResult, transition: StateTransition | None, tracker: SystemStateTracker
) -> dict[str, Any]:
    payload: dict[str, Any] = {"action_id": result.action_id, "result": result}
    if transition is not None:
        payload["state_transition"] = transition.to_breadcrumb()
        payload["state"] = tracker.snapshot()
    return payload


__all__ = ["BindingConstraint", "EvaluationEngine", "decide", "required_threshold"]
