# assumption_governance/feedback.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from assumption_governance._compat import as_utc
from assumption_governance.actions import ActionRegistry
from assumption_governance.assumptions import AssumptionRegistry
from assumption_governance.audit import AuditLog
from assumption_governance.config import KernelConfig
from assumption_governance.contracts import Action, AuditKind, Outcome
from assumption_governance.errors import ApprovalRequiredError, InvalidOutcomeError
from assumption_governance.state import StateTransition, SystemStateTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfidenceAdjustment:
    assumption_id: str
    before: float
    after: float

    @property
    def delta(self) -> float:
        return self.after - self.before


@dataclass(frozen=True)
class OutcomeReport:
    action_id: str
    outcome: Outcome
    approver: str | None
    adjustments: tuple[ConfidenceAdjustment, ...] = field(default_factory=tuple)
    transition: StateTransition | None = None


def coerce_outcome(action_id: str, outcome: Outcome | str) -> Outcome:
    try:
        value = outcome if isinstance(outcome, Outcome) else Outcome(str(outcome).strip().lower())
    except ValueError as exc:
        raise InvalidOutcomeError(action_id, outcome) from exc
    if value == Outcome.NONE:
        raise InvalidOutcomeError(action_id, outcome)
    return value


class OutcomeFeedbackLoop:
    """Feeds execution outcomes back into assumption confidence and system state.

    Success boosts are self-limiting (scaled by ``1 - confidence``); failure
    penalties are flat and larger.
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

    def delta_for(self, outcome: Outcome, current: float) -> float:
        policy = self._config.feedback
        if outcome == Outcome.SUCCESS:
            return policy.success_boost * (1.0 - current)
        return -policy.failure_penalty

    def record(
        self,
        action_id: str,
        outcome: Outcome | str,
        *,
        now: datetime,
        approver: str | None = None,
        approval_required: bool = False,
    ) -> OutcomeReport:
        action = self._actions.get(action_id)
        result = coerce_outcome(action_id, outcome)
        if approval_required and not approver:
            logger.warning("outcome for %s rejected: approval required but no approver given", action_id)
            raise ApprovalRequiredError(action_id)
        ts = as_utc(now)
        for aid in action.depends_on:
            self._assumptions.check_chronology(aid, ts)

        updated = self._actions.set_last_outcome(action_id, result)
        adjustments = tuple(self._adjust_dependencies(action, result, ts))
        transition = self._tracker.record(result)

        report = OutcomeReport(
            action_id=action_id,
            outcome=result,
            approver=approver,
            adjustments=adjustments,
            transition=transition,
        )
        payload = _outcome_payload(report, updated, self._tracker, self._assumptions)
        self._audit.append(AuditKind.OUTCOME, payload, timestamp=ts)
        logger.info(
            "action %s outcome %s (approver=%s, state=%s)",
            action_id,
            result.value,
            approver,
            self._tracker.state.value,
        )
        return report

    def _adjust_dependencies(self, action: Action, outcome: Outcome, now: datetime) -> list[ConfidenceAdjustment]:
        out: list[ConfidenceAdjustment] = []
        for aid in action.depends_on:
            before = self._assumptions.get(aid).confidence
            delta = self.delta_for(outcome, before)
            after = self._assumptions.adjust(
                aid, delta, f"{outcome.value} of action {action.id}", now=now
            ).confidence
            out.append(ConfidenceAdjustment(assumption_id=aid, before=before, after=after))
        return out


def _outcome_payload(
    report: OutcomeReport, action: Action, tracker: SystemStateTracker, assumptions: AssumptionRegistry
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "action_id": report.action_id,
        "outcome": report.outcome,
        "approver": report.approver,
        "adjustments": [
            {"assumption_id": a.assumption_id, "before": a.before, "after": a.after, "delta": a.delta}
            for a in report.adjustments
        ],
        "assumptions": [assumptions.get(a.assumption_id) for a in report.adjustments],
        "action": action,
        "state": tracker.snapshot(),
    }
    if report.transition is not None:
        payload["state_transition"] = report.transition.to_breadcrumb()
    return payload


__all__ = ["ConfidenceAdjustment", "OutcomeFeedbackLoop", "OutcomeReport", "coerce_outcome"]
