# assumption_governance/kernel.py
from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from assumption_governance._compat import as_utc, utc_now
from assumption_governance.actions import ActionRegistry
from assumption_governance.assumptions import AssumptionRegistry
from assumption_governance.audit import AuditLog, verify_chain
from assumption_governance.config import KernelConfig, default_config
from assumption_governance.contracts import (
    Action,
    ApprovalRecord,
    Assumption,
    AssumptionCategory,
    AuditEntry,
    AuditKind,
    Decision,
    EvaluationResult,
    Outcome,
    SystemState,
    SystemStateSnapshot,
)
from assumption_governance.errors import (
    ApprovalRequiredError,
    ExecutionDeniedError,
    NotEvaluatedError,
    ReplayError,
)
from assumption_governance.evaluation import EvaluationEngine
from assumption_governance.feedback import OutcomeFeedbackLoop, OutcomeReport
from assumption_governance.state import SystemStateTracker

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class GovernanceKernel:
    """
    Execution-governance kernel: one explicit aggregate per caller, no globals.

    Every public operation runs under a single per-instance lock, so a
    decay-read/decide/audit sequence is never interleaved with an outcome
    update. ``now`` is caller-supplied wherever evaluation depends on it;
    ``clock`` only fills in timestamps for operations called without one.
    """

    def __init__(self, config: KernelConfig | None = None, *, clock: Clock | None = None) -> None:
        self._config = config or default_config()
        self._clock: Clock = clock or utc_now
        self._lock = threading.RLock()

        self._audit = AuditLog()
        self._assumptions = AssumptionRegistry(self._config, self._audit)
        self._actions = ActionRegistry(self._assumptions, self._audit)
        self._tracker = SystemStateTracker(self._config.state)
        self._engine = EvaluationEngine(self._config, self._assumptions, self._actions, self._tracker, self._audit)
        self._feedback = OutcomeFeedbackLoop(
            self._config, self._assumptions, self._actions, self._tracker, self._audit
        )

        self._evaluations: dict[str, EvaluationResult] = {}
        self._approvals: dict[str, ApprovalRecord] = {}

    @property
    def config(self) -> KernelConfig:
        return self._config

    def _now(self, now: datetime | None) -> datetime:
        return as_utc(now if now is not None else self._clock())

    # --------------------------------------------------------------------------
    # Assumptions
    # --------------------------------------------------------------------------

    def add_assumption(
        self,
        assumption_id: str,
        description: str,
        confidence: float,
        category: AssumptionCategory | str,
        *,
        now: datetime | None = None,
    ) -> Assumption:
        with self._lock:
            return self._assumptions.add(assumption_id, description, confidence, category, now=self._now(now))

    def revalidate_assumption(
        self, assumption_id: str, confidence: float, reason: str, now: datetime | None = None
    ) -> Assumption:
        with self._lock:
            return self._assumptions.revalidate(assumption_id, confidence, reason, now=self._now(now))

    def adjust_confidence(
        self, assumption_id: str, delta: float, reason: str, now: datetime | None = None
    ) -> Assumption:
        with self._lock:
            return self._assumptions.adjust(assumption_id, delta, reason, now=self._now(now))

    def add_assumption_dependency(
        self, assumption_id: str, depends_on_id: str, *, now: datetime | None = None
    ) -> Assumption:
        with self._lock:
            return self._assumptions.add_dependency(assumption_id, depends_on_id, now=self._now(now))

    def get_assumption(self, assumption_id: str) -> Assumption:
        with self._lock:
            return self._assumptions.get(assumption_id)

    def get_effective_confidence(self, assumption_id: str, now: datetime) -> float:
        with self._lock:
            return self._assumptions.effective_confidence(assumption_id, as_utc(now))

    def assumption_ids(self) -> list[str]:
        with self._lock:
            return list(self._assumptions)

    def topological_order(self) -> list[str]:
        with self._lock:
            return self._assumptions.topological_order()

    # --------------------------------------------------------------------------
    # Actions
    # --------------------------------------------------------------------------

    def register_action(
        self,
        action_id: str,
        description: str,
        depends_on: Iterable[str],
        criticality: int,
        *,
        allow_no_dependencies: bool = False,
        now: datetime | None = None,
    ) -> Action:
        with self._lock:
            return self._actions.register(
                action_id,
                description,
                depends_on,
                criticality,
                now=self._now(now),
                allow_no_dependencies=allow_no_dependencies,
            )

    def get_action(self, action_id: str) -> Action:
        with self._lock:
            return self._actions.get(action_id)

    def action_ids(self) -> list[str]:
        with self._lock:
            return list(self._actions)

    # --------------------------------------------------------------------------
    # Evaluation / execution / feedback
    # --------------------------------------------------------------------------

    def evaluate_action(self, action_id: str, now: datetime) -> EvaluationResult:
        with self._lock:
            result = self._engine.evaluate(action_id, as_utc(now))
            self._evaluations[action_id] = result.model_copy(deep=True)
            self._approvals.pop(action_id, None)
            return result

    def last_evaluation(self, action_id: str) -> EvaluationResult | None:
        with self._lock:
            self._actions.get(action_id)
            stored = self._evaluations.get(action_id)
            return None if stored is None else stored.model_copy(deep=True)

    def approval_for(self, action_id: str) -> ApprovalRecord | None:
        with self._lock:
            return self._approvals.get(action_id)

    def execute_action(
        self, action_id: str, approver: str | None = None, *, now: datetime | None = None
    ) -> ApprovalRecord | None:
        """Record the intent to execute ``action_id`` under its latest evaluation.

        Returns the approval the execution runs under, if any.
        """
        with self._lock:
            self._actions.get(action_id)
            evaluation = self._evaluations.get(action_id)
            if evaluation is None:
                raise NotEvaluatedError(action_id)
            if evaluation.decision == Decision.DENIED:
                raise ExecutionDeniedError(action_id)

            approval = self._approvals.get(action_id)
            if evaluation.requires_approval and approval is None and not approver:
                logger.warning("execution of %s rejected: %s needs an approver", action_id, evaluation.decision.value)
                raise ApprovalRequiredError(action_id)

            ts = self._now(now)
            if approver:
                approval = ApprovalRecord(
                    action_id=action_id,
                    approver=approver,
                    approved_at=ts,
                    decision=evaluation.decision,
                )
                self._approvals[action_id] = approval

            self._audit.append(
                AuditKind.EXECUTION,
                {
                    "action_id": action_id,
                    "decision": evaluation.decision,
                    "requires_approval": evaluation.requires_approval,
                    "evaluated_at": evaluation.evaluated_at,
                    "approver": approval.approver if approval else None,
                    "approval": approval,
                },
                timestamp=ts,
            )
            logger.info(
                "action %s execution recorded (decision=%s, approver=%s)",
                action_id,
                evaluation.decision.value,
                approval.approver if approval else None,
            )
            return approval

    def record_outcome(
        self,
        action_id: str,
        outcome: Outcome | str,
        now: datetime | None = None,
        *,
        approver: str | None = None,
    ) -> OutcomeReport:
        with self._lock:
            evaluation = self._evaluations.get(action_id)
            approval = self._approvals.get(action_id)
            approval_required = bool(evaluation and evaluation.requires_approval and approval is None)
            effective_approver = approver or (approval.approver if approval else None)

            report = self._feedback.record(
                action_id,
                outcome,
                now=self._now(now),
                approver=effective_approver,
                approval_required=approval_required,
            )
            self._approvals.pop(action_id, None)
            return report

    # --------------------------------------------------------------------------
    # State / audit
    # --------------------------------------------------------------------------

    @property
    def system_state(self) -> SystemState:
        with self._lock:
            return self._tracker.state

    def state_snapshot(self) -> SystemStateSnapshot:
        with self._lock:
            return self._tracker.snapshot()

    def get_audit_log(self) -> tuple[AuditEntry, ...]:
        with self._lock:
            return self._audit.entries()

    def verify_audit_chain(self) -> bool:
        with self._lock:
            return self._audit.verify_chain()

    # --------------------------------------------------------------------------
    # Replay
    # --------------------------------------------------------------------------

    @classmethod
    def replay(
        cls,
        entries: Iterable[AuditEntry],
        config: KernelConfig | None = None,
        *,
        clock: Clock | None = None,
    ) -> GovernanceKernel:
        """Rebuild a kernel by applying each audit record's snapshot in order."""
        ordered = list(entries)
        if not verify_chain(ordered):
            raise ReplayError("audit hash chain does not verify")

        kernel = cls(config, clock=clock)
        for entry in ordered:
            try:
                kernel._apply_entry(entry)
            except (KeyError, TypeError, ValidationError) as exc:
                raise ReplayError(f"audit entry #{entry.seq} ({entry.kind.value}) is malformed: {exc}") from exc
        kernel._audit.extend_verified(ordered)
        logger.info("replayed %d audit entries", len(ordered))
        return kernel

    def _apply_entry(self, entry: AuditEntry) -> None:
        payload: dict[str, Any] = entry.payload
        kind = entry.kind
        if kind == AuditKind.ASSUMPTION_UPDATE:
            self._assumptions.restore(Assumption.model_validate(payload["assumption"]))
        elif kind == AuditKind.ACTION_REGISTRATION:
            self._actions.restore(Action.model_validate(payload["action"]))
        elif kind == AuditKind.EVALUATION:
            result = EvaluationResult.model_validate(payload["result"])
            self._evaluations[result.action_id] = result
            self._approvals.pop(result.action_id, None)
            if "state" in payload:
                self._tracker.restore(SystemStateSnapshot.model_validate(payload["state"]))
        elif kind == AuditKind.EXECUTION:
            if payload.get("approval") is not None:
                approval = ApprovalRecord.model_validate(payload["approval"])
                self._approvals[approval.action_id] = approval
        elif kind == AuditKind.OUTCOME:
            action = Action.model_validate(payload["action"])
            self._actions.restore(action)
            for record in payload.get("assumptions", []):
                self._assumptions.restore(Assumption.model_validate(record))
            self._tracker.restore(SystemStateSnapshot.model_validate(payload["state"]))
            self._approvals.pop(action.id, None)
        else:  # pragma: no cover - AuditKind is closed
            raise ReplayError(f"unknown audit kind {kind!r}")


__all__ = ["Clock", "GovernanceKernel"]
