# assumption_governance/errors.py
from __future__ import annotations


class GovernanceError(ValueError):
    """Base class for local validation failures raised by the kernel.

    A raised GovernanceError means the offending call changed no state and
    wrote nothing to the audit log.
    """


class DuplicateIdError(GovernanceError):
    def __init__(self, kind: str, record_id: str) -> None:
        super().__init__(f"{kind} '{record_id}' already exists")
        self.kind = kind
        self.record_id = record_id


class NotFoundError(GovernanceError):
    def __init__(self, kind: str, record_id: str) -> None:
        super().__init__(f"{kind} '{record_id}' not found")
        self.kind = kind
        self.record_id = record_id


class InvalidConfidenceError(GovernanceError):
    def __init__(self, assumption_id: str, value: object) -> None:
        super().__init__(f"confidence for '{assumption_id}' must be within [0.0, 1.0], got {value!r}")
        self.assumption_id = assumption_id
        self.value = value


class InvalidCriticalityError(GovernanceError):
    def __init__(self, action_id: str, value: object) -> None:
        super().__init__(f"criticality for '{action_id}' must be an integer within [1, 5], got {value!r}")
        self.action_id = action_id
        self.value = value


class UnknownAssumptionError(GovernanceError):
    def __init__(self, action_id: str, missing: list[str]) -> None:
        super().__init__(f"action '{action_id}' depends on unknown assumption(s): {', '.join(missing)}")
        self.action_id = action_id
        self.missing = tuple(missing)


class MissingDependenciesError(GovernanceError):
    def __init__(self, action_id: str) -> None:
        super().__init__(
            f"action '{action_id}' declares no dependencies; pass allow_no_dependencies=True to register it"
        )
        self.action_id = action_id


class ApprovalRequiredError(GovernanceError):
    def __init__(self, action_id: str) -> None:
        super().__init__(f"action '{action_id}' requires an approver identity")
        self.action_id = action_id


class NotEvaluatedError(GovernanceError):
    def __init__(self, action_id: str) -> None:
        super().__init__(f"action '{action_id}' has not been evaluated")
        self.action_id = action_id


class ExecutionDeniedError(GovernanceError):
    def __init__(self, action_id: str) -> None:
        super().__init__(f"action '{action_id}' was denied by its latest evaluation")
        self.action_id = action_id


class InvalidOutcomeError(GovernanceError):
    def __init__(self, action_id: str, outcome: object) -> None:
        super().__init__(f"outcome for '{action_id}' must be SUCCESS or FAILURE, got {outcome!r}")
        self.action_id = action_id
        self.outcome = outcome


class CycleError(GovernanceError):
    def __init__(self, assumption_id: str, depends_on_id: str) -> None:
        super().__init__(
            f"dependency '{assumption_id}' -> '{depends_on_id}' would create a cycle"
        )
        self.assumption_id = assumption_id
        self.depends_on_id = depends_on_id


class InvalidCategoryError(GovernanceError):
    def __init__(self, assumption_id: str, value: object) -> None:
        super().__init__(
            f"category for '{assumption_id}' must be one of critical, important, supporting, got {value!r}"
        )
        self.assumption_id = assumption_id
        self.value = value


class OutOfOrderUpdateError(GovernanceError):
    def __init__(self, assumption_id: str, now: object, latest: object) -> None:
        super().__init__(f"update for '{assumption_id}' at {now} predates its latest history entry at {latest}")
        self.assumption_id = assumption_id
        self.now = now
        self.latest = latest


class ReplayError(GovernanceError):
    """Raised when a persisted audit stream cannot be rebuilt into a kernel."""


__all__ = [
    "ApprovalRequiredError",
    "CycleError",
    "DuplicateIdError",
    "ExecutionDeniedError",
    "GovernanceError",
    "InvalidCategoryError",
    "InvalidConfidenceError",
    "InvalidCriticalityError",
    "InvalidOutcomeError",
    "MissingDependenciesError",
    "NotEvaluatedError",
    "NotFoundError",
    "OutOfOrderUpdateError",
    "ReplayError",
    "UnknownAssumptionError",
]
