"""
Execution-governance kernel.

Decides whether a proposed automated action may run autonomously, must be
restricted, or needs human sign-off, from the decayed confidence of the
assumptions it depends on, its criticality and the system-wide state.
"""

from assumption_governance.config import (
    CategoryPolicy,
    EvaluationPolicy,
    FeedbackPolicy,
    KernelConfig,
    StatePolicy,
    default_config,
    load_config,
    merge_config,
)
from assumption_governance.contracts import (
    Action,
    ApprovalRecord,
    Assumption,
    AssumptionCategory,
    AuditEntry,
    AuditKind,
    Decision,
    EvaluationResult,
    HistoryEntry,
    Outcome,
    SystemState,
    SystemStateSnapshot,
)
from assumption_governance.errors import (
    ApprovalRequiredError,
    CycleError,
    DuplicateIdError,
    ExecutionDeniedError,
    GovernanceError,
    InvalidCategoryError,
    InvalidConfidenceError,
    InvalidCriticalityError,
    InvalidOutcomeError,
    MissingDependenciesError,
    NotEvaluatedError,
    NotFoundError,
    OutOfOrderUpdateError,
    ReplayError,
    UnknownAssumptionError,
)
from assumption_governance.kernel import GovernanceKernel

__all__ = [
    "Action",
    "ApprovalRecord",
    "ApprovalRequiredError",
    "Assumption",
    "AssumptionCategory",
    "AuditEntry",
    "AuditKind",
    "CategoryPolicy",
    "CycleError",
    "Decision",
    "DuplicateIdError",
    "EvaluationPolicy",
    "EvaluationResult",
    "ExecutionDeniedError",
    "FeedbackPolicy",
    "GovernanceError",
    "GovernanceKernel",
    "HistoryEntry",
    "InvalidCategoryError",
    "InvalidConfidenceError",
    "InvalidCriticalityError",
    "InvalidOutcomeError",
    "KernelConfig",
    "MissingDependenciesError",
    "NotEvaluatedError",
    "NotFoundError",
    "OutOfOrderUpdateError",
    "Outcome",
    "ReplayError",
    "StatePolicy",
    "SystemState",
    "SystemStateSnapshot",
    "UnknownAssumptionError",
    "default_config",
    "load_config",
    "merge_config",
]
