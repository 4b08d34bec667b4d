# assumption_governance/contracts.py
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, ClassVar

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from assumption_governance._compat import Self, StrEnum, as_utc

# ------------------------------------------------------------------------------
# Shared BaseModel config helpers
# ------------------------------------------------------------------------------

_CONTRACT_CONFIG = ConfigDict(
    extra="forbid",
    validate_assignment=True,
    use_enum_values=False,  # keep enums as enums in Python
)

_IMMUTABLE_CONTRACT_CONFIG = ConfigDict(
    extra="forbid",
    use_enum_values=False,
    frozen=True,
)


# Naive datetimes are read as UTC.
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


# ------------------------------------------------------------------------------
# Enums
# ------------------------------------------------------------------------------


class AssumptionCategory(StrEnum):
    CRITICAL = "critical"
    IMPORTANT = "important"
    SUPPORTING = "supporting"


class Outcome(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    NONE = "none"


class SystemState(StrEnum):
    """Governance state, ordered by severity."""

    NORMAL = "normal"
    DEGRADED = "degraded"
    CRITICAL = "critical"
    SAFE_MODE = "safe_mode"

    @property
    def severity(self) -> int:
        return _STATE_ORDER.index(self)

    def escalated(self) -> SystemState:
        return _STATE_ORDER[min(self.severity + 1, len(_STATE_ORDER) - 1)]

    def deescalated(self) -> SystemState:
        return _STATE_ORDER[max(self.severity - 1, 0)]


_STATE_ORDER: tuple[SystemState, ...] = (
    SystemState.NORMAL,
    SystemState.DEGRADED,
    SystemState.CRITICAL,
    SystemState.SAFE_MODE,
)


class Decision(StrEnum):
    APPROVED = "approved"
    RESTRICTED = "restricted"
    REQUIRES_APPROVAL = "requires_approval"
    DENIED = "denied"


class AuditKind(StrEnum):
    ASSUMPTION_UPDATE = "assumption_update"
    ACTION_REGISTRATION = "action_registration"
    EVALUATION = "evaluation"
    EXECUTION = "execution"
    OUTCOME = "outcome"


# ------------------------------------------------------------------------------
# Assumptions
# ------------------------------------------------------------------------------


class HistoryEntry(BaseModel):
    model_config = _IMMUTABLE_CONTRACT_CONFIG
    timestamp: UtcDatetime
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str


class Assumption(BaseModel):
    """A belief an action relies on, with its validation history.

    ``confidence`` is the stored value; decay is applied on read by the
    registry and never written back here.
    """

    model_config = _CONTRACT_CONFIG
    id: str = Field(min_length=1)
    description: str
    confidence: float = Field(ge=0.0, le=1.0)
    category: AssumptionCategory
    last_validated_at: UtcDatetime
    history: list[HistoryEntry] = Field(min_length=1)
    depends_on: list[str] = Field(default_factory=list)


# ------------------------------------------------------------------------------
# Actions
# ------------------------------------------------------------------------------


class Action(BaseModel):
    model_config = _CONTRACT_CONFIG

    MIN_CRITICALITY: ClassVar[int] = 1
    MAX_CRITICALITY: ClassVar[int] = 5

    id: str = Field(min_length=1)
    description: str
    depends_on: list[str] = Field(default_factory=list)
    criticality: int = Field(ge=1, le=5)
    allow_no_dependencies: bool = False
    last_outcome: Outcome = Outcome.NONE
    registered_at: UtcDatetime


# ------------------------------------------------------------------------------
# State tracker snapshot
# ------------------------------------------------------------------------------


class SystemStateSnapshot(BaseModel):
    """Serializable view of the state tracker, used by audit payloads and replay."""

    model_config = _IMMUTABLE_CONTRACT_CONFIG
    state: SystemState = SystemState.NORMAL
    recent_outcomes: tuple[Outcome, ...] = ()
    outcomes_since_transition: int = 0

    @property
    def failure_rate(self) -> float:
        if not self.recent_outcomes:
            return 0.0
        failures = sum(1 for o in self.recent_outcomes if o == Outcome.FAILURE)
        return failures / float(len(self.recent_outcomes))


# ------------------------------------------------------------------------------
# Evaluation / approval value objects
# ------------------------------------------------------------------------------


class EvaluationResult(BaseModel):
    """Outcome of evaluating one action at one instant. Never persisted as state."""

    model_config = _IMMUTABLE_CONTRACT_CONFIG

    action_id: str
    aggregate_confidence: float = Field(ge=0.0, le=1.0)
    decision: Decision
    requires_approval: bool
    reasons: tuple[str, ...] = ()
    threshold: float
    system_state: SystemState
    criticality: int
    dependency_confidences: dict[str, float] = Field(default_factory=dict)
    binding_constraint: str
    evaluated_at: UtcDatetime

    @property
    def permits_execution(self) -> bool:
        return self.decision != Decision.DENIED


class ApprovalRecord(BaseModel):
    model_config = _IMMUTABLE_CONTRACT_CONFIG
    action_id: str
    approver: str = Field(min_length=1)
    approved_at: UtcDatetime
    decision: Decision


# ------------------------------------------------------------------------------
# Audit
# ------------------------------------------------------------------------------


class AuditEntry(BaseModel):
    """Immutable, hash-chained audit record."""

    model_config = _IMMUTABLE_CONTRACT_CONFIG

    seq: int = Field(ge=1)
    timestamp: UtcDatetime
    kind: AuditKind
    payload: dict[str, Any]
    prev_hash: str
    hash: str

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Self:
        return cls.model_validate(record)


__all__ = [
    "Action",
    "ApprovalRecord",
    "Assumption",
    "AssumptionCategory",
    "AuditEntry",
    "AuditKind",
    "Decision",
    "EvaluationResult",
    "HistoryEntry",
    "Outcome",
    "SystemState",
    "SystemStateSnapshot",
]
