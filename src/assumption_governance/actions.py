# assumption_governance/actions.py
from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from datetime import datetime

from assumption_governance._compat import as_utc
from assumption_governance.assumptions import AssumptionRegistry
from assumption_governance.audit import AuditLog
from assumption_governance.contracts import Action, AuditKind, Outcome
from assumption_governance.errors import (
    DuplicateIdError,
    InvalidCriticalityError,
    MissingDependenciesError,
    NotFoundError,
    UnknownAssumptionError,
)

logger = logging.getLogger(__name__)


def validate_criticality(action_id: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidCriticalityError(action_id, value)
    if not Action.MIN_CRITICALITY <= value <= Action.MAX_CRITICALITY:
        raise InvalidCriticalityError(action_id, value)
    return value


class ActionRegistry:
    """Stores action records; dependencies are checked against the assumption registry."""

    def __init__(self, assumptions: AssumptionRegistry, audit: AuditLog) -> None:
        self._assumptions = assumptions
        self._audit = audit
        self._records: dict[str, Action] = {}

    def __contains__(self, action_id: object) -> bool:
        return action_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._records))

    def _require(self, action_id: str) -> Action:
        record = self._records.get(action_id)
        if record is None:
            raise NotFoundError("action", action_id)
        return record

    def get(self, action_id: str) -> Action:
        return self._require(action_id).model_copy(deep=True)

    def register(
        self,
        action_id: str,
        description: str,
        depends_on: Iterable[str],
        criticality: int,
        *,
        now: datetime,
        allow_no_dependencies: bool = False,
    ) -> Action:
        if action_id in self._records:
            raise DuplicateIdError("action", action_id)

        if isinstance(depends_on, str):
            depends_on = [depends_on]
        # dict.fromkeys dedupes while keeping declaration order
        deps = list(dict.fromkeys(depends_on))
        missing = self._assumptions.missing(deps)
        if missing:
            raise UnknownAssumptionError(action_id, missing)
        level = validate_criticality(action_id, criticality)
        if not deps and not allow_no_dependencies:
            raise MissingDependenciesError(action_id)

        ts = as_utc(now)
        record = Action(
            id=action_id,
            description=description,
            depends_on=deps,
            criticality=level,
            allow_no_dependencies=allow_no_dependencies,
            registered_at=ts,
        )
        self._records[action_id] = record
        self._audit.append(
            AuditKind.ACTION_REGISTRATION,
            {"action_id": action_id, "action": record},
            timestamp=ts,
        )
        logger.info("action %s registered (criticality=%d, depends_on=%s)", action_id, level, deps)
        return record.model_copy(deep=True)

    def set_last_outcome(self, action_id: str, outcome: Outcome) -> Action:
        record = self._require(action_id)
        record.last_outcome = outcome
        return record.model_copy(deep=True)

    def restore(self, record: Action) -> None:
        """Install a record snapshot verbatim (replay only; not audited)."""
        self._records[record.id] = record.model_copy(deep=True)


__all__ = ["ActionRegistry", "validate_criticality"]
