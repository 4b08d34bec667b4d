# assumption_governance/assumptions.py
from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Iterator
from datetime import datetime
from typing import Any

import networkx as nx

from assumption_governance._compat import as_utc
from assumption_governance.aggregation import ConfidenceTerm, aggregate_confidence
from assumption_governance.audit import AuditLog
from assumption_governance.config import KernelConfig
from assumption_governance.contracts import Assumption, AssumptionCategory, AuditKind, HistoryEntry
from assumption_governance.errors import (
    CycleError,
    DuplicateIdError,
    InvalidCategoryError,
    InvalidConfidenceError,
    NotFoundError,
    OutOfOrderUpdateError,
)

logger = logging.getLogger(__name__)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def validate_confidence(assumption_id: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidConfidenceError(assumption_id, value)
    v = float(value)
    if math.isnan(v) or not 0.0 <= v <= 1.0:
        raise InvalidConfidenceError(assumption_id, value)
    return v


def coerce_category(assumption_id: str, value: AssumptionCategory | str) -> AssumptionCategory:
    if isinstance(value, AssumptionCategory):
        return value
    try:
        return AssumptionCategory(str(value).strip().lower())
    except ValueError as exc:
        raise InvalidCategoryError(assumption_id, value) from exc


def _validate_delta(assumption_id: str, delta: Any) -> float:
    if isinstance(delta, bool) or not isinstance(delta, (int, float)) or not math.isfinite(float(delta)):
        raise InvalidConfidenceError(assumption_id, delta)
    return float(delta)


class AssumptionRegistry:
    """Stores assumption records and answers decayed-confidence reads.

    Decay is computed on read and never written back; only ``revalidate``
    moves the decay clock. Upstream assumption edges form a DAG whose
    effective confidences are aggregated in topological order.
    """

    def __init__(self, config: KernelConfig, audit: AuditLog) -> None:
        self._config = config
        self._audit = audit
        self._records: dict[str, Assumption] = {}
        # edges run upstream -> dependent
        self._graph = nx.DiGraph()

    def __contains__(self, assumption_id: object) -> bool:
        return assumption_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._records))

    def _require(self, assumption_id: str) -> Assumption:
        record = self._records.get(assumption_id)
        if record is None:
            raise NotFoundError("assumption", assumption_id)
        return record

    def get(self, assumption_id: str) -> Assumption:
        return self._require(assumption_id).model_copy(deep=True)

    def missing(self, assumption_ids: Iterable[str]) -> list[str]:
        return [a for a in assumption_ids if a not in self._records]

    def category_of(self, assumption_id: str) -> AssumptionCategory:
        return self._require(assumption_id).category

    def check_chronology(self, assumption_id: str, now: datetime) -> datetime:
        """Return ``now`` as UTC, or raise if it predates the record's latest history entry."""
        record = self._require(assumption_id)
        ts = as_utc(now)
        latest = record.history[-1].timestamp if record.history else record.last_validated_at
        if ts < latest:
            raise OutOfOrderUpdateError(assumption_id, ts, latest)
        return ts

    # --------------------------------------------------------------------------
    # Mutations
    # --------------------------------------------------------------------------

    def add(
        self,
        assumption_id: str,
        description: str,
        initial_confidence: float,
        category: AssumptionCategory | str,
        *,
        now: datetime,
    ) -> Assumption:
        if assumption_id in self._records:
            raise DuplicateIdError("assumption", assumption_id)
        confidence = validate_confidence(assumption_id, initial_confidence)
        resolved = coerce_category(assumption_id, category)
        ts = as_utc(now)

        record = Assumption(
            id=assumption_id,
            description=description,
            confidence=confidence,
            category=resolved,
            last_validated_at=ts,
            history=[HistoryEntry(timestamp=ts, confidence=confidence, reason="created")],
        )
        self._records[assumption_id] = record
        self._graph.add_node(assumption_id)
        self._audit_change(record, change="created", reason="created", now=ts)
        logger.info("assumption %s added (%s, confidence=%.3f)", assumption_id, record.category.value, confidence)
        return record.model_copy(deep=True)

    def revalidate(self, assumption_id: str, new_confidence: float, reason: str, *, now: datetime) -> Assumption:
        record = self._require(assumption_id)
        confidence = validate_confidence(assumption_id, new_confidence)
        ts = self.check_chronology(assumption_id, now)

        entry = HistoryEntry(timestamp=ts, confidence=confidence, reason=reason)

        record.confidence = confidence
        record.last_validated_at = ts
        record.history.append(entry)
        self._audit_change(record, change="revalidated", reason=reason, now=ts)
        logger.info("assumption %s revalidated at %.3f: %s", assumption_id, confidence, reason)
        return record.model_copy(deep=True)

    def adjust(self, assumption_id: str, delta: float, reason: str, *, now: datetime) -> Assumption:
        """Belief update from feedback: shifts confidence without touching the decay clock."""
        record = self._require(assumption_id)
        d = _validate_delta(assumption_id, delta)
        ts = self.check_chronology(assumption_id, now)

        before = record.confidence
        after = _clamp(before + d)
        entry = HistoryEntry(timestamp=ts, confidence=after, reason=reason)

        record.confidence = after
        record.history.append(entry)
        self._audit_change(record, change="adjusted", reason=reason, now=ts, delta=record.confidence - before)
        logger.debug("assumption %s adjusted %.4f -> %.4f (%s)", assumption_id, before, record.confidence, reason)
        return record.model_copy(deep=True)

    def add_dependency(self, assumption_id: str, depends_on_id: str, *, now: datetime) -> Assumption:
        record = self._require(assumption_id)
        self._require(depends_on_id)
        if depends_on_id in record.depends_on:
            return record.model_copy(deep=True)
        # the new edge closes a cycle iff the dependent already reaches its upstream
        if assumption_id == depends_on_id or nx.has_path(self._graph, assumption_id, depends_on_id):
            raise CycleError(assumption_id, depends_on_id)

        record.depends_on = [*record.depends_on, depends_on_id]
        self._graph.add_edge(depends_on_id, assumption_id)
        self._audit_change(
            record,
            change="dependency_added",
            reason=f"depends on {depends_on_id}",
            now=as_utc(now),
        )
        logger.info("assumption %s now depends on %s", assumption_id, depends_on_id)
        return record.model_copy(deep=True)

    def restore(self, record: Assumption) -> None:
        """Install a record snapshot verbatim (replay only; not audited)."""
        self._records[record.id] = record.model_copy(deep=True)
        self._graph.add_node(record.id)
        self._graph.remove_edges_from(list(self._graph.in_edges(record.id)))
        self._graph.add_edges_from((up, record.id) for up in record.depends_on)

    def _audit_change(self, record: Assumption, *, change: str, reason: str, now: datetime, **extra: Any) -> None:
        payload: dict[str, Any] = {
            "change": change,
            "assumption_id": record.id,
            "reason": reason,
            "assumption": record,
        }
        payload.update(extra)
        self._audit.append(AuditKind.ASSUMPTION_UPDATE, payload, timestamp=now)

    # --------------------------------------------------------------------------
    # Graph
    # --------------------------------------------------------------------------

    def upstream_of(self, assumption_id: str) -> set[str]:
        """Every assumption reachable through ``depends_on`` edges."""
        self._require(assumption_id)
        return nx.ancestors(self._graph, assumption_id)

    def topological_order(self, assumption_ids: Iterable[str] | None = None) -> list[str]:
        """Assumption ids ordered upstream-first. Ties keep insertion order."""
        rank = {aid: i for i, aid in enumerate(self._records)}
        graph = self._graph if assumption_ids is None else self._graph.subgraph(assumption_ids)
        return list(nx.lexicographical_topological_sort(graph, key=lambda a: rank.get(a, len(rank))))

    # --------------------------------------------------------------------------
    # Reads
    # --------------------------------------------------------------------------

    def decayed_confidence(self, assumption_id: str, now: datetime) -> float:
        """Own confidence after temporal decay, ignoring upstream assumptions."""
        record = self._require(assumption_id)
        policy = self._config.category(record.category)
        elapsed_minutes = max(0.0, (as_utc(now) - record.last_validated_at).total_seconds() / 60.0)
        factor = policy.decay_rate ** (elapsed_minutes / policy.half_life_minutes)
        # The floor bounds decay only; it never lifts a value already below it.
        value = max(record.confidence * factor, min(record.confidence, policy.floor))
        logger.debug(
            "decay %s: %.4f * %.4f (%.1f min) -> %.4f",
            assumption_id,
            record.confidence,
            factor,
            elapsed_minutes,
            value,
        )
        return _clamp(value)

    def effective_confidences(self, assumption_ids: Iterable[str], now: datetime) -> dict[str, float]:
        wanted = list(assumption_ids)
        closure: set[str] = set()
        for aid in wanted:
            closure.add(aid)
            closure |= self.upstream_of(aid)

        memo: dict[str, float] = {}
        for aid in self.topological_order([a for a in self._records if a in closure]):
            record = self._records[aid]
            own = self.decayed_confidence(aid, now)
            if not record.depends_on:
                memo[aid] = own
                continue
            terms = [ConfidenceTerm(key=aid, confidence=own, category=record.category)]
            terms.extend(
                ConfidenceTerm(key=up, confidence=memo[up], category=self._records[up].category)
                for up in record.depends_on
            )
            memo[aid] = aggregate_confidence(terms, self._config).value
        return {aid: memo[aid] for aid in wanted}

    def effective_confidence(self, assumption_id: str, now: datetime) -> float:
        return self.effective_confidences([assumption_id], now)[assumption_id]


__all__ = ["AssumptionRegistry", "coerce_category", "validate_confidence"]
