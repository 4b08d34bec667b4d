from __future__ import annotations

import random
from collections.abc import Callable
from datetime import datetime

import pytest

from assumption_governance import (
    AssumptionCategory,
    DuplicateIdError,
    GovernanceError,
    GovernanceKernel,
    InvalidCategoryError,
    InvalidConfidenceError,
    NotFoundError,
    OutOfOrderUpdateError,
)


def test_add_assumption_seeds_history_and_audit(kernel: GovernanceKernel, t0: datetime) -> None:
    record = kernel.add_assumption("net", "network reachable", 0.9, AssumptionCategory.CRITICAL, now=t0)

    assert record.confidence == 0.9
    assert record.last_validated_at == t0
    assert [(h.confidence, h.reason) for h in record.history] == [(0.9, "created")]

    (entry,) = kernel.get_audit_log()
    assert entry.payload["change"] == "created"
    assert entry.payload["assumption_id"] == "net"


def test_add_assumption_accepts_category_names_in_any_case(kernel: GovernanceKernel, t0: datetime) -> None:
    record = kernel.add_assumption("disk", "disk healthy", 0.7, "IMPORTANT", now=t0)
    assert record.category == AssumptionCategory.IMPORTANT


def test_duplicate_assumption_id_is_rejected_without_side_effects(kernel: GovernanceKernel, t0: datetime) -> None:
    kernel.add_assumption("net", "network reachable", 0.9, AssumptionCategory.CRITICAL, now=t0)
    before = kernel.get_audit_log()

    with pytest.raises(DuplicateIdError):
        kernel.add_assumption("net", "again", 0.1, AssumptionCategory.SUPPORTING, now=t0)

    assert kernel.get_audit_log() == before
    assert kernel.get_assumption("net").confidence == 0.9


@pytest.mark.parametrize("value", [-0.01, 1.01, float("nan"), True, "0.5", None])
def test_invalid_initial_confidence_is_rejected(kernel: GovernanceKernel, t0: datetime, value: object) -> None:
    with pytest.raises(InvalidConfidenceError):
        kernel.add_assumption("x", "x", value, AssumptionCategory.SUPPORTING, now=t0)  # type: ignore[arg-type]

    assert kernel.assumption_ids() == []
    assert kernel.get_audit_log() == ()


@pytest.mark.parametrize("value", [0, 0.0, 1, 1.0])
def test_confidence_bounds_are_inclusive(kernel: GovernanceKernel, t0: datetime, value: float) -> None:
    assert kernel.add_assumption("edge", "edge", value, AssumptionCategory.SUPPORTING, now=t0).confidence == value


def test_unknown_assumption_lookup_raises_not_found(kernel: GovernanceKernel, t0: datetime) -> None:
    with pytest.raises(NotFoundError):
        kernel.get_assumption("missing")
    with pytest.raises(NotFoundError):
        kernel.revalidate_assumption("missing", 0.5, "recheck", now=t0)
    with pytest.raises(NotFoundError):
        kernel.get_effective_confidence("missing", t0)


def test_critical_confidence_halves_every_half_life(
    kernel: GovernanceKernel, t0: datetime, at: Callable[..., datetime]
) -> None:
    kernel.add_assumption("net", "network reachable", 0.8, AssumptionCategory.CRITICAL, now=t0)

    assert kernel.get_effective_confidence("net", t0) == pytest.approx(0.8)
    assert kernel.get_effective_confidence("net", at(minutes=60)) == pytest.approx(0.4)
    assert kernel.get_effective_confidence("net", at(minutes=120)) == pytest.approx(0.2)


def test_reading_decay_never_writes_back(kernel: GovernanceKernel, t0: datetime, at: Callable[..., datetime]) -> None:
    kernel.add_assumption("net", "network reachable", 0.8, AssumptionCategory.CRITICAL, now=t0)
    audit_len = len(kernel.get_audit_log())

    kernel.get_effective_confidence("net", at(hours=5))

    stored = kernel.get_assumption("net")
    assert stored.confidence == 0.8
    assert stored.last_validated_at == t0
    assert len(kernel.get_audit_log()) == audit_len


def test_decay_stops_at_category_floor(kernel: GovernanceKernel, t0: datetime, at: Callable[..., datetime]) -> None:
    kernel.add_assumption("cache", "cache warm", 0.9, AssumptionCategory.SUPPORTING, now=t0)
    kernel.add_assumption("low", "already weak", 0.02, AssumptionCategory.CRITICAL, now=t0)

    assert kernel.get_effective_confidence("cache", at(hours=24 * 90)) == pytest.approx(0.05)
    # a value already under the floor is not lifted to it
    assert kernel.get_effective_confidence("low", at(hours=24)) == pytest.approx(0.02)


def test_decay_is_monotonic_over_random_instants(kernel: GovernanceKernel, t0: datetime, at: Callable[..., datetime]) -> None:
    rng = random.Random(20260211)
    for i, category in enumerate(AssumptionCategory):
        kernel.add_assumption(f"a{i}", "random", rng.uniform(0.1, 1.0), category, now=t0)

    instants = sorted(rng.uniform(0.0, 60.0 * 48) for _ in range(50))
    for aid in kernel.assumption_ids():
        stored = kernel.get_assumption(aid).confidence
        values = [kernel.get_effective_confidence(aid, at(minutes=m)) for m in instants]
        assert all(later <= earlier + 1e-12 for earlier, later in zip(values, values[1:]))
        assert all(0.0 <= v <= stored for v in values)


def test_revalidation_resets_the_decay_clock(
    kernel: GovernanceKernel, t0: datetime, at: Callable[..., datetime]
) -> None:
    kernel.add_assumption("net", "network reachable", 0.95, AssumptionCategory.CRITICAL, now=t0)
    assert kernel.get_effective_confidence("net", at(hours=2)) == pytest.approx(0.95 * 0.25)

    record = kernel.revalidate_assumption("net", 0.9, "health check ok", now=at(hours=2))

    assert record.last_validated_at == at(hours=2)
    assert [h.reason for h in record.history] == ["created", "health check ok"]
    assert kernel.get_effective_confidence("net", at(hours=2)) == pytest.approx(0.9)
    assert kernel.get_effective_confidence("net", at(hours=3)) == pytest.approx(0.45)


def test_failed_revalidation_leaves_record_and_audit_untouched(kernel: GovernanceKernel, t0: datetime) -> None:
    kernel.add_assumption("net", "network reachable", 0.95, AssumptionCategory.CRITICAL, now=t0)
    before = kernel.get_assumption("net")
    audit = kernel.get_audit_log()

    with pytest.raises(InvalidConfidenceError):
        kernel.revalidate_assumption("net", 1.5, "bogus", now=t0)

    assert kernel.get_assumption("net") == before
    assert kernel.get_audit_log() == audit


def test_adjust_confidence_clamps_and_keeps_the_decay_clock(
    kernel: GovernanceKernel, t0: datetime, at: Callable[..., datetime]
) -> None:
    kernel.add_assumption("net", "network reachable", 0.95, AssumptionCategory.CRITICAL, now=t0)

    up = kernel.adjust_confidence("net", 0.5, "manual boost", now=at(minutes=10))
    assert up.confidence == 1.0
    assert up.last_validated_at == t0

    down = kernel.adjust_confidence("net", -3.0, "manual drop", now=at(minutes=20))
    assert down.confidence == 0.0
    assert [h.confidence for h in down.history] == [0.95, 1.0, 0.0]

    last = kernel.get_audit_log()[-1]
    assert last.payload["change"] == "adjusted"
    assert last.payload["delta"] == pytest.approx(-1.0)


def test_get_assumption_returns_a_detached_copy(kernel: GovernanceKernel, t0: datetime) -> None:
    kernel.add_assumption("net", "network reachable", 0.95, AssumptionCategory.CRITICAL, now=t0)

    copy = kernel.get_assumption("net")
    copy.confidence = 0.1

    assert kernel.get_assumption("net").confidence == 0.95


def test_confidence_stays_in_bounds_over_random_updates(kernel: GovernanceKernel, t0: datetime, at: Callable[..., datetime]) -> None:
    rng = random.Random(1234)
    kernel.add_assumption("net", "network reachable", 0.5, AssumptionCategory.CRITICAL, now=t0)

    for step in range(300):
        now = at(minutes=step)
        if rng.random() < 0.7:
            kernel.adjust_confidence("net", rng.uniform(-0.6, 0.6), "random shift", now=now)
        else:
            kernel.revalidate_assumption("net", rng.random(), "random check", now=now)

        record = kernel.get_assumption("net")
        assert 0.0 <= record.confidence <= 1.0
        assert 0.0 <= kernel.get_effective_confidence("net", at(minutes=step + rng.uniform(0, 600))) <= 1.0

    assert len(kernel.get_assumption("net").history) == 301


@pytest.mark.parametrize("category", ["bogus", "", 7])
def test_unknown_category_is_rejected_with_the_assumption_id(
    kernel: GovernanceKernel, t0: datetime, category: object
) -> None:
    with pytest.raises(InvalidCategoryError) as excinfo:
        kernel.add_assumption("x", "x", 0.5, category, now=t0)  # type: ignore[arg-type]

    assert isinstance(excinfo.value, GovernanceError)
    assert excinfo.value.assumption_id == "x"
    assert "x" not in kernel.assumption_ids()
    assert kernel.get_audit_log() == ()


def test_revalidation_dated_before_the_latest_history_entry_is_rejected(
    kernel: GovernanceKernel, t0: datetime, at: Callable[..., datetime]
) -> None:
    kernel.add_assumption("net", "network reachable", 0.95, AssumptionCategory.CRITICAL, now=at(hours=2))
    before = kernel.get_assumption("net")
    audit = kernel.get_audit_log()

    with pytest.raises(OutOfOrderUpdateError) as excinfo:
        kernel.revalidate_assumption("net", 0.9, "stale report", now=t0)

    assert isinstance(excinfo.value, GovernanceError)
    assert excinfo.value.assumption_id == "net"
    assert kernel.get_assumption("net") == before
    assert kernel.get_audit_log() == audit


def test_adjustment_dated_before_the_latest_history_entry_is_rejected(
    kernel: GovernanceKernel, t0: datetime, at: Callable[..., datetime]
) -> None:
    kernel.add_assumption("net", "network reachable", 0.95, AssumptionCategory.CRITICAL, now=t0)
    kernel.adjust_confidence("net", -0.1, "manual drop", now=at(hours=1))
    before = kernel.get_assumption("net")
    audit = kernel.get_audit_log()

    with pytest.raises(OutOfOrderUpdateError):
        kernel.adjust_confidence("net", 0.05, "late boost", now=at(minutes=30))

    assert kernel.get_assumption("net") == before
    assert kernel.get_audit_log() == audit
    # same instant as the latest entry is still in order
    assert kernel.adjust_confidence("net", 0.05, "same instant", now=at(hours=1)).confidence == pytest.approx(0.9)
