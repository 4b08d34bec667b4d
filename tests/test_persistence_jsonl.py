# tests/test_persistence_jsonl.py
from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import pytest

from assumption_governance import (
    AssumptionCategory,
    AuditKind,
    GovernanceKernel,
    KernelConfig,
    Outcome,
    ReplayError,
    SystemState,
)
from assumption_governance.adapters import persistence
from assumption_governance.adapters.persistence import (
    append_audit_entry,
    append_jsonl,
    read_audit_log,
    read_jsonl,
    replay_audit_log,
    write_audit_log,
)


def _exercise(kernel: GovernanceKernel, t0: datetime, drive_outcomes: Callable[..., None]) -> None:
    kernel.add_assumption("net", "network partition is real", 0.95, AssumptionCategory.CRITICAL, now=t0)
    kernel.add_assumption("db", "database healthy", 0.9, AssumptionCategory.IMPORTANT, now=t0)
    kernel.add_assumption_dependency("db", "net", now=t0)
    kernel.register_action("isolate_node", "fence the node off the cluster", ["net", "db"], 4, now=t0)
    kernel.evaluate_action("isolate_node", t0)
    kernel.execute_action("isolate_node", "oncall@example.org", now=t0)
    kernel.record_outcome("isolate_node", Outcome.FAILURE, now=t0)
    drive_outcomes(kernel, Outcome.FAILURE, 3)
    kernel.revalidate_assumption("net", 0.8, "partition confirmed", now=t0)


def test_append_and_read_jsonl_roundtrip(tmp_path: Path) -> None:
    p = tmp_path / "events.jsonl"

    append_jsonl(p, {"kind": "x", "n": 1})
    append_jsonl(p, {"kind": "x", "n": 2})

    rows = [rec for _, rec in read_jsonl(p)]
    assert rows == [{"kind": "x", "n": 1}, {"kind": "x", "n": 2}]

    # sanity: file is valid json-per-line
    raw_lines = p.read_text(encoding="utf-8").splitlines()
    for ln in raw_lines:
        json.loads(ln)


def test_read_jsonl_rejects_non_object_lines(tmp_path: Path) -> None:
    p = tmp_path / "events.jsonl"
    p.write_text('{"ok": 1}\n[1, 2]\n', encoding="utf-8")

    with pytest.raises(ValueError, match="line 2"):
        list(read_jsonl(p))


def test_persistence_exports_only_functions_that_take_explicit_paths() -> None:
    exported = {name: getattr(persistence, name) for name in persistence.__all__}

    assert all(callable(obj) for obj in exported.values())
    assert not [name for name, value in vars(persistence).items() if isinstance(value, Path)]


def test_append_audit_entry_returns_line_evidence_ref(kernel: GovernanceKernel, t0: datetime, tmp_path: Path) -> None:
    p = tmp_path / "audit.jsonl"
    kernel.add_assumption("net", "network reachable", 0.9, AssumptionCategory.CRITICAL, now=t0)
    kernel.add_assumption("db", "database healthy", 0.9, AssumptionCategory.IMPORTANT, now=t0)

    refs = [append_audit_entry(p, entry) for entry in kernel.get_audit_log()]

    assert refs == [{"kind": "jsonl", "ref": "audit.jsonl@1"}, {"kind": "jsonl", "ref": "audit.jsonl@2"}]
    (meta, rec), _ = list(read_jsonl(p))
    assert meta["lineno"] == 1
    assert rec["kind"] == "assumption_update"
    assert rec["seq"] == 1


def test_audit_log_roundtrips_through_jsonl(
    kernel: GovernanceKernel, t0: datetime, tmp_path: Path, drive_outcomes: Callable[..., None]
) -> None:
    _exercise(kernel, t0, drive_outcomes)
    p = write_audit_log(tmp_path / "audit.jsonl", kernel.get_audit_log())

    restored = list(read_audit_log(p))

    assert restored == list(kernel.get_audit_log())


def test_replay_rebuilds_equivalent_kernel_state(
    kernel: GovernanceKernel, t0: datetime, tmp_path: Path, drive_outcomes: Callable[..., None]
) -> None:
    _exercise(kernel, t0, drive_outcomes)
    p = write_audit_log(tmp_path / "audit.jsonl", kernel.get_audit_log())

    replayed = replay_audit_log(p, clock=lambda: t0)

    assert replayed.system_state == SystemState.DEGRADED
    assert replayed.state_snapshot() == kernel.state_snapshot()
    assert replayed.assumption_ids() == kernel.assumption_ids()
    for aid in kernel.assumption_ids():
        assert replayed.get_assumption(aid).model_dump(mode="json") == kernel.get_assumption(aid).model_dump(mode="json")
    for action_id in kernel.action_ids():
        assert replayed.get_action(action_id).model_dump(mode="json") == kernel.get_action(action_id).model_dump(mode="json")
    original_eval = kernel.last_evaluation("isolate_node")
    replayed_eval = replayed.last_evaluation("isolate_node")
    assert original_eval is not None and replayed_eval is not None
    assert replayed_eval.model_dump(mode="json") == original_eval.model_dump(mode="json")
    assert len(replayed.get_audit_log()) == len(kernel.get_audit_log())
    assert replayed.get_audit_log()[-1].hash == kernel.get_audit_log()[-1].hash


def test_replayed_kernel_keeps_appending_to_the_same_chain(
    kernel: GovernanceKernel, t0: datetime, tmp_path: Path, drive_outcomes: Callable[..., None]
) -> None:
    _exercise(kernel, t0, drive_outcomes)
    replayed = replay_audit_log(kernel.get_audit_log(), clock=lambda: t0)

    result = replayed.evaluate_action("isolate_node", t0)
    expected = kernel.evaluate_action("isolate_node", t0)

    assert result == expected
    assert replayed.verify_audit_chain() is True
    assert replayed.get_audit_log()[-1].kind == AuditKind.EVALUATION


def test_replay_rejects_a_tampered_log(
    kernel: GovernanceKernel, t0: datetime, tmp_path: Path, drive_outcomes: Callable[..., None]
) -> None:
    _exercise(kernel, t0, drive_outcomes)
    p = write_audit_log(tmp_path / "audit.jsonl", kernel.get_audit_log())

    lines = p.read_text(encoding="utf-8").splitlines()
    first = json.loads(lines[0])
    first["payload"]["assumption"]["confidence"] = 0.99
    lines[0] = json.dumps(first)
    p.write_text("\n".join(lines) + "\n", encoding="utf-8")

    with pytest.raises(ReplayError):
        replay_audit_log(p)


def test_read_audit_log_rejects_malformed_records(tmp_path: Path) -> None:
    p = tmp_path / "audit.jsonl"
    append_jsonl(p, {"seq": 0, "kind": "nope"})

    with pytest.raises(ReplayError):
        list(read_audit_log(p))


def test_replay_under_stricter_thresholds_moves_state_on_next_evaluation(
    kernel: GovernanceKernel,
    t0: datetime,
    drive_outcomes: Callable[..., None],
    make_config: Callable[..., KernelConfig],
) -> None:
    kernel.add_assumption("cache", "cache warm", 0.9, AssumptionCategory.SUPPORTING, now=t0)
    kernel.register_action("warm", "prefetch cache", ["cache"], 1, now=t0)
    drive_outcomes(kernel, Outcome.FAILURE, 1)
    drive_outcomes(kernel, Outcome.SUCCESS, 2)
    assert kernel.system_state == SystemState.NORMAL

    strict = make_config({"state": {"escalation_thresholds": {"normal": 0.3, "degraded": 0.7, "critical": 0.85}}})
    replayed = replay_audit_log(kernel.get_audit_log(), strict, clock=lambda: t0)
    assert replayed.system_state == SystemState.NORMAL

    result = replayed.evaluate_action("warm", t0)

    assert result.system_state == SystemState.DEGRADED
    assert any(reason.startswith("state moved NORMAL -> DEGRADED") for reason in result.reasons)
    last = replayed.get_audit_log()[-1]
    assert last.payload["state_transition"]["transition"] == "NORMAL->DEGRADED"
    assert replayed.verify_audit_chain() is True
