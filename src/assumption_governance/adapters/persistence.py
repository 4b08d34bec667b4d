# assumption_governance/adapters/persistence.py
from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Dict, Iterator, Tuple, Union

from assumption_governance.audit import to_jsonable
from assumption_governance.config import KernelConfig
from assumption_governance.contracts import AuditEntry
from assumption_governance.errors import ReplayError
from assumption_governance.kernel import Clock, GovernanceKernel

from pydantic import ValidationError


JsonObj = Dict[str, Any]
PathLike = Union[str, Path]


def append_jsonl(path: PathLike, record: Any) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    obj = to_jsonable(record)

    # enforce "one JSON object per line"
    line = json.dumps(obj, ensure_ascii=False)
    with p.open("a", encoding="utf-8") as f:
        f.write(line + "\n")


def read_jsonl(path: PathLike) -> Iterator[Tuple[JsonObj, JsonObj]]:
    """
    Yields (meta, obj) for each JSON object line.
    - meta includes line number and source path.
    - obj is the parsed dict.
    """
    p = Path(path)
    with p.open("r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            s = line.strip()
            if not s:
                continue
            obj = json.loads(s)
            if not isinstance(obj, dict):
                raise ValueError(f"Expected JSON object on line {lineno}, got {type(obj).__name__}")
            meta: JsonObj = {"path": str(p), "lineno": lineno}
            yield meta, obj


def append_audit_entry(path: PathLike, entry: AuditEntry) -> JsonObj:
    """Append one tagged audit record; returns an evidence ref ``{"kind", "ref"}``."""
    p = Path(path)
    next_offset = 1
    if p.exists():
        next_offset = len(p.read_text(encoding="utf-8").splitlines()) + 1

    append_jsonl(p, entry.to_record())
    return {"kind": "jsonl", "ref": f"{p.name}@{next_offset}"}


def write_audit_log(path: PathLike, entries: Iterable[AuditEntry]) -> Path:
    """Write a complete audit stream, replacing any existing file."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as f:
        for entry in entries:
            f.write(json.dumps(entry.to_record(), ensure_ascii=False) + "\n")
    return p


def read_audit_log(path: PathLike) -> Iterator[AuditEntry]:
    for meta, raw in read_jsonl(path):
        try:
            yield AuditEntry.from_record(raw)
        except ValidationError as exc:
            raise ReplayError(f"malformed audit record at {meta['path']}:{meta['lineno']}") from exc


def replay_audit_log(
    source: PathLike | Iterable[AuditEntry],
    config: KernelConfig | None = None,
    *,
    clock: Clock | None = None,
) -> GovernanceKernel:
    """Rebuild a kernel from a persisted (or in-memory) audit stream."""
    entries = read_audit_log(source) if isinstance(source, (str, Path)) else source
    return GovernanceKernel.replay(entries, config, clock=clock)


__all__ = [
    "append_audit_entry",
    "append_jsonl",
    "read_audit_log",
    "read_jsonl",
    "replay_audit_log",
    "write_audit_log",
]
