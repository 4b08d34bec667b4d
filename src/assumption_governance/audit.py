# assumption_governance/audit.py
from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel

from assumption_governance._compat import as_utc
from assumption_governance.contracts import AuditEntry, AuditKind

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64


def to_jsonable(x: Any) -> Any:
    """
    Convert pydantic models / dataclasses / enums / datetimes / nested containers
    into JSON-safe primitives.
    """
    if x is None:
        return None
    if isinstance(x, BaseModel):
        return x.model_dump(mode="json")
    if is_dataclass(x) and not isinstance(x, type):
        return to_jsonable(asdict(x))
    if isinstance(x, Enum):
        return x.value
    if isinstance(x, datetime):
        return as_utc(x).isoformat()
    if isinstance(x, Mapping):
        return {str(k): to_jsonable(v) for k, v in x.items()}
    if isinstance(x, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in x]
    return x


def _canon(obj: Any) -> str:
    """
    Canonical JSON string (stable across runs) for hashing.
    """
    return json.dumps(obj, sort_keys=True, ensure_ascii=False, separators=(",", ":"))


def hash_entry(*, prev_hash: str, seq: int, kind: AuditKind, timestamp: datetime, payload: Mapping[str, Any]) -> str:
    blob = _canon(
        {
            "prev_hash": prev_hash,
            "seq": seq,
            "kind": kind.value,
            "timestamp": as_utc(timestamp).isoformat(),
            "payload": payload,
        }
    )
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()


class AuditLog:
    """Append-only, hash-chained record of every kernel state change and evaluation.

    Entries are frozen and payloads are plain JSON containers, so every entry
    crossing the boundary is deep-copied in both directions.
    """

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._last_hash: str = GENESIS_HASH

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def last_hash(self) -> str:
        return self._last_hash

    def append(self, kind: AuditKind, payload: Mapping[str, Any], *, timestamp: datetime) -> AuditEntry:
        seq = len(self._entries) + 1
        body = to_jsonable(dict(payload))
        digest = hash_entry(prev_hash=self._last_hash, seq=seq, kind=kind, timestamp=timestamp, payload=body)
        entry = AuditEntry(
            seq=seq,
            timestamp=timestamp,
            kind=kind,
            payload=body,
            prev_hash=self._last_hash,
            hash=digest,
        )
        self._entries.append(entry)
        self._last_hash = digest
        logger.debug("audit #%d %s", seq, kind.value)
        return entry.model_copy(deep=True)

    def entries(self) -> tuple[AuditEntry, ...]:
        return tuple(e.model_copy(deep=True) for e in self._entries)

    def verify_chain(self) -> bool:
        return verify_chain(self._entries)

    def extend_verified(self, entries: Iterable[AuditEntry]) -> None:
        """Adopt already-hashed entries (used by replay). Chain must continue from ``last_hash``."""
        for entry in entries:
            if entry.seq != len(self._entries) + 1 or entry.prev_hash != self._last_hash:
                raise ValueError(f"audit entry #{entry.seq} does not continue the chain")
            self._entries.append(entry.model_copy(deep=True))
            self._last_hash = entry.hash


def verify_chain(entries: Iterable[AuditEntry]) -> bool:
    prev = GENESIS_HASH
    for expected_seq, entry in enumerate(entries, start=1):
        if entry.seq != expected_seq or entry.prev_hash != prev:
            return False
        digest = hash_entry(
            prev_hash=prev, seq=entry.seq, kind=entry.kind, timestamp=entry.timestamp, payload=entry.payload
        )
        if digest != entry.hash:
            return False
        prev = entry.hash
    return True


__all__ = ["AuditLog", "GENESIS_HASH", "hash_entry", "to_jsonable", "verify_chain"]
