"""Violation taxonomy, run reports and exceptions.

Checks never raise for bad data. They return ``Violation`` values which the
engine merges into a single ``Report``; a run passes iff the report is empty.
Exceptions are reserved for conditions that prevent a run from starting
(bad configuration) and for the hasher's low-level parse failures, which
callers convert into violations.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional


class MarketIRError(Exception):
    """Base error for the MarketIR engine."""
    pass


class ConfigError(MarketIRError):
    """Configuration error."""
    pass


class MalformedInputError(MarketIRError):
    """Content could not be parsed as the expected shape."""

    def __init__(self, message: str, *, source: str = "", path: str = "$"):
        self.source = source
        self.path = path
        super().__init__(f"{source}: {message}" if source else message)
        self.reason = message


class ViolationKind(Enum):
    """Violation categories."""
    SCHEMA_VIOLATION = "SchemaViolation"
    DUPLICATE_IDENTIFIER = "DuplicateIdentifier"
    DANGLING_REFERENCE = "DanglingReference"
    MISSING_EVIDENCE_FOR_PROVEN_CLAIM = "MissingEvidenceForProvenClaim"
    ORPHAN_FILE = "OrphanFile"
    MALFORMED_INPUT = "MalformedInput"
    HASH_DRIFT = "HashDrift"


class RefKind(Enum):
    """Reference kinds a DanglingReference is tagged with."""
    FILE = "file"
    EVIDENCE = "evidence"
    CLAIM = "claim"
    AUDIENCE = "audience"
    TOOL = "tool"
    MESSAGE = "message"


class DriftKind(Enum):
    """How a lockfile entry differs from the freshly computed mapping."""
    MISSING = "missing"
    EXTRA = "extra"
    CHANGED = "changed"
    FORMAT = "format"


@dataclass(frozen=True)
class Violation:
    """A single defect found during a run.

    ``location`` is the repo-relative file, ``path`` the logical JSON path
    inside it. ``details`` carries kind-specific data such as ``ref_kind``,
    ``other_location`` or ``expected``/``actual`` digests.
    """
    kind: ViolationKind
    location: str
    message: str
    path: str = "$"
    details: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "kind": self.kind.value,
            "location": self.location,
            "path": self.path,
            "message": self.message,
        }
        if self.details:
            d["details"] = dict(self.details)
        return d

    def __str__(self) -> str:
        where = self.location if self.path in ("", "$") else f"{self.location} {self.path}"
        return f"[{self.kind.value}] {where}: {self.message}"


def schema_violation(location: str, message: str, path: str = "$") -> Violation:
    return Violation(ViolationKind.SCHEMA_VIOLATION, location, message, path)


def malformed_input(location: str, message: str, path: str = "$") -> Violation:
    return Violation(ViolationKind.MALFORMED_INPUT, location, message, path)


def dangling_reference(
    location: str,
    path: str,
    ref_kind: RefKind,
    ref: str,
    message: str,
) -> Violation:
    return Violation(
        ViolationKind.DANGLING_REFERENCE,
        location,
        message,
        path,
        {"ref_kind": ref_kind.value, "ref": ref},
    )


def hash_drift(
    path: str,
    drift: DriftKind,
    message: str,
    *,
    expected: Optional[str] = None,
    actual: Optional[str] = None,
) -> Violation:
    details: Dict[str, Any] = {"drift": drift.value}
    if expected is not None:
        details["expected"] = expected
    if actual is not None:
        details["actual"] = actual
    return Violation(ViolationKind.HASH_DRIFT, path, message, "$", details)


class Report:
    """Accumulated violations for one run.

    ``add`` and ``extend`` are guarded by a lock so concurrent hashing
    workers can append safely.
    """

    def __init__(self, violations: Optional[Iterable[Violation]] = None):
        self._violations: List[Violation] = list(violations or [])
        self._lock = threading.Lock()

    def add(self, violation: Violation) -> None:
        with self._lock:
            self._violations.append(violation)

    def extend(self, violations: Iterable[Violation]) -> None:
        items = list(violations)
        with self._lock:
            self._violations.extend(items)

    @property
    def violations(self) -> List[Violation]:
        with self._lock:
            return list(self._violations)

    @property
    def ok(self) -> bool:
        return not self._violations

    def of_kind(self, kind: ViolationKind) -> List[Violation]:
        return [v for v in self.violations if v.kind is kind]

    def counts(self) -> Dict[str, int]:
        out: Dict[str, int] = {}
        for v in self.violations:
            out[v.kind.value] = out.get(v.kind.value, 0) + 1
        return out

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "counts": self.counts(),
            "violations": [v.to_dict() for v in self.violations],
        }

    def __iter__(self) -> Iterator[Violation]:
        return iter(self.violations)

    def __len__(self) -> int:
        return len(self._violations)
