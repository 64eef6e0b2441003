"""Identity and reference registry.

One registry is built per run. It records the first-seen location of every
identifier (kind-agnostic, so a tool id colliding with a claim id is still a
conflict) and indexes identifiers by ``(kind, owner)`` scope so every checker
resolves references through the same lookup.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional, Set, Tuple

from tools.marketir.errors import Violation, ViolationKind
from tools.marketir.model import MarketGraph


class IdKind(Enum):
    AUDIENCE = "audience"
    EVIDENCE = "evidence"
    TOOL = "tool"
    CLAIM = "claim"
    MESSAGE = "message"
    CAMPAIGN = "campaign"


@dataclass(frozen=True)
class SourceLocation:
    file: str
    path: str = "$"

    def __str__(self) -> str:
        return self.file if self.path in ("", "$") else f"{self.file}#{self.path}"


@dataclass(frozen=True)
class IdEntry:
    id: str
    kind: IdKind
    location: SourceLocation
    owner: Optional[str] = None


@dataclass(frozen=True)
class Conflict:
    """Returned by ``register`` when the identifier was already taken."""
    existing: IdEntry
    colliding: IdEntry


class IdentityRegistry:
    def __init__(self) -> None:
        self._first: Dict[str, IdEntry] = {}
        self._scopes: Dict[Tuple[IdKind, Optional[str]], Set[str]] = {}
        self._counts: Dict[Tuple[IdKind, str], int] = {}

    def register(
        self,
        id: str,
        location: SourceLocation,
        kind: IdKind,
        owner: Optional[str] = None,
    ) -> Optional[Conflict]:
        entry = IdEntry(id=id, kind=kind, location=location, owner=owner)
        # Scopes include duplicate definitions; only _first is first-seen-wins.
        self._scopes.setdefault((kind, owner), set()).add(id)
        self._counts[(kind, id)] = self._counts.get((kind, id), 0) + 1
        existing = self._first.get(id)
        if existing is not None:
            return Conflict(existing=existing, colliding=entry)
        self._first[id] = entry
        return None

    def lookup(self, id: str) -> Optional[IdEntry]:
        return self._first.get(id)

    def resolves(self, id: str, kind: IdKind, owner: Optional[str] = None) -> bool:
        return id in self._scopes.get((kind, owner), ())

    def count(self, id: str, kind: IdKind) -> int:
        """How many times ``id`` was registered as ``kind``, duplicates included."""
        return self._counts.get((kind, id), 0)

    def ids(self, kind: IdKind, owner: Optional[str] = None) -> Set[str]:
        return set(self._scopes.get((kind, owner), ()))

    def __contains__(self, id: str) -> bool:
        return id in self._first

    def __len__(self) -> int:
        return len(self._first)

    def __iter__(self) -> Iterator[IdEntry]:
        return iter(self._first.values())


def conflict_violation(conflict: Conflict) -> Violation:
    first, dup = conflict.existing, conflict.colliding
    return Violation(
        ViolationKind.DUPLICATE_IDENTIFIER,
        dup.location.file,
        f"duplicate id {dup.id!r} ({dup.kind.value}); first defined as {first.kind.value} in {first.location}",
        dup.location.path,
        {
            "id": dup.id,
            "other_location": str(first.location),
            "locations": [str(first.location), str(dup.location)],
        },
    )


def build_registry(graph: MarketGraph) -> Tuple[IdentityRegistry, List[Violation]]:
    """Register every identifier of ``graph`` in load order.

    Order: audiences, evidence, tools (each tool's id, claims, messages),
    campaigns.
    """
    reg = IdentityRegistry()
    violations: List[Violation] = []

    def _add(id: str, loc: SourceLocation, kind: IdKind, owner: Optional[str] = None) -> None:
        conflict = reg.register(id, loc, kind, owner)
        if conflict is not None:
            violations.append(conflict_violation(conflict))

    for aud in graph.audiences:
        _add(aud.id, SourceLocation(aud.source, "$.id"), IdKind.AUDIENCE)
    for ev in graph.evidence:
        _add(ev.id, SourceLocation(graph.evidence_source, f"{ev.path}.id"), IdKind.EVIDENCE)
    for tool in graph.tools:
        _add(tool.id, SourceLocation(tool.source, "$.id"), IdKind.TOOL)
        for claim in tool.claims:
            _add(claim.id, SourceLocation(tool.source, f"{claim.path}.id"), IdKind.CLAIM, tool.id)
        for msg in tool.messages:
            _add(msg.id, SourceLocation(tool.source, f"{msg.path}.id"), IdKind.MESSAGE, tool.id)
    for camp in graph.campaigns:
        _add(camp.id, SourceLocation(camp.source, "$.id"), IdKind.CAMPAIGN)

    return reg, violations
