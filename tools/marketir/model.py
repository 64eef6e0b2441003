"""Typed entity variants for the MarketIR content graph.

Each kind carries only the fields the integrity checks rely on; the raw
document is kept alongside for attributes the engine treats as opaque
(audience pain points, press outlets, ...). ``from_dict`` raises
``MalformedInputError`` when a document cannot be read as the expected
variant at all; softer shape problems are the schema validator's job.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from tools.marketir.errors import MalformedInputError


class ClaimStatus(Enum):
    PROVEN = "proven"
    ASPIRATIONAL = "aspirational"
    DEPRECATED = "deprecated"


def _require_mapping(obj: Any, source: str, path: str) -> Mapping[str, Any]:
    if not isinstance(obj, dict):
        raise MalformedInputError("expected a JSON object", source=source, path=path)
    return obj


def _require_str(data: Mapping[str, Any], key: str, source: str, path: str) -> str:
    v = data.get(key)
    if not isinstance(v, str) or not v.strip():
        raise MalformedInputError(f"{key} must be a non-empty string", source=source, path=f"{path}.{key}")
    return v


def _opt_str(data: Mapping[str, Any], key: str) -> str:
    v = data.get(key)
    return v if isinstance(v, str) else ""


def _list(data: Mapping[str, Any], key: str, source: str, path: str, *, required: bool = False) -> List[Any]:
    v = data.get(key)
    if v is None:
        if required:
            raise MalformedInputError(f"{key} is required", source=source, path=f"{path}.{key}")
        return []
    if not isinstance(v, list):
        raise MalformedInputError(f"{key} must be an array", source=source, path=f"{path}.{key}")
    return v


def _str_tuple(data: Mapping[str, Any], key: str, source: str, path: str, *, required: bool = False) -> Tuple[str, ...]:
    items = _list(data, key, source, path, required=required)
    for i, item in enumerate(items):
        if not isinstance(item, str):
            raise MalformedInputError(f"{key} entries must be strings", source=source, path=f"{path}.{key}[{i}]")
    return tuple(items)


@dataclass(frozen=True)
class IndexEntry:
    ref: str
    path: str  # logical path inside the index, e.g. $.tools[0]


@dataclass(frozen=True)
class Index:
    source: str
    tools: Tuple[IndexEntry, ...] = ()
    audiences: Tuple[IndexEntry, ...] = ()
    campaigns: Tuple[IndexEntry, ...] = ()

    @classmethod
    def from_dict(cls, obj: Any, source: str) -> "Index":
        data = _require_mapping(obj, source, "$")
        sections: Dict[str, Tuple[IndexEntry, ...]] = {}
        for section in ("tools", "audiences", "campaigns"):
            entries: List[IndexEntry] = []
            for i, item in enumerate(_list(data, section, source, "$")):
                p = f"$.{section}[{i}]"
                entry = _require_mapping(item, source, p)
                entries.append(IndexEntry(ref=_require_str(entry, "ref", source, p), path=p))
            sections[section] = tuple(entries)
        return cls(source=source, **sections)


@dataclass(frozen=True)
class Audience:
    id: str
    source: str
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, obj: Any, source: str) -> "Audience":
        data = _require_mapping(obj, source, "$")
        return cls(id=_require_str(data, "id", source, "$"), source=source, raw=data)


@dataclass(frozen=True)
class Claim:
    id: str
    status: Optional[ClaimStatus]
    evidence_refs: Tuple[str, ...]
    path: str
    # Distinguishes an absent evidenceRefs from an empty one in reports.
    has_evidence_refs: bool = True

    @property
    def is_proven(self) -> bool:
        return self.status is ClaimStatus.PROVEN

    @classmethod
    def from_dict(cls, obj: Any, source: str, path: str) -> "Claim":
        data = _require_mapping(obj, source, path)
        raw_status = data.get("status")
        try:
            status = ClaimStatus(raw_status)
        except ValueError:
            # Unknown statuses surface as schema violations, not load failures.
            status = None
        return cls(
            id=_require_str(data, "id", source, path),
            status=status,
            evidence_refs=_str_tuple(data, "evidenceRefs", source, path),
            path=path,
            has_evidence_refs="evidenceRefs" in data,
        )


@dataclass(frozen=True)
class Message:
    id: str
    claim_refs: Tuple[str, ...]
    path: str

    @classmethod
    def from_dict(cls, obj: Any, source: str, path: str) -> "Message":
        data = _require_mapping(obj, source, path)
        return cls(
            id=_require_str(data, "id", source, path),
            claim_refs=_str_tuple(data, "claimRefs", source, path),
            path=path,
        )


@dataclass(frozen=True)
class PressQuote:
    claim_refs: Tuple[str, ...]
    evidence_refs: Tuple[str, ...]
    path: str

    @classmethod
    def from_dict(cls, obj: Any, source: str, path: str) -> "PressQuote":
        data = _require_mapping(obj, source, path)
        return cls(
            claim_refs=_str_tuple(data, "claimRefs", source, path),
            evidence_refs=_str_tuple(data, "evidenceRefs", source, path),
            path=path,
        )


@dataclass(frozen=True)
class SeedRepo:
    owner: str
    repo: str
    path: str


@dataclass(frozen=True)
class Targeting:
    keywords: Tuple[str, ...] = ()
    topics: Tuple[str, ...] = ()
    seed_repos: Tuple[SeedRepo, ...] = ()
    exclusions: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, obj: Any, source: str, path: str) -> "Targeting":
        data = _require_mapping(obj, source, path)
        seeds: List[SeedRepo] = []
        for i, item in enumerate(_list(data, "seedRepos", source, path)):
            p = f"{path}.seedRepos[{i}]"
            seed = _require_mapping(item, source, p)
            seeds.append(SeedRepo(owner=_opt_str(seed, "owner"), repo=_opt_str(seed, "repo"), path=p))
        return cls(
            keywords=_str_tuple(data, "keywords", source, path),
            topics=_str_tuple(data, "topics", source, path),
            seed_repos=tuple(seeds),
            exclusions=_str_tuple(data, "exclusions", source, path),
        )


@dataclass(frozen=True)
class Tool:
    id: str
    source: str
    claims: Tuple[Claim, ...]
    messages: Tuple[Message, ...]
    audience_refs: Tuple[str, ...]
    press_quotes: Tuple[PressQuote, ...] = ()
    targeting: Optional[Targeting] = None

    @classmethod
    def from_dict(cls, obj: Any, source: str) -> "Tool":
        data = _require_mapping(obj, source, "$")
        claims = tuple(
            Claim.from_dict(c, source, f"$.claims[{i}]")
            for i, c in enumerate(_list(data, "claims", source, "$", required=True))
        )
        messages = tuple(
            Message.from_dict(m, source, f"$.messages[{i}]")
            for i, m in enumerate(_list(data, "messages", source, "$", required=True))
        )
        quotes: Tuple[PressQuote, ...] = ()
        press = data.get("press")
        if press is not None:
            press = _require_mapping(press, source, "$.press")
            quotes = tuple(
                PressQuote.from_dict(q, source, f"$.press.quotes[{i}]")
                for i, q in enumerate(_list(press, "quotes", source, "$.press"))
            )
        targeting = None
        if data.get("targeting") is not None:
            targeting = Targeting.from_dict(data["targeting"], source, "$.targeting")
        return cls(
            id=_require_str(data, "id", source, "$"),
            source=source,
            claims=claims,
            messages=messages,
            audience_refs=_str_tuple(data, "audienceRefs", source, "$"),
            press_quotes=quotes,
            targeting=targeting,
        )


@dataclass(frozen=True)
class Provenance:
    generator: str = ""
    source_commit: str = ""
    notes: str = ""


@dataclass(frozen=True)
class EvidenceEntry:
    id: str
    sha256: str
    bytes: Optional[int]
    provenance: Provenance
    path: str

    @classmethod
    def from_dict(cls, obj: Any, source: str, path: str) -> "EvidenceEntry":
        data = _require_mapping(obj, source, path)
        prov = data.get("provenance")
        prov = prov if isinstance(prov, dict) else {}
        size = data.get("bytes")
        return cls(
            id=_require_str(data, "id", source, path),
            sha256=_opt_str(data, "sha256"),
            bytes=size if isinstance(size, int) and not isinstance(size, bool) else None,
            provenance=Provenance(
                generator=_opt_str(prov, "generator"),
                source_commit=_opt_str(prov, "sourceCommit"),
                notes=_opt_str(prov, "notes"),
            ),
            path=path,
        )


@dataclass(frozen=True)
class Phase:
    name: str
    message_refs: Tuple[str, ...]
    path: str


@dataclass(frozen=True)
class Campaign:
    id: str
    source: str
    tool_ref: str
    audience_refs: Tuple[str, ...]
    phases: Tuple[Phase, ...]

    @classmethod
    def from_dict(cls, obj: Any, source: str) -> "Campaign":
        data = _require_mapping(obj, source, "$")
        phases: List[Phase] = []
        for i, item in enumerate(_list(data, "phases", source, "$")):
            p = f"$.phases[{i}]"
            ph = _require_mapping(item, source, p)
            phases.append(Phase(
                name=_opt_str(ph, "name"),
                message_refs=_str_tuple(ph, "messageRefs", source, p),
                path=p,
            ))
        tool_ref = data.get("toolRef")
        return cls(
            id=_require_str(data, "id", source, "$"),
            source=source,
            tool_ref=tool_ref if isinstance(tool_ref, str) else "",
            audience_refs=_str_tuple(data, "audienceRefs", source, "$"),
            phases=tuple(phases),
        )


@dataclass(frozen=True)
class MarketGraph:
    """The fully loaded graph for one run."""
    index: Index
    audiences: Tuple[Audience, ...] = ()
    tools: Tuple[Tool, ...] = ()
    campaigns: Tuple[Campaign, ...] = ()
    evidence: Tuple[EvidenceEntry, ...] = ()
    evidence_source: str = ""
    reachable: FrozenSet[str] = frozenset()
