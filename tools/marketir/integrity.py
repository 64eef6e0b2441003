"""Referential integrity checks over a loaded MarketIR graph.

Checks run in a fixed order and never short-circuit one another:

1. proven claims carry evidence
2. evidence refs (claims and press quotes) exist in the manifest
3. message and press quote claim refs resolve within the same tool
4. tool audience refs resolve
5. campaign tool, audience and phase message refs resolve
6. targeting seed repos and exclusions are well formed
7. authored files unreachable from the index are orphans
"""

from __future__ import annotations

import logging
from typing import Iterable, List

from tools.marketir.errors import (
    RefKind,
    Violation,
    ViolationKind,
    dangling_reference,
    schema_violation,
)
from tools.marketir.model import Campaign, MarketGraph, Tool
from tools.marketir.registry import IdKind, IdentityRegistry

logger = logging.getLogger(__name__)


def check_proven_claims(graph: MarketGraph) -> List[Violation]:
    out: List[Violation] = []
    for tool in graph.tools:
        for claim in tool.claims:
            if claim.is_proven and not claim.evidence_refs:
                state = "empty" if claim.has_evidence_refs else "absent"
                out.append(Violation(
                    ViolationKind.MISSING_EVIDENCE_FOR_PROVEN_CLAIM,
                    tool.source,
                    f"claim {claim.id} is proven but evidenceRefs is {state}",
                    f"{claim.path}.evidenceRefs",
                    {"claim": claim.id},
                ))
    return out


def check_evidence_refs(graph: MarketGraph, registry: IdentityRegistry) -> List[Violation]:
    out: List[Violation] = []
    for tool in graph.tools:
        for claim in tool.claims:
            for i, ref in enumerate(claim.evidence_refs):
                if not registry.resolves(ref, IdKind.EVIDENCE):
                    out.append(dangling_reference(
                        tool.source, f"{claim.path}.evidenceRefs[{i}]", RefKind.EVIDENCE, ref,
                        f"claim {claim.id} references evidence {ref} which is not in the manifest",
                    ))
        for quote in tool.press_quotes:
            for i, ref in enumerate(quote.evidence_refs):
                if not registry.resolves(ref, IdKind.EVIDENCE):
                    out.append(dangling_reference(
                        tool.source, f"{quote.path}.evidenceRefs[{i}]", RefKind.EVIDENCE, ref,
                        f"press quote references evidence {ref} which is not in the manifest",
                    ))
    return out


def check_claim_refs(graph: MarketGraph, registry: IdentityRegistry) -> List[Violation]:
    out: List[Violation] = []
    for tool in graph.tools:
        for msg in tool.messages:
            for i, ref in enumerate(msg.claim_refs):
                if not registry.resolves(ref, IdKind.CLAIM, tool.id):
                    out.append(dangling_reference(
                        tool.source, f"{msg.path}.claimRefs[{i}]", RefKind.CLAIM, ref,
                        _claim_ref_message(f"message {msg.id}", ref, tool, registry),
                    ))
        # Existence only: a quoted claim need not be proven.
        for quote in tool.press_quotes:
            for i, ref in enumerate(quote.claim_refs):
                if not registry.resolves(ref, IdKind.CLAIM, tool.id):
                    out.append(dangling_reference(
                        tool.source, f"{quote.path}.claimRefs[{i}]", RefKind.CLAIM, ref,
                        _claim_ref_message("press quote", ref, tool, registry),
                    ))
    return out


def _claim_ref_message(who: str, ref: str, tool: Tool, registry: IdentityRegistry) -> str:
    msg = f"{who} references claim {ref} which is not in this tool's claims"
    entry = registry.lookup(ref)
    if entry is not None and entry.kind is IdKind.CLAIM and entry.owner != tool.id:
        msg += f" (it belongs to {entry.owner})"
    return msg


def check_tool_audiences(graph: MarketGraph, registry: IdentityRegistry) -> List[Violation]:
    out: List[Violation] = []
    for tool in graph.tools:
        for i, ref in enumerate(tool.audience_refs):
            if not registry.resolves(ref, IdKind.AUDIENCE):
                out.append(dangling_reference(
                    tool.source, f"$.audienceRefs[{i}]", RefKind.AUDIENCE, ref,
                    f"audienceRef {ref} does not exist",
                ))
    return out


def _check_campaign(camp: Campaign, registry: IdentityRegistry) -> List[Violation]:
    out: List[Violation] = []
    matches = registry.count(camp.tool_ref, IdKind.TOOL)
    if matches != 1:
        detail = "does not exist" if not matches else f"is ambiguous ({matches} tools share it)"
        out.append(dangling_reference(
            camp.source, "$.toolRef", RefKind.TOOL, camp.tool_ref,
            f"toolRef {camp.tool_ref or '<missing>'} {detail}",
        ))

    for i, ref in enumerate(camp.audience_refs):
        if not registry.resolves(ref, IdKind.AUDIENCE):
            out.append(dangling_reference(
                camp.source, f"$.audienceRefs[{i}]", RefKind.AUDIENCE, ref,
                f"audienceRef {ref} does not exist",
            ))

    if matches == 1:
        for phase in camp.phases:
            for i, ref in enumerate(phase.message_refs):
                if not registry.resolves(ref, IdKind.MESSAGE, camp.tool_ref):
                    out.append(dangling_reference(
                        camp.source, f"{phase.path}.messageRefs[{i}]", RefKind.MESSAGE, ref,
                        f'phase "{phase.name}" references message {ref} which is not in tool {camp.tool_ref}',
                    ))
    return out


def check_campaigns(graph: MarketGraph, registry: IdentityRegistry) -> List[Violation]:
    out: List[Violation] = []
    for camp in graph.campaigns:
        out.extend(_check_campaign(camp, registry))
    return out


def check_targeting(graph: MarketGraph) -> List[Violation]:
    out: List[Violation] = []
    for tool in graph.tools:
        t = tool.targeting
        if t is None:
            continue
        for seed in t.seed_repos:
            if not seed.owner.strip() or not seed.repo.strip():
                out.append(schema_violation(
                    tool.source, "targeting seedRepo has empty owner or repo", seed.path,
                ))
        for i, exc in enumerate(t.exclusions):
            if not exc.strip():
                out.append(schema_violation(
                    tool.source, "targeting exclusion contains empty string",
                    f"$.targeting.exclusions[{i}]",
                ))
    return out


def find_orphans(authored: Iterable[str], reachable: Iterable[str]) -> List[Violation]:
    """Every authored file not in the reachability set, once each, sorted."""
    reach = set(reachable)
    return [
        Violation(ViolationKind.ORPHAN_FILE, rel, "file is not reachable from the index")
        for rel in sorted(set(authored) - reach)
    ]


def check_integrity(
    graph: MarketGraph,
    registry: IdentityRegistry,
    authored: Iterable[str] = (),
) -> List[Violation]:
    """Run every integrity check in order and return the combined violations."""
    out: List[Violation] = []
    out.extend(check_proven_claims(graph))
    out.extend(check_evidence_refs(graph, registry))
    out.extend(check_claim_refs(graph, registry))
    out.extend(check_tool_audiences(graph, registry))
    out.extend(check_campaigns(graph, registry))
    out.extend(check_targeting(graph))
    out.extend(find_orphans(authored, graph.reachable))
    logger.info("integrity checks found %d violation(s)", len(out))
    return out
