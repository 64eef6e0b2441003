"""Graph loader: resolves the index into the in-memory MarketIR graph.

Load order is index, audiences, evidence manifest, tools, campaigns. Every
raw document is schema-validated as it is read. A document that cannot be
read as its typed variant is reported and excluded; references to it then
surface as dangling during the integrity pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Set, Tuple, TypeVar

from tools.marketir.config import Layout
from tools.marketir.core import join_rel, parse_json_bytes
from tools.marketir.errors import (
    MalformedInputError,
    RefKind,
    Violation,
    dangling_reference,
    malformed_input,
)
from tools.marketir.model import (
    Audience,
    Campaign,
    EvidenceEntry,
    Index,
    IndexEntry,
    MarketGraph,
    Tool,
)
from tools.marketir.schema import SchemaValidator
from tools.marketir.sources import FileSource

logger = logging.getLogger(__name__)

E = TypeVar("E")


@dataclass(frozen=True)
class LoadResult:
    """Outcome of a load: the graph (None when the index is unusable) and
    every load-time violation, schema violations included."""
    graph: Optional[MarketGraph]
    violations: Tuple[Violation, ...] = ()
    schema: Optional[SchemaValidator] = field(default=None, compare=False)

    @property
    def reachable(self) -> frozenset:
        return self.graph.reachable if self.graph is not None else frozenset()


class GraphLoader:
    def __init__(self, source: FileSource, layout: Layout):
        self.source = source
        self.layout = layout
        self._violations: List[Violation] = []
        self._reachable: Set[str] = set()
        self._schema: Optional[SchemaValidator] = None

    def _fail(self, v: Violation) -> None:
        self._violations.append(v)

    def _read_json(self, rel: str) -> Tuple[bool, Any]:
        """Read and parse ``rel``. Returns ``(found, obj)``; obj is None on failure."""
        try:
            raw = self.source.read(rel)
        except FileNotFoundError:
            return False, None
        except OSError as ex:
            self._fail(malformed_input(rel, f"unreadable: {ex}"))
            return True, None
        try:
            return True, parse_json_bytes(raw, source=rel)
        except MalformedInputError as ex:
            self._fail(malformed_input(rel, ex.reason))
            return True, None

    def _schema_check(self, obj: Any, kind: str, location: str, base_path: str = "$") -> None:
        if self._schema is not None:
            self._violations.extend(self._schema.validate(obj, kind, location, base_path))

    def _load_schema(self) -> None:
        rel = self.layout.schema_path
        found, obj = self._read_json(rel)
        if not found:
            self._fail(malformed_input(rel, "schema document not found"))
            return
        if obj is None:
            return
        self._schema, problems = SchemaValidator.from_document(obj, rel)
        self._violations.extend(problems)

    def _load_index(self) -> Optional[Index]:
        rel = self.layout.index_path
        found, obj = self._read_json(rel)
        if not found:
            self._fail(malformed_input(rel, "index document not found"))
            return None
        self._reachable.add(rel)
        if obj is None:
            return None
        self._schema_check(obj, "index", rel)
        try:
            return Index.from_dict(obj, rel)
        except MalformedInputError as ex:
            self._fail(malformed_input(rel, ex.reason, ex.path))
            return None

    def _load_refs(
        self,
        index: Index,
        entries: Tuple[IndexEntry, ...],
        kind: str,
        build: Callable[[Any, str], E],
    ) -> List[E]:
        out: List[E] = []
        for entry in entries:
            try:
                rel = join_rel(self.layout.data_dir, entry.ref)
            except ValueError as ex:
                self._fail(malformed_input(index.source, str(ex), f"{entry.path}.ref"))
                continue
            found, obj = self._read_json(rel)
            if not found:
                self._fail(dangling_reference(
                    index.source,
                    f"{entry.path}.ref",
                    RefKind.FILE,
                    entry.ref,
                    f"{kind} ref {entry.ref} does not exist ({rel})",
                ))
                continue
            self._reachable.add(rel)
            if obj is None:
                logger.warning("excluding %s %s: unparseable", kind, rel)
                continue
            self._schema_check(obj, kind, rel)
            try:
                entity = build(obj, rel)
            except MalformedInputError as ex:
                logger.warning("excluding %s %s: %s", kind, rel, ex.reason)
                self._fail(malformed_input(rel, ex.reason, ex.path))
                continue
            logger.debug("loaded %s %s from %s", kind, getattr(entity, "id", "?"), rel)
            out.append(entity)
        return out

    def _load_evidence(self) -> List[EvidenceEntry]:
        rel = self.layout.evidence_manifest_path
        found, obj = self._read_json(rel)
        if not found:
            self._fail(malformed_input(rel, "evidence manifest not found"))
            return []
        if obj is None:
            return []
        entries = obj.get("entries") if isinstance(obj, dict) else None
        if not isinstance(entries, list):
            self._fail(malformed_input(rel, "evidence manifest must be an object with an entries array"))
            return []
        out: List[EvidenceEntry] = []
        for i, item in enumerate(entries):
            path = f"$.entries[{i}]"
            self._schema_check(item, "evidence", rel, path)
            try:
                out.append(EvidenceEntry.from_dict(item, rel, path))
            except MalformedInputError as ex:
                logger.warning("excluding evidence entry %s: %s", path, ex.reason)
                self._fail(malformed_input(rel, ex.reason, ex.path))
        return out

    def load(self) -> LoadResult:
        self._violations = []
        self._reachable = set()
        self._schema = None

        self._load_schema()
        index = self._load_index()
        if index is None:
            return LoadResult(graph=None, violations=tuple(self._violations), schema=self._schema)

        audiences = self._load_refs(index, index.audiences, "audience", Audience.from_dict)
        evidence = self._load_evidence()
        tools = self._load_refs(index, index.tools, "tool", Tool.from_dict)
        campaigns = self._load_refs(index, index.campaigns, "campaign", Campaign.from_dict)

        graph = MarketGraph(
            index=index,
            audiences=tuple(audiences),
            tools=tuple(tools),
            campaigns=tuple(campaigns),
            evidence=tuple(evidence),
            evidence_source=self.layout.evidence_manifest_path,
            reachable=frozenset(self._reachable),
        )
        logger.info(
            "loaded %d audience(s), %d evidence entr%s, %d tool(s), %d campaign(s)",
            len(audiences), len(evidence), "y" if len(evidence) == 1 else "ies", len(tools), len(campaigns),
        )
        return LoadResult(graph=graph, violations=tuple(self._violations), schema=self._schema)


def load_graph(source: FileSource, layout: Layout) -> LoadResult:
    return GraphLoader(source, layout).load()
