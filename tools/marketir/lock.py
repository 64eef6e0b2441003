"""Lockfile generation and drift verification.

The lockfile maps every file reachable from the index, plus the evidence
manifest and the schema, to the canonical digest of its content:

    {"data/marketing.index.json": "<sha256>", "data/tools/foo.json": "<sha256>", ...}

It is written in canonical form itself, so regenerating it from an
unchanged snapshot is byte-identical. Downstream consumers treat the
committed lockfile as their only trust anchor.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from tools.marketir.config import Layout
from tools.marketir.core import canonical_file_digest, canonical_json_bytes, is_canonical_bytes, parse_json_bytes
from tools.marketir.errors import (
    DriftKind,
    MalformedInputError,
    Report,
    Violation,
    hash_drift,
    malformed_input,
)
from tools.marketir.sources import FileSource

logger = logging.getLogger(__name__)


def lock_paths(reachable: Iterable[str], layout: Layout, source: FileSource) -> List[str]:
    """The sorted set of paths a lockfile covers."""
    paths = set(reachable)
    for extra in (layout.evidence_manifest_path, layout.schema_path):
        if source.exists(extra):
            paths.add(extra)
    return sorted(paths)


def _hash_one(source: FileSource, rel: str) -> Tuple[str, Optional[str], Optional[Violation]]:
    try:
        raw = source.read(rel)
    except OSError as ex:
        return rel, None, malformed_input(rel, f"unreadable: {ex}")
    try:
        return rel, canonical_file_digest(raw, source=rel), None
    except MalformedInputError as ex:
        return rel, None, malformed_input(rel, ex.reason)


def hash_files(
    source: FileSource,
    paths: Iterable[str],
    workers: int = 8,
) -> Tuple[Dict[str, str], List[Violation]]:
    """Canonical digests for ``paths``, computed concurrently.

    The returned mapping is sorted by path regardless of completion order.
    Files that cannot be hashed are reported and left out.
    """
    todo = sorted(set(paths))
    results: Dict[str, str] = {}
    report = Report()
    with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
        for rel, digest, violation in pool.map(lambda p: _hash_one(source, p), todo):
            if violation is not None:
                report.add(violation)
            else:
                results[rel] = digest
    logger.info("hashed %d of %d file(s)", len(results), len(todo))
    return {k: results[k] for k in sorted(results)}, report.violations


def render_lock(mapping: Mapping[str, str]) -> bytes:
    """Serialize a lock mapping in canonical form."""
    return canonical_json_bytes({k: mapping[k] for k in sorted(mapping)})


def parse_lock(raw: bytes, rel: str) -> Tuple[Optional[Dict[str, str]], List[Violation]]:
    """Parse committed lockfile bytes into a ``{path: sha256}`` mapping."""
    try:
        obj = parse_json_bytes(raw, source=rel)
    except MalformedInputError as ex:
        return None, [malformed_input(rel, ex.reason)]
    if not isinstance(obj, dict):
        return None, [malformed_input(rel, "lockfile must be a JSON object mapping path to sha256")]
    out: Dict[str, str] = {}
    errors: List[Violation] = []
    for path, digest in obj.items():
        if not isinstance(digest, str):
            errors.append(malformed_input(rel, f"digest for {path} must be a string", f"$[{path!r}]"))
            continue
        out[path] = digest
    return out, errors


def diff_lock(committed: Mapping[str, str], current: Mapping[str, str]) -> List[Violation]:
    """Per-path discrepancies between a committed lockfile and a fresh mapping.

    ``missing``: a current file has no lockfile entry.
    ``extra``: the lockfile lists a path that is no longer covered.
    ``changed``: both have the path but the digests differ.
    """
    out: List[Violation] = []
    for path in sorted(set(committed) | set(current)):
        if path not in committed:
            out.append(hash_drift(
                path, DriftKind.MISSING, "not in lockfile", actual=current[path],
            ))
        elif path not in current:
            out.append(hash_drift(
                path, DriftKind.EXTRA, "in lockfile but no longer part of the graph", expected=committed[path],
            ))
        elif committed[path] != current[path]:
            out.append(hash_drift(
                path, DriftKind.CHANGED,
                f"digest changed: lockfile {committed[path]}, current {current[path]}",
                expected=committed[path], actual=current[path],
            ))
    return out


def verify_lock(
    raw: bytes,
    rel: str,
    current: Mapping[str, str],
    *,
    strict: bool = False,
) -> List[Violation]:
    """Drift check of committed lockfile bytes against a fresh mapping.

    With ``strict`` the committed bytes must also be in canonical form.
    """
    committed, errors = parse_lock(raw, rel)
    if committed is None:
        return errors
    out = list(errors)
    if strict and not is_canonical_bytes(raw):
        out.append(hash_drift(rel, DriftKind.FORMAT, "lockfile is not in canonical form"))
    out.extend(diff_lock(committed, current))
    return out
