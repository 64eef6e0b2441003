"""Run orchestration.

``validate_graph`` runs load -> schema -> identity -> integrity and returns
one report. ``compute_lock`` / ``check_lock`` share the loader's
reachability set but are otherwise an independent pass over the same files.
"""

from __future__ import annotations

import logging
import pathlib
from dataclasses import dataclass, field
from typing import Dict, Union

from tools.marketir.config import Layout
from tools.marketir.core import write_canonical_json
from tools.marketir.errors import Report, malformed_input
from tools.marketir.integrity import check_integrity
from tools.marketir.loader import load_graph
from tools.marketir.lock import hash_files, lock_paths, render_lock, verify_lock
from tools.marketir.registry import build_registry
from tools.marketir.sources import FileSource

logger = logging.getLogger(__name__)


@dataclass
class LockResult:
    mapping: Dict[str, str] = field(default_factory=dict)
    report: Report = field(default_factory=Report)

    def render(self) -> bytes:
        return render_lock(self.mapping)


def validate_graph(source: FileSource, layout: Layout) -> Report:
    """Validate the whole graph, collecting every defect in one report."""
    loaded = load_graph(source, layout)
    report = Report(loaded.violations)
    graph = loaded.graph
    if graph is None:
        logger.error("index %s could not be loaded; nothing else checked", layout.index_path)
        return report

    registry, duplicates = build_registry(graph)
    report.extend(duplicates)
    report.extend(check_integrity(graph, registry, source.list_files(layout.data_dir)))
    logger.info("%d unique id(s) checked", len(registry))
    return report


def compute_lock(source: FileSource, layout: Layout, workers: int = 8) -> LockResult:
    """Canonical digests of every lock-covered file."""
    loaded = load_graph(source, layout)
    if loaded.graph is None:
        return LockResult(report=Report(loaded.violations))
    mapping, problems = hash_files(source, lock_paths(loaded.reachable, layout, source), workers)
    return LockResult(mapping=mapping, report=Report(problems))


def write_lock(root: Union[str, pathlib.Path], layout: Layout, result: LockResult) -> str:
    """Write the lockfile under ``root``; returns the sha256 of the written bytes."""
    out = pathlib.Path(root).joinpath(*layout.lock_path.split("/"))
    digest = write_canonical_json(out, result.mapping)
    logger.info("wrote %s (%d entries)", layout.lock_path, len(result.mapping))
    return digest


def check_lock(source: FileSource, layout: Layout, workers: int = 8, strict: bool = False) -> Report:
    """Read-only drift check against the committed lockfile."""
    result = compute_lock(source, layout, workers)
    report = Report(result.report)
    try:
        raw = source.read(layout.lock_path)
    except FileNotFoundError:
        report.add(malformed_input(layout.lock_path, "lockfile not found"))
        return report
    report.extend(verify_lock(raw, layout.lock_path, result.mapping, strict=strict))
    return report
