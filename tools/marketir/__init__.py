"""MarketIR integrity engine — v0.3.0

Referential integrity and reproducibility for the MarketIR content graph
(tools, audiences, campaigns, evidence, and the claims and messages nested
in tools).

Architecture:
    marketir/
    ├── __init__.py      # Package entry, version, public API
    ├── core.py          # Primitives: sha256, JSON, canonical form
    ├── config.py        # YAML + environment configuration
    ├── errors.py        # Violation taxonomy, Report, exceptions
    ├── model.py         # Typed entity variants
    ├── schema.py        # JSON Schema validation per entity kind
    ├── registry.py      # Identity / reference registry
    ├── sources.py       # Snapshot file sources
    ├── loader.py        # Index -> in-memory graph
    ├── integrity.py     # Cross-reference and business rule checks
    ├── lock.py          # Lockfile generation and drift verification
    ├── engine.py        # Run orchestration
    └── cli.py           # Command-line interface
"""

__version__ = "0.3.0"

from tools.marketir.core import (
    REPO_ROOT,
    canonical_digest,
    canonical_file_digest,
    canonical_json_bytes,
    load_json,
    sha256_bytes,
)
from tools.marketir.config import Layout, MarketIRConfig, load_config
from tools.marketir.errors import (
    ConfigError,
    DriftKind,
    MalformedInputError,
    MarketIRError,
    RefKind,
    Report,
    Violation,
    ViolationKind,
)
from tools.marketir.engine import LockResult, check_lock, compute_lock, validate_graph, write_lock
from tools.marketir.loader import GraphLoader, LoadResult, load_graph
from tools.marketir.registry import IdentityRegistry, IdKind, SourceLocation, build_registry
from tools.marketir.schema import SchemaValidator
from tools.marketir.sources import DirectorySource, FileSource, MappingSource

__all__ = [
    "__version__",
    "REPO_ROOT",
    "canonical_digest",
    "canonical_file_digest",
    "canonical_json_bytes",
    "load_json",
    "sha256_bytes",
    "Layout",
    "MarketIRConfig",
    "load_config",
    "ConfigError",
    "DriftKind",
    "MalformedInputError",
    "MarketIRError",
    "RefKind",
    "Report",
    "Violation",
    "ViolationKind",
    "LockResult",
    "check_lock",
    "compute_lock",
    "validate_graph",
    "write_lock",
    "GraphLoader",
    "LoadResult",
    "load_graph",
    "IdentityRegistry",
    "IdKind",
    "SourceLocation",
    "build_registry",
    "SchemaValidator",
    "DirectorySource",
    "FileSource",
    "MappingSource",
]
