"""Core primitives for the MarketIR integrity engine.

This module provides the foundational utilities used throughout the engine:
- Cryptographic hashing (SHA-256)
- Canonical JSON serialization (sorted keys, authored array order)
- JSON loading with consistent encoding
- POSIX path handling relative to the repository root

The canonical form defined here is the bit-exact contract shared with any
downstream consumer of the lockfile. Changing it invalidates every
committed lockfile.
"""

from __future__ import annotations

import hashlib
import json
import pathlib
import posixpath
import re
from typing import Any, Union

from tools.marketir.errors import MalformedInputError

# Repository root, computed once at module load
REPO_ROOT = pathlib.Path(__file__).resolve().parents[2]


def sha256_bytes(data: bytes) -> str:
    """Compute SHA-256 hash of bytes, returning lowercase hex string."""
    return hashlib.sha256(data).hexdigest()


def load_json(path: pathlib.Path) -> Any:
    """Load JSON file with UTF-8 encoding."""
    return json.loads(pathlib.Path(path).read_text(encoding="utf-8"))


def parse_json_bytes(data: Union[bytes, str], *, source: str = "") -> Any:
    """Parse JSON content, raising MalformedInputError on failure."""
    try:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        return json.loads(data)
    except (UnicodeDecodeError, ValueError) as ex:
        raise MalformedInputError(f"invalid JSON: {ex}", source=source) from ex


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize object to canonical JSON bytes.

    Properties:
    - Keys sorted lexicographically, recursively
    - Arrays kept in authored order
    - No insignificant whitespace
    - UTF-8 encoded, no ASCII escaping
    - Exactly one trailing newline
    """
    try:
        text = json.dumps(
            obj,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
        data = text.encode("utf-8")
    except ValueError as ex:
        # UnicodeEncodeError (lone surrogates) is a ValueError too.
        raise MalformedInputError(f"not representable as canonical JSON: {ex}") from ex
    return data + b"\n"


def canonical_digest(obj: Any) -> str:
    """SHA-256 of the canonical form of an already-parsed JSON value."""
    return sha256_bytes(canonical_json_bytes(obj))


def canonical_file_digest(data: Union[bytes, str], *, source: str = "") -> str:
    """Canonical digest of a JSON-bearing file's content.

    The digest covers the logical content, not the raw bytes: two files that
    differ only in whitespace or key order hash identically.
    """
    return canonical_digest(parse_json_bytes(data, source=source))


def is_canonical_bytes(data: bytes) -> bool:
    """True when ``data`` is byte-identical to its own canonical form."""
    try:
        return canonical_json_bytes(parse_json_bytes(data)) == data
    except MalformedInputError:
        return False


def write_canonical_json(path: pathlib.Path, obj: Any) -> str:
    """Write canonical JSON to file, returning the digest of the written bytes."""
    canonical = canonical_json_bytes(obj)
    p = pathlib.Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(canonical)
    return sha256_bytes(canonical)


def join_rel(base: str, ref: str) -> str:
    """Join a repo-relative POSIX directory with a relative ref.

    Raises ValueError when ``ref`` is absolute or escapes ``base``.
    """
    r = str(ref or "").replace("\\", "/").strip()
    if not r:
        raise ValueError("empty ref")
    if r.startswith("/") or re.match(r"^[A-Za-z]:", r):
        raise ValueError(f"ref must be relative: {ref}")
    norm = posixpath.normpath(r)
    if norm == ".." or norm.startswith("../"):
        raise ValueError(f"ref escapes {base}/: {ref}")
    b = posixpath.normpath(str(base or ".").replace("\\", "/"))
    return norm if b == "." else f"{b}/{norm}"
