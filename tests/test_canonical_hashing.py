import hashlib
import json
import pathlib

import pytest

from tools.marketir.core import (
    canonical_digest,
    canonical_file_digest,
    canonical_json_bytes,
    is_canonical_bytes,
    join_rel,
    write_canonical_json,
)
from tools.marketir.errors import MalformedInputError


def test_canonical_bytes_sort_keys_recursively_and_keep_array_order():
    obj = {"b": 1, "a": {"z": [3, 1, 2], "y": "x"}}
    assert canonical_json_bytes(obj) == b'{"a":{"y":"x","z":[3,1,2]},"b":1}\n'


def test_canonical_bytes_end_with_exactly_one_newline():
    raw = canonical_json_bytes({"a": 1})
    assert raw.endswith(b"\n")
    assert not raw.endswith(b"\n\n")


def test_canonical_bytes_keep_non_ascii_as_utf8():
    assert canonical_json_bytes({"name": "café"}) == '{"name":"café"}\n'.encode("utf-8")


def test_digest_is_sha256_of_canonical_bytes():
    obj = {"id": "tool.zip-meta-map"}
    assert canonical_digest(obj) == hashlib.sha256(canonical_json_bytes(obj)).hexdigest()


def test_key_order_and_whitespace_do_not_change_digest():
    a = b'{"id": "aud.x", "name": "X", "painPoints": ["a", "b"]}'
    b = b'{\n  "painPoints": ["a","b"],\n  "name":"X",\n    "id":"aud.x"\n}\n\n'
    assert canonical_file_digest(a) == canonical_file_digest(b)


def test_array_order_changes_digest():
    a = json.dumps({"claimRefs": ["c1", "c2"]}).encode()
    b = json.dumps({"claimRefs": ["c2", "c1"]}).encode()
    assert canonical_file_digest(a) != canonical_file_digest(b)


def test_hashing_is_deterministic():
    raw = json.dumps({"entries": [{"id": "ev.t.s.v1", "bytes": 10}]}, indent=4).encode()
    assert canonical_file_digest(raw) == canonical_file_digest(raw)


def test_invalid_json_is_malformed_input():
    with pytest.raises(MalformedInputError):
        canonical_file_digest(b"{not json", source="data/tools/bad.json")


def test_nan_is_rejected():
    with pytest.raises(MalformedInputError):
        canonical_json_bytes({"x": float("nan")})


def test_lone_surrogate_is_malformed_input():
    raw = b'{"name": "x\\ud800"}'
    with pytest.raises(MalformedInputError):
        canonical_file_digest(raw, source="data/audiences/a.json")
    assert not is_canonical_bytes(raw)


def test_is_canonical_bytes():
    obj = {"b": [1, 2], "a": "x"}
    assert is_canonical_bytes(canonical_json_bytes(obj))
    assert not is_canonical_bytes(json.dumps(obj, indent=2).encode() + b"\n")
    assert not is_canonical_bytes(canonical_json_bytes(obj) + b"\n")
    assert not is_canonical_bytes(b"nope")


def test_write_canonical_json_returns_digest_of_written_bytes(tmp_path: pathlib.Path):
    out = tmp_path / "nested" / "lock.json"
    digest = write_canonical_json(out, {"b": "2", "a": "1"})
    assert out.read_bytes() == b'{"a":"1","b":"2"}\n'
    assert digest == hashlib.sha256(out.read_bytes()).hexdigest()


@pytest.mark.parametrize(
    "ref, expected",
    [
        ("tools/foo.json", "data/tools/foo.json"),
        ("./tools/foo.json", "data/tools/foo.json"),
        ("tools/../audiences/a.json", "data/audiences/a.json"),
        ("tools\\foo.json", "data/tools/foo.json"),
    ],
)
def test_join_rel(ref, expected):
    assert join_rel("data", ref) == expected


@pytest.mark.parametrize("ref", ["", "/etc/passwd", "../secrets.json", "tools/../../x.json", "C:/x.json"])
def test_join_rel_rejects_escaping_refs(ref):
    with pytest.raises(ValueError):
        join_rel("data", ref)
