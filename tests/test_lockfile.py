import json
import pathlib

from tools.marketir.config import MarketIRConfig
from tools.marketir.core import canonical_file_digest, canonical_json_bytes
from tools.marketir.engine import check_lock, compute_lock, write_lock
from tools.marketir.errors import ViolationKind
from tools.marketir.lock import diff_lock, hash_files, render_lock, verify_lock
from tools.marketir.sources import DirectorySource, MappingSource

from conftest import write_json

LAYOUT = MarketIRConfig().layout()

EXPECTED_PATHS = [
    "data/audiences/ci-maintainers.json",
    "data/campaigns/zip-meta-map-launch.json",
    "data/marketing.index.json",
    "data/tools/zip-meta-map.json",
    "manifests/evidence.manifest.json",
    "schema/marketing.schema.json",
]


def _lock(root: pathlib.Path):
    result = compute_lock(DirectorySource(root), LAYOUT, workers=4)
    assert result.report.ok, [str(v) for v in result.report]
    return result


def test_lock_covers_reachable_files_manifest_and_schema(market_repo: pathlib.Path):
    result = _lock(market_repo)
    assert list(result.mapping) == EXPECTED_PATHS
    tool = market_repo / "data" / "tools" / "zip-meta-map.json"
    assert result.mapping["data/tools/zip-meta-map.json"] == canonical_file_digest(tool.read_bytes())


def test_orphans_are_not_locked(market_repo: pathlib.Path):
    write_json(market_repo / "data" / "tools" / "forgotten.json", {"id": "tool.forgotten"})
    assert "data/tools/forgotten.json" not in _lock(market_repo).mapping


def test_lockfile_is_canonical_and_reproducible(market_repo: pathlib.Path):
    result = _lock(market_repo)
    digest = write_lock(market_repo, LAYOUT, result)
    raw = (market_repo / "marketing.lock.json").read_bytes()
    assert raw == canonical_json_bytes(json.loads(raw))
    assert raw.endswith(b"}\n")
    assert digest == write_lock(market_repo, LAYOUT, _lock(market_repo))
    assert raw == (market_repo / "marketing.lock.json").read_bytes()


def test_round_trip_has_no_drift(market_repo: pathlib.Path):
    write_lock(market_repo, LAYOUT, _lock(market_repo))
    report = check_lock(DirectorySource(market_repo), LAYOUT, strict=True)
    assert report.ok, [str(v) for v in report]


def test_reformatting_a_file_is_not_drift(market_repo: pathlib.Path):
    write_lock(market_repo, LAYOUT, _lock(market_repo))
    aud = market_repo / "data" / "audiences" / "ci-maintainers.json"
    obj = json.loads(aud.read_text(encoding="utf-8"))
    reordered = dict(reversed(list(obj.items())))
    aud.write_text(json.dumps(reordered, indent=8) + "\n\n", encoding="utf-8")
    assert check_lock(DirectorySource(market_repo), LAYOUT).ok


def test_content_change_is_changed_drift(market_repo: pathlib.Path, edit_json):
    write_lock(market_repo, LAYOUT, _lock(market_repo))
    before = json.loads((market_repo / "marketing.lock.json").read_text())["data/tools/zip-meta-map.json"]
    edit_json(market_repo / "data" / "tools" / "zip-meta-map.json", lambda t: t.update(name="renamed"))
    report = check_lock(DirectorySource(market_repo), LAYOUT)
    drift = report.of_kind(ViolationKind.HASH_DRIFT)
    assert len(drift) == 1
    assert drift[0].location == "data/tools/zip-meta-map.json"
    assert drift[0].details["drift"] == "changed"
    assert drift[0].details["expected"] == before
    assert drift[0].details["actual"] != before


def test_scenario_d_reports_both_digests():
    committed = {"data/tools/foo.json": "abc123"}
    current = {"data/tools/foo.json": "def456"}
    out = verify_lock(json.dumps(committed).encode(), "marketing.lock.json", current)
    assert len(out) == 1
    v = out[0]
    assert v.kind is ViolationKind.HASH_DRIFT
    assert v.location == "data/tools/foo.json"
    assert v.details == {"drift": "changed", "expected": "abc123", "actual": "def456"}


def test_missing_and_extra_paths_are_reported_individually():
    committed = {"a.json": "1" * 64, "gone.json": "2" * 64}
    current = {"a.json": "1" * 64, "new.json": "3" * 64}
    out = diff_lock(committed, current)
    assert [(v.location, v.details["drift"]) for v in out] == [
        ("gone.json", "extra"),
        ("new.json", "missing"),
    ]


def test_adding_a_tool_shows_up_as_missing(market_repo: pathlib.Path, edit_json):
    write_lock(market_repo, LAYOUT, _lock(market_repo))
    write_json(market_repo / "data" / "tools" / "other.json", {"id": "tool.other"})
    edit_json(market_repo / "data" / "marketing.index.json", lambda i: i["tools"].append({"ref": "tools/other.json"}))
    report = check_lock(DirectorySource(market_repo), LAYOUT)
    assert [(v.location, v.details["drift"]) for v in report] == [
        ("data/marketing.index.json", "changed"),
        ("data/tools/other.json", "missing"),
    ]


def test_strict_mode_requires_canonical_lockfile(market_repo: pathlib.Path):
    result = _lock(market_repo)
    lock_path = market_repo / "marketing.lock.json"
    lock_path.write_text(json.dumps(result.mapping, indent=2, sort_keys=True) + "\n", encoding="utf-8")

    assert check_lock(DirectorySource(market_repo), LAYOUT).ok
    report = check_lock(DirectorySource(market_repo), LAYOUT, strict=True)
    assert [(v.location, v.details["drift"]) for v in report] == [("marketing.lock.json", "format")]


def test_missing_or_garbage_lockfile(market_repo: pathlib.Path):
    report = check_lock(DirectorySource(market_repo), LAYOUT)
    assert [v.kind for v in report] == [ViolationKind.MALFORMED_INPUT]

    (market_repo / "marketing.lock.json").write_text("[1, 2]", encoding="utf-8")
    report = check_lock(DirectorySource(market_repo), LAYOUT)
    assert [v.kind for v in report] == [ViolationKind.MALFORMED_INPUT]


def test_unhashable_file_is_reported_and_left_out(market_repo: pathlib.Path):
    (market_repo / "data" / "tools" / "zip-meta-map.json").write_text("{ broken", encoding="utf-8")
    result = compute_lock(DirectorySource(market_repo), LAYOUT)
    assert "data/tools/zip-meta-map.json" not in result.mapping
    assert [v.location for v in result.report] == ["data/tools/zip-meta-map.json"]


def test_hash_order_is_independent_of_worker_count():
    files = {f"data/f{i:03d}.json": json.dumps({"n": i, "pad": "x" * (i % 7)}) for i in range(60)}
    source = MappingSource(files)
    one, _ = hash_files(source, reversed(list(files)), workers=1)
    many, _ = hash_files(source, files, workers=16)
    assert one == many
    assert list(many) == sorted(files)
    assert render_lock(one) == render_lock(many)


def test_lone_surrogate_is_reported_not_raised(market_repo: pathlib.Path):
    aud = market_repo / "data" / "audiences" / "ci-maintainers.json"
    aud.write_text('{"id": "aud.ci-maintainers", "name": "x\\ud800"}', encoding="utf-8")

    result = compute_lock(DirectorySource(market_repo), LAYOUT)
    assert "data/audiences/ci-maintainers.json" not in result.mapping
    assert "data/tools/zip-meta-map.json" in result.mapping
    assert [(v.kind, v.location) for v in result.report] == [
        (ViolationKind.MALFORMED_INPUT, "data/audiences/ci-maintainers.json"),
    ]

    (market_repo / "marketing.lock.json").write_bytes(render_lock(result.mapping))
    report = check_lock(DirectorySource(market_repo), LAYOUT, strict=True)
    assert [v.kind for v in report] == [ViolationKind.MALFORMED_INPUT]
