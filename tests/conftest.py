import json
import os
import pathlib
import shutil
import sys
from typing import Any, Callable

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import tools`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "perf: performance/benchmark tests (skipped unless MARKETIR_RUN_PERF=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_perf = _env_flag('MARKETIR_RUN_PERF')

    for item in items:
        if 'perf' in item.keywords and not run_perf:
            item.add_marker(pytest.mark.skip(reason='perf tests skipped; set MARKETIR_RUN_PERF=1 to enable'))


@pytest.fixture(autouse=True)
def _clean_marketir_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for k in list(os.environ):
        if k.startswith("MARKETIR_") and k != "MARKETIR_RUN_PERF":
            monkeypatch.delenv(k, raising=False)


EVIDENCE_SHA = "a" * 64


def write_json(path: pathlib.Path, obj: Any) -> pathlib.Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(obj, indent=2) + "\n", encoding="utf-8")
    return path


def zip_meta_map_tool() -> dict:
    return {
        "id": "tool.zip-meta-map",
        "name": "zip-meta-map",
        "claims": [
            {
                "id": "claim.zip-meta-map.deterministic-output",
                "statement": "Same input archive always yields the same map.",
                "status": "proven",
                "evidenceRefs": ["ev.zip-meta-map.golden-run.v1"],
            },
            {
                "id": "claim.zip-meta-map.fast",
                "statement": "Maps a 1 GB archive in under a second.",
                "status": "aspirational",
            },
            {
                "id": "claim.zip-meta-map.legacy-format",
                "statement": "Reads the v0 map format.",
                "status": "deprecated",
            },
        ],
        "messages": [
            {
                "id": "msg.zip-meta-map.web-blurb",
                "channel": "web",
                "text": "Reproducible archive maps.",
                "claimRefs": ["claim.zip-meta-map.deterministic-output"],
            },
            {
                "id": "msg.zip-meta-map.social",
                "channel": "social",
                "text": "Fast maps, soon.",
                "claimRefs": ["claim.zip-meta-map.fast"],
            },
        ],
        "audienceRefs": ["aud.ci-maintainers"],
        "press": {
            "quotes": [
                {
                    "quote": "Finally, byte-stable manifests.",
                    "attribution": "A maintainer",
                    "claimRefs": ["claim.zip-meta-map.deterministic-output"],
                    "evidenceRefs": ["ev.zip-meta-map.golden-run.v1"],
                }
            ]
        },
        "targeting": {
            "keywords": ["zip", "manifest"],
            "topics": ["reproducible-builds"],
            "seedRepos": [{"owner": "example", "repo": "archiver"}],
            "exclusions": ["spam"],
        },
    }


@pytest.fixture
def market_repo(tmp_path: pathlib.Path) -> pathlib.Path:
    """A small, fully valid MarketIR checkout rooted at ``tmp_path``."""
    root = tmp_path
    data = root / "data"
    write_json(data / "marketing.index.json", {
        "version": "1",
        "tools": [{"ref": "tools/zip-meta-map.json"}],
        "audiences": [{"ref": "audiences/ci-maintainers.json"}],
        "campaigns": [{"ref": "campaigns/zip-meta-map-launch.json"}],
    })
    write_json(data / "audiences" / "ci-maintainers.json", {
        "id": "aud.ci-maintainers",
        "name": "CI maintainers",
        "painPoints": ["flaky builds"],
        "context": "Own the release pipeline.",
    })
    write_json(data / "tools" / "zip-meta-map.json", zip_meta_map_tool())
    write_json(data / "campaigns" / "zip-meta-map-launch.json", {
        "id": "camp.zip-meta-map.launch",
        "toolRef": "tool.zip-meta-map",
        "audienceRefs": ["aud.ci-maintainers"],
        "phases": [
            {"name": "teaser", "messageRefs": ["msg.zip-meta-map.social"]},
            {"name": "launch", "messageRefs": ["msg.zip-meta-map.web-blurb"]},
            {"name": "follow-up"},
        ],
    })
    write_json(root / "manifests" / "evidence.manifest.json", {
        "entries": [
            {
                "id": "ev.zip-meta-map.golden-run.v1",
                "sha256": EVIDENCE_SHA,
                "bytes": 2048,
                "provenance": {
                    "generator": "golden-run",
                    "sourceCommit": "0123456789abcdef",
                    "notes": "CI artifact",
                },
            }
        ]
    })
    schema_dst = root / "schema" / "marketing.schema.json"
    schema_dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(_REPO_ROOT / "schema" / "marketing.schema.json", schema_dst)
    return root


@pytest.fixture
def edit_json() -> Callable[[pathlib.Path, Callable[[Any], None]], None]:
    """Load a JSON file, mutate it in place with ``fn``, write it back."""
    def _edit(path: pathlib.Path, fn: Callable[[Any], None]) -> None:
        obj = json.loads(path.read_text(encoding="utf-8"))
        fn(obj)
        write_json(path, obj)
    return _edit
