"""MarketIR command line.

    marketir validate [--json]
    marketir lock [--out PATH] [--check] [--strict] [--json]
    marketir hash FILE...

Exit codes: 0 on success, 2 when violations or drift were found or the
configuration is invalid.
"""

from __future__ import annotations

import argparse
import json
import logging
import pathlib
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from tools.marketir.config import MarketIRConfig, load_config
from tools.marketir.core import canonical_file_digest
from tools.marketir.engine import check_lock, compute_lock, validate_graph, write_lock
from tools.marketir.errors import ConfigError, MalformedInputError, Report
from tools.marketir.sources import DirectorySource

logger = logging.getLogger(__name__)


class StructuredFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        event: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            event["exception"] = self.formatException(record.exc_info)
        return json.dumps(event, default=str)


def configure_logging(level: str, fmt: str = "text") -> None:
    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    handler.set_name("marketir")
    root = logging.getLogger()
    for h in list(root.handlers):
        if h.get_name() == "marketir":
            root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper()))


def _print_report(report: Report, ok_message: str, as_json: bool) -> int:
    if as_json:
        print(json.dumps(report.to_dict(), indent=2, sort_keys=True))
    elif report.ok:
        print(f"OK: {ok_message}")
    else:
        print("FAIL:")
        for v in report:
            print("  -", v)
        print(f"\n{len(report)} error(s) found.")
    return 0 if report.ok else 2


def cmd_validate(args: argparse.Namespace, cfg: MarketIRConfig) -> int:
    source = DirectorySource(args.root)
    report = validate_graph(source, cfg.layout())
    return _print_report(report, "all validations passed", args.json)


def cmd_lock(args: argparse.Namespace, cfg: MarketIRConfig) -> int:
    layout = cfg.layout()
    source = DirectorySource(args.root)
    workers = cfg.get("hash_workers")

    if args.check:
        report = check_lock(source, layout, workers=workers, strict=args.strict)
        return _print_report(report, f"{layout.lock_path} matches the current graph", args.json)

    result = compute_lock(source, layout, workers=workers)
    if not result.report.ok:
        return _print_report(result.report, "", args.json)
    digest = write_lock(args.root, layout, result)
    if args.json:
        print(json.dumps({"lock_path": layout.lock_path, "entries": len(result.mapping), "sha256": digest}, sort_keys=True))
    else:
        print(f"Wrote {layout.lock_path} ({len(result.mapping)} entries, sha256 {digest})")
    return 0


def cmd_hash(args: argparse.Namespace, cfg: MarketIRConfig) -> int:
    rc = 0
    for f in args.files:
        p = pathlib.Path(f)
        try:
            digest = canonical_file_digest(p.read_bytes(), source=f)
        except (OSError, MalformedInputError) as ex:
            print(f"ERROR: {ex}", file=sys.stderr)
            rc = 2
            continue
        print(f"{digest}  {f}")
    return rc


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="marketir", description="MarketIR graph validator and lockfile engine")
    ap.add_argument("--root", default=".", help="Repository root (default: current directory)")
    ap.add_argument("--config", default="", help="YAML config file (default: <root>/marketir.yaml when present)")
    ap.add_argument("--log-level", default=None, help="Override the configured log level")
    sub = ap.add_subparsers(dest="cmd", required=True)

    v = sub.add_parser("validate", help="Validate schema, identities and references")
    v.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    v.set_defaults(func=cmd_validate)

    lk = sub.add_parser("lock", help="Generate the lockfile, or check it for drift")
    lk.add_argument("--out", default=None, help="Lockfile path relative to --root (default: config lock_path)")
    lk.add_argument("--check", action="store_true", help="Compare against the committed lockfile without writing")
    lk.add_argument("--strict", action="store_true", help="With --check, also require canonical lockfile bytes")
    lk.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    lk.set_defaults(func=cmd_lock)

    h = sub.add_parser("hash", help="Print canonical digests of JSON files")
    h.add_argument("files", nargs="+")
    h.set_defaults(func=cmd_hash)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    overrides: Dict[str, Any] = {"log_level": args.log_level}
    if getattr(args, "out", None):
        overrides["lock_path"] = args.out
    try:
        cfg = load_config(args.root, args.config or None, overrides)
    except ConfigError as ex:
        print(f"ERROR: {ex}", file=sys.stderr)
        return 2
    configure_logging(cfg.get("log_level"), cfg.get("log_format"))
    return args.func(args, cfg)


if __name__ == "__main__":
    sys.exit(main())
