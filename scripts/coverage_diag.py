"""testwatch coverage diagnostics CLI."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from testwatch_mcp.config import get_settings
from testwatch_mcp.coverage import CoverageSnapshot, CoverageStore
from testwatch_mcp.project import ConfigError, ProjectConfig, load_project_config


def load_config(args: argparse.Namespace) -> ProjectConfig:
    try:
        return load_project_config(args.config, settings=get_settings(), project_root=args.project)
    except ConfigError as exc:
        print(f"Invalid configuration: {exc}")
        raise SystemExit(1)


def load_snapshot(config: ProjectConfig) -> tuple[CoverageStore, CoverageSnapshot]:
    store = CoverageStore(
        config.coverage.persist_path,
        project_root=config.project_root,
        track_patterns=config.coverage.track_patterns,
        ignore_patterns=config.coverage.ignore_patterns,
    )
    snapshot = store.load()
    if snapshot is None:
        print(f"No coverage snapshot at {store.snapshot_path}")
        raise SystemExit(1)
    return store, snapshot


def cmd_summary(args: argparse.Namespace) -> None:
    config = load_config(args)
    store, snapshot = load_snapshot(config)
    payload = {
        "path": str(store.snapshot_path),
        "source": snapshot.source,
        "files": len(snapshot.files),
        "known_paths": len(snapshot.known_paths),
        "coverage": snapshot.summary(),
        "recommendations": store.recommendations(snapshot, config.coverage.thresholds),
    }
    if args.json:
        print(json.dumps(payload, indent=2))
    else:
        for name, value in payload["coverage"].items():
            print(f"{name:<11}{value:6.2f}%")
        print(f"files: {payload['files']} (known: {payload['known_paths']})")
        for advice in payload["recommendations"]:
            print(f"- {advice}")


def cmd_gaps(args: argparse.Namespace) -> None:
    config = load_config(args)
    store, snapshot = load_snapshot(config)
    gaps = store.gaps(snapshot, config.coverage.thresholds, paths=args.paths or None)
    if args.json:
        print(json.dumps(gaps, indent=2))
    else:
        for path in gaps:
            entry = snapshot.files.get(path)
            percentage = f"{entry.percentage:.1f}%" if entry is not None else "uncovered"
            print(f"{path}: {percentage}")


def cmd_files(args: argparse.Namespace) -> None:
    config = load_config(args)
    _, snapshot = load_snapshot(config)
    entries = sorted(snapshot.files.values(), key=lambda entry: entry.percentage)
    if args.limit is not None and args.limit > 0:
        entries = entries[: args.limit]
    print(json.dumps([entry.to_dict() for entry in entries], indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="testwatch coverage diagnostics")
    parser.add_argument("--config", type=Path, help="Path to testwatch.yaml")
    parser.add_argument("--project", type=Path, help="Project root")
    sub = parser.add_subparsers(dest="cmd")

    p_summary = sub.add_parser("summary", help="Show totals and recommendations")
    p_summary.add_argument("--json", action="store_true", help="Output JSON")
    p_summary.set_defaults(func=cmd_summary)

    p_gaps = sub.add_parser("gaps", help="List files under the per-file threshold")
    p_gaps.add_argument("paths", nargs="*", help="Restrict to these paths")
    p_gaps.add_argument("--json", action="store_true", help="Output JSON")
    p_gaps.set_defaults(func=cmd_gaps)

    p_files = sub.add_parser("files", help="Per-file detail, lowest coverage first")
    p_files.add_argument(
        "--limit",
        type=int,
        default=None,
        help="If provided, show only the N least covered files",
    )
    p_files.set_defaults(func=cmd_files)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
