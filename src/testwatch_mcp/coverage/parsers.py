"""Best-effort coverage report parsers.

Each parser takes the suite's combined output, an optional directory where the
suite wrote coverage artifacts, and the project root used to relativise file
paths. Parsers return ``None`` when their format is not present.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Callable, Mapping

from .models import METRIC_NAMES, CoverageSnapshot, FileCoverage, MetricGroup

logger = logging.getLogger(__name__)

CoverageParser = Callable[[str, "Path | None", "Path | None"], "CoverageSnapshot | None"]

SUMMARY_ARTIFACT = "coverage-summary.json"

_ISTANBUL_SUMMARY = re.compile(
    r"^\s*(Statements|Branches|Functions|Lines)\s*:\s*([\d.]+)%"
    r"(?:\s*\(\s*(\d+)\s*/\s*(\d+)\s*\))?",
    re.MULTILINE,
)
_ISTANBUL_ROW = re.compile(
    r"^\s*([^\s|][^|]*?)\s*\|\s*([\d.]+)\s*\|\s*([\d.]+)\s*\|\s*([\d.]+)\s*\|\s*([\d.]+)\s*"
    r"(?:\|\s*([^\n]*?))?\s*$",
    re.MULTILINE,
)
_COVERAGE_PY_HEADER = re.compile(
    r"^Name\s+Stmts\s+Miss(?P<branch>\s+Branch\s+BrPart)?\s+Cover(?P<missing>\s+Missing)?\s*$",
    re.MULTILINE,
)
_COVERAGE_PY_ROW = re.compile(
    r"^(?P<name>\S+)\s+(?P<stmts>\d+)\s+(?P<miss>\d+)"
    r"(?:\s+(?P<branch>\d+)\s+(?P<brpart>\d+))?\s+(?P<cover>\d+(?:\.\d+)?)%"
    r"(?:\s+(?P<missing>.*))?$"
)


def expand_line_ranges(text: str) -> tuple[int, ...]:
    """Expand ``"3-5, 9"`` into ``(3, 4, 5, 9)``; branch arcs like ``12->14`` are skipped."""

    lines: set[int] = set()
    for token in re.split(r"[,\s]+", text.strip()):
        if not token or "->" in token or token == "...":
            continue
        if "-" in token:
            start, _, end = token.partition("-")
            if start.isdigit() and end.isdigit():
                lines.update(range(int(start), int(end) + 1))
        elif token.isdigit():
            lines.add(int(token))
    return tuple(sorted(lines))


def _relativize(path: str, root: Path | None) -> str:
    if root is None:
        return path.replace("\\", "/")
    candidate = Path(path)
    if candidate.is_absolute():
        try:
            return candidate.relative_to(root).as_posix()
        except ValueError:
            return candidate.as_posix()
    return candidate.as_posix()


def parse_istanbul_text(output: str, artifact_dir: Path | None, root: Path | None) -> CoverageSnapshot | None:
    """Parse the Jest/Istanbul text summary block and text table."""

    summary: dict[str, MetricGroup] = {}
    for match in _ISTANBUL_SUMMARY.finditer(output):
        name = match.group(1).lower()
        covered, total = match.group(3), match.group(4)
        if covered is not None and total is not None and int(covered) <= int(total):
            summary[name] = MetricGroup(total=int(total), covered=int(covered))
        else:
            summary[name] = MetricGroup.from_percentage(float(match.group(2)))

    files: dict[str, FileCoverage] = {}
    for match in _ISTANBUL_ROW.finditer(output):
        label = match.group(1).strip()
        stmts, branches, funcs, lines = (float(match.group(index)) for index in range(2, 6))
        if label.lower() == "all files":
            summary.setdefault("statements", MetricGroup.from_percentage(stmts))
            summary.setdefault("branches", MetricGroup.from_percentage(branches))
            summary.setdefault("functions", MetricGroup.from_percentage(funcs))
            summary.setdefault("lines", MetricGroup.from_percentage(lines))
            continue
        if "." not in Path(label).name:
            # directory rows
            continue
        path = _relativize(label, root)
        files[path] = FileCoverage(
            path=path,
            percentage=lines,
            uncovered_lines=expand_line_ranges(match.group(6) or ""),
        )

    if not summary and not files:
        return None
    return CoverageSnapshot(
        **{name: summary.get(name, MetricGroup()) for name in METRIC_NAMES},
        files=files,
    )


def parse_coverage_py(output: str, artifact_dir: Path | None, root: Path | None) -> CoverageSnapshot | None:
    """Parse the coverage.py terminal report (``--cov-report=term-missing``)."""

    header = _COVERAGE_PY_HEADER.search(output)
    if header is None:
        return None

    files: dict[str, FileCoverage] = {}
    totals: dict[str, MetricGroup] | None = None
    for raw_line in output[header.end() :].splitlines():
        line = raw_line.rstrip()
        if not line or set(line) <= {"-", "="}:
            continue
        match = _COVERAGE_PY_ROW.match(line)
        if match is None:
            if files or totals:
                break
            continue
        statements = int(match.group("stmts"))
        missed = min(int(match.group("miss")), statements)
        metrics = {
            "lines": MetricGroup(total=statements, covered=statements - missed),
            "statements": MetricGroup(total=statements, covered=statements - missed),
            "functions": MetricGroup(),
            "branches": MetricGroup(),
        }
        if match.group("branch") is not None:
            branches = int(match.group("branch"))
            partial = min(int(match.group("brpart")), branches)
            metrics["branches"] = MetricGroup(total=branches, covered=branches - partial)

        if match.group("name") == "TOTAL":
            totals = metrics
            continue
        path = _relativize(match.group("name"), root)
        files[path] = FileCoverage(
            path=path,
            percentage=metrics["lines"].percentage,
            uncovered_lines=expand_line_ranges(match.group("missing") or ""),
            metrics=metrics,
        )

    if not files and totals is None:
        return None
    snapshot = CoverageSnapshot(**(totals or {}), files={})
    return snapshot.with_files(files)


def parse_istanbul_json(output: str, artifact_dir: Path | None, root: Path | None) -> CoverageSnapshot | None:
    """Parse an Istanbul ``coverage-summary.json`` artifact."""

    if artifact_dir is None:
        return None
    artifact = Path(artifact_dir) / SUMMARY_ARTIFACT
    if not artifact.is_file():
        return None
    try:
        document = json.loads(artifact.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning(
            "Unreadable coverage artifact",
            extra={"path": str(artifact), "error": str(exc)},
        )
        return None
    if not isinstance(document, dict) or "total" not in document:
        return None

    files: dict[str, FileCoverage] = {}
    for raw_path, entry in document.items():
        if raw_path == "total" or not isinstance(entry, Mapping):
            continue
        metrics = {name: _json_metric(entry.get(name)) for name in METRIC_NAMES}
        path = _relativize(raw_path, root)
        files[path] = FileCoverage(
            path=path,
            percentage=metrics["lines"].percentage,
            metrics=metrics,
        )

    snapshot = CoverageSnapshot(
        **{name: _json_metric(document["total"].get(name)) for name in METRIC_NAMES},
    )
    return snapshot.with_files(files) if files else snapshot


def _json_metric(payload: Any) -> MetricGroup:
    if not isinstance(payload, Mapping):
        return MetricGroup()
    total = int(payload.get("total", 0) or 0)
    covered = int(payload.get("covered", 0) or 0)
    return MetricGroup(total=total, covered=min(covered, total))


__all__ = [
    "CoverageParser",
    "SUMMARY_ARTIFACT",
    "expand_line_ranges",
    "parse_coverage_py",
    "parse_istanbul_json",
    "parse_istanbul_text",
]
