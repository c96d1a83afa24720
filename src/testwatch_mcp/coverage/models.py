"""Coverage snapshot data model."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping

METRIC_NAMES: tuple[str, ...] = ("lines", "statements", "functions", "branches")

# Percentage-only reports carry no counts; record them on this basis.
PERCENT_BASIS = 10_000


@dataclass(frozen=True, slots=True)
class MetricGroup:
    """Covered/total counts for one metric kind."""

    total: int = 0
    covered: int = 0

    def __post_init__(self) -> None:
        if self.total < 0 or self.covered < 0:
            raise ValueError("Coverage counts must be non-negative")
        if self.covered > self.total:
            raise ValueError(f"Covered count {self.covered} exceeds total {self.total}")

    @property
    def percentage(self) -> float:
        if self.total == 0:
            return 100.0
        return self.covered / self.total * 100

    @classmethod
    def from_percentage(cls, percentage: float) -> "MetricGroup":
        bounded = min(max(percentage, 0.0), 100.0)
        return cls(total=PERCENT_BASIS, covered=round(bounded * PERCENT_BASIS / 100))

    def __add__(self, other: "MetricGroup") -> "MetricGroup":
        return MetricGroup(total=self.total + other.total, covered=self.covered + other.covered)

    def to_dict(self) -> dict[str, Any]:
        return {"total": self.total, "covered": self.covered, "percentage": self.percentage}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "MetricGroup":
        return cls(total=int(payload.get("total", 0)), covered=int(payload.get("covered", 0)))


@dataclass(frozen=True, slots=True)
class FileCoverage:
    """Per-file coverage detail.

    ``metrics`` is empty when the report only carried percentages for the file.
    """

    path: str
    percentage: float
    covered_lines: tuple[int, ...] = ()
    uncovered_lines: tuple[int, ...] = ()
    metrics: Mapping[str, MetricGroup] = field(default_factory=dict)
    source: str | None = None

    @property
    def has_counts(self) -> bool:
        return bool(self.metrics)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "percentage": self.percentage,
            "covered_lines": list(self.covered_lines),
            "uncovered_lines": list(self.uncovered_lines),
            "metrics": {name: group.to_dict() for name, group in self.metrics.items()},
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "FileCoverage":
        return cls(
            path=str(payload["path"]),
            percentage=float(payload.get("percentage", 0.0)),
            covered_lines=tuple(int(line) for line in payload.get("covered_lines", [])),
            uncovered_lines=tuple(int(line) for line in payload.get("uncovered_lines", [])),
            metrics={
                name: MetricGroup.from_dict(group)
                for name, group in (payload.get("metrics") or {}).items()
            },
            source=payload.get("source"),
        )


@dataclass(frozen=True, slots=True)
class CoverageSnapshot:
    """Merged coverage across every suite that reported it."""

    lines: MetricGroup = MetricGroup()
    statements: MetricGroup = MetricGroup()
    functions: MetricGroup = MetricGroup()
    branches: MetricGroup = MetricGroup()
    files: Mapping[str, FileCoverage] = field(default_factory=dict)
    known_paths: frozenset[str] = frozenset()
    source: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "known_paths", frozenset(self.known_paths) | frozenset(self.files))

    def metric(self, name: str) -> MetricGroup:
        if name not in METRIC_NAMES:
            raise KeyError(name)
        return getattr(self, name)

    def with_files(
        self,
        files: Mapping[str, FileCoverage],
        *,
        known_paths: Iterable[str] | None = None,
        fallback: "CoverageSnapshot | None" = None,
    ) -> "CoverageSnapshot":
        """Return a snapshot over ``files`` with totals recomputed from them.

        When any file lacks counts the totals of ``fallback`` (or ``self``) are kept.
        """

        totals = _sum_metrics(files.values())
        base = fallback or self
        if totals is None:
            totals = {name: base.metric(name) for name in METRIC_NAMES}
        known = frozenset(known_paths) if known_paths is not None else self.known_paths
        return replace(self, files=dict(files), known_paths=known, **totals)

    def summary(self) -> dict[str, float]:
        return {name: round(self.metric(name).percentage, 2) for name in METRIC_NAMES}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {name: self.metric(name).to_dict() for name in METRIC_NAMES}
        payload["files"] = {path: entry.to_dict() for path, entry in sorted(self.files.items())}
        payload["known_paths"] = sorted(self.known_paths)
        payload["source"] = self.source
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "CoverageSnapshot":
        files = {
            path: FileCoverage.from_dict({"path": path, **entry})
            for path, entry in (payload.get("files") or {}).items()
        }
        return cls(
            **{name: MetricGroup.from_dict(payload.get(name) or {}) for name in METRIC_NAMES},
            files=files,
            known_paths=frozenset(payload.get("known_paths") or ()),
            source=payload.get("source"),
        )


def _sum_metrics(files: Iterable[FileCoverage]) -> dict[str, MetricGroup] | None:
    entries = list(files)
    if not entries or not all(entry.has_counts for entry in entries):
        return None
    totals = {name: MetricGroup() for name in METRIC_NAMES}
    for entry in entries:
        for name in METRIC_NAMES:
            group = entry.metrics.get(name)
            if group is not None:
                totals[name] = totals[name] + group
    return totals


__all__ = ["CoverageSnapshot", "FileCoverage", "METRIC_NAMES", "MetricGroup", "PERCENT_BASIS"]
