"""Coverage ingestion, merging and persistence."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Sequence

from ..suites import strategies as suite_strategies
from ..suites.models import SuiteKind
from ..suites.patterns import match_any, normalize_path
from .models import METRIC_NAMES, CoverageSnapshot

if TYPE_CHECKING:
    from ..project.models import CoverageThresholds

logger = logging.getLogger(__name__)

SNAPSHOT_FILENAME = "coverage-snapshot.json"
LOW_FILE_COVERAGE = 50.0


class CoverageStore:
    """Parses suite output into snapshots and keeps the merged snapshot on disk."""

    def __init__(
        self,
        persist_path: Path | None = None,
        *,
        project_root: Path | None = None,
        track_patterns: Sequence[str] = (),
        ignore_patterns: Sequence[str] = (),
    ) -> None:
        self._persist_path = Path(persist_path) if persist_path is not None else None
        self._project_root = Path(project_root) if project_root is not None else None
        self._track_patterns = tuple(track_patterns)
        self._ignore_patterns = tuple(ignore_patterns)

    @property
    def snapshot_path(self) -> Path | None:
        if self._persist_path is None:
            return None
        return self._persist_path / SNAPSHOT_FILENAME

    def parse(
        self,
        kind: SuiteKind | str,
        raw_output: str,
        artifact_dir: Path | None = None,
    ) -> CoverageSnapshot | None:
        """Run the suite kind's parser chain over the output; first hit wins."""

        suite_kind = SuiteKind(kind)
        strategy = suite_strategies.strategy_for(suite_kind)
        for parser in strategy.parsers:
            snapshot = parser(raw_output, artifact_dir, self._project_root)
            if snapshot is not None:
                return _tag(snapshot, suite_kind.value)
        logger.debug("No coverage found in suite output", extra={"suite": suite_kind.value})
        return None

    @staticmethod
    def merge(existing: CoverageSnapshot | None, incoming: CoverageSnapshot | None) -> CoverageSnapshot | None:
        """Replace per-file entries from ``incoming`` and recompute totals.

        Files ``incoming`` does not report keep their existing entries.
        """

        if existing is None:
            return incoming
        if incoming is None:
            return existing

        files = dict(existing.files)
        files.update(incoming.files)

        source = incoming.source if incoming.source == existing.source else None
        fallback = existing if _is_empty(incoming) else incoming
        return replace(existing, source=source).with_files(
            files,
            known_paths=existing.known_paths | incoming.known_paths,
            fallback=fallback,
        )

    def persist(self, snapshot: CoverageSnapshot, path: Path | None = None) -> bool:
        """Atomically write ``snapshot``; failures are logged and reported as ``False``."""

        target = Path(path) if path is not None else self.snapshot_path
        if target is None:
            return False
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            descriptor, temp_name = tempfile.mkstemp(
                prefix=f".{target.name}.", suffix=".tmp", dir=target.parent
            )
            try:
                with os.fdopen(descriptor, "w", encoding="utf-8") as handle:
                    json.dump(snapshot.to_dict(), handle, indent=2)
                os.replace(temp_name, target)
            except BaseException:
                Path(temp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            logger.warning(
                "Failed to persist coverage snapshot",
                extra={"path": str(target), "error": str(exc)},
            )
            return False
        return True

    def load(self, path: Path | None = None) -> CoverageSnapshot | None:
        """Read the persisted snapshot; unreadable or absent files mean no data."""

        target = Path(path) if path is not None else self.snapshot_path
        if target is None or not target.exists():
            return None
        try:
            payload = json.loads(target.read_text(encoding="utf-8"))
            return CoverageSnapshot.from_dict(payload)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning(
                "Failed to load coverage snapshot",
                extra={"path": str(target), "error": str(exc)},
            )
            return None

    def is_tracked(self, path: str) -> bool:
        normalized = normalize_path(path)
        if not match_any(normalized, self._track_patterns):
            return False
        return not match_any(normalized, self._ignore_patterns)

    def gaps(
        self,
        snapshot: CoverageSnapshot | None,
        thresholds: "CoverageThresholds",
        paths: Iterable[str] | None = None,
    ) -> list[str]:
        """Return paths under the per-file threshold or tracked but uncovered."""

        if snapshot is None:
            return []
        if paths is None:
            candidates: Iterable[str] = sorted(set(snapshot.files) | snapshot.known_paths)
        else:
            candidates = paths

        found: list[str] = []
        for raw_path in candidates:
            path = normalize_path(raw_path)
            if path in found:
                continue
            entry = snapshot.files.get(path)
            if entry is not None:
                if entry.percentage < thresholds.per_file:
                    found.append(path)
            elif path in snapshot.known_paths or self.is_tracked(path):
                found.append(path)
        return found

    @staticmethod
    def recommendations(snapshot: CoverageSnapshot | None, thresholds: "CoverageThresholds") -> list[str]:
        if snapshot is None:
            return []

        advice: list[str] = []
        lines = snapshot.lines.percentage
        if lines < thresholds.unit:
            advice.append(f"Increase unit test coverage to {thresholds.unit:g}% (current: {lines:.1f}%)")

        branches = snapshot.branches.percentage
        if branches < thresholds.integration:
            advice.append(f"Add integration tests for untested branches ({branches:.1f}% covered)")

        low = [path for path, entry in sorted(snapshot.files.items()) if entry.percentage < LOW_FILE_COVERAGE]
        if low:
            more = f" and {len(low) - 3} more" if len(low) > 3 else ""
            advice.append(f"Critical files need tests: {', '.join(low[:3])}{more}")
        return advice


def _tag(snapshot: CoverageSnapshot, source: str) -> CoverageSnapshot:
    files = {path: replace(entry, source=source) for path, entry in snapshot.files.items()}
    return replace(snapshot, files=files, source=source)


def _is_empty(snapshot: CoverageSnapshot) -> bool:
    return not snapshot.files and all(snapshot.metric(name).total == 0 for name in METRIC_NAMES)


__all__ = ["CoverageStore", "LOW_FILE_COVERAGE", "SNAPSHOT_FILENAME"]
