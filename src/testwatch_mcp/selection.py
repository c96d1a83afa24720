"""Suite selection from changed paths and coverage state."""

from __future__ import annotations

from typing import Sequence

from .coverage.models import CoverageSnapshot
from .coverage.store import CoverageStore
from .project.models import CoverageThresholds, CriticalPathSettings
from .suites.models import ChangeRecord, SuiteDecision, SuiteDefinition
from .suites.patterns import match_any, match_path

_PREVIEW = 3


def _preview(paths: Sequence[str]) -> str:
    shown = ", ".join(paths[:_PREVIEW])
    if len(paths) > _PREVIEW:
        shown += f", +{len(paths) - _PREVIEW} more"
    return shown


class SuiteSelector:
    """Decides which suites run for a batch of changes.

    :meth:`select` depends only on its arguments and the selector's own
    configuration, so equal inputs always give equal decisions.
    """

    def __init__(
        self,
        store: CoverageStore,
        thresholds: CoverageThresholds | None = None,
        critical_paths: CriticalPathSettings | None = None,
    ) -> None:
        self._store = store
        self._thresholds = thresholds or CoverageThresholds()
        self._critical = critical_paths or CriticalPathSettings()

    def critical_matches(self, paths: Sequence[str]) -> list[str]:
        if not self._critical.enabled:
            return []
        return [
            path
            for path in paths
            if any(fragment in path for fragment in self._critical.paths)
            or any(match_path(path, pattern) for pattern in self._critical.patterns)
        ]

    def select(
        self,
        changes: Sequence[ChangeRecord],
        suite_definitions: Sequence[SuiteDefinition],
        snapshot: CoverageSnapshot | None,
    ) -> SuiteDecision:
        if not changes:
            return SuiteDecision(suites_to_run=[], rationale="no changes", coverage_gaps=[])

        changed_paths = list(dict.fromkeys(change.path for change in changes))
        enabled = [suite for suite in suite_definitions if suite.enabled]
        reasons: dict[int, str] = {}

        critical = self.critical_matches(changed_paths)
        if critical:
            for index, suite in enumerate(enabled):
                reasons[index] = f"{suite.kind.value}: critical path ({_preview(critical)})"

        for index, suite in enumerate(enabled):
            if index in reasons:
                continue
            matched = [path for path in changed_paths if match_any(path, suite.match_patterns)]
            if matched:
                reasons[index] = f"{suite.kind.value}: pattern match ({_preview(matched)})"

        gaps = self._store.gaps(snapshot, self._thresholds, paths=changed_paths)
        if gaps:
            noun = "gap" if len(gaps) == 1 else "gaps"
            for index, suite in enumerate(enabled):
                if index not in reasons and suite.coverage_command:
                    reasons[index] = f"{suite.kind.value}: coverage gap escalation ({len(gaps)} {noun})"

        order = sorted(reasons, key=lambda index: (-enabled[index].priority, index))
        suites = [enabled[index] for index in order]
        if suites:
            rationale = "; ".join(reasons[index] for index in order)
        else:
            rationale = f"no suites matched {len(changed_paths)} changed path(s)"
        return SuiteDecision(suites_to_run=suites, rationale=rationale, coverage_gaps=gaps)


__all__ = ["SuiteSelector"]
