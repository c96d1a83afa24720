"""The watch cycle: select, execute, merge coverage, notify."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from .coverage import CoverageSnapshot, CoverageStore
from .coverage.store import LOW_FILE_COVERAGE
from .integrations.complexity import ComplexityScorerError
from .integrations.ide import IdeBridge
from .integrations.registry import COMPLEXITY, CapabilityRegistry
from .project.models import ProjectConfig
from .runner import SuiteExecutor
from .selection import SuiteSelector
from .suites.models import ChangeKind, ChangeRecord, SuiteDecision, SuiteDefinition, SuiteResult
from .watch import ChangeAggregator, FileWatcher

logger = logging.getLogger(__name__)

WatcherFactory = Callable[[ChangeAggregator], FileWatcher]


@dataclass(slots=True)
class CycleReport:
    """Everything one pass through the pipeline produced."""

    changes: list[ChangeRecord]
    decision: SuiteDecision
    results: list[SuiteResult] = field(default_factory=list)
    snapshot: CoverageSnapshot | None = None
    recommendations: list[str] = field(default_factory=list)
    complexity: list[dict[str, Any]] = field(default_factory=list)
    finished_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def succeeded(self) -> bool:
        return all(result.succeeded for result in self.results)

    @property
    def failed_suites(self) -> list[str]:
        return [result.suite_kind.value for result in self.results if not result.succeeded]

    def to_dict(self) -> dict[str, Any]:
        return {
            "changes": [change.to_dict() for change in self.changes],
            "decision": self.decision.to_dict(),
            "results": [result.to_dict() for result in self.results],
            "succeeded": self.succeeded,
            "coverage": self.snapshot.summary() if self.snapshot is not None else None,
            "recommendations": list(self.recommendations),
            "complexity": list(self.complexity),
            "finished_at": self.finished_at.isoformat(),
        }


class WatchPipeline:
    """Owns the watcher, aggregator, selector, executor and coverage store for one project.

    Batches are processed one at a time: a single consumer task awaits a full
    cycle before pulling the next batch, and :meth:`run_for` shares the same
    lock so on-demand runs never interleave with watched ones.
    """

    def __init__(
        self,
        config: ProjectConfig,
        registry: CapabilityRegistry,
        *,
        store: CoverageStore | None = None,
        executor: SuiteExecutor | None = None,
        aggregator: ChangeAggregator | None = None,
        watcher_factory: WatcherFactory | None = None,
        kill_grace_seconds: float = 5.0,
    ) -> None:
        self._config = config
        self._registry = registry
        self._store = store or CoverageStore(
            config.coverage.persist_path,
            project_root=config.project_root,
            track_patterns=config.coverage.track_patterns,
            ignore_patterns=config.coverage.ignore_patterns,
        )
        self._selector = SuiteSelector(self._store, config.coverage.thresholds, config.critical_paths)
        self._executor = executor or SuiteExecutor(self._store, kill_grace_seconds=kill_grace_seconds)
        self._aggregator = aggregator or ChangeAggregator(config.debounce_ms)
        self._watcher_factory = watcher_factory or self._default_watcher
        self._watcher: FileWatcher | None = None
        self._tasks: list[asyncio.Task[Any]] = []
        self._ide_runs: set[asyncio.Task[Any]] = set()
        self._cycle_lock = asyncio.Lock()
        self._snapshot: CoverageSnapshot | None = None
        self._snapshot_loaded = False
        self._last_report: CycleReport | None = None
        self._cycles = 0

        if registry.ide is not None:
            registry.ide.set_status_provider(self.status)

    def _default_watcher(self, aggregator: ChangeAggregator) -> FileWatcher:
        return FileWatcher(
            self._config.project_root,
            aggregator,
            exclude_patterns=self._config.exclude_patterns,
        )

    @property
    def config(self) -> ProjectConfig:
        return self._config

    @property
    def store(self) -> CoverageStore:
        return self._store

    @property
    def selector(self) -> SuiteSelector:
        return self._selector

    @property
    def executor(self) -> SuiteExecutor:
        return self._executor

    @property
    def aggregator(self) -> ChangeAggregator:
        return self._aggregator

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def last_report(self) -> CycleReport | None:
        return self._last_report

    def snapshot(self, *, refresh: bool = False) -> CoverageSnapshot | None:
        """Current merged snapshot.

        It is read from disk on first use and again whenever ``refresh`` is set,
        so a snapshot written by another process is picked up before gaps are
        computed. A missing or unreadable file keeps the snapshot held in memory.
        """

        if refresh or not self._snapshot_loaded:
            loaded = self._store.load()
            if loaded is not None or not self._snapshot_loaded:
                self._snapshot = loaded
            self._snapshot_loaded = True
        return self._snapshot

    async def start(self) -> None:
        """Start watching; raises :class:`WatcherError` when the root cannot be watched."""

        if self.running:
            logger.info("Pipeline already running")
            return

        watcher = self._watcher_factory(self._aggregator)
        watcher.start()
        self._watcher = watcher

        ide = self._registry.ide
        if ide is not None:
            await ide.start()

        self._tasks = [
            asyncio.create_task(self._consume_batches(), name="testwatch-batches"),
            asyncio.create_task(self._consume_errors(), name="testwatch-errors"),
        ]
        if ide is not None:
            self._tasks.append(asyncio.create_task(self._consume_commands(ide), name="testwatch-ide"))
        logger.info("Pipeline started", extra={"root": str(self._config.project_root)})
        await self._registry.notifier.info("Starting Test Watch", f"Project root: {self._config.project_root}")

    async def stop(self) -> None:
        """Stop watching and cancel any suites still running."""

        if not self.running:
            raise RuntimeError("Pipeline is not running")

        self._executor.cancel_all()
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
        self._aggregator.close()

        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        ide = self._registry.ide
        if ide is not None:
            await ide.stop()
        logger.info("Pipeline stopped")

    async def _consume_batches(self) -> None:
        async for batch in self._aggregator.batches():
            try:
                await self.process_batch(batch)
            except asyncio.CancelledError:
                raise
            except Exception:  # keep watching after a broken cycle
                logger.exception("Test cycle failed", extra={"changes": len(batch)})

    async def _consume_errors(self) -> None:
        while True:
            error = await self._aggregator.next_error()
            logger.error("File watcher error", extra={"error": str(error)})
            await self._registry.notifier.error("File watcher error", str(error))

    async def _consume_commands(self, ide: IdeBridge) -> None:
        while True:
            command = await ide.next_command()
            logger.info("IDE command received", extra={"type": command.type})
            if command.type == "stop-tests":
                self._executor.cancel_all()
            elif command.type == "run-tests":
                task = asyncio.create_task(self._run_all_for_ide())
                self._ide_runs.add(task)
                task.add_done_callback(self._ide_runs.discard)

    async def _run_all_for_ide(self) -> None:
        results = await self.run_suites(self._config.enabled_suites, [])
        if self._registry.ide is not None:
            self._registry.ide.test_results([result.to_dict() for result in results])

    async def run_suites(
        self,
        suites: Sequence[SuiteDefinition],
        paths: Sequence[str],
        *,
        collect_coverage: bool = False,
    ) -> list[SuiteResult]:
        """Run ``suites`` directly, bypassing selection, inside the cycle lock."""

        async with self._cycle_lock:
            return await self._executor.run(
                suites, paths, self._config.project_root, collect_coverage=collect_coverage
            )

    async def run_for(self, files: Sequence[str], *, suites: Sequence[SuiteDefinition] | None = None) -> CycleReport:
        """Run a cycle for ``files`` as if they had just been modified."""

        now = datetime.now(timezone.utc)
        changes = [ChangeRecord(path=path, kind=ChangeKind.MODIFIED, observed_at=now) for path in files]
        return await self.process_batch(changes, suites=suites)

    async def process_batch(
        self,
        changes: Sequence[ChangeRecord],
        *,
        suites: Sequence[SuiteDefinition] | None = None,
    ) -> CycleReport:
        async with self._cycle_lock:
            return await self._cycle(list(changes), suites)

    async def _cycle(self, changes: list[ChangeRecord], suites: Sequence[SuiteDefinition] | None) -> CycleReport:
        notifier = self._registry.notifier
        ide = self._registry.ide
        paths = list(dict.fromkeys(change.path for change in changes))

        preview = ", ".join(paths[:3]) + ("..." if len(paths) > 3 else "")
        await notifier.info(f"Detected {len(paths)} file change(s)", f"Files: {preview}")
        if ide is not None:
            ide.file_change(paths)

        definitions = list(suites) if suites is not None else self._config.suites
        decision = self._selector.select(changes, definitions, self.snapshot(refresh=True))
        report = CycleReport(changes=changes, decision=decision)
        self._cycles += 1
        if ide is not None:
            ide.suite_decision(decision.to_dict())

        if not decision.suites_to_run:
            logger.info("No suites selected", extra={"rationale": decision.rationale})
            await notifier.info("No test suites selected", decision.rationale)
            self._last_report = report
            return report

        await notifier.info("Test Strategy", decision.rationale)
        if decision.coverage_gaps:
            await notifier.warning("Low coverage files", ", ".join(decision.coverage_gaps))

        report.results = await self._executor.run(
            decision.suites_to_run,
            paths,
            self._config.project_root,
            collect_coverage=self._config.coverage.enabled,
        )
        await self._ingest_coverage(report)
        report.complexity = await self._score_complexity(changes)
        await self._summarize(report)

        if ide is not None:
            ide.test_results([result.to_dict() for result in report.results])
        self._last_report = report
        return report

    async def _ingest_coverage(self, report: CycleReport) -> None:
        incoming = [result.coverage for result in report.results if result.coverage is not None]
        if not incoming:
            report.snapshot = self.snapshot()
            return

        snapshot = self.snapshot()
        for coverage in incoming:
            snapshot = self._store.merge(snapshot, coverage)
        self._snapshot = snapshot
        if snapshot is not None:
            self._store.persist(snapshot)
        report.snapshot = snapshot

        thresholds = self._config.coverage.thresholds
        report.recommendations = self._store.recommendations(snapshot, thresholds)
        notifier = self._registry.notifier
        if report.recommendations:
            await notifier.info("Test Recommendations", "\n".join(report.recommendations))
        if snapshot is not None and snapshot.lines.percentage < thresholds.unit:
            await notifier.warning(
                "Low Coverage",
                f"Line coverage is {snapshot.lines.percentage:.1f}% (threshold: {thresholds.unit:g}%)",
            )

        changed = {change.path for change in report.changes}
        low = [
            path
            for path, entry in sorted((snapshot.files if snapshot is not None else {}).items())
            if path in changed and entry.percentage < LOW_FILE_COVERAGE
        ]
        if low:
            await notifier.warning("Changed files with low coverage", ", ".join(low))

    async def _score_complexity(self, changes: Sequence[ChangeRecord]) -> list[dict[str, Any]]:
        scorer = self._registry.optional(COMPLEXITY)
        if scorer is None:
            return []
        paths = list(dict.fromkeys(change.path for change in changes if change.kind != ChangeKind.REMOVED))
        try:
            reports = await scorer.score_many(paths)
        except ComplexityScorerError as exc:
            logger.warning("Complexity scoring failed", extra={"error": str(exc)})
            return []
        flagged = [entry for entry in reports if entry["level"] in {"warning", "error"}]
        if flagged:
            body = ", ".join(f"{entry['path']} ({entry['complexity']:g})" for entry in flagged)
            await self._registry.notifier.warning("High complexity", body)
        return reports

    async def _summarize(self, report: CycleReport) -> None:
        notifier = self._registry.notifier
        failed = report.failed_suites
        if not failed:
            await notifier.success("All Tests Passed", f"{len(report.results)} test suite(s) completed successfully")
        else:
            await notifier.error("Tests Failed", f"{len(failed)} suite(s) failed: {', '.join(failed)}")

    def status(self) -> dict[str, Any]:
        snapshot = self._snapshot if self._snapshot_loaded else None
        ide = self._registry.ide
        return {
            "project_root": str(self._config.project_root),
            "watching": self.running,
            "active_suites": self._executor.active,
            "pending_changes": self._aggregator.pending,
            "cycles": self._cycles,
            "suites": [suite.kind.value for suite in self._config.enabled_suites],
            "capabilities": self._registry.names(),
            "coverage": snapshot.summary() if snapshot is not None else None,
            "last_cycle": self._last_report.to_dict() if self._last_report is not None else None,
            "ide_clients": ide.client_count if ide is not None else 0,
        }


__all__ = ["CycleReport", "WatchPipeline"]
