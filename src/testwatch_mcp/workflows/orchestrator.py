"""Named multi-step workflows over the pipeline and the collaborators."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Sequence

from ..integrations.registry import COMPLEXITY, ENVIRONMENTS, GITHUB, JIRA, CapabilityRegistry
from ..pipeline import CycleReport, WatchPipeline
from ..suites.models import SuiteKind
from . import summaries

logger = logging.getLogger(__name__)

Action = Callable[[], Awaitable[Any]]


class SuiteFailureError(RuntimeError):
    """Raised by a test step when at least one suite did not pass."""

    def __init__(self, message: str, report: CycleReport | None = None) -> None:
        super().__init__(message)
        self.report = report


@dataclass(slots=True)
class WorkflowStep:
    name: str
    action: Action
    critical: bool = False
    cached: bool = False


@dataclass(slots=True)
class CacheEntry:
    value: Any
    computed_at: float


@dataclass(slots=True)
class WorkflowResult:
    workflow: str
    success: bool
    results: dict[str, Any]
    errors: dict[str, str]
    summary: str
    duration_ms: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow": self.workflow,
            "success": self.success,
            "results": self.results,
            "errors": self.errors,
            "summary": self.summary,
            "duration_ms": round(self.duration_ms, 1),
        }


@dataclass(slots=True)
class _Run:
    """Mutable accumulator for one workflow invocation."""

    results: dict[str, Any] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    exceptions: dict[str, Exception] = field(default_factory=dict)
    critical_failures: list[str] = field(default_factory=list)
    started: float = field(default_factory=time.monotonic)

    def ok(self, name: str) -> bool:
        return name in self.results


class WorkflowOrchestrator:
    """Runs workflows as phases of concurrently executed steps.

    A failing step never aborts its siblings; its message lands in
    ``errors[step]``. Cached steps are memoised by name for
    ``cache_ttl_seconds``; failures are never cached.
    """

    def __init__(
        self,
        pipeline: WatchPipeline,
        registry: CapabilityRegistry,
        *,
        cache_ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._pipeline = pipeline
        self._registry = registry
        self._ttl = cache_ttl_seconds
        self._clock = clock
        self._cache: dict[str, CacheEntry] = {}

    @property
    def pipeline(self) -> WatchPipeline:
        return self._pipeline

    def invalidate(self, name: str | None = None) -> None:
        if name is None:
            self._cache.clear()
        else:
            self._cache.pop(name, None)

    def cached_value(self, name: str) -> Any | None:
        entry = self._cache.get(name)
        if entry is None or self._clock() - entry.computed_at > self._ttl:
            return None
        return entry.value

    async def _execute(self, run: _Run, step: WorkflowStep) -> None:
        if step.cached:
            entry = self._cache.get(step.name)
            if entry is not None and self._clock() - entry.computed_at <= self._ttl:
                logger.debug("Workflow cache hit", extra={"step": step.name})
                run.results[step.name] = entry.value
                return

        try:
            value = await step.action()
        except Exception as exc:  # recorded per step
            run.errors[step.name] = str(exc) or type(exc).__name__
            run.exceptions[step.name] = exc
            if step.critical:
                run.critical_failures.append(step.name)
            logger.warning(
                "Workflow step failed",
                extra={"step": step.name, "critical": step.critical, "error": str(exc)},
            )
            return

        run.results[step.name] = value
        if step.cached:
            self._cache[step.name] = CacheEntry(value=value, computed_at=self._clock())

    async def run_phase(self, run: _Run, steps: Sequence[WorkflowStep]) -> None:
        """Run ``steps`` concurrently and wait for all of them to settle."""

        outcomes = await asyncio.gather(*(self._execute(run, step) for step in steps), return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

    def _finish(
        self,
        workflow: str,
        title: str,
        run: _Run,
        details: Callable[[_Run], list[str]],
        *,
        success: bool | None = None,
    ) -> WorkflowResult:
        if success is None:
            success = not run.critical_failures
        summary = summaries.render_summary(title, success, run.errors, details(run) if success else ())
        result = WorkflowResult(
            workflow=workflow,
            success=success,
            results=run.results,
            errors=run.errors,
            summary=summary,
            duration_ms=(time.monotonic() - run.started) * 1000,
        )
        logger.info(
            "Workflow finished",
            extra={"workflow": workflow, "success": success, "errors": sorted(run.errors)},
        )
        return result

    # Steps

    def _git_status(self) -> WorkflowStep:
        return WorkflowStep("git_status", self._registry.git.status, cached=True)

    def _environments(self) -> WorkflowStep:
        async def action() -> dict[str, Any]:
            checker = self._registry.get(ENVIRONMENTS)
            branch = await self._registry.git.current_branch()
            return await checker.report(current_branch=branch)

        return WorkflowStep("environments", action, cached=True)

    def _ticket_status(self) -> WorkflowStep:
        async def action() -> dict[str, Any]:
            return await self._registry.get(JIRA).analyze()

        return WorkflowStep("ticket_status", action, cached=True)

    def _review_status(self) -> WorkflowStep:
        async def action() -> dict[str, Any]:
            reviews = self._registry.get(GITHUB)
            signals = await reviews.pending_review_signals()
            analysis = await reviews.resolution_analysis(signals=signals)
            review = signals.to_dict()
            review["unresolved_items"] = review.pop("unresolved")
            return {**review, **analysis}

        return WorkflowStep("review_status", action, cached=True)

    def _agent_status(self) -> WorkflowStep:
        async def action() -> dict[str, Any]:
            status = self._pipeline.status()
            status["current_branch"] = await self._registry.git.current_branch()
            return status

        return WorkflowStep("agent_status", action)

    def _coverage(self) -> WorkflowStep:
        async def action() -> dict[str, Any]:
            snapshot = self._pipeline.snapshot(refresh=True)
            if snapshot is None:
                raise RuntimeError("No coverage data available")
            thresholds = self._pipeline.config.coverage.thresholds
            store = self._pipeline.store
            return {
                "coverage": snapshot.summary(),
                "recommendations": store.recommendations(snapshot, thresholds),
                "gaps": store.gaps(snapshot, thresholds),
            }

        return WorkflowStep("coverage", action)

    def _tests(self, files: Callable[[], Awaitable[list[str]]]) -> WorkflowStep:
        async def action() -> dict[str, Any]:
            report = await self._pipeline.run_for(await files())
            if not report.succeeded:
                failed = report.failed_suites
                raise SuiteFailureError(f"{len(failed)} suite(s) failed: {', '.join(failed)}", report)
            return report.to_dict()

        return WorkflowStep("tests", action, critical=True)

    async def start_watching(self, project_path: str | Path | None = None) -> dict[str, Any]:
        root = self._pipeline.config.project_root
        if project_path is not None and Path(project_path).resolve() != Path(root).resolve():
            raise ValueError(f"Project path {project_path} does not match the configured root {root}")
        if self._pipeline.running:
            return {"message": "Already watching files", "already_running": True}
        await self._pipeline.start()
        return {"message": "Started watching files", "project_root": str(root)}

    async def stop_watching(self) -> dict[str, Any]:
        if not self._pipeline.running:
            return {"message": "Already stopped or not running", "already_stopped": True}
        await self._pipeline.stop()
        return {"message": "Stopped watching files"}

    async def commit_message(self, ticket_id: str | None = None) -> str:
        files = await self._registry.git.changed_files()
        jira = self._registry.optional(JIRA)
        if jira is not None:
            ticket_id = ticket_id or await jira.ticket_for_current_branch()
            if ticket_id:
                return await jira.commit_message(ticket_id, files)
        return f"Update {len(files)} files"

    # Workflows

    async def developer_setup(self, project_path: str | Path | None = None) -> WorkflowResult:
        run = _Run()
        await self.run_phase(
            run,
            [self._git_status(), self._environments(), self._ticket_status(), self._review_status()],
        )
        await self.run_phase(
            run,
            [WorkflowStep("watching", lambda: self.start_watching(project_path), critical=True)],
        )
        await self.run_phase(run, [self._agent_status()])
        return self._finish(
            "developer_setup",
            "Development setup",
            run,
            lambda r: summaries.developer_setup_details(r.results),
        )

    async def pre_commit(self) -> WorkflowResult:
        run = _Run()

        async def stop() -> dict[str, Any]:
            try:
                return await self.stop_watching()
            except RuntimeError:
                return {"message": "Already stopped or not running", "already_stopped": True}

        await self.run_phase(run, [WorkflowStep("stop_watching", stop)])
        await self.run_phase(
            run,
            [
                self._git_status(),
                self._ticket_status(),
                self._environments(),
                self._review_status(),
                self._tests(self._registry.git.changed_files),
            ],
        )
        if run.ok("git_status") and run.ok("ticket_status"):
            ticket_id = run.results["ticket_status"].get("ticket_key")
            await self.run_phase(run, [WorkflowStep("commit_message", lambda: self.commit_message(ticket_id))])
        return self._finish(
            "pre_commit",
            "Pre-commit validation",
            run,
            lambda r: summaries.pre_commit_details(r.results),
        )

    async def health_check(self) -> WorkflowResult:
        run = _Run()
        steps = [
            self._agent_status(),
            self._git_status(),
            self._environments(),
            self._ticket_status(),
            self._review_status(),
            self._coverage(),
        ]
        await self.run_phase(run, steps)
        success = not run.critical_failures and len(run.errors) < len(steps) / 2
        return self._finish(
            "health_check",
            "Health check",
            run,
            lambda r: summaries.health_check_details(r.results, r.errors),
            success=success,
        )

    async def run_suite_for(self, files: Sequence[str], include_e2e: bool = False) -> WorkflowResult:
        run = _Run()
        paths = list(files)

        async def changed() -> list[str]:
            return paths

        await self.run_phase(run, [self._tests(changed)])

        tests_ran = run.ok("tests") or isinstance(run.exceptions.get("tests"), SuiteFailureError)
        analysis: list[WorkflowStep] = []
        if tests_ran:
            analysis.append(self._coverage())
        scorer = self._registry.optional(COMPLEXITY)
        if scorer is not None:
            analysis.append(WorkflowStep("complexity", lambda: scorer.score_many(paths)))
        if include_e2e:
            analysis.append(WorkflowStep("e2e", lambda: self._run_e2e(paths)))
        if analysis:
            await self.run_phase(run, analysis)
        return self._finish(
            "run_suite_for",
            "Test suite",
            run,
            lambda r: summaries.suite_details(r.results),
        )

    async def _run_e2e(self, paths: Sequence[str]) -> list[dict[str, Any]]:
        suite = self._pipeline.config.suite(SuiteKind.E2E)
        if suite is None or not suite.enabled:
            raise RuntimeError("No enabled e2e suite configured")
        results = await self._pipeline.run_suites([suite], paths)
        failed = [result for result in results if not result.succeeded]
        if failed:
            raise SuiteFailureError("e2e suite failed")
        return [result.to_dict() for result in results]


__all__ = [
    "CacheEntry",
    "SuiteFailureError",
    "WorkflowOrchestrator",
    "WorkflowResult",
    "WorkflowStep",
]
