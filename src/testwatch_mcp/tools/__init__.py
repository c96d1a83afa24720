"""Tool registration for the testwatch MCP server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..integrations.registry import COMPLEXITY, ENVIRONMENTS, GITHUB, JIRA, CapabilityRegistry
from ..pipeline import WatchPipeline
from ..workflows import WorkflowOrchestrator

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolHandles:
    run_tests: Any
    analyze_coverage: Any
    coverage_gaps: Any
    check_git_status: Any
    check_jira: Any
    check_review: Any
    check_environments: Any
    start_watching: Any
    stop_watching: Any
    get_status: Any
    dev_setup: Any
    pre_commit: Any
    health_check: Any
    generate_commit_message: Any
    analyze_complexity: Any


def register_tools(
    server: FastMCP,
    *,
    pipeline: WatchPipeline,
    orchestrator: WorkflowOrchestrator,
    registry: CapabilityRegistry,
) -> ToolHandles:
    """Register the testwatch tools on the server."""

    async def _run_tests(
        files: list[str],
        include_e2e: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Select and run the suites relevant to ``files``, then analyse coverage."""

        result = await orchestrator.run_suite_for(files, include_e2e=include_e2e)
        _emit_log(
            context,
            "info",
            "Ran tests",
            extra={"files": len(files), "success": result.success, "errors": sorted(result.errors)},
        )
        return result.to_dict()

    def _analyze_coverage(context: Context | None = None) -> dict[str, Any]:
        """Summarise the persisted coverage snapshot."""

        snapshot = pipeline.snapshot(refresh=True)
        if snapshot is None:
            raise RuntimeError("No coverage data available; run tests with coverage enabled first")
        thresholds = pipeline.config.coverage.thresholds
        payload = {
            "coverage": snapshot.summary(),
            "files": len(snapshot.files),
            "recommendations": pipeline.store.recommendations(snapshot, thresholds),
        }
        _emit_log(context, "debug", "Analyzed coverage", extra={"files": payload["files"]})
        return payload

    def _coverage_gaps(paths: list[str] | None = None, context: Context | None = None) -> dict[str, Any]:
        """List files under the per-file threshold or tracked but uncovered."""

        thresholds = pipeline.config.coverage.thresholds
        gaps = pipeline.store.gaps(pipeline.snapshot(refresh=True), thresholds, paths=paths)
        _emit_log(context, "debug", "Coverage gaps", extra={"gaps": len(gaps)})
        return {"gaps": gaps, "threshold": thresholds.per_file}

    tool_run_tests = server.tool(
        name="run_tests",
        description=(
            "Run the test suites relevant to the given project-relative files. Set include_e2e "
            "to also run the e2e suite. Returns the workflow result with per-suite outcomes."
        ),
    )(_run_tests)

    tool_analyze_coverage = server.tool(
        name="analyze_coverage",
        description="Summarise the merged coverage snapshot with recommendations.",
    )(_analyze_coverage)

    tool_coverage_gaps = server.tool(
        name="coverage_gaps",
        description="List coverage gaps, optionally restricted to the given paths.",
    )(_coverage_gaps)

    async def _check_git_status(fetch: bool = False, context: Context | None = None) -> dict[str, Any]:
        """Report branch position, uncommitted changes and advice."""

        status = await registry.git.status(fetch=fetch)
        _emit_log(context, "debug", "Checked git status", extra={"branch": status["branch"]})
        return status

    async def _check_jira(context: Context | None = None) -> dict[str, Any]:
        """Analyse the ticket referenced by the current branch."""

        analysis = await registry.get(JIRA).analyze()
        _emit_log(
            context,
            "debug",
            "Checked JIRA ticket",
            extra={"ticket": analysis["ticket_key"], "issues": len(analysis["issues"])},
        )
        return analysis

    async def _check_review(context: Context | None = None) -> dict[str, Any]:
        """Classify pull request comments and estimate how many are resolved."""

        reviews = registry.get(GITHUB)
        signals = await reviews.pending_review_signals()
        analysis = await reviews.resolution_analysis(signals=signals)
        _emit_log(
            context,
            "debug",
            "Checked review state",
            extra={"unresolved": analysis["unresolved"], "confidence": analysis["overall_confidence"]},
        )
        return {"signals": signals.to_dict(), "resolution": analysis}

    async def _check_environments(context: Context | None = None) -> dict[str, Any]:
        """Report deployed environments running a non-main branch."""

        branch = await registry.git.current_branch()
        report = await registry.get(ENVIRONMENTS).report(current_branch=branch)
        _emit_log(context, "debug", "Checked environments", extra={"non_main": len(report["non_main"])})
        return report

    tool_check_git = server.tool(
        name="check_git_status",
        description="Check whether the current branch is up to date; set fetch=true to fetch first.",
    )(_check_git_status)

    tool_check_jira = server.tool(
        name="check_jira",
        description="Check the JIRA ticket for the current branch for missing requirements.",
    )(_check_jira)

    tool_check_review = server.tool(
        name="check_review",
        description="Summarise pull request review comments and their resolution confidence.",
    )(_check_review)

    tool_check_environments = server.tool(
        name="check_environments",
        description="List deployed environments that are running non-main branches.",
    )(_check_environments)

    async def _start_watching(project_path: str | None = None, context: Context | None = None) -> dict[str, Any]:
        """Start watching the project and running suites on change."""

        payload = await orchestrator.start_watching(project_path)
        _emit_log(context, "info", "Start watching", extra=payload)
        return payload

    async def _stop_watching(context: Context | None = None) -> dict[str, Any]:
        """Stop watching and cancel running suites."""

        payload = await orchestrator.stop_watching()
        _emit_log(context, "info", "Stop watching", extra=payload)
        return payload

    def _get_status(context: Context | None = None) -> dict[str, Any]:
        status = pipeline.status()
        _emit_log(context, "debug", "Status requested", extra={"watching": status["watching"]})
        return status

    tool_start = server.tool(
        name="start_watching",
        description="Start watching the project for changes and run the relevant suites automatically.",
    )(_start_watching)

    tool_stop = server.tool(
        name="stop_watching",
        description="Stop watching the project and cancel any suites in flight.",
    )(_stop_watching)

    tool_status = server.tool(
        name="get_status",
        description="Report watcher state, running suites, coverage and the last test cycle.",
    )(_get_status)

    async def _dev_setup(project_path: str | None = None, context: Context | None = None) -> dict[str, Any]:
        result = await orchestrator.developer_setup(project_path)
        _emit_log(context, "info", "Developer setup", extra={"success": result.success})
        return result.to_dict()

    async def _pre_commit(context: Context | None = None) -> dict[str, Any]:
        result = await orchestrator.pre_commit()
        _emit_log(context, "info", "Pre-commit validation", extra={"success": result.success})
        return result.to_dict()

    async def _health_check(context: Context | None = None) -> dict[str, Any]:
        result = await orchestrator.health_check()
        _emit_log(context, "info", "Health check", extra={"success": result.success})
        return result.to_dict()

    tool_dev_setup = server.tool(
        name="dev_setup",
        description=(
            "Check git, environments, ticket and review state concurrently, then start watching. "
            "Returns a workflow result with a one-line summary."
        ),
    )(_dev_setup)

    tool_pre_commit = server.tool(
        name="pre_commit",
        description=(
            "Stop watching, validate git, ticket, environments and review state, run tests for the "
            "changed files and suggest a commit message."
        ),
    )(_pre_commit)

    tool_health_check = server.tool(
        name="health_check",
        description="Run every status check concurrently; passes while fewer than half fail.",
    )(_health_check)

    async def _generate_commit_message(
        ticket_id: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        message = await orchestrator.commit_message(ticket_id)
        _emit_log(context, "info", "Generated commit message", extra={"ticket": ticket_id})
        return {"message": message}

    async def _analyze_complexity(
        files: list[str] | None = None,
        compare: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Score files with the configured complexity command."""

        scorer = registry.get(COMPLEXITY)
        targets = files if files else await registry.git.changed_files()
        if compare:
            comparisons = [await scorer.compare(path) for path in targets]
            payload: dict[str, Any] = {"comparisons": [entry for entry in comparisons if entry is not None]}
        else:
            payload = {"reports": await scorer.score_many(targets)}
        _emit_log(context, "debug", "Analyzed complexity", extra={"files": len(targets), "compare": compare})
        return payload

    tool_commit_message = server.tool(
        name="generate_commit_message",
        description="Suggest a commit message for the changed files, using the JIRA ticket when enabled.",
    )(_generate_commit_message)

    tool_complexity = server.tool(
        name="analyze_complexity",
        description=(
            "Score the given files (default: git changed files) with the external complexity "
            "command; set compare=true to compare against HEAD."
        ),
    )(_analyze_complexity)

    return ToolHandles(
        run_tests=tool_run_tests,
        analyze_coverage=tool_analyze_coverage,
        coverage_gaps=tool_coverage_gaps,
        check_git_status=tool_check_git,
        check_jira=tool_check_jira,
        check_review=tool_check_review,
        check_environments=tool_check_environments,
        start_watching=tool_start,
        stop_watching=tool_stop,
        get_status=tool_status,
        dev_setup=tool_dev_setup,
        pre_commit=tool_pre_commit,
        health_check=tool_health_check,
        generate_commit_message=tool_commit_message,
        analyze_complexity=tool_complexity,
    )


__all__ = ["register_tools", "ToolHandles"]


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return
        ctx_log = getattr(context, "log", None)
        if callable(ctx_log):  # pragma: no cover - depends on FastMCP internals
            try:
                ctx_log(level.upper(), message, extra=payload)
                return
            except TypeError:
                pass

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
