from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from testwatch_mcp.coverage import CoverageStore
from testwatch_mcp.integrations import CapabilityRegistry
from testwatch_mcp.integrations.git import FakeGit
from testwatch_mcp.integrations.notifications import Notifier
from testwatch_mcp.integrations.registry import ENVIRONMENTS, GIT, JIRA, NOTIFIER
from testwatch_mcp.pipeline import WatchPipeline
from testwatch_mcp.project import ProjectConfig
from testwatch_mcp.workflows import WorkflowOrchestrator, WorkflowStep
from testwatch_mcp.workflows.orchestrator import _Run
from testwatch_mcp.workflows.summaries import health_check_details, render_summary

COVERAGE_REPORT = """Name           Stmts   Miss  Cover
---------------------------------------
app/api.py        10      1    90%
---------------------------------------
TOTAL             10      1    90%
"""


class StubJira:
    def __init__(self) -> None:
        self.messages: list[tuple[str, list[str]]] = []

    async def analyze(self) -> dict[str, Any]:
        return {"ticket_key": "ABC-12", "ticket": {"summary": "Add login"}, "issues": []}

    async def ticket_for_current_branch(self) -> str | None:
        return "ABC-12"

    async def commit_message(self, ticket_id: str, files: list[str]) -> str:
        self.messages.append((ticket_id, files))
        return f"{ticket_id}: Add login"


class StubEnvironments:
    async def report(self, current_branch: str) -> dict[str, Any]:
        return {"non_main": [], "current_branch_deployed_to": [], "messages": []}


class StubWatcher:
    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass


class Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _orchestrator(
    tmp_path: Path,
    *,
    command: str = "true",
    git: FakeGit | None = None,
    extra: dict[str, Any] | None = None,
    clock: Clock | None = None,
) -> WorkflowOrchestrator:
    registry = CapabilityRegistry({GIT: git or FakeGit(), NOTIFIER: Notifier([]), **(extra or {})})
    config = ProjectConfig(
        project_root=tmp_path,
        suites=[{"kind": "api", "match_patterns": ["app/**/*.py"], "run_command": command}],
        coverage={"persist_path": tmp_path / "cov"},
    )
    pipeline = WatchPipeline(config, registry, watcher_factory=lambda aggregator: StubWatcher())
    return WorkflowOrchestrator(pipeline, registry, cache_ttl_seconds=60, clock=clock or Clock())


def test_failing_steps_do_not_abort_siblings(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path)

    def step(name: str, fail: bool = False, critical: bool = False) -> WorkflowStep:
        async def action() -> str:
            await asyncio.sleep(0)
            if fail:
                raise RuntimeError(f"{name} broke")
            return name

        return WorkflowStep(name, action, critical=critical)

    async def scenario():
        run = _Run()
        await orchestrator.run_phase(
            run,
            [step("a"), step("b", fail=True), step("c"), step("d", fail=True, critical=True), step("e")],
        )
        return orchestrator._finish("demo", "Demo", run, lambda r: [])

    result = asyncio.run(scenario())

    assert sorted(result.results) == ["a", "c", "e"]
    assert result.errors == {"b": "b broke", "d": "d broke"}
    assert not result.success
    assert result.summary == "Demo failed (2 error(s): b, d)"


def test_cached_steps_skip_action_until_ttl_expires(tmp_path: Path) -> None:
    clock = Clock()
    orchestrator = _orchestrator(tmp_path, clock=clock)
    calls: list[int] = []

    async def action() -> int:
        calls.append(1)
        return len(calls)

    async def scenario() -> list[Any]:
        values = []
        for advance in (0, 30, 31, 0):
            clock.now += advance
            run = _Run()
            await orchestrator.run_phase(run, [WorkflowStep("probe", action, cached=True)])
            values.append(run.results["probe"])
        orchestrator.invalidate("probe")
        run = _Run()
        await orchestrator.run_phase(run, [WorkflowStep("probe", action, cached=True)])
        values.append(run.results["probe"])
        return values

    assert asyncio.run(scenario()) == [1, 1, 2, 2, 3]


def test_failures_are_not_cached(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path)
    attempts: list[int] = []

    async def flaky() -> str:
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("first attempt fails")
        return "ok"

    async def scenario() -> tuple[_Run, _Run]:
        first, second = _Run(), _Run()
        await orchestrator.run_phase(first, [WorkflowStep("flaky", flaky, cached=True)])
        await orchestrator.run_phase(second, [WorkflowStep("flaky", flaky, cached=True)])
        return first, second

    first, second = asyncio.run(scenario())

    assert first.errors == {"flaky": "first attempt fails"}
    assert second.results == {"flaky": "ok"}
    assert orchestrator.cached_value("flaky") == "ok"


def test_health_check_fails_when_half_the_checks_fail(tmp_path: Path) -> None:
    result = asyncio.run(_orchestrator(tmp_path).health_check())

    assert not result.success
    assert sorted(result.errors) == ["coverage", "environments", "review_status", "ticket_status"]
    assert result.errors["ticket_status"] == "JIRA integration not enabled"
    assert result.summary == "Health check failed (4 error(s): coverage, environments, review_status, ticket_status)"


def test_health_check_passes_with_a_minority_of_errors(tmp_path: Path) -> None:
    store = CoverageStore(tmp_path / "cov")
    store.persist(store.parse("api", COVERAGE_REPORT))
    orchestrator = _orchestrator(tmp_path, extra={JIRA: StubJira(), ENVIRONMENTS: StubEnvironments()})

    result = asyncio.run(orchestrator.health_check())

    assert result.success
    assert result.summary == (
        "Health check passed with 1 recorded error(s): review_status | 5/6 checks successful"
    )
    assert result.results["coverage"]["coverage"]["lines"] == 90.0


def test_pre_commit_runs_tests_on_changed_files(tmp_path: Path) -> None:
    git = FakeGit({("diff", "--name-only", "HEAD"): "app/api.py\n"})
    jira = StubJira()
    orchestrator = _orchestrator(tmp_path, git=git, extra={JIRA: jira})

    result = asyncio.run(orchestrator.pre_commit())

    assert result.success
    assert result.results["stop_watching"]["already_stopped"] is True
    assert result.results["tests"]["decision"]["suites"] == ["api"]
    assert result.results["commit_message"] == "ABC-12: Add login"
    assert jira.messages == [("ABC-12", ["app/api.py"])]
    assert result.summary.startswith("Pre-commit validation passed with 2 recorded error(s): environments, review_status")


def test_pre_commit_fails_on_suite_failure(tmp_path: Path) -> None:
    git = FakeGit({("diff", "--name-only", "HEAD"): "app/api.py\n"})
    orchestrator = _orchestrator(tmp_path, command="exit 2", git=git)

    result = asyncio.run(orchestrator.pre_commit())

    assert not result.success
    assert result.errors["tests"] == "1 suite(s) failed: api"
    assert "commit_message" not in result.results


def test_run_suite_for_analyses_coverage_after_failed_tests(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path, command="exit 1")

    result = asyncio.run(orchestrator.run_suite_for(["app/api.py"], include_e2e=True))

    assert not result.success
    assert sorted(result.errors) == ["coverage", "e2e", "tests"]
    assert result.errors["e2e"] == "No enabled e2e suite configured"


def test_developer_setup_starts_watching(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path)

    async def scenario():
        result = await orchestrator.developer_setup(tmp_path)
        again = await orchestrator.start_watching()
        stopped = await orchestrator.stop_watching()
        return result, again, stopped

    result, again, stopped = asyncio.run(scenario())

    assert result.success
    assert result.results["watching"]["message"] == "Started watching files"
    assert result.results["agent_status"]["watching"] is True
    assert "File watching active" in result.summary
    assert again["message"] == "Already watching files"
    assert stopped["message"] == "Stopped watching files"


def test_developer_setup_rejects_other_project(tmp_path: Path) -> None:
    other = tmp_path / "other"
    other.mkdir()

    result = asyncio.run(_orchestrator(tmp_path).developer_setup(other))

    assert not result.success
    assert "does not match the configured root" in result.errors["watching"]


def test_commit_message_fallback(tmp_path: Path) -> None:
    git = FakeGit({("diff", "--name-only", "--cached"): "a.py\nb.py\n"})

    assert asyncio.run(_orchestrator(tmp_path, git=git).commit_message()) == "Update 2 files"


def test_summary_shapes() -> None:
    assert render_summary("Pre-commit validation", True, {}, ["Git ready"]) == "Pre-commit validation passed | Git ready"
    assert render_summary("Health check", True, {"b": "x", "a": "y"}, ["1/3 checks successful"]) == (
        "Health check passed with 2 recorded error(s): a, b | 1/3 checks successful"
    )
    assert render_summary("Test suite", False, {"tests": "boom"}) == "Test suite failed (1 error(s): tests)"
    assert health_check_details({"a": 1}, {"b": "x"}) == ["1/2 checks successful"]
