from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from testwatch_mcp.coverage import CoverageStore
from testwatch_mcp.integrations import CapabilityRegistry
from testwatch_mcp.integrations.git import FakeGit
from testwatch_mcp.integrations.notifications import Notification, Notifier
from testwatch_mcp.integrations.ide import IdeCommand
from testwatch_mcp.integrations.registry import GIT, IDE, NOTIFIER
from testwatch_mcp.pipeline import WatchPipeline
from testwatch_mcp.project import ProjectConfig

COVERAGE_REPORT = """Name           Stmts   Miss  Cover   Missing
----------------------------------------------
app/api.py        10      2    80%   4-5
app/db.py         10      8    20%   1-8
----------------------------------------------
TOTAL             20     10    50%
"""


class RecordingSink:
    name = "recording"

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)

    @property
    def titles(self) -> list[str]:
        return [notification.title for notification in self.sent]


class StubWatcher:
    def __init__(self) -> None:
        self.started = False
        self.stopped = False

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True


def _pipeline(
    tmp_path: Path,
    *,
    command: str = "true",
    coverage: bool = False,
    watcher_factory=None,
    **config,
) -> tuple[WatchPipeline, RecordingSink]:
    sink = RecordingSink()
    registry = CapabilityRegistry({GIT: FakeGit(), NOTIFIER: Notifier([sink])})
    project = ProjectConfig(
        project_root=tmp_path,
        suites=[
            {
                "kind": "api",
                "match_patterns": ["app/**/*.py"],
                "run_command": command,
                "coverage_command": "cat report.txt",
            }
        ],
        coverage={"enabled": coverage, "persist_path": tmp_path / "cov"},
        **config,
    )
    return WatchPipeline(project, registry, watcher_factory=watcher_factory, kill_grace_seconds=1.0), sink


def test_run_for_runs_matching_suite(tmp_path: Path) -> None:
    pipeline, sink = _pipeline(tmp_path)

    report = asyncio.run(pipeline.run_for(["app/api.py"]))

    assert report.decision.rationale == "api: pattern match (app/api.py)"
    assert report.succeeded
    assert [result.command for result in report.results] == ["true"]
    assert sink.titles == ["Detected 1 file change(s)", "Test Strategy", "All Tests Passed"]
    assert pipeline.last_report is report
    assert pipeline.status()["cycles"] == 1


def test_unmatched_changes_run_nothing(tmp_path: Path) -> None:
    pipeline, sink = _pipeline(tmp_path)

    report = asyncio.run(pipeline.run_for(["docs/readme.md"]))

    assert report.results == []
    assert sink.titles == ["Detected 1 file change(s)", "No test suites selected"]


def test_failed_suite_is_reported(tmp_path: Path) -> None:
    pipeline, sink = _pipeline(tmp_path, command="exit 1")

    report = asyncio.run(pipeline.run_for(["app/api.py"]))

    assert not report.succeeded
    assert report.failed_suites == ["api"]
    assert sink.sent[-1].title == "Tests Failed"
    assert sink.sent[-1].body == "1 suite(s) failed: api"


def test_coverage_is_merged_and_persisted(tmp_path: Path) -> None:
    (tmp_path / "report.txt").write_text(COVERAGE_REPORT, encoding="utf-8")
    pipeline, sink = _pipeline(tmp_path, coverage=True)

    report = asyncio.run(pipeline.run_for(["app/db.py"]))

    assert report.snapshot is not None
    assert set(report.snapshot.files) == {"app/api.py", "app/db.py"}
    assert (tmp_path / "cov" / "coverage-snapshot.json").is_file()
    assert "Critical files need tests: app/db.py" in report.recommendations
    assert "Low Coverage" in sink.titles
    assert "Changed files with low coverage" in sink.titles

    reloaded, _ = _pipeline(tmp_path, coverage=True)
    assert reloaded.snapshot() == report.snapshot


def test_snapshot_is_reloaded_before_selection(tmp_path: Path) -> None:
    pipeline, _ = _pipeline(tmp_path)
    assert pipeline.snapshot() is None

    store = CoverageStore(tmp_path / "cov", project_root=tmp_path)
    store.persist(store.parse("api", COVERAGE_REPORT))

    report = asyncio.run(pipeline.run_for(["app/db.py"]))

    assert report.decision.coverage_gaps == ["app/db.py"]

    (tmp_path / "cov" / "coverage-snapshot.json").unlink()
    assert pipeline.snapshot(refresh=True) is not None


def test_watched_batches_flow_through_the_pipeline(tmp_path: Path) -> None:
    watcher = StubWatcher()
    pipeline, sink = _pipeline(tmp_path, debounce_ms=10, watcher_factory=lambda aggregator: watcher)

    async def scenario() -> None:
        await pipeline.start()
        assert pipeline.running
        pipeline.aggregator.observe("app/models.py", "modified")
        for _ in range(300):
            if pipeline.last_report is not None:
                break
            await asyncio.sleep(0.01)
        await pipeline.stop()
        with pytest.raises(RuntimeError):
            await pipeline.stop()

    asyncio.run(scenario())

    assert watcher.started and watcher.stopped
    assert pipeline.last_report is not None
    assert [change.path for change in pipeline.last_report.changes] == ["app/models.py"]
    assert sink.titles[0] == "Starting Test Watch"
    assert not pipeline.running


class StubIde:
    def __init__(self) -> None:
        self.commands: asyncio.Queue[IdeCommand] = asyncio.Queue()
        self.results: list[list[dict]] = []
        self.started = False
        self.stopped = False

    def set_status_provider(self, provider) -> None:
        self.status_provider = provider

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    async def next_command(self) -> IdeCommand:
        return await self.commands.get()

    def file_change(self, paths) -> None:
        pass

    def suite_decision(self, decision) -> None:
        pass

    def test_results(self, results) -> None:
        self.results.append(results)


def test_ide_run_tests_command_runs_every_enabled_suite(tmp_path: Path) -> None:
    ide = StubIde()
    registry = CapabilityRegistry({GIT: FakeGit(), NOTIFIER: Notifier([]), IDE: ide})
    project = ProjectConfig(
        project_root=tmp_path,
        suites=[{"kind": "api", "match_patterns": ["app/**/*.py"], "run_command": "true"}],
    )
    pipeline = WatchPipeline(project, registry, watcher_factory=lambda aggregator: StubWatcher())

    async def scenario() -> None:
        await pipeline.start()
        ide.commands.put_nowait(IdeCommand("run-tests"))
        for _ in range(300):
            if ide.results:
                break
            await asyncio.sleep(0.01)
        await pipeline.stop()

    asyncio.run(scenario())

    assert ide.started and ide.stopped
    assert [entry["suite"] for entry in ide.results[0]] == ["api"]
