from __future__ import annotations

import asyncio
import os
import time
from pathlib import Path

from testwatch_mcp.coverage import CoverageStore
from testwatch_mcp.runner import CANCELLED_PREFIX, SuiteExecutor, subprocess_environment
from testwatch_mcp.suites import SuiteDefinition, SuiteKind

COVERAGE_REPORT = """Name           Stmts   Miss  Cover   Missing
----------------------------------------------
app/api.py        10      2    80%   4-5
----------------------------------------------
TOTAL             10      2    80%
"""


def _suite(kind: str, command: str, **fields) -> SuiteDefinition:
    return SuiteDefinition(kind=kind, run_command=command, **fields)


def test_successful_and_failing_suites(tmp_path: Path) -> None:
    executor = SuiteExecutor()
    suites = [_suite("unit", "echo hello"), _suite("api", "echo broken >&2; exit 3")]

    results = asyncio.run(executor.run(suites, ["src/a.ts"], tmp_path))

    unit, api = results
    assert unit.suite_kind == SuiteKind.UNIT
    assert unit.succeeded and unit.returncode == 0
    assert unit.raw_output == "hello\n"
    assert unit.triggering_paths == ["src/a.ts"]
    assert not api.succeeded
    assert api.returncode == 3
    assert "broken" in api.raw_output
    assert executor.active == 0


def test_spawn_failure_becomes_failed_result(tmp_path: Path) -> None:
    class BrokenExecutor(SuiteExecutor):
        async def _spawn(self, command, cwd):
            raise OSError("no shell available")

    results = asyncio.run(BrokenExecutor().run([_suite("unit", "npm test")], [], tmp_path))

    assert len(results) == 1
    assert not results[0].succeeded
    assert not results[0].cancelled
    assert results[0].raw_output == "no shell available"


def test_cancel_all_stops_running_suites(tmp_path: Path) -> None:
    executor = SuiteExecutor(kill_grace_seconds=1.0)
    suites = [_suite(kind, "sleep 30") for kind in ("unit", "integration", "component")]

    async def scenario():
        task = asyncio.create_task(executor.run(suites, [], tmp_path))
        for _ in range(200):
            if executor.active == len(suites):
                break
            await asyncio.sleep(0.01)
        executor.cancel_all()
        results = await asyncio.wait_for(task, timeout=10)
        after = await executor.run([_suite("unit", "true")], [], tmp_path)
        return results, after

    results, after = asyncio.run(scenario())

    assert len(results) == 3
    for result in results:
        assert result.cancelled
        assert not result.succeeded
        assert result.raw_output.startswith(CANCELLED_PREFIX)
    assert after[0].succeeded


def test_timeout_cancels_suite(tmp_path: Path) -> None:
    executor = SuiteExecutor(kill_grace_seconds=1.0)
    suite = _suite("unit", "sleep 30", timeout_seconds=0.2)

    (result,) = asyncio.run(executor.run([suite], [], tmp_path))

    assert result.cancelled
    assert result.raw_output == f"{CANCELLED_PREFIX} timed out after 0.2s"


def test_coverage_command_output_is_parsed(tmp_path: Path) -> None:
    (tmp_path / "report.txt").write_text(COVERAGE_REPORT, encoding="utf-8")
    executor = SuiteExecutor(CoverageStore(project_root=tmp_path))
    suite = _suite("api", "true", coverage_command="cat report.txt")

    async def scenario():
        plain = await executor.run([suite], [], tmp_path)
        covered = await executor.run([suite], [], tmp_path, collect_coverage=True)
        return plain[0], covered[0]

    plain, covered = asyncio.run(scenario())

    assert plain.coverage is None
    assert plain.command == "true"
    assert covered.command == "cat report.txt"
    assert covered.coverage is not None
    assert covered.coverage.source == "api"
    assert covered.coverage.files["app/api.py"].uncovered_lines == (4, 5)


def test_command_for_appends_triggering_files() -> None:
    unit = _suite("unit", "npx jest", pass_files=True, coverage_command="npx jest --coverage")
    e2e = _suite("e2e", "npx cypress run", pass_files=True)
    plain = _suite("unit", "npx jest")
    files = ["src/a.ts", "src/a.test.ts", "cypress/e2e/login.cy.ts", "my tests/b.spec.js"]

    assert SuiteExecutor.command_for(unit, files, False) == "npx jest src/a.test.ts 'my tests/b.spec.js'"
    assert SuiteExecutor.command_for(unit, files, True).startswith("npx jest --coverage src/a.test.ts")
    assert SuiteExecutor.command_for(e2e, files, False) == "npx cypress run --spec cypress/e2e/login.cy.ts"
    assert SuiteExecutor.command_for(plain, files, False) == "npx jest"


def test_subprocess_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("VIRTUAL_ENV", "/opt/venv")
    monkeypatch.setenv("PATH", "/usr/bin")
    (tmp_path / "node_modules" / ".bin").mkdir(parents=True)

    env = subprocess_environment({"EXTRA": "1"}, project_root=tmp_path, plain_output=True)

    assert "VIRTUAL_ENV" not in env
    assert env["PATH"].split(os.pathsep) == [str(tmp_path / "node_modules" / ".bin"), "/usr/bin"]
    assert env["NO_COLOR"] == "1"
    assert env["EXTRA"] == "1"
    assert subprocess_environment(project_root=tmp_path / "missing")["PATH"] == "/usr/bin"


def test_fan_out_collects_every_outcome(tmp_path: Path) -> None:
    class PartlyBrokenExecutor(SuiteExecutor):
        async def _spawn(self, command, cwd):
            if command == "missing-runner":
                raise OSError("missing-runner: not found")
            return await super()._spawn(command, cwd)

    suites = [
        _suite("unit", "missing-runner"),
        _suite("api", "exit 2"),
        _suite("e2e", "sleep 0.3; echo slow done"),
    ]

    async def scenario():
        started = time.monotonic()
        results = await PartlyBrokenExecutor().run(suites, ["src/a.ts"], tmp_path)
        return results, time.monotonic() - started

    results, elapsed = asyncio.run(scenario())

    assert [result.suite_kind for result in results] == [SuiteKind.UNIT, SuiteKind.API, SuiteKind.E2E]
    spawn_failed, failed, slow = results
    assert not spawn_failed.succeeded and spawn_failed.raw_output == "missing-runner: not found"
    assert not failed.succeeded and failed.returncode == 2
    assert slow.succeeded and slow.raw_output == "slow done\n"
    assert elapsed >= 0.3
    assert not any(result.cancelled for result in results)
