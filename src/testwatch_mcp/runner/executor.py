"""Concurrent, cancellable execution of test suites."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import time
from pathlib import Path
from typing import Mapping, Sequence

from ..coverage.parsers import SUMMARY_ARTIFACT
from ..coverage.store import CoverageStore
from ..suites.models import SuiteDefinition, SuiteResult
from ..suites.strategies import strategy_for
from .environment import subprocess_environment

logger = logging.getLogger(__name__)

CANCELLED_PREFIX = "[cancelled]"


class SuiteExecutor:
    """Runs suites as shell subprocesses and normalises every outcome.

    All suites passed to :meth:`run` start together and the call returns once
    each has finished, been cancelled, or failed to start. :meth:`cancel_all`
    affects only the runs in flight when it is called.
    """

    def __init__(
        self,
        store: CoverageStore | None = None,
        *,
        kill_grace_seconds: float = 5.0,
        artifact_subdir: str = "coverage",
        environment: Mapping[str, str] | None = None,
    ) -> None:
        self._store = store
        self._kill_grace = kill_grace_seconds
        self._artifact_subdir = artifact_subdir
        self._environment = dict(environment or {})
        self._cancel_event = asyncio.Event()
        self._active = 0

    @property
    def active(self) -> int:
        """Number of suites currently running."""

        return self._active

    @staticmethod
    def command_for(suite: SuiteDefinition, triggering_paths: Sequence[str], collect_coverage: bool) -> str:
        command = suite.run_command
        if collect_coverage and suite.coverage_command:
            command = suite.coverage_command
        if suite.pass_files and triggering_paths:
            command = strategy_for(suite.kind).format_command(command, triggering_paths)
        return command

    def cancel_all(self) -> None:
        """Cancel every in-flight suite; later runs get a fresh signal."""

        event, self._cancel_event = self._cancel_event, asyncio.Event()
        event.set()
        if self._active:
            logger.info("Cancelling running suites", extra={"active": self._active})

    async def run(
        self,
        suites: Sequence[SuiteDefinition],
        triggering_paths: Sequence[str],
        working_directory: Path,
        collect_coverage: bool = False,
    ) -> list[SuiteResult]:
        cancel_event = self._cancel_event
        paths = list(triggering_paths)
        outcomes = await asyncio.gather(
            *(
                self._run_suite(suite, paths, Path(working_directory), collect_coverage, cancel_event)
                for suite in suites
            ),
            return_exceptions=True,
        )

        results: list[SuiteResult] = []
        for suite, outcome in zip(suites, outcomes):
            if isinstance(outcome, SuiteResult):
                results.append(outcome)
                continue
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            logger.error(
                "Suite raised unexpectedly",
                extra={"suite": suite.kind.value, "error": repr(outcome)},
            )
            results.append(
                SuiteResult(
                    suite_kind=suite.kind,
                    succeeded=False,
                    duration_ms=0.0,
                    raw_output=f"{type(outcome).__name__}: {outcome}",
                    triggering_paths=paths,
                    command=self.command_for(suite, paths, collect_coverage),
                )
            )
        return results

    async def _spawn(self, command: str, cwd: Path) -> asyncio.subprocess.Process:
        return await asyncio.create_subprocess_shell(
            command,
            cwd=str(cwd),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=subprocess_environment(self._environment, project_root=cwd, plain_output=True),
            start_new_session=True,
        )

    async def _run_suite(
        self,
        suite: SuiteDefinition,
        paths: list[str],
        cwd: Path,
        collect_coverage: bool,
        cancel_event: asyncio.Event,
    ) -> SuiteResult:
        command = self.command_for(suite, paths, collect_coverage)
        uses_coverage = collect_coverage and suite.coverage_command is not None
        started = time.monotonic()
        started_wall = time.time()

        def _result(succeeded: bool, output: str, **fields) -> SuiteResult:
            return SuiteResult(
                suite_kind=suite.kind,
                succeeded=succeeded,
                duration_ms=(time.monotonic() - started) * 1000,
                raw_output=output,
                triggering_paths=list(paths),
                command=command,
                **fields,
            )

        if cancel_event.is_set():
            return _result(False, f"{CANCELLED_PREFIX} before start", cancelled=True)

        logger.info("Starting suite", extra={"suite": suite.kind.value, "command": command})
        try:
            process = await self._spawn(command, cwd)
        except OSError as exc:
            logger.warning(
                "Suite failed to start",
                extra={"suite": suite.kind.value, "error": str(exc)},
            )
            return _result(False, str(exc))

        self._active += 1
        communicate = asyncio.ensure_future(process.communicate())
        cancelled = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {communicate, cancelled},
                timeout=suite.timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if communicate in done:
                stdout, _ = communicate.result()
                output = (stdout or b"").decode("utf-8", errors="replace")
                succeeded = process.returncode == 0
                coverage = None
                if uses_coverage and self._store is not None:
                    coverage = self._store.parse(suite.kind, output, self._artifact_dir(cwd, started_wall))
                result = _result(succeeded, output, returncode=process.returncode, coverage=coverage)
                logger.info(
                    "Suite finished",
                    extra={
                        "suite": suite.kind.value,
                        "returncode": process.returncode,
                        "duration_ms": round(result.duration_ms),
                    },
                )
                return result

            if cancelled in done:
                reason = CANCELLED_PREFIX
            else:
                reason = f"{CANCELLED_PREFIX} timed out after {suite.timeout_seconds:g}s"
            await self._terminate(process)
            logger.info("Suite cancelled", extra={"suite": suite.kind.value, "reason": reason})
            return _result(False, reason, cancelled=True, returncode=process.returncode)
        finally:
            self._active -= 1
            cancelled.cancel()
            if not communicate.done():
                communicate.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await communicate
            if process.returncode is None:
                await self._terminate(process)

    def _artifact_dir(self, cwd: Path, started_wall: float) -> Path | None:
        directory = cwd / self._artifact_subdir
        artifact = directory / SUMMARY_ARTIFACT
        try:
            if artifact.stat().st_mtime >= started_wall:
                return directory
        except OSError:
            return None
        return None

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        _signal_group(process, signal.SIGTERM)
        try:
            await asyncio.wait_for(process.wait(), timeout=self._kill_grace)
        except asyncio.TimeoutError:
            logger.warning("Suite ignored SIGTERM; killing", extra={"pid": process.pid})
            _signal_group(process, signal.SIGKILL)
            await process.wait()


def _signal_group(process: asyncio.subprocess.Process, signum: int) -> None:
    try:
        os.killpg(process.pid, signum)
    except ProcessLookupError:
        return
    except (AttributeError, PermissionError):
        process.send_signal(signum)


__all__ = ["CANCELLED_PREFIX", "SuiteExecutor"]
