"""Complexity scoring delegated to an external command."""

from __future__ import annotations

import asyncio
import logging
import re
import shlex
import tempfile
from pathlib import Path
from typing import Any, Sequence

from ..project.models import ComplexitySettings
from ..runner.environment import subprocess_environment
from ..suites.patterns import match_any
from .git import GitError, GitRepository

logger = logging.getLogger(__name__)

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


class ComplexityScorerError(RuntimeError):
    """Raised when the scorer command fails or prints no number."""


class ExternalComplexityScorer:
    """Runs ``settings.command`` per file and reads the last number it prints."""

    def __init__(self, settings: ComplexitySettings, root: Path, git: GitRepository | None = None) -> None:
        if not settings.command:
            raise ComplexityScorerError("complexity.command is not configured")
        self._settings = settings
        self._root = Path(root)
        self._git = git

    def should_score(self, path: str) -> bool:
        if self._settings.exclude_patterns and match_any(path, self._settings.exclude_patterns):
            return False
        return match_any(path, self._settings.include_patterns)

    def level(self, value: float) -> str:
        if value >= self._settings.error_threshold:
            return "error"
        if value >= self._settings.warning_threshold:
            return "warning"
        return "ok"

    async def _run(self, target: Path) -> float:
        command = self._settings.command.replace("{file}", shlex.quote(str(target)))  # type: ignore[union-attr]
        try:
            process = await asyncio.create_subprocess_shell(
                command,
                cwd=str(self._root),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=subprocess_environment(project_root=self._root),
            )
        except OSError as exc:
            raise ComplexityScorerError(f"Unable to run complexity scorer: {exc}") from exc

        stdout_bytes, stderr_bytes = await process.communicate()
        if process.returncode != 0:
            stderr = stderr_bytes.decode("utf-8", errors="replace").strip()
            raise ComplexityScorerError(f"Scorer exited with {process.returncode} for {target}: {stderr}")
        numbers = _NUMBER.findall(stdout_bytes.decode("utf-8", errors="replace"))
        if not numbers:
            raise ComplexityScorerError(f"Scorer printed no score for {target}")
        return float(numbers[-1])

    async def score(self, path: str) -> float:
        return await self._run(self._root / path)

    async def score_many(self, paths: Sequence[str]) -> list[dict[str, Any]]:
        selected = [path for path in paths if self.should_score(path)]
        outcomes = await asyncio.gather(*(self.score(path) for path in selected), return_exceptions=True)

        reports: list[dict[str, Any]] = []
        for path, outcome in zip(selected, outcomes):
            if isinstance(outcome, ComplexityScorerError):
                reports.append({"path": path, "complexity": None, "level": "unknown", "error": str(outcome)})
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                reports.append({"path": path, "complexity": outcome, "level": self.level(outcome)})
        return reports

    async def compare(self, path: str) -> dict[str, Any] | None:
        """Score HEAD against the working copy; ``None`` when the file has no HEAD version."""

        if self._git is None:
            raise ComplexityScorerError("Comparing complexity requires git")
        try:
            previous_content = await self._git.show_file("HEAD", path)
        except GitError:
            return None

        current = await self.score(path)
        target = self._root / path
        with tempfile.TemporaryDirectory(prefix=".testwatch-complexity-") as workdir:
            previous_file = Path(workdir) / target.name
            previous_file.write_text(previous_content, encoding="utf-8")
            previous = await self._run(previous_file)

        change = current - previous
        return {
            "path": path,
            "previous": previous,
            "current": current,
            "change": change,
            "percentage_change": (change / previous * 100) if previous > 0 else 0.0,
            "increased": change > 0,
        }


__all__ = ["ComplexityScorerError", "ExternalComplexityScorer"]
