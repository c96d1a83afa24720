"""Read-only git queries over ``asyncio`` subprocesses."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from ..runner.environment import subprocess_environment

logger = logging.getLogger(__name__)


class GitError(RuntimeError):
    """Raised when a git command fails or git is unavailable."""


class GitRepository:
    """Source-control queries for the project working tree."""

    def __init__(self, root: Path, *, executable: str = "git") -> None:
        self._root = Path(root)
        self._executable = executable

    @property
    def root(self) -> Path:
        return self._root

    async def _git(self, *args: str) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                self._executable,
                *args,
                cwd=str(self._root),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=subprocess_environment({"GIT_TERMINAL_PROMPT": "0"}),
            )
        except OSError as exc:
            raise GitError(f"Unable to run git: {exc}") from exc

        stdout_bytes, stderr_bytes = await process.communicate()
        if process.returncode != 0:
            stderr = stderr_bytes.decode("utf-8", errors="replace").strip()
            raise GitError(f"git {' '.join(args)} failed ({process.returncode}): {stderr}")
        return stdout_bytes.decode("utf-8", errors="replace")

    async def current_branch(self) -> str:
        return (await self._git("branch", "--show-current")).strip()

    async def main_branch(self) -> str:
        try:
            head = (await self._git("symbolic-ref", "refs/remotes/origin/HEAD")).strip()
            if head:
                return head.replace("refs/remotes/origin/", "", 1)
        except GitError:
            pass
        try:
            await self._git("show-ref", "--verify", "--quiet", "refs/heads/main")
            return "main"
        except GitError:
            return "master"

    async def fetch(self) -> None:
        await self._git("fetch", "origin")

    async def ahead_behind_counts(self, branch: str | None = None) -> tuple[int, int]:
        """Return ``(ahead, behind)`` relative to ``origin/<branch>``; ``(0, 0)`` without upstream."""

        branch = branch or await self.current_branch()
        if not branch:
            return (0, 0)
        try:
            output = await self._git("rev-list", "--left-right", "--count", f"origin/{branch}...HEAD")
        except GitError:
            return (0, 0)
        parts = output.split()
        if len(parts) != 2:
            return (0, 0)
        behind, ahead = (int(part) if part.isdigit() else 0 for part in parts)
        return (ahead, behind)

    async def porcelain_status(self) -> list[str]:
        output = await self._git("status", "--porcelain")
        return [line for line in output.splitlines() if line.strip()]

    async def has_uncommitted_changes(self) -> bool:
        return any(not line.startswith("??") for line in await self.porcelain_status())

    async def changed_files(self) -> list[str]:
        """Staged and unstaged changes, relative to the project root."""

        try:
            unstaged = (await self._git("diff", "--name-only", "HEAD")).splitlines()
        except GitError:
            # no commits yet
            unstaged = []
        staged = (await self._git("diff", "--name-only", "--cached")).splitlines()
        files = list(dict.fromkeys(line.strip() for line in [*unstaged, *staged] if line.strip()))

        top = Path((await self._git("rev-parse", "--show-toplevel")).strip()).resolve()
        root = self._root.resolve()
        if root == top:
            return files
        try:
            prefix = root.relative_to(top).as_posix() + "/"
        except ValueError:
            return files
        return [path[len(prefix) :] for path in files if path.startswith(prefix)]

    async def remote_url(self, remote: str = "origin") -> str:
        return (await self._git("config", "--get", f"remote.{remote}.url")).strip()

    async def recent_commits(self, limit: int = 5) -> list[str]:
        output = await self._git("log", "--oneline", "-n", str(limit))
        return [line for line in output.splitlines() if line.strip()]

    async def show_file(self, rev: str, path: str) -> str:
        return await self._git("show", f"{rev}:./{path}")

    async def status(self, *, fetch: bool = False) -> dict[str, Any]:
        """Composite branch status with human-readable messages."""

        if fetch:
            try:
                await self.fetch()
            except GitError as exc:
                logger.warning("git fetch failed", extra={"error": str(exc)})

        branch = await self.current_branch()
        main = await self.main_branch()
        ahead, behind = await self.ahead_behind_counts(branch)
        lines = await self.porcelain_status()
        uncommitted = any(not line.startswith("??") for line in lines)
        untracked = any(line.startswith("??") for line in lines)

        messages: list[str] = []
        if behind:
            messages.append(
                f"Your branch is {behind} commit(s) behind origin/{branch}. Run 'git pull' to update."
            )
        main_ahead = 0
        if branch and branch != main:
            try:
                main_ahead = int((await self._git("rev-list", "--count", f"{branch}..origin/{main}")).strip() or 0)
            except (GitError, ValueError):
                main_ahead = 0
            if main_ahead:
                messages.append(f"The {main} branch is {main_ahead} commit(s) ahead. Consider merging or rebasing.")
        if uncommitted:
            messages.append("You have uncommitted changes. Commit or stash them before pulling or merging.")

        return {
            "branch": branch,
            "main_branch": main,
            "ahead": ahead,
            "behind": behind,
            "main_ahead": main_ahead,
            "uncommitted": uncommitted,
            "untracked": untracked,
            "up_to_date": not messages,
            "messages": messages,
        }


class FakeGit(GitRepository):
    """Test double answering git commands from a canned mapping."""

    def __init__(self, responses: dict[tuple[str, ...], str | Exception] | None = None) -> None:  # type: ignore[override]
        super().__init__(Path("."))
        self._responses = dict(responses or {})
        self._invocations: list[tuple[str, ...]] = []

    async def _git(self, *args: str) -> str:  # type: ignore[override]
        self._invocations.append(tuple(args))
        response = self._responses.get(tuple(args), "")
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations


__all__ = ["FakeGit", "GitError", "GitRepository"]
