"""GitHub pull-request review signals over the REST API."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Sequence

import httpx

from ..project.models import GitHubSettings
from .errors import CollaboratorError
from .git import GitError, GitRepository
from .heuristics import (
    ACTION,
    CHANGE,
    CONCERN,
    PARTIAL_CONFIDENCE,
    RESOLVED_CONFIDENCE,
    SUGGESTION,
    KeywordHeuristics,
    ResolutionEvidence,
    ReviewHeuristics,
    describe_confidence,
)

logger = logging.getLogger(__name__)

_REMOTE = re.compile(r"github\.com[:/]([^/]+)/([^/]+?)(?:\.git)?/?$")


class GitHubError(CollaboratorError):
    """Raised when the GitHub API cannot be reached or the repository is unknown."""


@dataclass(slots=True)
class ReviewItem:
    text: str
    category: str
    path: str | None = None


@dataclass(slots=True)
class ReviewSignals:
    """Classified comments on the pull request for the current branch."""

    pull_request: dict[str, Any] | None = None
    items: list[ReviewItem] = field(default_factory=list)

    def _texts(self, category: str) -> list[str]:
        return [item.text for item in self.items if item.category == category]

    @property
    def action_items(self) -> list[str]:
        return self._texts(ACTION)

    @property
    def requested_changes(self) -> list[str]:
        return self._texts(CHANGE)

    @property
    def concerns(self) -> list[str]:
        return self._texts(CONCERN)

    @property
    def suggestions(self) -> list[str]:
        return self._texts(SUGGESTION)

    @property
    def unresolved_summary(self) -> list[str]:
        summary: list[str] = []
        if self.action_items:
            summary.append(f"{len(self.action_items)} action items from PR comments")
        if self.requested_changes:
            summary.append(f"{len(self.requested_changes)} requested changes in code review")
        if self.concerns:
            summary.append(f"{len(self.concerns)} unresolved concerns")
        return summary

    def to_dict(self) -> dict[str, Any]:
        return {
            "pull_request": self.pull_request,
            "action_items": self.action_items,
            "requested_changes": self.requested_changes,
            "concerns": self.concerns,
            "suggestions": self.suggestions,
            "unresolved": self.unresolved_summary,
        }


def parse_remote(url: str) -> tuple[str, str] | None:
    match = _REMOTE.search(url.strip())
    if match is None:
        return None
    return match.group(1), match.group(2)


class GitHubReviews:
    """Review-comment signals for the current branch's pull request."""

    def __init__(
        self,
        settings: GitHubSettings,
        git: GitRepository,
        *,
        client: httpx.AsyncClient | None = None,
        heuristics: ReviewHeuristics | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._settings = settings
        self._git = git
        self._client = client
        self._heuristics = heuristics or KeywordHeuristics()
        self._timeout = timeout
        self._repository: tuple[str, str] | None = None
        if settings.owner and settings.repo and not settings.auto_detect:
            self._repository = (settings.owner, settings.repo)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/vnd.github+json"}
            if self._settings.token:
                headers["Authorization"] = f"Bearer {self._settings.token}"
            self._client = httpx.AsyncClient(
                base_url=self._settings.api_url.rstrip("/"),
                headers=headers,
                timeout=self._timeout,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def repository(self) -> tuple[str, str]:
        if self._repository is not None:
            return self._repository
        detected = None
        if self._settings.auto_detect:
            try:
                detected = parse_remote(await self._git.remote_url())
            except GitError as exc:
                logger.debug("No origin remote for GitHub detection", extra={"error": str(exc)})
        if detected is None and self._settings.owner and self._settings.repo:
            detected = (self._settings.owner, self._settings.repo)
        if detected is None:
            raise GitHubError("Could not determine the GitHub repository; set github.owner and github.repo")
        self._repository = detected
        return detected

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        try:
            response = await self.client.get(path, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as exc:
            raise GitHubError(f"GitHub request {path} failed: {exc}") from exc
        except ValueError as exc:
            raise GitHubError(f"GitHub returned invalid JSON for {path}") from exc

    async def pull_request_for_branch(self, branch: str | None = None) -> dict[str, Any] | None:
        owner, repo = await self.repository()
        branch = branch or await self._git.current_branch()
        pulls = await self._get(f"/repos/{owner}/{repo}/pulls", {"head": f"{owner}:{branch}", "state": "all"})
        if not pulls:
            return None
        pull = pulls[0]
        return {
            "number": pull.get("number"),
            "title": pull.get("title"),
            "state": pull.get("state"),
            "url": pull.get("html_url"),
            "author": (pull.get("user") or {}).get("login"),
        }

    async def pending_review_signals(self, branch: str | None = None) -> ReviewSignals:
        pull = await self.pull_request_for_branch(branch)
        if pull is None:
            return ReviewSignals()

        owner, repo = await self.repository()
        number = pull["number"]
        comments, review_comments = await asyncio.gather(
            self._get(f"/repos/{owner}/{repo}/issues/{number}/comments"),
            self._get(f"/repos/{owner}/{repo}/pulls/{number}/comments"),
        )

        items: list[ReviewItem] = []
        for comment in comments or []:
            body = comment.get("body") or ""
            category = self._heuristics.classify(body)
            if category in {ACTION, CONCERN, SUGGESTION}:
                author = (comment.get("user") or {}).get("login", "unknown")
                items.append(ReviewItem(text=f"@{author}: {body}", category=category))

        for comment in review_comments or []:
            body = comment.get("body") or ""
            category = self._heuristics.classify(body)
            if category == ACTION:
                category = CHANGE
            if category not in {CHANGE, CONCERN, SUGGESTION}:
                continue
            author = (comment.get("user") or {}).get("login", "unknown")
            path = comment.get("path")
            location = f"{path}:{comment['line']}" if comment.get("line") else str(path)
            items.append(ReviewItem(text=f"@{author} on {location}: {body}", category=category, path=path))

        return ReviewSignals(pull_request=pull, items=items)

    async def resolution_analysis(
        self,
        changed_files: Sequence[str] | None = None,
        *,
        signals: ReviewSignals | None = None,
    ) -> dict[str, Any]:
        """Score every open review item against changed files and recent commits.

        Pass ``signals`` from an earlier :meth:`pending_review_signals` call to
        avoid fetching the pull request comments again.
        """

        if signals is None:
            signals = await self.pending_review_signals()
        if signals.pull_request is None:
            return {
                "overall_confidence": 0.0,
                "resolutions": [],
                "resolved": 0,
                "partially_resolved": 0,
                "unresolved": 0,
            }

        if changed_files is None:
            changed_files = await self._git.changed_files()
        try:
            commits = await self._git.recent_commits(5)
        except GitError:
            commits = []

        resolutions: list[dict[str, Any]] = []
        for item in signals.items:
            if item.category == SUGGESTION:
                continue
            evidence = ResolutionEvidence(
                text=item.text,
                category=item.category,
                changed_files=list(changed_files),
                recent_commits=commits,
                review_path=item.path,
            )
            confidence = self._heuristics.score(evidence)
            resolutions.append(
                {
                    "comment": item.text,
                    "type": item.category,
                    "confidence": round(confidence, 3),
                    "reasoning": describe_confidence(confidence, item.category, evidence.related_files),
                    "related_files": evidence.related_files,
                }
            )

        scores = [entry["confidence"] for entry in resolutions]
        return {
            "pull_request": signals.pull_request,
            "overall_confidence": sum(scores) / len(scores) if scores else 1.0,
            "resolutions": resolutions,
            "resolved": sum(1 for score in scores if score >= RESOLVED_CONFIDENCE),
            "partially_resolved": sum(1 for score in scores if PARTIAL_CONFIDENCE <= score < RESOLVED_CONFIDENCE),
            "unresolved": sum(1 for score in scores if score < PARTIAL_CONFIDENCE),
        }


__all__ = ["GitHubError", "GitHubReviews", "ReviewItem", "ReviewSignals", "parse_remote"]
