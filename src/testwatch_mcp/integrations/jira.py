"""Jira ticket lookup and completeness analysis."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Sequence

import httpx

from ..project.models import JiraSettings
from .errors import CollaboratorError
from .git import GitRepository

logger = logging.getLogger(__name__)

REQUIREMENT_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (r"acceptance criteria", r"requirements?:", r"must have", r"should have", r"user story")
)
ACTIONABLE_COMMENT_KEYWORDS: tuple[str, ...] = ("please", "need", "should", "must", "fix", "change")
SUMMARY_LIMIT = 50


class JiraError(CollaboratorError):
    """Raised when the Jira API cannot be reached or returns an unusable ticket."""


@dataclass(slots=True)
class JiraComment:
    author: str
    body: str
    created: str


@dataclass(slots=True)
class JiraTicket:
    key: str
    summary: str
    description: str
    status: str
    comments: list[JiraComment] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "summary": self.summary,
            "description": self.description,
            "status": self.status,
            "comments": [
                {"author": comment.author, "body": comment.body, "created": comment.created}
                for comment in self.comments
            ],
        }


def requirement_issues(ticket: JiraTicket) -> list[str]:
    """Return completeness problems found in a ticket's description and comments."""

    if not ticket.description:
        return ["Ticket has no description"]

    issues: list[str] = []
    if not any(pattern.search(ticket.description) for pattern in REQUIREMENT_PATTERNS):
        issues.append("Ticket description may be missing acceptance criteria or requirements")

    actionable = [
        comment
        for comment in ticket.comments
        if any(keyword in comment.body.lower() for keyword in ACTIONABLE_COMMENT_KEYWORDS)
    ]
    if actionable:
        issues.append(f"Found {len(actionable)} potentially unaddressed comments")
        for comment in actionable[-3:]:
            preview = comment.body[:100] + ("..." if len(comment.body) > 100 else "")
            issues.append(f'  - {comment.author}: "{preview}"')
    return issues


def commit_action(files: Sequence[str]) -> str:
    if any(".test." in path or ".spec." in path for path in files):
        return "Add tests for"
    if any("fix" in path or "bug" in path for path in files):
        return "Fix"
    if any("feat" in path for path in files):
        return "Implement"
    return "Update"


class JiraTracker:
    """Talks to the Jira REST v2 API for the ticket named in the current branch."""

    def __init__(
        self,
        settings: JiraSettings,
        git: GitRepository,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._settings = settings
        self._git = git
        self._client = client
        self._timeout = timeout
        self._branch_pattern = re.compile(settings.branch_pattern, re.IGNORECASE)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            settings = self._settings
            if not (settings.base_url and settings.email and settings.api_token):
                raise JiraError("JIRA integration is not properly configured (base_url, email, api_token)")
            self._client = httpx.AsyncClient(
                base_url=settings.base_url.rstrip("/"),
                auth=(settings.email, settings.api_token),
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def ticket_for_current_branch(self) -> str | None:
        branch = await self._git.current_branch()
        if not branch:
            return None
        match = self._branch_pattern.search(branch)
        return match.group(0).upper() if match else None

    async def fetch_ticket(self, ticket_id: str) -> JiraTicket:
        try:
            response = await self.client.get(f"/rest/api/2/issue/{ticket_id}", params={"expand": "comments"})
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise JiraError(f"Failed to fetch JIRA ticket {ticket_id}: {exc}") from exc
        except ValueError as exc:
            raise JiraError(f"JIRA returned invalid JSON for {ticket_id}") from exc

        try:
            fields = data["fields"]
            comments = (fields.get("comment") or {}).get("comments") or []
            return JiraTicket(
                key=data["key"],
                summary=fields.get("summary") or "",
                description=fields.get("description") or "",
                status=(fields.get("status") or {}).get("name", "Unknown"),
                comments=[
                    JiraComment(
                        author=(comment.get("author") or {}).get("displayName", "unknown"),
                        body=comment.get("body") or "",
                        created=comment.get("created") or "",
                    )
                    for comment in comments
                ],
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise JiraError(f"Unexpected JIRA payload for {ticket_id}: {exc}") from exc

    async def ticket_issues(self, ticket_id: str) -> list[str]:
        return requirement_issues(await self.fetch_ticket(ticket_id))

    async def analyze(self) -> dict[str, Any]:
        """Return ``{ticket_key, ticket, issues}`` for the current branch."""

        ticket_key = await self.ticket_for_current_branch()
        if ticket_key is None:
            branch = await self._git.current_branch()
            issues = [f"No JIRA ticket found in branch name: {branch}"] if branch else []
            return {"ticket_key": None, "ticket": None, "issues": issues}

        ticket = await self.fetch_ticket(ticket_key)
        issues = requirement_issues(ticket)
        logger.info("Analyzed JIRA ticket", extra={"ticket": ticket_key, "issues": len(issues)})
        return {"ticket_key": ticket_key, "ticket": ticket.to_dict(), "issues": issues}

    async def commit_message(self, ticket_id: str, files: Sequence[str]) -> str:
        """``[KEY] Action summary``; falls back to a file count when the ticket is unreachable."""

        try:
            ticket = await self.fetch_ticket(ticket_id)
        except JiraError as exc:
            logger.warning("Commit message without ticket details", extra={"ticket": ticket_id, "error": str(exc)})
            return f"[{ticket_id}] Update {len(files)} files"

        summary = ticket.summary
        if len(summary) > SUMMARY_LIMIT:
            summary = summary[: SUMMARY_LIMIT - 3] + "..."
        return f"[{ticket_id}] {commit_action(files)} {summary}"


__all__ = [
    "JiraComment",
    "JiraError",
    "JiraTicket",
    "JiraTracker",
    "commit_action",
    "requirement_issues",
]
