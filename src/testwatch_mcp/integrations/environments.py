"""Deployment environment polling."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ..project.models import EnvironmentSettings
from .errors import CollaboratorError

logger = logging.getLogger(__name__)

MAIN_BRANCHES = frozenset({"main", "master"})


class EnvironmentCheckError(CollaboratorError):
    """Raised when the environment endpoint is unreachable or malformed."""


@dataclass(slots=True)
class Environment:
    name: str
    branch: str
    status: str = "unknown"
    url: str | None = None

    @property
    def running_non_main(self) -> bool:
        return self.branch not in MAIN_BRANCHES and self.status == "up"

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "branch": self.branch, "status": self.status, "url": self.url}


def _normalize_status(value: Any) -> str:
    text = str(value or "").strip().lower()
    if text in {"up", "running", "healthy", "ok"}:
        return "up"
    if text in {"down", "stopped", "failed"}:
        return "down"
    return "unknown"


class EnvironmentChecker:
    """Reads ``[{name, branch, status, url}]`` from a JSON endpoint."""

    def __init__(
        self,
        settings: EnvironmentSettings,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._settings = settings
        self._client = client
        self._timeout = timeout

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def environments(self) -> list[Environment]:
        if not self._settings.check_url:
            raise EnvironmentCheckError("environments.check_url is not configured")
        try:
            response = await self.client.get(self._settings.check_url)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise EnvironmentCheckError(f"Failed to check environments: {exc}") from exc
        except ValueError as exc:
            raise EnvironmentCheckError("Environment endpoint returned invalid JSON") from exc

        if isinstance(payload, dict):
            payload = payload.get("environments", [])
        if not isinstance(payload, list):
            raise EnvironmentCheckError("Environment endpoint must return a list of environments")

        environments: list[Environment] = []
        for entry in payload:
            if not isinstance(entry, dict) or not entry.get("name") or not entry.get("branch"):
                continue
            environments.append(
                Environment(
                    name=str(entry["name"]),
                    branch=str(entry["branch"]),
                    status=_normalize_status(entry.get("status")),
                    url=entry.get("url"),
                )
            )
        return environments

    async def non_main_environments(self) -> list[Environment]:
        return [env for env in await self.environments() if env.running_non_main]

    async def report(self, current_branch: str | None = None) -> dict[str, Any]:
        """Summarise environments running feature branches, with advisory messages."""

        non_main = await self.non_main_environments()
        messages: list[str] = []
        if non_main and self._settings.notify_on_non_main:
            messages.append("Non-main environments detected:")
            messages.extend(
                f"  - {env.name}: {env.branch}" + (f" ({env.url})" if env.url else "") for env in non_main
            )
            messages.append("Consider coordinating with team members before pushing to avoid conflicts.")
        deployed = [env.name for env in non_main if current_branch and env.branch == current_branch]
        if deployed:
            messages.append(f'Your branch "{current_branch}" is currently deployed to: {", ".join(deployed)}')
        return {
            "non_main": [env.to_dict() for env in non_main],
            "current_branch_deployed_to": deployed,
            "messages": messages,
        }


__all__ = ["Environment", "EnvironmentCheckError", "EnvironmentChecker"]
