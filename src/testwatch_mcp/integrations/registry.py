"""Capability registry built once from project configuration."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from ..project.models import ProjectConfig
from .complexity import ExternalComplexityScorer
from .environments import EnvironmentChecker
from .errors import CapabilityUnavailableError
from .git import GitRepository
from .github import GitHubReviews
from .ide import IdeBridge
from .jira import JiraTracker
from .notifications import Notifier

logger = logging.getLogger(__name__)

GIT = "git"
JIRA = "jira"
GITHUB = "github"
ENVIRONMENTS = "environments"
NOTIFIER = "notifier"
IDE = "ide"
COMPLEXITY = "complexity"

_UNAVAILABLE = {
    JIRA: "JIRA integration not enabled",
    GITHUB: "GitHub integration not enabled",
    ENVIRONMENTS: "Environment checks not enabled",
    IDE: "IDE bridge not enabled",
    COMPLEXITY: "Complexity scorer not configured",
}


class CapabilityRegistry:
    """Maps capability names to collaborator instances."""

    def __init__(self, capabilities: Mapping[str, Any]) -> None:
        if GIT not in capabilities or NOTIFIER not in capabilities:
            raise ValueError("The git and notifier capabilities are required")
        self._capabilities = dict(capabilities)

    def available(self, name: str) -> bool:
        return self._capabilities.get(name) is not None

    def get(self, name: str) -> Any:
        capability = self._capabilities.get(name)
        if capability is None:
            raise CapabilityUnavailableError(_UNAVAILABLE.get(name, f"Capability '{name}' not available"))
        return capability

    def optional(self, name: str) -> Any | None:
        return self._capabilities.get(name)

    def names(self) -> list[str]:
        return sorted(name for name, value in self._capabilities.items() if value is not None)

    @property
    def git(self) -> GitRepository:
        return self._capabilities[GIT]

    @property
    def notifier(self) -> Notifier:
        return self._capabilities[NOTIFIER]

    @property
    def ide(self) -> IdeBridge | None:
        return self._capabilities.get(IDE)

    async def aclose(self) -> None:
        for value in self._capabilities.values():
            closer = getattr(value, "aclose", None)
            if callable(closer):
                await closer()


def build_registry(config: ProjectConfig, *, ide_port: int | None = None) -> CapabilityRegistry:
    """Instantiate every enabled collaborator for ``config``."""

    root = config.project_root
    git = GitRepository(root)

    port = ide_port if ide_port is not None else config.ide_port
    ide = IdeBridge(port) if port is not None else None

    capabilities: dict[str, Any] = {
        GIT: git,
        NOTIFIER: Notifier.from_settings(config.notifications, ide=ide),
        IDE: ide,
        JIRA: JiraTracker(config.jira, git) if config.jira.enabled else None,
        GITHUB: GitHubReviews(config.github, git) if config.github.enabled else None,
        ENVIRONMENTS: EnvironmentChecker(config.environments) if config.environments.enabled else None,
        COMPLEXITY: (
            ExternalComplexityScorer(config.complexity, root, git)
            if config.complexity.enabled and config.complexity.command
            else None
        ),
    }
    registry = CapabilityRegistry(capabilities)
    logger.info("Capabilities ready", extra={"capabilities": registry.names()})
    return registry


__all__ = [
    "COMPLEXITY",
    "CapabilityRegistry",
    "ENVIRONMENTS",
    "GIT",
    "GITHUB",
    "IDE",
    "JIRA",
    "NOTIFIER",
    "build_registry",
]
