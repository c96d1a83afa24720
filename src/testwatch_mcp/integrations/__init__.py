"""External collaborators: source control, trackers, review, environments, notifications, IDE."""

from .complexity import ComplexityScorerError, ExternalComplexityScorer
from .environments import Environment, EnvironmentCheckError, EnvironmentChecker
from .errors import CapabilityUnavailableError, CollaboratorError
from .git import FakeGit, GitError, GitRepository
from .github import GitHubError, GitHubReviews, ReviewSignals
from .heuristics import KeywordHeuristics, ReviewHeuristics
from .ide import IdeBridge, IdeCommand
from .jira import JiraError, JiraTicket, JiraTracker
from .notifications import Notification, NotificationLevel, Notifier
from .registry import CapabilityRegistry, build_registry

__all__ = [
    "CapabilityRegistry",
    "CapabilityUnavailableError",
    "CollaboratorError",
    "ComplexityScorerError",
    "Environment",
    "EnvironmentCheckError",
    "EnvironmentChecker",
    "ExternalComplexityScorer",
    "FakeGit",
    "GitError",
    "GitHubError",
    "GitHubReviews",
    "GitRepository",
    "IdeBridge",
    "IdeCommand",
    "JiraError",
    "JiraTicket",
    "JiraTracker",
    "KeywordHeuristics",
    "Notification",
    "NotificationLevel",
    "Notifier",
    "ReviewHeuristics",
    "ReviewSignals",
    "build_registry",
]
