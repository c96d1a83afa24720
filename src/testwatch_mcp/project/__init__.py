"""Project configuration package."""

from .loader import CONFIG_NAMES, ConfigError, ConfigLoader, load_project_config, sample_config
from .models import (
    ComplexitySettings,
    CoverageSettings,
    CoverageThresholds,
    CriticalPathSettings,
    EnvironmentSettings,
    GitHubSettings,
    JiraSettings,
    NotificationSettings,
    ProjectConfig,
    SlackSettings,
    default_suites,
)

__all__ = [
    "CONFIG_NAMES",
    "ComplexitySettings",
    "ConfigError",
    "ConfigLoader",
    "CoverageSettings",
    "CoverageThresholds",
    "CriticalPathSettings",
    "EnvironmentSettings",
    "GitHubSettings",
    "JiraSettings",
    "NotificationSettings",
    "ProjectConfig",
    "SlackSettings",
    "default_suites",
    "load_project_config",
    "sample_config",
]
