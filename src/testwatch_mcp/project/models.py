"""Project configuration models loaded from ``testwatch.yaml``."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..suites.models import SuiteDefinition, SuiteKind

_JS_SOURCES = "src/**/*.{js,jsx,ts,tsx}"

DEFAULT_EXCLUDE_PATTERNS: tuple[str, ...] = (
    "**/node_modules/**",
    "**/dist/**",
    "**/build/**",
    "**/.git/**",
    "**/coverage/**",
    "**/.next/**",
    "**/.cache/**",
)


def default_suites() -> list[SuiteDefinition]:
    """Jest, Cypress and Storybook suites used when no configuration is present."""

    return [
        SuiteDefinition(
            kind=SuiteKind.UNIT,
            match_patterns=[
                _JS_SOURCES,
                "**/*.test.{js,jsx,ts,tsx}",
                "**/*.spec.{js,jsx,ts,tsx}",
            ],
            run_command="npm test --",
            coverage_command="npm test -- --coverage",
            priority=3,
            pass_files=True,
        ),
        SuiteDefinition(
            kind=SuiteKind.E2E,
            match_patterns=[_JS_SOURCES, "cypress/**/*.{js,jsx,ts,tsx}", "**/*.cy.{js,jsx,ts,tsx}"],
            run_command="npm run cypress:run",
            priority=1,
            pass_files=True,
        ),
        SuiteDefinition(
            kind=SuiteKind.COMPONENT,
            match_patterns=[_JS_SOURCES, "**/*.stories.{js,jsx,ts,tsx}"],
            run_command="npm run test-storybook",
            priority=2,
        ),
    ]


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class CoverageThresholds(_Section):
    """Percent targets; ``per_file`` decides per-file coverage gaps."""

    unit: float = Field(default=80.0, ge=0, le=100)
    integration: float = Field(default=70.0, ge=0, le=100)
    e2e: float = Field(default=60.0, ge=0, le=100)
    per_file: float = Field(default=80.0, ge=0, le=100)


class CoverageSettings(_Section):
    enabled: bool = False
    thresholds: CoverageThresholds = Field(default_factory=CoverageThresholds)
    persist_path: Path = Field(
        default=Path("coverage"),
        description="Directory holding coverage-snapshot.json; relative to the project root.",
    )
    track_patterns: list[str] = Field(
        default_factory=lambda: ["src/**/*.{js,jsx,ts,tsx,py}", "lib/**/*.{js,jsx,ts,tsx,py}"],
    )
    ignore_patterns: list[str] = Field(
        default_factory=lambda: [
            "**/*.test.*",
            "**/*.spec.*",
            "**/*.cy.*",
            "**/*.stories.*",
            "**/__tests__/**",
            "**/test_*.py",
        ],
    )


class CriticalPathSettings(_Section):
    enabled: bool = False
    paths: list[str] = Field(default_factory=list, description="Substrings of critical paths.")
    patterns: list[str] = Field(default_factory=list, description="Globs of critical paths.")


class JiraSettings(_Section):
    enabled: bool = False
    base_url: str | None = None
    email: str | None = None
    api_token: str | None = None
    project_key: str | None = None
    branch_pattern: str = r"[A-Z]+-\d+"


class GitHubSettings(_Section):
    enabled: bool = False
    token: str | None = None
    owner: str | None = None
    repo: str | None = None
    api_url: str = "https://api.github.com"
    auto_detect: bool = True


class EnvironmentSettings(_Section):
    enabled: bool = False
    check_url: str | None = None
    notify_on_non_main: bool = True


class SlackSettings(_Section):
    webhook_url: str | None = None
    channel: str | None = None


class NotificationSettings(_Section):
    enabled: bool = True
    console_output: bool = True
    ide: bool = True
    slack: SlackSettings | None = None


class ComplexitySettings(_Section):
    enabled: bool = False
    command: str | None = Field(
        default=None,
        description="Scorer command template; '{file}' is replaced by the quoted file path.",
    )
    warning_threshold: float = 10.0
    error_threshold: float = 20.0
    include_patterns: list[str] = Field(
        default_factory=lambda: ["**/*.{js,jsx,ts,tsx,py}"],
    )
    exclude_patterns: list[str] = Field(default_factory=list)


class ProjectConfig(_Section):
    """Validated project configuration."""

    project_root: Path = Field(default=Path("."))
    suites: list[SuiteDefinition] = Field(default_factory=default_suites)
    exclude_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    debounce_ms: int = Field(default=1000, ge=0)
    ide_port: int | None = Field(default=None, ge=1, le=65535)
    coverage: CoverageSettings = Field(default_factory=CoverageSettings)
    critical_paths: CriticalPathSettings = Field(default_factory=CriticalPathSettings)
    jira: JiraSettings = Field(default_factory=JiraSettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    environments: EnvironmentSettings = Field(default_factory=EnvironmentSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    complexity: ComplexitySettings = Field(default_factory=ComplexitySettings)

    @field_validator("suites")
    @classmethod
    def _unique_kinds(cls, value: list[SuiteDefinition]) -> list[SuiteDefinition]:
        seen: set[SuiteKind] = set()
        duplicates: list[str] = []
        for suite in value:
            if suite.kind in seen:
                duplicates.append(suite.kind.value)
            seen.add(suite.kind)
        if duplicates:
            raise ValueError(f"Duplicate suite kinds: {', '.join(sorted(set(duplicates)))}")
        return value

    @field_validator("exclude_patterns", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):  # type: ignore[override]
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @property
    def enabled_suites(self) -> list[SuiteDefinition]:
        return [suite for suite in self.suites if suite.enabled]

    @property
    def coverage_file(self) -> Path:
        return self.coverage.persist_path / "coverage-snapshot.json"

    def suite(self, kind: SuiteKind | str) -> SuiteDefinition | None:
        target = SuiteKind(kind)
        for suite in self.suites:
            if suite.kind == target:
                return suite
        return None


__all__ = [
    "ComplexitySettings",
    "CoverageSettings",
    "CoverageThresholds",
    "CriticalPathSettings",
    "DEFAULT_EXCLUDE_PATTERNS",
    "EnvironmentSettings",
    "GitHubSettings",
    "JiraSettings",
    "NotificationSettings",
    "ProjectConfig",
    "SlackSettings",
    "default_suites",
]
