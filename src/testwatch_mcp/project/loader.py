"""Project configuration discovery and loading."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import ValidationError

from ..config import TestwatchSettings
from .models import DEFAULT_EXCLUDE_PATTERNS, ProjectConfig

logger = logging.getLogger(__name__)

CONFIG_NAMES: tuple[str, ...] = ("testwatch.yaml", "testwatch.yml", "testwatch.json")
PARENT_SEARCH_DEPTH = 3


class ConfigError(RuntimeError):
    """Raised when the project configuration cannot be read or validated."""


class ConfigLoader:
    """Finds and validates the project configuration file."""

    def __init__(
        self,
        settings: TestwatchSettings | None = None,
        *,
        cwd: Path | None = None,
        project_root: Path | None = None,
    ) -> None:
        self._settings = settings
        self._cwd = Path(cwd or Path.cwd()).resolve()
        root = project_root or (settings.project_root if settings is not None else None)
        self._project_root = Path(root).expanduser().resolve() if root is not None else None

    def candidates(self) -> list[Path]:
        """Return discovery locations in priority order."""

        locations: list[Path] = [self._cwd / name for name in CONFIG_NAMES]
        if self._project_root is not None:
            locations.extend(self._project_root / name for name in CONFIG_NAMES)
        parent = self._cwd
        for _ in range(PARENT_SEARCH_DEPTH):
            if parent.parent == parent:
                break
            parent = parent.parent
            locations.extend(parent / name for name in CONFIG_NAMES)
        return locations

    def discover(self, explicit: Path | None = None) -> Path | None:
        """Return the configuration file to load, or ``None`` to use defaults."""

        if explicit is not None:
            candidate = Path(explicit).expanduser()
            if not candidate.is_file():
                raise ConfigError(f"Config file not found at {candidate}")
            return candidate.resolve()

        if self._settings is not None and self._settings.config_path is not None:
            candidate = self._settings.config_path
            if not candidate.is_file():
                raise ConfigError(f"TESTWATCH_CONFIG points at a missing file: {candidate}")
            return candidate

        for location in self.candidates():
            if location.is_file():
                return location
        return None

    def load(self, explicit: Path | None = None) -> ProjectConfig:
        """Load, merge with defaults and normalise the project configuration."""

        path = self.discover(explicit)
        if path is None:
            logger.info("No config file found, using defaults", extra={"cwd": str(self._cwd)})
            return self._normalize(ProjectConfig(), base_dir=self._cwd)

        logger.info("Loading config file", extra={"path": str(path)})
        document = self._read(path)
        config = self._validate(document, path)
        return self._normalize(config, base_dir=path.parent)

    @staticmethod
    def _read(path: Path) -> dict[str, Any]:
        try:
            document = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigError(f"Failed to read {path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse {path}: {exc}") from exc

        if document is None:
            return {}
        if not isinstance(document, dict):
            raise ConfigError(f"Config file {path} must contain a mapping at the top level")
        return document

    @staticmethod
    def _validate(document: dict[str, Any], path: Path) -> ProjectConfig:
        merged = dict(document)
        if merged.get("exclude_patterns") is not None:
            user_patterns = merged["exclude_patterns"]
            if isinstance(user_patterns, str):
                user_patterns = [user_patterns]
            if isinstance(user_patterns, list):
                merged["exclude_patterns"] = _unique([*DEFAULT_EXCLUDE_PATTERNS, *user_patterns])

        try:
            return ProjectConfig.model_validate(merged)
        except ValidationError as exc:
            errors = [
                f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
                for error in exc.errors()
            ]
            raise ConfigError(f"Invalid config in {path}: " + "; ".join(errors)) from exc

    def _normalize(self, config: ProjectConfig, *, base_dir: Path) -> ProjectConfig:
        if self._project_root is not None:
            project_root = self._project_root
        elif config.project_root.is_absolute():
            project_root = config.project_root
        else:
            project_root = (base_dir / config.project_root).resolve()

        persist_path = config.coverage.persist_path
        if not persist_path.is_absolute():
            persist_path = project_root / persist_path

        coverage = config.coverage.model_copy(update={"persist_path": persist_path})
        return config.model_copy(update={"project_root": project_root, "coverage": coverage})


def _unique(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(values))


def load_project_config(
    path: Path | None = None,
    *,
    settings: TestwatchSettings | None = None,
    project_root: Path | None = None,
    cwd: Path | None = None,
) -> ProjectConfig:
    """Convenience wrapper around :class:`ConfigLoader`."""

    loader = ConfigLoader(settings, cwd=cwd, project_root=project_root)
    return loader.load(path)


def sample_config() -> str:
    """Return the sample configuration written by ``testwatch init``."""

    sample = {
        "project_root": ".",
        "suites": [
            {
                "kind": "unit",
                "match_patterns": ["src/**/*.ts", "**/*.test.ts", "**/*.spec.ts"],
                "run_command": "npm test --",
                "coverage_command": "npm test -- --coverage",
                "priority": 3,
                "pass_files": True,
            },
            {
                "kind": "e2e",
                "match_patterns": ["src/**/*.ts", "cypress/**/*.ts"],
                "run_command": "npm run cypress:run",
                "priority": 1,
                "timeout_seconds": 900,
            },
            {
                "kind": "component",
                "match_patterns": ["src/**/*.tsx", "**/*.stories.tsx"],
                "run_command": "npm run test-storybook",
                "priority": 2,
            },
        ],
        "exclude_patterns": ["**/node_modules/**", "**/dist/**"],
        "debounce_ms": 1000,
        "ide_port": 3456,
        "coverage": {
            "enabled": True,
            "thresholds": {"unit": 80, "integration": 70, "e2e": 60, "per_file": 80},
            "persist_path": "coverage",
        },
        "critical_paths": {
            "enabled": False,
            "paths": ["src/auth/"],
            "patterns": ["src/payments/**"],
        },
        "jira": {
            "enabled": False,
            "base_url": "https://your-company.atlassian.net",
            "email": "you@example.com",
            "api_token": "<token>",
            "branch_pattern": r"[A-Z]+-\d+",
        },
        "github": {"enabled": False, "token": "<token>", "auto_detect": True},
        "environments": {"enabled": False, "check_url": "https://status.example.com/environments.json"},
        "notifications": {"enabled": True, "console_output": True, "ide": True},
        "complexity": {"enabled": False, "command": "npx complexity-score {file}"},
    }
    return yaml.safe_dump(sample, sort_keys=False)


__all__ = [
    "CONFIG_NAMES",
    "ConfigError",
    "ConfigLoader",
    "load_project_config",
    "sample_config",
]
