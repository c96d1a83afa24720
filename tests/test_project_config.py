from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from testwatch_mcp.config import TestwatchSettings
from testwatch_mcp.project import (
    ConfigError,
    ConfigLoader,
    ProjectConfig,
    load_project_config,
    sample_config,
)
from testwatch_mcp.project.models import DEFAULT_EXCLUDE_PATTERNS
from testwatch_mcp.suites import SuiteKind, match_any, match_path, normalize_path


def _write(path: Path, payload: dict) -> Path:
    path.write_text(yaml.safe_dump(payload), encoding="utf-8")
    return path


def test_defaults_used_when_no_file(tmp_path: Path) -> None:
    config = load_project_config(cwd=tmp_path)

    assert [suite.kind for suite in config.suites] == [SuiteKind.UNIT, SuiteKind.E2E, SuiteKind.COMPONENT]
    assert config.project_root == tmp_path.resolve()
    assert config.coverage.persist_path == tmp_path.resolve() / "coverage"
    assert config.debounce_ms == 1000


def test_user_suites_replace_defaults_and_excludes_are_unioned(tmp_path: Path) -> None:
    _write(
        tmp_path / "testwatch.yaml",
        {
            "suites": [{"kind": "api", "match_patterns": "app/**/*.py", "run_command": "pytest"}],
            "exclude_patterns": ["**/.venv/**"],
        },
    )

    config = load_project_config(cwd=tmp_path)

    assert [suite.kind for suite in config.suites] == [SuiteKind.API]
    assert config.suites[0].match_patterns == ["app/**/*.py"]
    assert config.exclude_patterns[: len(DEFAULT_EXCLUDE_PATTERNS)] == list(DEFAULT_EXCLUDE_PATTERNS)
    assert config.exclude_patterns[-1] == "**/.venv/**"


def test_duplicate_suite_kinds_are_rejected(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "testwatch.yaml",
        {
            "suites": [
                {"kind": "unit", "run_command": "npm test"},
                {"kind": "unit", "run_command": "npm run test:other"},
            ]
        },
    )

    with pytest.raises(ConfigError) as excinfo:
        load_project_config(path)

    assert "Duplicate suite kinds: unit" in str(excinfo.value)


def test_validation_errors_are_joined(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "testwatch.yaml",
        {"debounce_ms": -5, "suites": [{"kind": "smoke", "run_command": "x"}]},
    )

    with pytest.raises(ConfigError) as excinfo:
        load_project_config(path)

    message = str(excinfo.value)
    assert "debounce_ms" in message
    assert "suites.0.kind" in message
    assert "; " in message


def test_non_mapping_document_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "testwatch.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_project_config(path)


def test_missing_explicit_path_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_project_config(tmp_path / "nope.yaml")


def test_env_config_path_takes_priority_over_discovery(tmp_path: Path) -> None:
    _write(tmp_path / "testwatch.yaml", {"debounce_ms": 10})
    other = _write(tmp_path / "elsewhere.yaml", {"debounce_ms": 20})
    settings = TestwatchSettings(TESTWATCH_CONFIG=str(other))

    config = load_project_config(settings=settings, cwd=tmp_path)

    assert config.debounce_ms == 20


def test_parent_directories_are_searched(tmp_path: Path) -> None:
    _write(tmp_path / "testwatch.json", {"debounce_ms": 250})
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    loader = ConfigLoader(cwd=nested)

    assert loader.discover() == tmp_path.resolve() / "testwatch.json"
    assert loader.load().debounce_ms == 250


def test_relative_project_root_resolves_against_config_dir(tmp_path: Path) -> None:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (tmp_path / "app").mkdir()
    path = _write(config_dir / "testwatch.yaml", {"project_root": "../app", "coverage": {"persist_path": "cov"}})

    config = load_project_config(path)

    assert config.project_root == (tmp_path / "app").resolve()
    assert config.coverage.persist_path == (tmp_path / "app").resolve() / "cov"


def test_project_root_override_wins(tmp_path: Path) -> None:
    path = _write(tmp_path / "testwatch.yaml", {"project_root": "somewhere"})
    override = tmp_path / "override"
    override.mkdir()

    config = load_project_config(path, project_root=override)

    assert config.project_root == override.resolve()


def test_sample_config_is_loadable(tmp_path: Path) -> None:
    (tmp_path / "testwatch.yaml").write_text(sample_config(), encoding="utf-8")

    config = load_project_config(cwd=tmp_path)

    assert isinstance(config, ProjectConfig)
    assert config.suite("unit") is not None


def test_settings_reject_unknown_log_level() -> None:
    with pytest.raises(ValueError):
        TestwatchSettings(TESTWATCH_LOG_LEVEL="loud")


def test_glob_matching() -> None:
    assert match_path("src/app.ts", "src/**/*.{js,ts}")
    assert match_path("src/deep/nested/app.js", "src/**/*.{js,ts}")
    assert not match_path("lib/app.ts", "src/**/*.{js,ts}")
    assert match_path("node_modules/x/index.js", "**/node_modules/**")
    assert match_any("./tests/test_api.py", ["**/test_*.py"])
    assert normalize_path(".\\src\\a.ts") == "src/a.ts"


def test_single_star_stays_within_a_segment() -> None:
    assert match_path("src/x.ts", "src/*.ts")
    assert not match_path("src/deep/x.ts", "src/*.ts")
    assert not match_path("tests/unit/test_a.py", "tests/*.py")
    assert match_path("src/a.ts", "src/?.ts")
    assert not match_path("src/ab.ts", "src/?.ts")
    assert match_path("src/.env.ts", "src/*.ts")
    assert match_path("src/b.ts", "src/[abc].ts")
    assert not match_path("src/d.ts", "src/[!d].ts")


def test_double_star_spans_segments() -> None:
    assert match_path("src/api/users.ts", "**/api/**")
    assert match_path("api/users.ts", "**/api/**")
    assert match_path("dist", "dist/**")
    assert not match_path("distribution/a.js", "dist/**")
    assert match_path("anything/at/all.py", "**")
