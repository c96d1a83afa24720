from __future__ import annotations

from datetime import datetime, timezone

from testwatch_mcp.coverage import CoverageSnapshot, CoverageStore, FileCoverage
from testwatch_mcp.project.models import CoverageThresholds, CriticalPathSettings
from testwatch_mcp.selection import SuiteSelector
from testwatch_mcp.suites import ChangeKind, ChangeRecord, SuiteDefinition, SuiteKind

OBSERVED = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)

UNIT = SuiteDefinition(
    kind="unit",
    match_patterns=["src/**/*.{js,ts}"],
    run_command="npm test",
    coverage_command="npm test -- --coverage",
)
E2E = SuiteDefinition(kind="e2e", match_patterns=["cypress/**"], run_command="npx cypress run", priority=5)
API = SuiteDefinition(
    kind="api",
    match_patterns=["app/**/*.py"],
    run_command="pytest",
    coverage_command="pytest --cov=app",
)
SUITES = [UNIT, E2E, API]


def _changes(*paths: str) -> list[ChangeRecord]:
    return [ChangeRecord(path=path, kind=ChangeKind.MODIFIED, observed_at=OBSERVED) for path in paths]


def test_no_changes_selects_nothing() -> None:
    decision = SuiteSelector(CoverageStore()).select([], SUITES, None)

    assert decision.suites_to_run == []
    assert decision.rationale == "no changes"
    assert decision.coverage_gaps == []


def test_pattern_match_selects_matching_suites_only() -> None:
    decision = SuiteSelector(CoverageStore()).select(_changes("src/app.ts", "README.md"), SUITES, None)

    assert decision.kinds == [SuiteKind.UNIT]
    assert decision.rationale == "unit: pattern match (src/app.ts)"


def test_priority_orders_selected_suites() -> None:
    decision = SuiteSelector(CoverageStore()).select(
        _changes("src/app.ts", "cypress/e2e/login.cy.ts"), SUITES, None
    )

    assert decision.kinds == [SuiteKind.E2E, SuiteKind.UNIT]


def test_unmatched_changes_explain_why() -> None:
    decision = SuiteSelector(CoverageStore()).select(_changes("docs/a.md", "docs/b.md"), SUITES, None)

    assert decision.suites_to_run == []
    assert decision.rationale == "no suites matched 2 changed path(s)"


def test_coverage_gap_escalates_to_suites_with_coverage_commands() -> None:
    entry = FileCoverage("lib/util.js", 40.0)
    snapshot = CoverageSnapshot(files={"lib/util.js": entry})
    selector = SuiteSelector(CoverageStore(), CoverageThresholds(per_file=80))

    decision = selector.select(_changes("lib/util.js"), SUITES, snapshot)

    assert decision.kinds == [SuiteKind.UNIT, SuiteKind.API]
    assert decision.coverage_gaps == ["lib/util.js"]
    assert "unit: coverage gap escalation (1 gap)" in decision.rationale


def test_critical_path_selects_every_enabled_suite() -> None:
    disabled = SuiteDefinition(kind="component", run_command="npm run test:ct", enabled=False)
    selector = SuiteSelector(
        CoverageStore(),
        critical_paths=CriticalPathSettings(enabled=True, paths=["payments/"], patterns=["**/auth/*.py"]),
    )

    decision = selector.select(_changes("src/payments/charge.ts"), [*SUITES, disabled], None)

    assert decision.kinds == [SuiteKind.E2E, SuiteKind.UNIT, SuiteKind.API]
    assert selector.critical_matches(["app/auth/login.py", "app/views.py"]) == ["app/auth/login.py"]


def test_selection_is_pure() -> None:
    snapshot = CoverageSnapshot(files={"app/models.py": FileCoverage("app/models.py", 10.0)})
    selector = SuiteSelector(CoverageStore())
    changes = _changes("app/models.py", "src/index.ts")

    first = selector.select(changes, SUITES, snapshot)
    second = selector.select(changes, SUITES, snapshot)

    assert first == second
    assert first.to_dict() == {
        "suites": ["unit", "api"],
        "rationale": "unit: pattern match (src/index.ts); api: pattern match (app/models.py)",
        "coverage_gaps": ["app/models.py"],
    }


def test_pattern_match_only_picks_the_api_suite() -> None:
    unit = SuiteDefinition(kind="unit", match_patterns=["**/*.spec.*"], run_command="npm test", priority=3)
    api = SuiteDefinition(kind="api", match_patterns=["**/api/**"], run_command="npm run test:api", priority=1)

    decision = SuiteSelector(CoverageStore()).select(_changes("src/api/users.ts"), [unit, api], None)

    assert decision.kinds == [SuiteKind.API]
    assert decision.rationale == "api: pattern match (src/api/users.ts)"
    assert decision.coverage_gaps == []


def test_equal_priorities_keep_declaration_order() -> None:
    api = SuiteDefinition(kind="api", match_patterns=["src/**"], run_command="pytest")
    unit = SuiteDefinition(kind="unit", match_patterns=["src/**"], run_command="npm test")
    component = SuiteDefinition(kind="component", match_patterns=["src/**"], run_command="npm run ct")

    decision = SuiteSelector(CoverageStore()).select(_changes("src/a.ts"), [api, unit, component], None)

    assert decision.kinds == [SuiteKind.API, SuiteKind.UNIT, SuiteKind.COMPONENT]


def test_single_star_patterns_do_not_reach_subdirectories() -> None:
    top_level = SuiteDefinition(kind="unit", match_patterns=["src/*.ts"], run_command="npm test")

    decision = SuiteSelector(CoverageStore()).select(_changes("src/deep/x.ts"), [top_level], None)

    assert decision.suites_to_run == []
