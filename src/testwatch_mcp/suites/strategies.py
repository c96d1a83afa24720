"""Per-kind behaviour: which coverage parsers apply and how commands are built."""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass
from typing import Callable, Sequence

from ..coverage.parsers import (
    CoverageParser,
    parse_coverage_py,
    parse_istanbul_json,
    parse_istanbul_text,
)
from .models import SuiteKind

CommandFormatter = Callable[[str, Sequence[str]], str]

_TEST_FILE = re.compile(r"(\.(test|spec)\.(ts|tsx|js|jsx|mjs|cjs)$)|((^|/)test_[^/]+\.py$)|(_test\.py$)")
_CYPRESS_SPEC = re.compile(r"\.cy\.(ts|tsx|js|jsx)$")


def append_test_files(command: str, files: Sequence[str]) -> str:
    """Append the test files among ``files`` as positional arguments."""

    selected = [path for path in files if _TEST_FILE.search(path)]
    if not selected:
        return command
    return " ".join([command, *(shlex.quote(path) for path in selected)])


def append_spec(command: str, files: Sequence[str]) -> str:
    """Pass Cypress spec files as one comma-separated ``--spec`` argument."""

    selected = [path for path in files if _CYPRESS_SPEC.search(path)]
    if not selected:
        return command
    return f"{command} --spec {shlex.quote(','.join(selected))}"


@dataclass(frozen=True, slots=True)
class SuiteStrategy:
    parsers: tuple[CoverageParser, ...]
    format_command: CommandFormatter


_JS_PARSERS: tuple[CoverageParser, ...] = (parse_istanbul_json, parse_istanbul_text, parse_coverage_py)
_PY_PARSERS: tuple[CoverageParser, ...] = (parse_coverage_py, parse_istanbul_json, parse_istanbul_text)

STRATEGIES: dict[SuiteKind, SuiteStrategy] = {
    SuiteKind.UNIT: SuiteStrategy(parsers=_JS_PARSERS, format_command=append_test_files),
    SuiteKind.INTEGRATION: SuiteStrategy(parsers=_JS_PARSERS, format_command=append_test_files),
    SuiteKind.COMPONENT: SuiteStrategy(parsers=_JS_PARSERS, format_command=append_test_files),
    SuiteKind.E2E: SuiteStrategy(
        parsers=(parse_istanbul_json, parse_istanbul_text),
        format_command=append_spec,
    ),
    SuiteKind.API: SuiteStrategy(parsers=_PY_PARSERS, format_command=append_test_files),
}


def strategy_for(kind: SuiteKind | str) -> SuiteStrategy:
    return STRATEGIES[SuiteKind(kind)]


__all__ = [
    "STRATEGIES",
    "SuiteStrategy",
    "append_spec",
    "append_test_files",
    "strategy_for",
]
