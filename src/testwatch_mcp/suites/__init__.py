"""Suite definitions, path patterns and per-kind strategies."""

from .models import (
    ChangeKind,
    ChangeRecord,
    SuiteDecision,
    SuiteDefinition,
    SuiteKind,
    SuiteResult,
)
from .patterns import match_any, match_path, normalize_path
from .strategies import STRATEGIES, SuiteStrategy, strategy_for

__all__ = [
    "ChangeKind",
    "ChangeRecord",
    "STRATEGIES",
    "SuiteDecision",
    "SuiteDefinition",
    "SuiteKind",
    "SuiteResult",
    "SuiteStrategy",
    "match_any",
    "match_path",
    "normalize_path",
    "strategy_for",
]
