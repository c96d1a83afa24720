"""Change, suite and result models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from ..coverage.models import CoverageSnapshot


class ChangeKind(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True, slots=True)
class ChangeRecord:
    """A single observed file-system change, relative to the project root."""

    path: str
    kind: ChangeKind
    observed_at: datetime

    @property
    def key(self) -> tuple[str, datetime]:
        return (self.path, self.observed_at)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "kind": self.kind.value,
            "observed_at": self.observed_at.isoformat(),
        }


class SuiteKind(str, Enum):
    UNIT = "unit"
    INTEGRATION = "integration"
    E2E = "e2e"
    API = "api"
    COMPONENT = "component"


class SuiteDefinition(BaseModel):
    """A configured test suite: an opaque shell command plus selection metadata."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: SuiteKind = Field(..., description="Suite kind; unique within a project.")
    match_patterns: list[str] = Field(
        default_factory=list,
        description="Globs over project-relative paths that make this suite relevant.",
    )
    run_command: str = Field(..., description="Shell command that runs the suite.")
    coverage_command: str | None = Field(
        default=None,
        description="Shell command that runs the suite with coverage collection.",
    )
    priority: int = Field(default=0, description="Higher priorities run first in reports.")
    enabled: bool = True
    timeout_seconds: float | None = Field(default=None, gt=0)
    pass_files: bool = Field(
        default=False,
        description="Append the triggering files to the command line.",
    )

    @field_validator("run_command")
    @classmethod
    def _require_command(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Suite run_command must not be empty")
        return normalized

    @field_validator("coverage_command")
    @classmethod
    def _normalize_coverage_command(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @field_validator("match_patterns", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):  # type: ignore[override]
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, (list, tuple)):
            return list(value)
        raise TypeError("match_patterns must be a sequence of glob strings")


@dataclass(slots=True)
class SuiteDecision:
    """Which suites to run for a batch, and why."""

    suites_to_run: list[SuiteDefinition]
    rationale: str
    coverage_gaps: list[str] = field(default_factory=list)

    @property
    def kinds(self) -> list[SuiteKind]:
        return [suite.kind for suite in self.suites_to_run]

    def to_dict(self) -> dict[str, Any]:
        return {
            "suites": [kind.value for kind in self.kinds],
            "rationale": self.rationale,
            "coverage_gaps": list(self.coverage_gaps),
        }


@dataclass(slots=True)
class SuiteResult:
    """Normalised outcome of one suite execution."""

    suite_kind: SuiteKind
    succeeded: bool
    duration_ms: float
    raw_output: str
    triggering_paths: list[str]
    coverage: "CoverageSnapshot | None" = None
    cancelled: bool = False
    returncode: int | None = None
    command: str = ""

    @property
    def ok(self) -> bool:
        return self.succeeded and not self.cancelled

    def to_dict(self, *, output_limit: int | None = 2000) -> dict[str, Any]:
        output = self.raw_output if output_limit is None else self.raw_output[-output_limit:]
        return {
            "suite": self.suite_kind.value,
            "succeeded": self.succeeded,
            "cancelled": self.cancelled,
            "returncode": self.returncode,
            "duration_ms": round(self.duration_ms, 1),
            "command": self.command,
            "triggering_paths": list(self.triggering_paths),
            "coverage": self.coverage.summary() if self.coverage is not None else None,
            "output": output,
        }


__all__ = [
    "ChangeKind",
    "ChangeRecord",
    "SuiteDecision",
    "SuiteDefinition",
    "SuiteKind",
    "SuiteResult",
]
