"""Coverage snapshots: model, parsers and the persistent store."""

from .models import METRIC_NAMES, PERCENT_BASIS, CoverageSnapshot, FileCoverage, MetricGroup
from .parsers import (
    expand_line_ranges,
    parse_coverage_py,
    parse_istanbul_json,
    parse_istanbul_text,
)
from .store import SNAPSHOT_FILENAME, CoverageStore

__all__ = [
    "CoverageSnapshot",
    "CoverageStore",
    "FileCoverage",
    "METRIC_NAMES",
    "MetricGroup",
    "PERCENT_BASIS",
    "SNAPSHOT_FILENAME",
    "expand_line_ranges",
    "parse_coverage_py",
    "parse_istanbul_json",
    "parse_istanbul_text",
]
