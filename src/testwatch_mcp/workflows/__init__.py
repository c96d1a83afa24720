"""Named workflows composed from pipeline and collaborator steps."""

from .orchestrator import CacheEntry, SuiteFailureError, WorkflowOrchestrator, WorkflowResult, WorkflowStep
from .summaries import render_summary

__all__ = [
    "CacheEntry",
    "SuiteFailureError",
    "WorkflowOrchestrator",
    "WorkflowResult",
    "WorkflowStep",
    "render_summary",
]
