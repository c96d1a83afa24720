"""Suite execution."""

from .environment import subprocess_environment
from .executor import CANCELLED_PREFIX, SuiteExecutor

__all__ = ["CANCELLED_PREFIX", "SuiteExecutor", "subprocess_environment"]
