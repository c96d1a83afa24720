"""Change-driven test orchestration with an MCP front end."""

__version__ = "0.1.0"

__all__ = ["__version__"]
