"""FastMCP server bootstrap for testwatch."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from fastmcp import Context, FastMCP

from . import __version__
from .config import TestwatchSettings, get_settings
from .integrations import CapabilityRegistry, build_registry
from .pipeline import WatchPipeline
from .project import ProjectConfig, load_project_config
from .tools import register_tools
from .workflows import WorkflowOrchestrator


def configure_logging(level: str) -> None:
    """Configure root logging for the testwatch server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def create_server(
    settings: TestwatchSettings | None = None,
    config: ProjectConfig | None = None,
    registry: CapabilityRegistry | None = None,
) -> FastMCP:
    """Build the pipeline, orchestrator and FastMCP server for one project."""

    settings = settings or get_settings()
    config = config or load_project_config(settings=settings)
    registry = registry or build_registry(config)

    pipeline = WatchPipeline(config, registry, kill_grace_seconds=settings.kill_grace_seconds)
    orchestrator = WorkflowOrchestrator(pipeline, registry, cache_ttl_seconds=settings.cache_ttl_seconds)

    server = FastMCP(
        name="testwatch",
        version=__version__,
        instructions=(
            "testwatch watches a project, runs the test suites relevant to changed files and "
            "tracks coverage. Use the workflow tools (dev_setup, pre_commit, health_check) for "
            "composite checks, or run_tests and the check_* tools for single steps."
        ),
    )

    handles = register_tools(server, pipeline=pipeline, orchestrator=orchestrator, registry=registry)

    @server.resource(
        "resource://testwatch/status",
        name="testwatch_status",
        title="testwatch Status",
        description="Watcher state, capabilities, coverage and the most recent test cycle.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing runtime state."""

        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "cache_ttl_seconds": settings.cache_ttl_seconds,
            "pipeline": pipeline.status(),
            "request_id": getattr(context, "request_id", None),
        }
        return json.dumps(payload, default=str)

    setattr(server, "pipeline", pipeline)
    setattr(server, "orchestrator", orchestrator)
    setattr(server, "registry", registry)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the testwatch MCP server over stdio."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching testwatch MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "project_root": str(server.pipeline.config.project_root),
            "capabilities": server.registry.names(),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
