"""Command line interface for testwatch."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable

from .config import TestwatchSettings, get_settings
from .integrations import CapabilityRegistry, build_registry
from .integrations.registry import COMPLEXITY
from .pipeline import WatchPipeline
from .project import CONFIG_NAMES, ProjectConfig, load_project_config, sample_config
from .server import configure_logging, create_server
from .workflows import WorkflowOrchestrator, WorkflowResult

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Runtime:
    settings: TestwatchSettings
    config: ProjectConfig
    registry: CapabilityRegistry
    pipeline: WatchPipeline
    orchestrator: WorkflowOrchestrator


def build_runtime(args: argparse.Namespace) -> Runtime:
    settings = get_settings()
    config = load_project_config(
        getattr(args, "config", None),
        settings=settings,
        project_root=getattr(args, "project", None),
    )
    cursor_port = getattr(args, "cursor_port", None)
    if cursor_port is not None:
        config = config.model_copy(update={"ide_port": cursor_port})
    registry = build_registry(config)
    pipeline = WatchPipeline(config, registry, kill_grace_seconds=settings.kill_grace_seconds)
    orchestrator = WorkflowOrchestrator(pipeline, registry, cache_ttl_seconds=settings.cache_ttl_seconds)
    return Runtime(settings, config, registry, pipeline, orchestrator)


async def _with_runtime(runtime: Runtime, body: Callable[[Runtime], Awaitable[int]]) -> int:
    try:
        return await body(runtime)
    finally:
        if runtime.pipeline.running:
            await runtime.pipeline.stop()
        await runtime.registry.aclose()


def _print_workflow(result: WorkflowResult, as_json: bool) -> int:
    if as_json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print(result.summary)
        for name, message in sorted(result.errors.items()):
            print(f"  {name}: {message}")
    return 0 if result.success else 1


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def _watch_until_signalled(runtime: Runtime) -> int:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop.set)
        except NotImplementedError:  # pragma: no cover - platform specific
            pass

    await runtime.pipeline.start()
    print(f"Watching {runtime.config.project_root} (Ctrl+C to stop)")
    await stop.wait()
    print("Stopping...")
    await runtime.pipeline.stop()
    return 0


def cmd_start(args: argparse.Namespace) -> int:
    runtime = build_runtime(args)
    return asyncio.run(_with_runtime(runtime, _watch_until_signalled))


def cmd_init(args: argparse.Namespace) -> int:
    directory = Path(args.project or ".")
    target = directory / CONFIG_NAMES[0]
    if target.exists() and not args.force:
        print(f"{target} already exists; use --force to overwrite", file=sys.stderr)
        return 1
    target.write_text(sample_config(), encoding="utf-8")
    print(f"Wrote {target}")
    return 0


def cmd_commit_message(args: argparse.Namespace) -> int:
    async def body(runtime: Runtime) -> int:
        print(await runtime.orchestrator.commit_message(args.ticket))
        return 0

    return asyncio.run(_with_runtime(build_runtime(args), body))


def cmd_complexity(args: argparse.Namespace) -> int:
    async def body(runtime: Runtime) -> int:
        scorer = runtime.registry.get(COMPLEXITY)
        files = args.files or await runtime.registry.git.changed_files()
        if args.compare:
            if len(files) != 1:
                print("--compare needs exactly one file", file=sys.stderr)
                return 1
            comparison = await scorer.compare(files[0])
            if comparison is None:
                print(f"{files[0]} has no version in HEAD")
                return 0
            if args.json:
                _print_json(comparison)
            else:
                print(
                    f"{files[0]}: {comparison['previous']:g} -> {comparison['current']:g} "
                    f"({comparison['change']:+g}, {comparison['percentage_change']:+.1f}%)"
                )
            return 0

        reports = await scorer.score_many(files)
        if args.json:
            _print_json(reports)
        else:
            for report in reports:
                score = "?" if report["complexity"] is None else f"{report['complexity']:g}"
                print(f"{report['path']}: {score} [{report['level']}]")
        return 0

    return asyncio.run(_with_runtime(build_runtime(args), body))


def cmd_test_notifications(args: argparse.Namespace) -> int:
    async def body(runtime: Runtime) -> int:
        samples = await runtime.registry.notifier.test_notifications()
        print(f"Sent {len(samples)} test notifications")
        return 0

    return asyncio.run(_with_runtime(build_runtime(args), body))


def _workflow_command(
    run: Callable[[WorkflowOrchestrator, argparse.Namespace], Awaitable[WorkflowResult]],
) -> Callable[[argparse.Namespace], int]:
    def command(args: argparse.Namespace) -> int:
        async def body(runtime: Runtime) -> int:
            return _print_workflow(await run(runtime.orchestrator, args), args.json)

        return asyncio.run(_with_runtime(build_runtime(args), body))

    return command


cmd_dev_setup = _workflow_command(lambda orchestrator, args: orchestrator.developer_setup(args.project))
cmd_pre_commit = _workflow_command(lambda orchestrator, args: orchestrator.pre_commit())
cmd_health_check = _workflow_command(lambda orchestrator, args: orchestrator.health_check())
cmd_run_tests = _workflow_command(
    lambda orchestrator, args: orchestrator.run_suite_for(args.files, include_e2e=args.e2e)
)


def cmd_serve(args: argparse.Namespace) -> int:
    runtime = build_runtime(args)
    server = create_server(runtime.settings, runtime.config, runtime.registry)
    logger.info("Launching testwatch MCP server", extra={"project_root": str(runtime.config.project_root)})
    server.run()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="testwatch", description="Watch a project and run the relevant tests")
    parser.add_argument("--log-level", default=None, help="Override TESTWATCH_LOG_LEVEL")
    sub = parser.add_subparsers(dest="cmd")

    def add(name: str, func: Callable[[argparse.Namespace], int], help_text: str) -> argparse.ArgumentParser:
        command = sub.add_parser(name, help=help_text)
        command.add_argument("--config", type=Path, help="Path to testwatch.yaml")
        command.add_argument("--project", type=Path, help="Project root (overrides the config file)")
        command.set_defaults(func=func)
        return command

    p_start = add("start", cmd_start, "Watch the project and run suites on change")
    p_start.add_argument("--cursor-port", type=int, help="Port for the IDE WebSocket bridge")

    p_init = sub.add_parser("init", help=f"Write a sample {CONFIG_NAMES[0]}")
    p_init.add_argument("--project", type=Path, help="Directory to write into (default: cwd)")
    p_init.add_argument("--force", action="store_true", help="Overwrite an existing file")
    p_init.set_defaults(func=cmd_init)

    p_commit = add("commit-message", cmd_commit_message, "Suggest a commit message for the changed files")
    p_commit.add_argument("--ticket", help="Ticket key (default: from the branch name)")

    p_complexity = add("complexity", cmd_complexity, "Score files with the complexity command")
    p_complexity.add_argument("--files", nargs="+", help="Files to score (default: git changed files)")
    p_complexity.add_argument("--compare", action="store_true", help="Compare one file against HEAD")
    p_complexity.add_argument("--json", action="store_true", help="Output JSON")

    add("test-notifications", cmd_test_notifications, "Send one notification per level")

    for name, func, help_text in (
        ("dev-setup", cmd_dev_setup, "Run the developer setup workflow"),
        ("pre-commit", cmd_pre_commit, "Run the pre-commit validation workflow"),
        ("health-check", cmd_health_check, "Run the health check workflow"),
    ):
        add(name, func, help_text).add_argument("--json", action="store_true", help="Output the full result")

    p_run = add("run-tests", cmd_run_tests, "Run the suites relevant to the given files")
    p_run.add_argument("files", nargs="+", help="Project-relative paths")
    p_run.add_argument("--e2e", action="store_true", help="Also run the e2e suite")
    p_run.add_argument("--json", action="store_true", help="Output the full result")

    add("serve", cmd_serve, "Run the MCP server over stdio")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 0

    try:
        configure_logging(args.log_level.upper() if args.log_level else get_settings().log_level)
        return args.func(args)
    except Exception as exc:  # CLI boundary
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
