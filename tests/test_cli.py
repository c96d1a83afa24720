from __future__ import annotations

import json
from pathlib import Path

import yaml

from testwatch_mcp.cli import build_parser, main


def _config(tmp_path: Path, command: str = "true") -> Path:
    path = tmp_path / "testwatch.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "suites": [{"kind": "api", "match_patterns": ["app/**/*.py"], "run_command": command}],
                "notifications": {"console_output": False},
            }
        ),
        encoding="utf-8",
    )
    return path


def test_init_writes_sample_config(tmp_path: Path, capsys) -> None:
    assert main(["init", "--project", str(tmp_path)]) == 0
    written = (tmp_path / "testwatch.yaml").read_text(encoding="utf-8")
    assert "suites:" in written

    assert main(["init", "--project", str(tmp_path)]) == 1
    assert "already exists" in capsys.readouterr().err

    assert main(["init", "--project", str(tmp_path), "--force"]) == 0


def test_run_tests_prints_summary(tmp_path: Path, capsys) -> None:
    config = _config(tmp_path)

    code = main(["run-tests", "--config", str(config), "--project", str(tmp_path), "app/api.py"])

    out = capsys.readouterr().out
    assert code == 0
    assert out.splitlines()[0] == "Test suite passed with 1 recorded error(s): coverage | 1 suite(s) run"
    assert "  coverage: No coverage data available" in out


def test_run_tests_json_and_failure_exit_code(tmp_path: Path, capsys) -> None:
    config = _config(tmp_path, command="exit 4")

    code = main(["run-tests", "--config", str(config), "--project", str(tmp_path), "--json", "app/api.py"])

    payload = json.loads(capsys.readouterr().out)
    assert code == 1
    assert payload["success"] is False
    assert payload["errors"]["tests"] == "1 suite(s) failed: api"


def test_errors_are_reported_with_exit_code_one(tmp_path: Path, capsys) -> None:
    code = main(["commit-message", "--config", str(tmp_path / "missing.yaml")])

    assert code == 1
    assert capsys.readouterr().err.startswith("Error: ")


def test_parser_knows_every_command() -> None:
    parser = build_parser()
    args = parser.parse_args(["start", "--cursor-port", "4000"])
    assert args.cursor_port == 4000

    for command in ("dev-setup", "pre-commit", "health-check", "test-notifications", "serve"):
        assert parser.parse_args([command]).cmd == command
    assert parser.parse_args(["complexity", "--files", "a.py", "--compare"]).compare is True


def test_no_command_prints_help(capsys) -> None:
    assert main([]) == 0
    assert "usage: testwatch" in capsys.readouterr().out
