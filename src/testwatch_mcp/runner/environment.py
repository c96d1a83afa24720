"""Environment construction for suite and tool subprocesses."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

_STRIPPED_VARS = {
    "PYTHONHOME",
    "PYTHONPATH",
    "VIRTUAL_ENV",
    "PIP_RESPECT_VIRTUALENV",
}

# Colour codes break the coverage summary regexes.
_PLAIN_OUTPUT = {"NO_COLOR": "1", "FORCE_COLOR": "0"}


def subprocess_environment(
    extra: Mapping[str, str] | None = None,
    *,
    project_root: Path | None = None,
    plain_output: bool = False,
) -> dict[str, str]:
    """Return the environment a child process should run with.

    Interpreter variables of this process are stripped so a project's own
    virtualenv or toolchain wins. With ``project_root`` the project's
    ``node_modules/.bin`` is put first on ``PATH`` when it exists.
    """

    env = {key: value for key, value in os.environ.items() if key not in _STRIPPED_VARS}
    if plain_output:
        env.update(_PLAIN_OUTPUT)
    if project_root is not None:
        local_bin = Path(project_root) / "node_modules" / ".bin"
        if local_bin.is_dir():
            env["PATH"] = os.pathsep.join(filter(None, [str(local_bin), env.get("PATH", "")]))
    if extra:
        env.update(extra)
    return env


__all__ = ["subprocess_environment"]
