"""Glob matching for watch and suite patterns."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable

_BRACE = re.compile(r"\{([^{}]*)\}")


def normalize_path(path: str) -> str:
    """Return a forward-slash relative path without a leading ``./``."""

    normalized = path.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


def _expand_braces(pattern: str) -> list[str]:
    match = _BRACE.search(pattern)
    if match is None:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded: list[str] = []
    for option in match.group(1).split(","):
        expanded.extend(_expand_braces(head + option + tail))
    return expanded


def _translate(pattern: str) -> str:
    """Translate one brace-free glob into a regular expression body.

    ``*`` and ``?`` stay within a path segment, ``**`` spans any number of
    segments, and dot files are matched like any other name.
    """

    parts: list[str] = []
    index, length = 0, len(pattern)
    while index < length:
        char = pattern[index]
        if pattern.startswith("**", index):
            at_start = index == 0 or pattern[index - 1] == "/"
            if at_start and pattern.startswith("**/", index):
                parts.append("(?:[^/]*/)*")
                index += 3
                continue
            if at_start and index + 2 == length:
                if parts and parts[-1] == "/":
                    # ``dir/**`` also matches ``dir`` itself.
                    parts[-1] = "(?:/.*)?"
                else:
                    parts.append(".*")
                index += 2
                continue
            parts.append("[^/]*")
            index += 2
        elif char == "*":
            parts.append("[^/]*")
            index += 1
        elif char == "?":
            parts.append("[^/]")
            index += 1
        elif char == "[":
            close = pattern.find("]", index + 2)
            if close == -1:
                parts.append(re.escape(char))
                index += 1
                continue
            body = pattern[index + 1 : close]
            if body[0] in "!^":
                body = "^" + body[1:]
            parts.append("[" + body.replace("\\", "\\\\").replace("/", "") + "]")
            index = close + 1
        elif char == "/":
            parts.append("/")
            index += 1
        else:
            parts.append(re.escape(char))
            index += 1
    return "".join(parts)


@lru_cache(maxsize=512)
def _compile(pattern: str) -> re.Pattern[str]:
    variants = [_translate(normalize_path(variant)) for variant in _expand_braces(pattern)]
    return re.compile("(?:" + "|".join(variants) + r")\Z")


def match_path(path: str, pattern: str) -> bool:
    """Return whether ``path`` matches a minimatch-style glob."""

    return _compile(pattern).match(normalize_path(path)) is not None


def match_any(path: str, patterns: Iterable[str]) -> bool:
    return any(match_path(path, pattern) for pattern in patterns)


__all__ = ["match_any", "match_path", "normalize_path"]
