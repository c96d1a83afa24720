from __future__ import annotations

import pytest

from testwatch_mcp.config import get_settings


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch):
    for name in (
        "TESTWATCH_CONFIG",
        "TESTWATCH_PROJECT_ROOT",
        "TESTWATCH_LOG_LEVEL",
        "TESTWATCH_CACHE_TTL",
        "TESTWATCH_KILL_GRACE",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
