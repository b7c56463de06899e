# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from observability import logger


@pytest.fixture(autouse=True)
def captured_logs(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """Keep test output clean; tests may inspect the JSONL lines."""
    lines: list[str] = []
    monkeypatch.setattr(logger, "_print", lines.append)
    return lines
