# pylint: disable=missing-module-docstring,missing-function-docstring

import json
import logging
from typing import Any

import pytest

from observability import logger
from observability.metrics import timed


def test_log_event_emits_valid_jsonl(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """
    Contract:
    - log_event emits exactly one JSONL line
    - payload is serialized as-is
    - output sink is patchable
    """
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)

    payload: dict[str, Any] = {
        "event_type": "TEST",
        "value": 123,
    }

    logger.log_event(payload)

    assert len(captured) == 1
    assert "\n" not in captured[0]
    assert json.loads(captured[0]) == payload


def test_log_event_never_raises_on_unserializable_payload(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)

    logger.log_event({"ts_ms": 7, "event_type": "TEST", "blob": object()})

    assert len(captured) == 1
    decoded = json.loads(captured[0])
    assert decoded["event_type"] == "LOGGER_SERIALIZATION_ERROR"
    assert decoded["ts_ms"] == 7
    assert "TEST" in decoded["original_event_repr"]


def test_configure_routes_lines_through_stdlib_logger(
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    monkeypatch.setattr(logger, "_print", logger._print)  # restored after the test

    logger.configure(enable_json_logs=False, log_level="INFO")
    with caplog.at_level(logging.INFO, logger=logger.LOGGER_NAME):
        logger.log_event({"event_type": "ROUTED"})

    assert any("ROUTED" in r.getMessage() for r in caplog.records)


def test_configure_json_uses_stdout_sink(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(logger, "_print", print)

    logger.configure(enable_json_logs=True)

    assert logger._print is logger._stdout_print  # pylint: disable=protected-access


def test_timed_emits_one_metric_with_attached_details(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)

    with timed("interaction_create", session_id="sess_1", details={"stage": "a"}) as extra:
        extra["interaction_id"] = "int-1"

    assert len(captured) == 1
    metric = json.loads(captured[0])
    assert metric["event_type"] == "METRIC_TIMER"
    assert metric["metric"] == "interaction_create"
    assert metric["session_id"] == "sess_1"
    assert metric["failed"] is False
    assert metric["value_ms"] >= 0
    assert metric["details"] == {"stage": "a", "interaction_id": "int-1"}


def test_timed_marks_failure_and_reraises(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)

    with pytest.raises(RuntimeError):
        with timed("stream_connect"):
            raise RuntimeError("boom")

    assert json.loads(captured[0])["failed"] is True
