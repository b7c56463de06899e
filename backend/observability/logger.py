"""
JSONL event logger.

- One JSON object per line
- stdout by default; optionally routed through a stdlib logger
- No buffering, no batching
- Never raises
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Mapping, Callable


LOGGER_NAME = "ambient_relay"


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print


def configure(*, enable_json_logs: bool, log_level: str = "INFO") -> None:
    """
    Select the output sink once at startup.

    enable_json_logs=True writes raw JSONL to stdout. Otherwise lines go to
    the "ambient_relay" stdlib logger at INFO, filtered by log_level.
    """
    global _print  # pylint: disable=global-statement

    if enable_json_logs:
        _print = _stdout_print
        return

    logging.basicConfig(level=log_level.upper())
    _print = logging.getLogger(LOGGER_NAME).info


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single JSONL event.

    The caller supplies a fully-formed event dict (ts_ms, session_id,
    event_type, ...). This function serializes it, writes exactly one line
    and never raises.
    """
    try:
        line = json.dumps(event, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Logging must never crash a session
        fallback: dict[str, Any] = {
            "ts_ms": event.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
