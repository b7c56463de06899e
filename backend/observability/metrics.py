"""
Latency metrics for provider round trips.

- Durations use monotonic time
- Each measurement is one METRIC_TIMER JSONL event
- No aggregation
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


@contextmanager
def timed(
    name: str,
    *,
    session_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[dict[str, Any]]:
    """
    Measure the enclosed block and emit exactly one metric event.

    The yielded dict is merged into the event's details, so the block can
    attach results (e.g. the interaction id) after the fact. The metric is
    emitted even if the block raises, with "failed": True.

        with timed("interaction_create", session_id=sid) as extra:
            extra["interaction_id"] = await provider.create_interaction(...)
    """
    extra: dict[str, Any] = {}
    start_ns = time.monotonic_ns()
    failed = True
    try:
        yield extra
        failed = False
    finally:
        log_event({
            "ts_ms": int(time.time() * 1000),
            "event_type": "METRIC_TIMER",
            "metric": name,
            "value_ms": (time.monotonic_ns() - start_ns) // 1_000_000,
            "session_id": session_id,
            "failed": failed,
            "details": {**(details or {}), **extra},
        })
