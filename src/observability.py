"""
Latency tracing for intake turns.

Every oracle round trip and every full turn is wrapped in ``trace_span`` so a
slow or failing upstream shows up as one structured log line, e.g.

    [TRACE] oracle_call duration_ms=812.40 status=ok attempt=1

The span never swallows exceptions; a failing block is logged with
``status=error`` and the exception type, then re-raised.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

logger = logging.getLogger("intake.trace")


@contextmanager
def trace_span(name: str, **metadata):
    start = time.perf_counter()
    status = "ok"
    try:
        yield metadata
    except BaseException as e:
        status = "error"
        metadata.setdefault("error", type(e).__name__)
        raise
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        meta = " ".join(f"{k}={v}" for k, v in metadata.items())
        logger.info("[TRACE] %s duration_ms=%.2f status=%s %s", name, duration_ms, status, meta)
