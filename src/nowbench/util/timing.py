from __future__ import annotations

from contextlib import contextmanager
from time import perf_counter


@contextmanager
def timed(clock=perf_counter):
    start = clock()
    payload = {"seconds": 0.0}
    try:
        yield payload
    finally:
        payload["seconds"] = clock() - start


def elapsed_ms(payload) -> float:
    return max(0.0, float(payload["seconds"]) * 1000.0)
