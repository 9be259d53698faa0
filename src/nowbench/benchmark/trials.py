from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from nowbench.errors import ATTEMPT_ERRORS, ConfigurationError
from nowbench.query.builder import RequestDescriptor
from nowbench.service.auth import AuthSession
from nowbench.util.json import serialized_size
from nowbench.util.logging import log_structured_event
from nowbench.util.timing import elapsed_ms, timed

_TRIALS_LOG = logging.getLogger("nowbench.benchmark.trials")
DEFAULT_SETTLE_DELAY_SECONDS = 0.1

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class TrialMeasurement:
    """
    Outcome of running one request descriptor several times.

    ``duration_ms`` is the median of ``all_durations_ms``; failed attempts
    contribute ``0.0`` to both. ``response_body`` and ``payload_size_bytes``
    describe the last attempt only.
    """

    duration_ms: float
    success: bool
    response_body: Any = None
    payload_size_bytes: int = 0
    all_durations_ms: tuple[float, ...] = ()
    errors: tuple[str, ...] = ()
    request_count: int = 1
    auth_retries: int = 0


def median_duration(durations) -> float:
    """Upper median: with an even count the larger middle value wins."""
    ordered = sorted(float(value) for value in durations)
    if not ordered:
        return 0.0
    return ordered[len(ordered) // 2]


def require_iterations(iterations) -> int:
    if isinstance(iterations, bool) or not isinstance(iterations, int) or iterations < 1:
        raise ConfigurationError(f"iterations must be a positive integer, got {iterations!r}")
    return iterations


class TrialRunner:
    def __init__(
        self,
        gateway,
        *,
        settle_delay_seconds: float = DEFAULT_SETTLE_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.gateway = gateway
        self.settle_delay_seconds = max(0.0, float(settle_delay_seconds))
        self._sleep = sleep
        self._clock = clock

    def run(
        self,
        descriptor: RequestDescriptor,
        iterations: int,
        on_progress: ProgressCallback | None = None,
        *,
        session: AuthSession,
    ) -> tuple[TrialMeasurement, AuthSession]:
        iterations = require_iterations(iterations)
        durations: list[float] = []
        errors: list[str] = []
        body = None
        size = 0
        auth_retries = 0
        success = True

        for attempt in range(1, iterations + 1):
            if on_progress is not None:
                on_progress(attempt, iterations)
            try:
                with timed(self._clock) as timing:
                    response = self.gateway.execute(descriptor, session)
            except ATTEMPT_ERRORS as exc:
                success = False
                durations.append(0.0)
                errors.append(str(exc))
                body = None
                size = 0
                log_structured_event(
                    _TRIALS_LOG,
                    logging.WARNING,
                    "trial_attempt_failed",
                    style=descriptor.style.value,
                    attempt=attempt,
                    iterations=iterations,
                    error_code=getattr(exc, "code", None),
                    error=str(exc),
                )
            else:
                # Sizing re-encodes the body, so it stays outside the timed block.
                durations.append(elapsed_ms(timing))
                body = response.body
                size = serialized_size(body)
                auth_retries += response.auth_retries
                session = response.session
            if attempt < iterations and self.settle_delay_seconds > 0:
                self._sleep(self.settle_delay_seconds)

        measurement = TrialMeasurement(
            duration_ms=median_duration(durations),
            success=success,
            response_body=body,
            payload_size_bytes=size,
            all_durations_ms=tuple(durations),
            errors=tuple(errors),
            request_count=1,
            auth_retries=auth_retries,
        )
        log_structured_event(
            _TRIALS_LOG,
            logging.DEBUG,
            "trial_done",
            style=descriptor.style.value,
            iterations=iterations,
            success=success,
            median_ms=measurement.duration_ms,
        )
        return measurement, session
