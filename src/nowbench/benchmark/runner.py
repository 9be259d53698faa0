from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Sequence

from nowbench.benchmark.executor import DualStyleExecutor, UnitResult
from nowbench.benchmark.expander import CategoryConfig, expand
from nowbench.benchmark.progress import AggregateEvent, NullReporter, UnitProgress, notify
from nowbench.benchmark.verdict import RunningTotals, fold
from nowbench.errors import UNIT_SETUP_ERRORS
from nowbench.scenarios import ScenarioLibrary
from nowbench.util.logging import log_structured_event, new_job_id

_RUNNER_LOG = logging.getLogger("nowbench.benchmark.runner")


@dataclass(frozen=True)
class FailedUnit:
    unit_id: str
    display_name: str
    code: str
    message: str


@dataclass(frozen=True)
class RunReport:
    job_id: str
    results: tuple[UnitResult, ...]
    totals: RunningTotals
    failed_units: tuple[FailedUnit, ...]
    cancelled: bool
    started_at: datetime
    ended_at: datetime

    @property
    def units_planned(self) -> int:
        return len(self.results) + len(self.failed_units)


class BenchmarkRunner:
    """
    Runs every expanded unit in order, one at a time.

    A unit that fails validation or setup is reported and skipped; it never
    stops the run and never reaches the running totals. :meth:`stop` is
    honoured between units, so a unit already in flight still finishes.
    """

    def __init__(
        self,
        executor: DualStyleExecutor,
        library: ScenarioLibrary,
        *,
        reporter=None,
        stop_event: threading.Event | None = None,
    ):
        self.executor = executor
        self.library = library
        self.reporter = reporter if reporter is not None else NullReporter()
        self.stop_event = stop_event if stop_event is not None else threading.Event()

    def stop(self) -> None:
        self.stop_event.set()

    def run(
        self,
        enabled_categories: Sequence[str],
        config: Mapping[str, CategoryConfig] | None = None,
    ) -> RunReport:
        units = expand(enabled_categories, config, self.library)
        job_id = new_job_id("bench")
        started_at = datetime.now(timezone.utc)
        log_structured_event(
            _RUNNER_LOG,
            logging.INFO,
            "run_start",
            job_id=job_id,
            categories=list(enabled_categories),
            units=len(units),
        )
        for unit in units:
            UnitProgress(self.reporter, unit.unit_id, unit.display_name).queued()

        totals = RunningTotals()
        results: list[UnitResult] = []
        failed: list[FailedUnit] = []
        cancelled = False
        for unit in units:
            if self.stop_event.is_set():
                cancelled = True
                break
            scenario = self.library.get_scenario(unit.category, unit.variant)
            try:
                result = self.executor.execute_unit(unit, scenario, self.reporter)
            except UNIT_SETUP_ERRORS as exc:
                failed.append(
                    FailedUnit(
                        unit_id=unit.unit_id,
                        display_name=unit.display_name,
                        code=exc.code,
                        message=exc.user_message(),
                    )
                )
                log_structured_event(
                    _RUNNER_LOG,
                    logging.WARNING,
                    "unit_failed",
                    job_id=job_id,
                    unit_id=unit.unit_id,
                    error_code=exc.code,
                    error=str(exc),
                )
                continue
            results.append(result)
            totals = fold(result, totals)

        notify(
            self.reporter,
            "run_summary",
            AggregateEvent(totals=totals, failed_units=len(failed), cancelled=cancelled),
        )
        ended_at = datetime.now(timezone.utc)
        log_structured_event(
            _RUNNER_LOG,
            logging.INFO,
            "run_done",
            job_id=job_id,
            completed=totals.units_completed,
            failed=len(failed),
            cancelled=cancelled,
            elapsed_seconds=round((ended_at - started_at).total_seconds(), 3),
        )
        return RunReport(
            job_id=job_id,
            results=tuple(results),
            totals=totals,
            failed_units=tuple(failed),
            cancelled=cancelled,
            started_at=started_at,
            ended_at=ended_at,
        )
