from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from nowbench.benchmark.expander import TestUnit
from nowbench.benchmark.progress import UnitProgress
from nowbench.benchmark.trials import TrialMeasurement, TrialRunner, require_iterations
from nowbench.benchmark.verdict import Winner, decide_winner
from nowbench.compare import ComparisonReport, compare_composite_responses, compare_responses
from nowbench.config.runtime_defaults import BuilderDefaults, ServiceDefaults, TrialDefaults
from nowbench.errors import UNIT_SETUP_ERRORS, ExecutionError, ValidationError
from nowbench.query.builder import (
    RequestDescriptor,
    build_composite_graphql_request,
    build_graphql_request,
    build_table_request,
    validate_composite_scenario,
)
from nowbench.scenarios import CompositeScenario, SingleResourceScenario
from nowbench.service.auth import AuthSession
from nowbench.util.logging import log_structured_event

_EXECUTOR_LOG = logging.getLogger("nowbench.benchmark.executor")


@dataclass(frozen=True)
class UnitResult:
    unit_id: str
    display_name: str
    kind: str
    rest: TrialMeasurement
    graphql: TrialMeasurement
    winner: Winner
    comparison: ComparisonReport
    timestamp: datetime
    rest_requests: tuple[dict[str, Any], ...] = ()
    graphql_request: dict[str, Any] | None = None


def _raise_if_invalid(*descriptors: RequestDescriptor) -> None:
    problems = [problem for descriptor in descriptors for problem in descriptor.errors]
    if problems:
        raise ValidationError("Request validation failed", errors=problems)


def fuse_measurements(measurements) -> TrialMeasurement:
    """
    Collapse one measurement per underlying call into a single logical trial.

    Durations and payload sizes add up, ``all_durations_ms`` keeps one entry
    per call and ``response_body`` is the list of per-call bodies.
    """
    measurements = list(measurements)
    return TrialMeasurement(
        duration_ms=sum(item.duration_ms for item in measurements),
        success=all(item.success for item in measurements),
        response_body=[item.response_body for item in measurements],
        payload_size_bytes=sum(item.payload_size_bytes for item in measurements),
        all_durations_ms=tuple(item.duration_ms for item in measurements),
        errors=tuple(error for item in measurements for error in item.errors),
        request_count=len(measurements),
        auth_retries=sum(item.auth_retries for item in measurements),
    )


class DualStyleExecutor:
    """
    Runs one test unit through both API styles.
    ===========================================

    The Table API side always runs first and owns the first part of the
    unit's progress range; GraphQL owns the rest. The authentication session
    returned by each trial is carried into the next one.
    """

    def __init__(
        self,
        trial_runner: TrialRunner,
        session: AuthSession,
        *,
        trial_defaults: TrialDefaults | None = None,
        builder_defaults: BuilderDefaults | None = None,
        service_defaults: ServiceDefaults | None = None,
    ):
        self.trial_runner = trial_runner
        self.session = session
        self.trial_defaults = trial_defaults or TrialDefaults()
        self.builder_defaults = builder_defaults or BuilderDefaults()
        self.service_defaults = service_defaults or ServiceDefaults()

    @property
    def _rest_share(self) -> float:
        return float(self.trial_defaults.style_a_progress_share)

    def _run(self, descriptor, iterations, on_progress) -> TrialMeasurement:
        measurement, self.session = self.trial_runner.run(
            descriptor,
            iterations,
            on_progress,
            session=self.session,
        )
        return measurement

    def _compare(self, unit: TestUnit, compare, *args) -> ComparisonReport:
        try:
            return compare(*args)
        except Exception as exc:
            log_structured_event(
                _EXECUTOR_LOG,
                logging.WARNING,
                "comparison_failed",
                unit_id=unit.unit_id,
                error=str(exc),
            )
            return ComparisonReport.empty(f"Comparison failed: {exc}")

    def _table_request(self, table, fields, filter_text, limit) -> RequestDescriptor:
        return build_table_request(
            table,
            fields,
            filter_text,
            limit,
            sort=self.builder_defaults.default_order_by,
            api_path=self.service_defaults.table_api_path,
            max_limit=self.builder_defaults.max_record_limit,
        )

    def _execute_single(self, unit: TestUnit, scenario: SingleResourceScenario, progress: UnitProgress):
        rest_request = self._table_request(scenario.table, scenario.fields, scenario.filter, unit.record_limit)
        graphql_request = build_graphql_request(
            scenario.table,
            scenario.fields,
            scenario.filter,
            unit.record_limit,
            order_by=self.builder_defaults.default_order_by,
            api_path=self.service_defaults.graphql_api_path,
            max_limit=self.builder_defaults.max_record_limit,
        )
        _raise_if_invalid(rest_request, graphql_request)
        iterations = require_iterations(self.trial_defaults.single_resource_iterations)

        share = self._rest_share
        rest = self._run(rest_request, iterations, progress.style_callback(0, share))
        graphql = self._run(graphql_request, iterations, progress.style_callback(share, 100 - share))
        comparison = self._compare(
            unit,
            compare_responses,
            rest.response_body,
            graphql.response_body,
            scenario.table,
            scenario.fields,
        )
        return rest, graphql, comparison, (rest_request,), graphql_request

    def _execute_composite(self, unit: TestUnit, scenario: CompositeScenario, progress: UnitProgress):
        builder = self.builder_defaults
        validation = validate_composite_scenario(
            scenario.calls,
            scenario.tables,
            validation_limit=builder.validation_record_limit,
            validation_complexity=builder.validation_query_complexity,
            max_calls=builder.max_composite_calls,
        )
        if not validation.valid:
            raise ValidationError(f"Composite scenario {scenario.name!r} is inconsistent", errors=validation.errors)
        for warning in validation.warnings:
            log_structured_event(_EXECUTOR_LOG, logging.INFO, "composite_warning", unit_id=unit.unit_id, warning=warning)

        rest_requests = [
            self._table_request(call.table, call.fields, call.filter, unit.record_limit) for call in scenario.calls
        ]
        graphql_request = build_composite_graphql_request(
            scenario.calls,
            unit.record_limit,
            builder.default_order_by,
            builder.max_query_complexity,
            max_calls=builder.max_composite_calls,
            api_path=self.service_defaults.graphql_api_path,
            max_limit=builder.max_record_limit,
        )
        _raise_if_invalid(*rest_requests, graphql_request)
        iterations = require_iterations(self.trial_defaults.composite_iterations)

        share = self._rest_share
        span = share / len(rest_requests)
        parts = [
            self._run(request, iterations, progress.style_callback(index * span, span))
            for index, request in enumerate(rest_requests)
        ]
        rest = fuse_measurements(parts)
        graphql = self._run(graphql_request, iterations, progress.style_callback(share, 100 - share))
        comparison = self._compare(
            unit,
            compare_composite_responses,
            rest.response_body,
            graphql.response_body,
            scenario.calls,
        )
        return rest, graphql, comparison, tuple(rest_requests), graphql_request

    def execute_unit(self, unit: TestUnit, scenario, reporter=None) -> UnitResult:
        progress = UnitProgress(reporter, unit.unit_id, unit.display_name)
        progress.start()
        try:
            match scenario:
                case SingleResourceScenario():
                    kind = "single"
                    rest, graphql, comparison, rest_requests, graphql_request = self._execute_single(
                        unit, scenario, progress
                    )
                case CompositeScenario():
                    kind = "composite"
                    rest, graphql, comparison, rest_requests, graphql_request = self._execute_composite(
                        unit, scenario, progress
                    )
                case _:
                    raise ExecutionError(f"Unsupported scenario type {type(scenario).__name__} for {unit.unit_id}")
        except UNIT_SETUP_ERRORS as exc:
            progress.failed(exc.user_message())
            raise

        winner = decide_winner(rest, graphql)
        result = UnitResult(
            unit_id=unit.unit_id,
            display_name=unit.display_name,
            kind=kind,
            rest=rest,
            graphql=graphql,
            winner=winner,
            comparison=comparison,
            timestamp=datetime.now(timezone.utc),
            rest_requests=tuple(request.describe() for request in rest_requests),
            graphql_request=graphql_request.describe(),
        )
        log_structured_event(
            _EXECUTOR_LOG,
            logging.INFO,
            "unit_done",
            unit_id=unit.unit_id,
            kind=kind,
            winner=winner.value,
            rest_ms=rest.duration_ms,
            graphql_ms=graphql.duration_ms,
            equivalent=comparison.is_equivalent,
        )
        progress.completed()
        return result
