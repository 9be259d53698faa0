from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path

from nowbench._version import VERSION
from nowbench.util.deps import require_polars
from nowbench.util.json import json_dumps_bytes
from nowbench.util.logging import log_structured_event

_EXPORT_LOG = logging.getLogger("nowbench.export")
REPORT_FORMAT_VERSION = 1
DEFAULT_PARQUET_COMPRESSION = "zstd"


def _measurement_payload(measurement, *, include_body: bool) -> dict[str, object]:
    payload: dict[str, object] = {
        "duration_ms": measurement.duration_ms,
        "success": measurement.success,
        "payload_size_bytes": measurement.payload_size_bytes,
        "all_durations_ms": list(measurement.all_durations_ms),
        "errors": list(measurement.errors),
        "request_count": measurement.request_count,
        "auth_retries": measurement.auth_retries,
    }
    if include_body:
        payload["response_body"] = measurement.response_body
    return payload


def _comparison_payload(report) -> dict[str, object]:
    payload = asdict(report)
    payload["issues"] = list(report.issues)
    return payload


def unit_payload(result, *, include_bodies: bool = False) -> dict[str, object]:
    return {
        "unit_id": result.unit_id,
        "display_name": result.display_name,
        "kind": result.kind,
        "winner": result.winner.value,
        "timestamp": result.timestamp.isoformat(),
        "rest": _measurement_payload(result.rest, include_body=include_bodies),
        "graphql": _measurement_payload(result.graphql, include_body=include_bodies),
        "comparison": _comparison_payload(result.comparison),
        "rest_requests": list(result.rest_requests),
        "graphql_request": result.graphql_request,
    }


def report_payload(report, *, include_bodies: bool = False) -> dict[str, object]:
    """JSON-ready view of a finished run: results, metrics and run metadata."""
    return {
        "format_version": REPORT_FORMAT_VERSION,
        "generator": f"nowbench/{VERSION}",
        "exported_at": datetime.now(timezone.utc).isoformat(),
        "job_id": report.job_id,
        "started_at": report.started_at.isoformat(),
        "ended_at": report.ended_at.isoformat(),
        "cancelled": report.cancelled,
        "metrics": report.totals.as_dict(),
        "results": [unit_payload(result, include_bodies=include_bodies) for result in report.results],
        "failed_units": [asdict(item) for item in report.failed_units],
    }


def write_report_json(report, path, *, include_bodies: bool = False) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(json_dumps_bytes(report_payload(report, include_bodies=include_bodies), indent=True))
    log_structured_event(
        _EXPORT_LOG,
        logging.INFO,
        "report_written",
        job_id=report.job_id,
        path=str(target),
        results=len(report.results),
    )
    return target


def result_rows(report) -> list[dict[str, object]]:
    rows = []
    for result in report.results:
        rows.append(
            {
                "job_id": report.job_id,
                "unit_id": result.unit_id,
                "display_name": result.display_name,
                "kind": result.kind,
                "winner": result.winner.value,
                "rest_duration_ms": float(result.rest.duration_ms),
                "graphql_duration_ms": float(result.graphql.duration_ms),
                "rest_payload_bytes": int(result.rest.payload_size_bytes),
                "graphql_payload_bytes": int(result.graphql.payload_size_bytes),
                "rest_success": bool(result.rest.success),
                "graphql_success": bool(result.graphql.success),
                "rest_request_count": int(result.rest.request_count),
                "is_equivalent": bool(result.comparison.is_equivalent),
                "data_consistency": int(result.comparison.data_consistency),
                "timestamp": result.timestamp,
            }
        )
    return rows


def results_dataframe(report):
    polars_module = require_polars("results_dataframe")
    rows = result_rows(report)
    if not rows:
        return polars_module.DataFrame()
    return polars_module.DataFrame(rows)


def write_results_parquet(report, path, *, compression: str = DEFAULT_PARQUET_COMPRESSION) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    results_dataframe(report).write_parquet(str(target), compression=compression)
    log_structured_event(
        _EXPORT_LOG,
        logging.INFO,
        "results_parquet_written",
        job_id=report.job_id,
        path=str(target),
        rows=len(report.results),
    )
    return target
