"""Public export helpers."""

from nowbench.export.report import (
    report_payload,
    result_rows,
    results_dataframe,
    write_report_json,
    write_results_parquet,
)

__all__ = [
    "report_payload",
    "result_rows",
    "results_dataframe",
    "write_report_json",
    "write_results_parquet",
]
