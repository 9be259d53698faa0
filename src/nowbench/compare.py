"""
Result-set reconciliation between the two API styles
====================================================

Records from both sides are ordered by ``sys_id`` and compared field by
field. Strings are trimmed and empty strings count as missing. A Table API
reference object (``{"link": ..., "value": <sys_id>}``) that equals the
GraphQL value is a known format difference: it counts as a match but is
reported as a warning mismatch.

Missing or malformed bodies never raise; they simply contribute no records.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from nowbench.query.builder import composite_aliases
from nowbench.util.logging import log_structured_event

_COMPARE_LOG = logging.getLogger("nowbench.compare")
MAX_SINGLE_MISMATCHES = 100
MAX_TABLE_MISMATCHES = 50


@dataclass(frozen=True)
class FieldMismatch:
    record_index: int
    field: str
    rest_value: Any
    graphql_value: Any
    is_warning: bool = False


@dataclass(frozen=True)
class TableComparison:
    table_name: str
    rest_record_count: int
    graphql_record_count: int
    data_consistency: int
    field_mismatches: tuple[FieldMismatch, ...] = ()
    issues: tuple[str, ...] = ()


@dataclass(frozen=True)
class ComparisonReport:
    is_equivalent: bool
    record_count_match: bool
    data_consistency: int
    issues: tuple[str, ...] = ()
    rest_record_count: int = 0
    graphql_record_count: int = 0
    field_mismatches: tuple[FieldMismatch, ...] = ()
    only_known_issues: bool = False
    table_results: tuple[TableComparison, ...] = field(default_factory=tuple)

    @classmethod
    def empty(cls, issue: str | None = None) -> "ComparisonReport":
        return cls(
            is_equivalent=False,
            record_count_match=False,
            data_consistency=0,
            issues=(issue,) if issue else (),
        )


def normalize_value(value):
    if value is None:
        return None
    if isinstance(value, str):
        trimmed = value.strip()
        return trimmed or None
    return value


def _graphql_leaf(node):
    if not isinstance(node, dict):
        return None
    if "value" in node:
        return node["value"]
    return node.get("displayValue")


def extract_graphql_value(record, field_path: str):
    if not isinstance(record, dict) or not field_path:
        return None
    parts = field_path.split(".")
    current = record
    for part in parts[:-1]:
        node = current.get(part) if isinstance(current, dict) else None
        if not isinstance(node, dict) or not isinstance(node.get("_reference"), dict):
            return None
        current = node["_reference"]
    if not isinstance(current, dict):
        return None
    return _graphql_leaf(current.get(parts[-1]))


def is_reference_format_difference(rest_value, graphql_value) -> bool:
    if not rest_value or not graphql_value or not isinstance(rest_value, dict):
        return False
    inner = rest_value.get("value")
    return bool(rest_value.get("link")) and isinstance(inner, str) and inner == graphql_value


def extract_rest_records(body) -> list[dict]:
    if isinstance(body, dict) and isinstance(body.get("result"), list):
        records = body["result"]
    elif isinstance(body, list):
        records = body
    else:
        return []
    return [record for record in records if isinstance(record, dict)]


def _glide_query(body) -> dict:
    if not isinstance(body, dict):
        return {}
    data = body.get("data")
    if not isinstance(data, dict):
        return {}
    query = data.get("GlideRecord_Query")
    return query if isinstance(query, dict) else {}


def extract_graphql_records(body, key: str) -> list[dict]:
    table = _glide_query(body).get(key)
    if not isinstance(table, dict) or not isinstance(table.get("_results"), list):
        return []
    return [record for record in table["_results"] if isinstance(record, dict)]


def _rest_sort_key(record) -> str:
    return str(record.get("sys_id") or "")


def _graphql_sort_key(record) -> str:
    return str(extract_graphql_value(record, "sys_id") or "")


def _consistency(total: int, matching: int, mismatches) -> int:
    if total == 0:
        return 0
    if not mismatches:
        return 100
    return int(matching * 100 // total)


def _compare_records(rest_records, graphql_records, fields, max_mismatches: int):
    rest_sorted = sorted(rest_records, key=_rest_sort_key)
    graphql_sorted = sorted(graphql_records, key=_graphql_sort_key)
    total = 0
    matching = 0
    mismatches: list[FieldMismatch] = []
    for index, (rest_record, graphql_record) in enumerate(zip(rest_sorted, graphql_sorted)):
        for name in fields:
            total += 1
            rest_value = normalize_value(rest_record.get(name))
            graphql_value = normalize_value(extract_graphql_value(graphql_record, name))
            if rest_value == graphql_value:
                matching += 1
                continue
            warning = is_reference_format_difference(rest_value, graphql_value)
            if warning:
                matching += 1
            if len(mismatches) < max_mismatches:
                mismatches.append(
                    FieldMismatch(
                        record_index=index,
                        field=name,
                        rest_value=rest_value,
                        graphql_value=graphql_value,
                        is_warning=warning,
                    )
                )
    return total, matching, mismatches


def _mismatch_issues(mismatches, *, scope: str = "") -> list[str]:
    errors = sum(1 for item in mismatches if not item.is_warning)
    warnings = len(mismatches) - errors
    issues = []
    prefix = f"{scope} " if scope else ""
    if errors:
        issues.append(f"{errors} {prefix}field mismatches found")
    if warnings:
        issues.append(f"{warnings} {prefix}reference field format differences (known issue)")
    return issues


def compare_responses(rest_body, graphql_body, table: str, fields: Sequence[str]) -> ComparisonReport:
    rest_records = extract_rest_records(rest_body)
    graphql_records = extract_graphql_records(graphql_body, table)
    rest_count = len(rest_records)
    graphql_count = len(graphql_records)

    if rest_count == 0 and graphql_count == 0:
        return ComparisonReport(is_equivalent=True, record_count_match=True, data_consistency=100)

    issues = []
    count_match = rest_count == graphql_count
    if not count_match:
        issues.append(f"Record count mismatch: REST returned {rest_count}, GraphQL returned {graphql_count}")

    total, matching, mismatches = _compare_records(
        rest_records, graphql_records, list(fields or ()), MAX_SINGLE_MISMATCHES
    )
    consistency = _consistency(total, matching, mismatches)
    if consistency < 100:
        issues.append(f"Data consistency: {consistency}% ({matching}/{total} field comparisons matched)")
    issues.extend(_mismatch_issues(mismatches))

    log_structured_event(
        _COMPARE_LOG,
        logging.DEBUG,
        "comparison_done",
        table=table,
        comparisons=total,
        matching=matching,
    )
    return ComparisonReport(
        is_equivalent=count_match and not mismatches and consistency == 100,
        record_count_match=count_match,
        data_consistency=consistency,
        issues=tuple(issues),
        rest_record_count=rest_count,
        graphql_record_count=graphql_count,
        field_mismatches=tuple(mismatches),
        only_known_issues=bool(mismatches) and all(item.is_warning for item in mismatches),
    )


def compare_composite_responses(rest_bodies, graphql_body, calls) -> ComparisonReport:
    rest_bodies = list(rest_bodies or ())
    calls = list(calls or ())
    if len(rest_bodies) != len(calls):
        return ComparisonReport.empty(
            f"Mismatch between REST responses ({len(rest_bodies)}) and REST calls ({len(calls)})"
        )

    issues: list[str] = []
    all_mismatches: list[FieldMismatch] = []
    tables: list[TableComparison] = []
    total_rest = 0
    total_graphql = 0
    total = 0
    matching = 0
    for index, (alias, call, rest_body) in enumerate(zip(composite_aliases(calls), calls, rest_bodies)):
        rest_records = extract_rest_records(rest_body)
        graphql_records = extract_graphql_records(graphql_body, alias)
        total_rest += len(rest_records)
        total_graphql += len(graphql_records)
        identifier = f"{call.table}_{index}"

        if not rest_records and not graphql_records:
            table_total, table_matching, mismatches = 0, 0, []
            table_consistency = 100
        else:
            table_total, table_matching, mismatches = _compare_records(
                rest_records, graphql_records, list(call.fields or ()), MAX_TABLE_MISMATCHES
            )
            table_consistency = _consistency(table_total, table_matching, mismatches)
        total += table_total
        matching += table_matching
        all_mismatches.extend(mismatches)

        table_issues = []
        if len(rest_records) != len(graphql_records):
            table_issues.append(
                f"record count mismatch: REST returned {len(rest_records)}, GraphQL returned {len(graphql_records)}"
            )
        table_issues.extend(_mismatch_issues(mismatches))
        if table_issues:
            issues.append(f"Table {identifier}: {', '.join(table_issues)}")
        tables.append(
            TableComparison(
                table_name=identifier,
                rest_record_count=len(rest_records),
                graphql_record_count=len(graphql_records),
                data_consistency=table_consistency,
                field_mismatches=tuple(mismatches),
                issues=tuple(table_issues),
            )
        )

    count_match = total_rest == total_graphql
    if not count_match:
        issues.append(
            f"Overall record count mismatch: REST returned {total_rest}, GraphQL returned {total_graphql}"
        )
    if total_rest == 0 and total_graphql == 0:
        consistency = 100
    else:
        consistency = _consistency(total, matching, all_mismatches)
    if consistency < 100:
        issues.append(
            f"Overall data consistency: {consistency}% ({matching}/{total} field comparisons matched)"
        )
    issues.extend(_mismatch_issues(all_mismatches, scope="total"))

    return ComparisonReport(
        is_equivalent=count_match and not all_mismatches and consistency == 100,
        record_count_match=count_match,
        data_consistency=consistency,
        issues=tuple(issues),
        rest_record_count=total_rest,
        graphql_record_count=total_graphql,
        field_mismatches=tuple(all_mismatches),
        only_known_issues=bool(all_mismatches) and all(item.is_warning for item in all_mismatches),
        table_results=tuple(tables),
    )
