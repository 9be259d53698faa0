"""
Request construction for both API styles
========================================

Builds :class:`RequestDescriptor` values for the Table API ("rest") and the
GraphQL endpoint ("graphql"). Builders never raise on bad input: they return
a descriptor whose ``errors`` lists every problem, and the gateway refuses to
send a descriptor that carries any.

Both styles always request ``sys_id`` and order by it so that result sets can
be reconciled record by record.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence
from urllib.parse import quote

from nowbench.query.validate import (
    MAX_RECORD_LIMIT,
    prefix_problems,
    sanitize,
    validate_fields,
    validate_filter,
    validate_limit,
    validate_offset,
    validate_table_name,
)
from nowbench.util.json import json_dumps

DEFAULT_TABLE_API_PATH = "api/now/table"
DEFAULT_GRAPHQL_API_PATH = "api/now/graphql"
DEFAULT_ORDER_BY = "sys_id"
DEFAULT_MAX_COMPOSITE_CALLS = 10
DEFAULT_MAX_QUERY_COMPLEXITY = 500
_JSON_HEADERS = {"Content-Type": "application/json"}
_LEAF = {"value": True, "displayValue": True}


class RequestStyle(str, enum.Enum):
    REST = "rest"
    GRAPHQL = "graphql"


@dataclass(frozen=True)
class RequestDescriptor:
    style: RequestStyle
    method: str
    target: str
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    errors: tuple[tuple[str, str], ...] = ()
    query: str | None = None
    table: str | None = None

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def describe(self) -> dict[str, object]:
        return {
            "style": self.style.value,
            "method": self.method,
            "target": self.target,
            "query": self.query,
            "table": self.table,
            "errors": [f"{name}: {message}" for name, message in self.errors],
        }


def _invalid(style: RequestStyle, method: str, problems, *, table=None) -> RequestDescriptor:
    return RequestDescriptor(style=style, method=method, target="", errors=tuple(problems), table=table)


def _with_sys_id(fields) -> list[str]:
    cleaned = [sanitize(name) for name in (fields or ())]
    if "sys_id" not in cleaned:
        cleaned.append("sys_id")
    return cleaned


def _ordered_conditions(filter_text, order_by) -> str:
    sort_field = sanitize(order_by) or DEFAULT_ORDER_BY
    conditions = sanitize(filter_text)
    if conditions:
        return f"{conditions}^ORDERBY{sort_field}"
    return f"ORDERBY{sort_field}"


def build_table_request(
    table: str,
    fields: Sequence[str] | None = None,
    filter: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
    sort: str | None = None,
    *,
    api_path: str = DEFAULT_TABLE_API_PATH,
    max_limit: int = MAX_RECORD_LIMIT,
) -> RequestDescriptor:
    problems = [
        *validate_table_name(table),
        *validate_fields(fields),
        *validate_limit(limit, max_limit=max_limit),
        *validate_filter(filter),
        *validate_offset(offset),
    ]
    if problems:
        return _invalid(RequestStyle.REST, "GET", problems, table=table)

    params = [f"sysparm_fields={','.join(_with_sys_id(fields))}"]
    if limit:
        params.append(f"sysparm_limit={limit}")
    if offset:
        params.append(f"sysparm_offset={offset}")
    params.append(f"sysparm_query={quote(_ordered_conditions(filter, sort), safe='')}")
    target = f"{api_path.strip('/')}/{quote(sanitize(table), safe='')}?{'&'.join(params)}"
    return RequestDescriptor(
        style=RequestStyle.REST,
        method="GET",
        target=target,
        headers=dict(_JSON_HEADERS),
        table=table,
    )


def fields_to_tree(fields: Sequence[str]) -> dict[str, Any]:
    """Nest dot-walked names under ``_reference`` the way GlideRecord_Query expects."""
    tree: dict[str, Any] = {}
    for name in fields:
        parts = name.split(".")
        current = tree
        for part in parts[:-1]:
            node = current.get(part)
            if not isinstance(node, dict) or "_reference" not in node:
                node = {"_reference": {}}
                current[part] = node
            current = node["_reference"]
        current.setdefault(parts[-1], dict(_LEAF))
    return tree


def render_selection(tree: Mapping[str, Any], indent: int = 10) -> str:
    spaces = " " * indent
    lines = []
    for name, node in tree.items():
        if not isinstance(node, Mapping):
            continue
        if "value" in node or "displayValue" in node:
            leaves = [key for key in ("value", "displayValue") if node.get(key)]
            lines.append(f"{spaces}{name} {{\n{spaces}  {', '.join(leaves)}\n{spaces}}}\n")
        elif "_reference" in node:
            lines.append(
                f"{spaces}{name} {{\n{spaces}  _reference {{\n"
                f"{render_selection(node['_reference'], indent + 4)}"
                f"{spaces}  }}\n{spaces}}}\n"
            )
        else:
            lines.append(f"{spaces}{name} {{\n{render_selection(node, indent + 2)}{spaces}}}\n")
    return "".join(lines)


def _table_arguments(filter_text, order_by, limit, offset=None) -> str:
    args = [f"queryConditions: {json_dumps(_ordered_conditions(filter_text, order_by))}"]
    if limit:
        paging = f"limit: {int(limit)}"
        if offset:
            paging += f", offset: {int(offset)}"
        args.append(f"pagination: {{ {paging} }}")
    return f"({', '.join(args)})"


def _graphql_descriptor(document: str, api_path: str, *, table=None) -> RequestDescriptor:
    return RequestDescriptor(
        style=RequestStyle.GRAPHQL,
        method="POST",
        target=api_path.strip("/"),
        body={"query": document},
        headers=dict(_JSON_HEADERS),
        query=document,
        table=table,
    )


def build_graphql_request(
    table: str,
    fields: Sequence[str] | None = None,
    filter: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
    order_by: str | None = None,
    *,
    api_path: str = DEFAULT_GRAPHQL_API_PATH,
    max_limit: int = MAX_RECORD_LIMIT,
) -> RequestDescriptor:
    problems = [
        *validate_table_name(table),
        *validate_fields(fields),
        *validate_limit(limit, max_limit=max_limit),
        *validate_filter(filter),
        *validate_offset(offset),
    ]
    if problems:
        return _invalid(RequestStyle.GRAPHQL, "POST", problems, table=table)

    selection = render_selection(fields_to_tree(_with_sys_id(fields)))
    arguments = _table_arguments(filter, order_by, limit, offset)
    document = (
        "query {\n"
        "    GlideRecord_Query {\n"
        f"      {sanitize(table)}{arguments} {{\n"
        "        _results {\n"
        f"{selection}"
        "        }\n"
        "      }\n"
        "    }\n"
        "  }"
    )
    return _graphql_descriptor(document, api_path, table=table)


def composite_aliases(calls) -> list[str]:
    """
    Response keys for each call of a composite document.

    A table requested once is keyed by its own name; repeated tables get an
    index suffix so that the selections do not collide.
    """
    tables = [str(call.table) for call in calls]
    aliases = []
    for index, table in enumerate(tables):
        if tables.count(table) == 1:
            aliases.append(table)
        else:
            aliases.append(f"{table}_{index}")
    return aliases


def query_complexity(calls) -> int:
    score = 0
    for call in calls:
        fields = list(call.fields or ())
        score += 10
        score += 2 * len(fields)
        score += 5 * sum(1 for name in fields if "." in name)
        filter_text = call.filter or ""
        if "javascript:" in filter_text:
            score += 15
        if "^OR" in filter_text:
            score += 10
        if "^AND" in filter_text:
            score += 5
    return score


def build_composite_graphql_request(
    calls,
    limit: int | None = None,
    order_by: str = DEFAULT_ORDER_BY,
    max_complexity: int = DEFAULT_MAX_QUERY_COMPLEXITY,
    *,
    max_calls: int = DEFAULT_MAX_COMPOSITE_CALLS,
    api_path: str = DEFAULT_GRAPHQL_API_PATH,
    max_limit: int = MAX_RECORD_LIMIT,
) -> RequestDescriptor:
    calls = list(calls or ())
    if not calls:
        return _invalid(RequestStyle.GRAPHQL, "POST", [("calls", "At least one resource call is required")])
    if len(calls) > max_calls:
        return _invalid(
            RequestStyle.GRAPHQL,
            "POST",
            [("calls", f"Maximum {max_calls} tables allowed in multi-table query")],
        )
    score = query_complexity(calls)
    if score > max_complexity:
        return _invalid(
            RequestStyle.GRAPHQL,
            "POST",
            [("calls", f"Query complexity ({score}) exceeds maximum ({max_complexity})")],
        )

    problems = []
    for index, call in enumerate(calls):
        problems.extend(prefix_problems(f"calls[{index}]", validate_table_name(call.table)))
        problems.extend(prefix_problems(f"calls[{index}]", validate_fields(call.fields)))
        problems.extend(prefix_problems(f"calls[{index}]", validate_filter(call.filter)))
    problems.extend(validate_limit(limit, max_limit=max_limit))
    if problems:
        return _invalid(RequestStyle.GRAPHQL, "POST", problems)

    blocks = []
    for alias, call in zip(composite_aliases(calls), calls):
        table = sanitize(call.table)
        head = table if alias == table else f"{sanitize(alias)}: {table}"
        selection = render_selection(fields_to_tree(_with_sys_id(call.fields)))
        blocks.append(
            f"      {head}{_table_arguments(call.filter, order_by, limit)} {{\n"
            "        _results {\n"
            f"{selection}"
            "        }\n"
            "      }"
        )
    document = "query {\n    GlideRecord_Query {\n" + "\n".join(blocks) + "\n    }\n  }"
    return _graphql_descriptor(document, api_path)


@dataclass(frozen=True)
class CompositeValidation:
    valid: bool
    errors: tuple[tuple[str, str], ...]
    warnings: tuple[str, ...]
    complexity_score: int


def validate_composite_scenario(
    calls,
    declared_tables: Sequence[str] | None = None,
    *,
    validation_limit: int = 50,
    validation_complexity: int = 1000,
    max_calls: int = DEFAULT_MAX_COMPOSITE_CALLS,
) -> CompositeValidation:
    calls = list(calls or ())
    problems: list[tuple[str, str]] = []
    if declared_tables:
        declared = [str(table) for table in declared_tables]
        if len(declared) != len(calls):
            problems.append(
                ("tables", f"Scenario declares {len(declared)} tables but defines {len(calls)} calls")
            )
        else:
            for index, (expected, call) in enumerate(zip(declared, calls)):
                if expected != call.table:
                    problems.append(
                        (f"calls[{index}].table", f"Expected {expected!r}, got {call.table!r}")
                    )

    check_request = build_composite_graphql_request(
        calls,
        limit=validation_limit,
        max_complexity=validation_complexity,
        max_calls=max_calls,
    )
    problems.extend(check_request.errors)

    score = query_complexity(calls)
    warnings = []
    if score > 300:
        warnings.append(f"High query complexity ({score}) may impact performance")
    if len(calls) > 5:
        warnings.append(f"Query spans {len(calls)} tables - consider breaking into smaller queries")
    total_fields = sum(len(call.fields or ()) for call in calls)
    if total_fields > 50:
        warnings.append(f"Total field count ({total_fields}) is high - consider reducing for better performance")
    dot_walks = sum(1 for call in calls for name in (call.fields or ()) if "." in name)
    if dot_walks > 10:
        warnings.append(f"High number of relationship traversals ({dot_walks}) detected")

    return CompositeValidation(
        valid=not problems,
        errors=tuple(problems),
        warnings=tuple(warnings),
        complexity_score=score,
    )
