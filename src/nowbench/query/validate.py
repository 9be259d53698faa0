from __future__ import annotations

import re

_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_FIELD_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")
_SQL_KEYWORD_RES = tuple(
    re.compile(rf"\b{keyword}\b", re.IGNORECASE)
    for keyword in ("DROP", "DELETE", "UPDATE", "INSERT", "ALTER", "CREATE")
)
_JAVASCRIPT_EXPR_RE = re.compile(r"javascript:[^;]+")
_DANGEROUS_JAVASCRIPT_RES = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"eval\s*\(",
        r"Function\s*\(",
        r"setTimeout\s*\(",
        r"setInterval\s*\(",
        r"XMLHttpRequest",
        r"fetch\s*\(",
        r"document\.",
        r"window\.",
        r"location\.",
        r"alert\s*\(",
        r"confirm\s*\(",
        r"prompt\s*\(",
    )
)
_UNSAFE_CHARS_RE = re.compile(r"[<>'\"&]")
MIN_RECORD_LIMIT = 1
MAX_RECORD_LIMIT = 10_000


def sanitize(value) -> str:
    if not value:
        return ""
    return _UNSAFE_CHARS_RE.sub("", str(value))


def validate_table_name(table) -> list[tuple[str, str]]:
    if table is None or not str(table).strip():
        return [("table", "Table name is required")]
    if not _TABLE_NAME_RE.match(str(table)):
        return [("table", f"Invalid table name format: {table!r}")]
    return []


def validate_fields(fields) -> list[tuple[str, str]]:
    problems = []
    for field in fields or ():
        if field is None or not str(field).strip():
            problems.append(("fields", "Field name cannot be empty"))
        elif not _FIELD_NAME_RE.match(str(field)):
            problems.append(("fields", f"Invalid field name format: {field!r}"))
    return problems


def validate_limit(limit, *, max_limit: int = MAX_RECORD_LIMIT) -> list[tuple[str, str]]:
    if limit is None:
        return []
    if isinstance(limit, bool) or not isinstance(limit, int) or not MIN_RECORD_LIMIT <= limit <= max_limit:
        return [("limit", f"Limit must be an integer between {MIN_RECORD_LIMIT} and {max_limit}")]
    return []


def validate_offset(offset) -> list[tuple[str, str]]:
    if offset is None:
        return []
    if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
        return [("offset", "Offset must be a non-negative integer")]
    return []


def validate_filter(filter_text) -> list[tuple[str, str]]:
    """
    Reject filters that look like injection attempts.

    ``javascript:`` expressions are a legitimate encoded-query feature, so
    semicolons are only refused outside them, while known browser and eval
    style calls are refused inside them.
    """
    if not filter_text:
        return []
    text = str(filter_text)
    problems = []
    if any(pattern.search(text) for pattern in _SQL_KEYWORD_RES):
        problems.append(("filter", "Filter contains potentially malicious content"))

    if "javascript:" in text:
        if not _JAVASCRIPT_EXPR_RE.search(text):
            problems.append(("filter", "Invalid JavaScript expression in filter"))
        if any(pattern.search(text) for pattern in _DANGEROUS_JAVASCRIPT_RES):
            problems.append(("filter", "Filter contains potentially dangerous JavaScript"))
    elif ";" in text:
        problems.append(("filter", "Filter contains invalid characters"))
    return problems


def prefix_problems(prefix: str, problems) -> list[tuple[str, str]]:
    return [(f"{prefix}.{field}", message) for field, message in problems]
