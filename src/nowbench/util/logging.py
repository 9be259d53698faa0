"""
Structured log lines
====================

Events are logged as one compact JSON object per line with an ``event``
key. Values under keys that look like credentials are replaced by
``<redacted>`` (also inside nested mappings such as header dicts), and long
strings are cut so that a response body never floods the log.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from uuid import uuid4

from nowbench.util.json import json_dumps

REDACTED = "<redacted>"
JOB_ID_LEN = 12
_SECRET_KEY_MARKERS = ("authorization", "token", "secret", "password", "credential", "api_key", "apikey")
_MAX_STRING_CHARS = 2048
_TRUNCATION_MARK = "...<truncated>"


def is_secret_key(key) -> bool:
    lowered = str(key).strip().lower()
    return any(marker in lowered for marker in _SECRET_KEY_MARKERS)


def _scrub(key, value):
    if is_secret_key(key):
        return REDACTED
    if isinstance(value, Mapping):
        return {inner_key: _scrub(inner_key, inner) for inner_key, inner in value.items()}
    if isinstance(value, str) and len(value) > _MAX_STRING_CHARS:
        return value[:_MAX_STRING_CHARS] + _TRUNCATION_MARK
    return value


def new_job_id(prefix: str | None = None) -> str:
    suffix = uuid4().hex[:JOB_ID_LEN]
    label = str(prefix or "").strip()
    return f"{label}_{suffix}" if label else suffix


def log_structured_event(logger: logging.Logger, level: int, event: str, **fields) -> dict[str, object]:
    """Log ``event`` with ``fields`` (``None`` values dropped) and return the scrubbed payload."""
    payload: dict[str, object] = {"event": str(event)}
    for key, value in fields.items():
        if value is not None:
            payload[key] = _scrub(key, value)
    if logger.isEnabledFor(level):
        logger.log(level, json_dumps(payload))
    return payload


def configure_cli_logging(verbosity: int = 0) -> None:
    """Root handler for the console entrypoint; library code never calls this."""
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbosity, logging.DEBUG)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
