"""JSON codec used for request bodies, payload sizing and log lines; orjson when installed."""

from __future__ import annotations

import json as _stdlib_json

try:
    import orjson
except ImportError:  # pragma: no cover - optional acceleration
    orjson = None

JSON_BACKEND = "orjson" if orjson is not None else "json"


def json_backend() -> str:
    return JSON_BACKEND


def json_loads(payload):
    if orjson is not None:
        return orjson.loads(payload)
    if isinstance(payload, (bytes, bytearray)):
        payload = bytes(payload).decode("utf-8")
    return _stdlib_json.loads(payload)


def json_dumps_bytes(payload, *, indent: bool = False) -> bytes:
    """UTF-8 JSON; compact unless ``indent``. Both backends agree byte for byte on plain data."""
    if orjson is not None:
        return orjson.dumps(payload, default=str, option=orjson.OPT_INDENT_2 if indent else 0)
    if indent:
        return _stdlib_json.dumps(payload, default=str, ensure_ascii=False, indent=2).encode("utf-8")
    return _stdlib_json.dumps(payload, default=str, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def json_dumps(payload, *, indent: bool = False) -> str:
    return json_dumps_bytes(payload, indent=indent).decode("utf-8")


def serialized_size(payload) -> int:
    """Byte length of the compact encoding; ``None`` has no payload."""
    if payload is None:
        return 0
    return len(json_dumps_bytes(payload))
