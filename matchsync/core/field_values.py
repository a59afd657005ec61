"""Field Values — array-union / array-remove deltas and the server timestamp sentinel.

Invariants:
    - apply_partial never mutates its input document (returns a new dict)
    - ArrayUnion is set-union preserving first-seen order: applying it twice == once
    - ArrayRemove removes every occurrence: applying it twice == once
    - SERVER_TIMESTAMP resolves to the store's commit time, serialized as ISO-8601
    - encode_partial/decode_partial round-trip deltas through JSON queue payloads

Design Decisions:
    - Deltas are values, not store methods: the same partial can be queued offline,
      persisted as JSON, and applied later by any store implementation
    - Top-level fields only: every collection in this system is flat
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True, init=False)
class ArrayUnion:
    """Add values to an array field if absent."""
    values: tuple

    def __init__(self, *values: Any):
        object.__setattr__(self, "values", tuple(values))


@dataclass(frozen=True, init=False)
class ArrayRemove:
    """Remove all occurrences of values from an array field."""
    values: tuple

    def __init__(self, *values: Any):
        object.__setattr__(self, "values", tuple(values))


class _ServerTimestamp:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def resolve_value(current: Any, value: Any, now: datetime) -> Any:
    """Resolve one field write against the current field value."""
    if isinstance(value, ArrayUnion):
        result = list(current) if isinstance(current, list) else []
        for v in value.values:
            if v not in result:
                result.append(v)
        return result
    if isinstance(value, ArrayRemove):
        if not isinstance(current, list):
            return []
        return [v for v in current if v not in value.values]
    if value is SERVER_TIMESTAMP:
        return now.isoformat()
    return value


def apply_partial(doc: dict | None, partial: dict, now: datetime) -> dict:
    """Apply a partial update (plain values and deltas) to a document copy."""
    result = dict(doc or {})
    for key, value in partial.items():
        result[key] = resolve_value(result.get(key), value, now)
    return result


def resolve_document(data: dict, now: datetime) -> dict:
    """Resolve sentinels in a full-document write (set without merge)."""
    return apply_partial({}, data, now)


# ─── JSON encoding for queued payloads ──────────────────────────

_UNION = "$union"
_REMOVE = "$remove"
_SERVER_TS = "$serverTimestamp"


def encode_partial(partial: dict) -> dict:
    """Encode deltas into JSON-safe markers."""
    encoded: dict[str, Any] = {}
    for key, value in partial.items():
        if isinstance(value, ArrayUnion):
            encoded[key] = {_UNION: list(value.values)}
        elif isinstance(value, ArrayRemove):
            encoded[key] = {_REMOVE: list(value.values)}
        elif value is SERVER_TIMESTAMP:
            encoded[key] = {_SERVER_TS: True}
        else:
            encoded[key] = value
    return encoded


def decode_partial(encoded: dict) -> dict:
    """Decode JSON markers back into deltas."""
    decoded: dict[str, Any] = {}
    for key, value in encoded.items():
        if isinstance(value, dict) and len(value) == 1:
            marker, arg = next(iter(value.items()))
            if marker == _UNION:
                decoded[key] = ArrayUnion(*arg)
                continue
            if marker == _REMOVE:
                decoded[key] = ArrayRemove(*arg)
                continue
            if marker == _SERVER_TS:
                decoded[key] = SERVER_TIMESTAMP
                continue
        decoded[key] = value
    return decoded
