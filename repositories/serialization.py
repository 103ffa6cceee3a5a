"""
Payload sanitization for the document store.

Before every remote write the payload is converted to JSON-compatible
values; on every read, store-native timestamp shapes are normalized back to
ISO-8601 strings so the row mappers only ever see one representation.
"""

from __future__ import annotations

import dataclasses
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping

from domain.time import to_iso_utc

_TIMESTAMP_KEYS = frozenset({"seconds", "nanoseconds"})


def _is_store_timestamp(value: Any) -> bool:
    return isinstance(value, Mapping) and set(value.keys()) == _TIMESTAMP_KEYS


def _store_timestamp_to_iso(value: Mapping[str, Any]) -> str:
    seconds = int(value["seconds"])
    micros = int(value["nanoseconds"]) // 1000
    dt = datetime.fromtimestamp(seconds, tz=timezone.utc).replace(microsecond=micros)
    return dt.isoformat()


def sanitize_for_store(value: Any) -> Any:
    """
    Recursively convert a value into something the document store accepts.

    - datetime -> ISO-8601 UTC string (naive datetimes are rejected)
    - date -> ISO date string
    - Decimal -> string (no float rounding)
    - Enum -> its value
    - dataclass -> dict of sanitized fields
    - tuple/list -> list, mapping -> dict with string keys
    - store timestamps ({seconds, nanoseconds} or objects with to_datetime())
      -> ISO-8601 UTC string
    """

    if value is None:
        return None
    # str-Enum members are also str instances.
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, datetime):
        return to_iso_utc(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: sanitize_for_store(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if _is_store_timestamp(value):
        return _store_timestamp_to_iso(value)
    if isinstance(value, Mapping):
        return {str(k): sanitize_for_store(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [sanitize_for_store(item) for item in value]
    to_datetime = getattr(value, "to_datetime", None)
    if callable(to_datetime):
        dt = to_datetime()
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return to_iso_utc(dt.astimezone(timezone.utc))
    raise TypeError(f"Cannot store value of type {type(value)!r}")


def hydrate_from_store(value: Any) -> Any:
    """Normalize a stored value: store-native timestamps become ISO strings."""

    if _is_store_timestamp(value):
        return _store_timestamp_to_iso(value)
    if isinstance(value, Mapping):
        return {k: hydrate_from_store(v) for k, v in value.items()}
    if isinstance(value, list):
        return [hydrate_from_store(item) for item in value]
    to_datetime = getattr(value, "to_datetime", None)
    if callable(to_datetime):
        return sanitize_for_store(value)
    return value


__all__ = ["hydrate_from_store", "sanitize_for_store"]
