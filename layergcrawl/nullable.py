"""JSON encoding of nullable integers and timestamps."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone

_INT16_MIN, _INT16_MAX = -(2**15), 2**15 - 1
_INT64_MIN, _INT64_MAX = -(2**63), 2**63 - 1
_DATETIME = re.compile(r"(\d{4})-(\d{2})-(\d{2}) (\d{2}):(\d{2}):(\d{2})(?:[.,](\d+))?")


def _load(data: str | bytes) -> object:
    try:
        return json.loads(data)
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid JSON: {exc}") from exc


def encode_null_int64(value: int | None) -> str:
    """Encode an optional integer as a JSON number or ``null``."""
    if value is not None and not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"value out of int64 range: {value}")
    return json.dumps(value)


def decode_null_int64(data: str | bytes) -> int | None:
    """Decode a JSON integer or ``null``."""
    value = _load(data)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"expected an integer, got {value!r}")
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"value out of int64 range: {value}")
    return value


def decode_null_int16(data: str | bytes) -> int | None:
    """Decode a JSON number or ``null``, truncating to a 16-bit integer."""
    value = _load(data)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"expected a number, got {value!r}")
    result = int(value)
    if not _INT16_MIN <= result <= _INT16_MAX:
        raise ValueError(f"value out of int16 range: {value}")
    return result


def decode_null_time(data: str | bytes) -> datetime | None:
    """Decode a ``YYYY-MM-DD HH:MM:SS`` JSON string or ``null`` as a UTC time."""
    value = _load(data)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"expected a string, got {value!r}")
    match = _DATETIME.fullmatch(value)
    if match is None:
        raise ValueError(f"cannot parse time {value!r}")
    year, month, day, hour, minute, second = (int(g) for g in match.groups()[:6])
    fraction = match.group(7) or ""
    micro = int((fraction + "000000")[:6])
    try:
        return datetime(year, month, day, hour, minute, second, micro, tzinfo=timezone.utc)
    except ValueError as exc:
        raise ValueError(f"cannot parse time {value!r}: {exc}") from exc