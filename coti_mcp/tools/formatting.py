"""Unit formatting for wei amounts."""

from __future__ import annotations

import json
from typing import Any, Mapping

COTI_DECIMALS = 18
GWEI_DECIMALS = 9


def format_units(value: int, decimals: int) -> str:
    """Render an integer amount with ``decimals`` places, e.g. 1500000000000000000/18 -> "1.5"."""
    sign = "-" if value < 0 else ""
    whole, fraction = divmod(abs(int(value)), 10 ** decimals)
    fraction_text = str(fraction).rjust(decimals, "0").rstrip("0") if decimals else ""
    return f"{sign}{whole}.{fraction_text or '0'}"


def format_coti(wei: int) -> str:
    return format_units(wei, COTI_DECIMALS)


def format_gwei(wei: int) -> str:
    return format_units(wei, GWEI_DECIMALS)


def to_jsonable(value: Any) -> Any:
    """Convert contract/cipher results (bytes, tuples, AttributeDicts) to JSON-safe values."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, Mapping):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def render_value(value: Any) -> str:
    """Human-readable rendering; large ints stay exact, composites become indented JSON."""
    converted = to_jsonable(value)
    if isinstance(converted, (dict, list)):
        return json.dumps(converted, indent=2)
    return str(converted)
