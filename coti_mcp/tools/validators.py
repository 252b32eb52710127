"""Shared validation helpers for COTI MCP tools."""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Mapping, Optional

from coti_mcp.errors import InvalidArgumentError

# EVM addresses: 0x followed by 40 hex digits, any case.
ADDRESS_REGEX = re.compile(r"^0x[0-9a-fA-F]{40}$")
UINT_REGEX = re.compile(r"^\d+$")
TX_HASH_REGEX = re.compile(r"^0x[0-9a-fA-F]{64}$")
SELECTOR_REGEX = re.compile(r"^0x[0-9a-fA-F]{8}$")


def is_valid_address(address: Optional[str]) -> bool:
    """Basic format validation for COTI (EVM) addresses."""
    if not address or not isinstance(address, str):
        return False
    return bool(ADDRESS_REGEX.fullmatch(address.strip()))


def require_address(value: Optional[str], field: str) -> str:
    if not is_valid_address(value):
        raise InvalidArgumentError(f"Invalid {field}: {value}")
    return value.strip()  # type: ignore[union-attr]


def require_tx_hash(value: Optional[str]) -> str:
    if not value or not TX_HASH_REGEX.fullmatch(value.strip()):
        raise InvalidArgumentError(f"Invalid transaction hash: {value}")
    return value.strip()


def parse_uint(value: Any, field: str) -> int:
    """Parse a non-negative decimal integer string (amounts in wei, token ids)."""
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    if isinstance(value, str) and UINT_REGEX.fullmatch(value.strip()):
        return int(value.strip())
    raise InvalidArgumentError(f"{field} must be a non-negative integer, got: {value}")


def parse_gas_limit(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    gas_limit = parse_uint(value, "gas_limit")
    if gas_limit == 0:
        raise InvalidArgumentError("gas_limit must be greater than zero")
    return gas_limit


def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


_TYPE_CHECKS: Dict[str, Callable[[Any], bool]] = {
    "string": lambda value: isinstance(value, str),
    "boolean": lambda value: isinstance(value, bool),
    "integer": _is_integer,
    "number": lambda value: _is_integer(value) or isinstance(value, float),
    "array": lambda value: isinstance(value, list),
    "object": lambda value: isinstance(value, dict),
}


def _value_violations(name: str, prop: Mapping[str, Any], value: Any) -> List[str]:
    expected = prop.get("type")
    check = _TYPE_CHECKS.get(expected) if expected else None
    if check is not None and not check(value):
        return [f"'{name}' must be of type {expected}"]
    violations: List[str] = []
    allowed = prop.get("enum")
    if allowed is not None and value not in allowed:
        violations.append(f"'{name}' must be one of: {', '.join(str(item) for item in allowed)}")
    pattern = prop.get("pattern")
    if pattern and isinstance(value, str) and not re.search(pattern, value):
        violations.append(f"'{name}' does not match the expected format")
    item_type = (prop.get("items") or {}).get("type")
    if expected == "array" and item_type in _TYPE_CHECKS:
        if not all(_TYPE_CHECKS[item_type](item) for item in value):
            violations.append(f"'{name}' items must be of type {item_type}")
    return violations


def schema_violations(schema: Mapping[str, Any], arguments: Any) -> List[str]:
    """
    Check tool arguments against the JSON-schema subset used by the registry.

    Supports object ``type``, ``required``, primitive property ``type``, ``enum``,
    string ``pattern``, array ``items.type`` and ``additionalProperties: false``. A ``None`` value is
    treated as an absent argument.
    """
    if not isinstance(arguments, Mapping):
        return ["arguments must be an object"]

    properties: Mapping[str, Any] = schema.get("properties", {})
    violations: List[str] = []
    for name in schema.get("required", []):
        if arguments.get(name) is None:
            violations.append(f"missing required argument '{name}'")

    for name, value in arguments.items():
        prop = properties.get(name)
        if prop is None:
            if schema.get("additionalProperties", True) is False:
                violations.append(f"unexpected argument '{name}'")
            continue
        if value is None:
            continue
        violations.extend(_value_violations(name, prop, value))
    return violations
