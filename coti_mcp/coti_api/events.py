"""
Event log decoding against a contract ABI.

A log is matched to an event by its first topic (the keccak hash of the event
signature). Indexed parameters are read from the remaining topics and the rest
from the data field, using web3's ABI codec.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from eth_abi import decode
from eth_abi.exceptions import DecodingError, ParseError
from eth_utils import collapse_if_tuple, event_signature_to_log_topic, to_checksum_address, to_hex

from coti_mcp.errors import InvalidArgumentError

# Indexed parameters of these types are stored as a hash, not as the value.
_HASHED_INDEXED_TYPES = ("string", "bytes", "(")


@dataclass(slots=True)
class DecodedInput:
    index: int
    name: str
    type: str
    indexed: bool
    value: Any


@dataclass(slots=True)
class DecodedEvent:
    name: str
    signature: str
    topic: str
    inputs: List[DecodedInput] = field(default_factory=list)

    def args(self) -> Dict[str, Any]:
        return {decoded.name: decoded.value for decoded in self.inputs}


def event_signature(event_abi: Mapping[str, Any]) -> str:
    types = ",".join(collapse_if_tuple(dict(item)) for item in event_abi.get("inputs", []))
    return f"{event_abi['name']}({types})"


def event_topic(event_abi: Mapping[str, Any]) -> str:
    return to_hex(event_signature_to_log_topic(event_signature(event_abi)))


def _to_bytes(value: str, what: str) -> bytes:
    text = value[2:] if value.startswith(("0x", "0X")) else value
    try:
        return bytes.fromhex(text)
    except ValueError as exc:
        raise InvalidArgumentError(f"Invalid {what}: expected hex, got {value}") from exc


def _plain(abi_type: str, value: Any) -> Any:
    if abi_type == "address":
        return to_checksum_address(value)
    if isinstance(value, (bytes, bytearray)):
        return to_hex(bytes(value))
    if isinstance(value, tuple):
        return [_plain("", item) for item in value]
    return value


def find_event(abi: Sequence[Mapping[str, Any]], topic: str) -> Optional[Mapping[str, Any]]:
    wanted = topic.lower()
    for entry in abi:
        if entry.get("type") != "event" or entry.get("anonymous"):
            continue
        if event_topic(entry).lower() == wanted:
            return entry
    return None


def decode_event(abi: Sequence[Mapping[str, Any]], topics: Sequence[str], data: str) -> Optional[DecodedEvent]:
    """
    Decode a log against the events of ``abi``.

    Returns None when no event in the ABI has the log's signature topic.

    Raises:
        InvalidArgumentError: the topics or data are not hex, or do not match the event layout.
    """
    if not topics:
        return None
    event_abi = find_event(abi, topics[0])
    if event_abi is None:
        return None

    inputs = list(event_abi.get("inputs", []))
    indexed = [item for item in inputs if item.get("indexed")]
    unindexed = [item for item in inputs if not item.get("indexed")]
    if len(topics) - 1 != len(indexed):
        raise InvalidArgumentError(
            f"Event {event_abi['name']} expects {len(indexed)} indexed topic(s), got {len(topics) - 1}"
        )

    values: Dict[int, Any] = {}
    try:
        for item, topic in zip(indexed, topics[1:]):
            abi_type = collapse_if_tuple(dict(item))
            raw = _to_bytes(topic, "topic")
            if abi_type.startswith(_HASHED_INDEXED_TYPES) or abi_type.endswith("]"):
                values[id(item)] = to_hex(raw)
            else:
                values[id(item)] = _plain(abi_type, decode([abi_type], raw)[0])
        data_types = [collapse_if_tuple(dict(item)) for item in unindexed]
        decoded_data = decode(data_types, _to_bytes(data or "0x", "data"))
    except (DecodingError, ParseError, ValueError) as exc:
        raise InvalidArgumentError(f"Could not decode event data: {exc}") from exc
    for item, abi_type, value in zip(unindexed, data_types, decoded_data):
        values[id(item)] = _plain(abi_type, value)

    return DecodedEvent(
        name=event_abi["name"],
        signature=event_signature(event_abi),
        topic=event_topic(event_abi),
        inputs=[
            DecodedInput(
                index=index,
                name=item.get("name", ""),
                type=collapse_if_tuple(dict(item)),
                indexed=bool(item.get("indexed")),
                value=values[id(item)],
            )
            for index, item in enumerate(inputs)
        ],
    )
