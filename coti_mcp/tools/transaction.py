"""Transaction inspection and generic contract call tools."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

from coti_mcp.context import ServerContext
from coti_mcp.coti_api.abis import ERC20_ABI, ERC721_ABI
from coti_mcp.coti_api.events import decode_event
from coti_mcp.errors import CotiMcpError, DownstreamError, InvalidArgumentError
from coti_mcp.network import explorer_tx_url
from coti_mcp.tools.formatting import format_coti, format_gwei, render_value, to_jsonable
from coti_mcp.tools.outcome import ToolOutcome
from coti_mcp.tools.validators import ADDRESS_REGEX, require_address, require_tx_hash

logger = logging.getLogger(__name__)

_INT_ARG_REGEX = re.compile(r"^-?\d+$")
_FLOAT_ARG_REGEX = re.compile(r"^-?\d+\.\d+$")


def _not_found_or_pending(tx_hash: str) -> str:
    return (
        "Transaction Not Found or Pending\n"
        f"Transaction Hash: {tx_hash}\n"
        "Status: No logs available (Transaction may be pending or not found)"
    )


async def get_transaction_status(transaction_hash: str, *, context: ServerContext) -> ToolOutcome:
    try:
        tx_hash = require_tx_hash(transaction_hash)
        tx = await context.client.get_transaction(tx_hash)
        if tx is None:
            return ToolOutcome.success(
                f"Transaction Not Found\nTransaction Hash: {tx_hash}\n"
                "Status: Unknown (Transaction not found on the blockchain)",
                {"transactionHash": tx_hash, "status": "Not Found"},
            )
        receipt = await context.client.get_transaction_receipt(tx_hash)
        current_block = await context.client.get_block_number() if receipt else None
    except CotiMcpError as exc:
        return ToolOutcome.failure("get transaction status", exc)

    status, gas_used, block_number, confirmations = "Pending", "N/A", "N/A", 0
    if receipt:
        status = "Success" if receipt.get("status") else "Failed"
        gas_used = str(receipt.get("gasUsed"))
        block_number = str(receipt.get("blockNumber"))
        confirmations = max(0, int(current_block) - int(receipt.get("blockNumber") or 0))

    explorer = explorer_tx_url(context.network.get(), tx_hash)
    fields = [
        ("Transaction Hash", tx_hash),
        ("Status", status),
        ("From", tx.get("from")),
        ("To", tx.get("to") or "Contract Creation"),
        ("Value", f"{format_coti(int(tx.get('value') or 0))} COTI"),
        ("Gas Price", f"{format_gwei(int(tx.get('gasPrice') or 0))} Gwei"),
        ("Gas Limit", tx.get("gas")),
        ("Gas Used", gas_used),
        ("Nonce", tx.get("nonce")),
        ("Block Number", block_number),
        ("Confirmations", confirmations),
    ]
    text = "".join(f"{label}: {value}\n\n" for label, value in fields) + f"{explorer}\n\n"
    return ToolOutcome.success(
        text,
        {
            "transactionHash": tx_hash,
            "status": status,
            "from": tx.get("from"),
            "to": tx.get("to"),
            "valueWei": str(tx.get("value") or 0),
            "gasUsed": gas_used,
            "blockNumber": block_number,
            "confirmations": confirmations,
            "explorerUrl": explorer,
        },
    )


async def get_transaction_logs(transaction_hash: str, *, context: ServerContext) -> ToolOutcome:
    try:
        tx_hash = require_tx_hash(transaction_hash)
        receipt = await context.client.get_transaction_receipt(tx_hash)
    except CotiMcpError as exc:
        return ToolOutcome.failure("get transaction logs", exc)

    if not receipt:
        return ToolOutcome.success(
            _not_found_or_pending(tx_hash),
            {"transactionHash": tx_hash, "totalLogs": 0, "logs": [], "status": "Not Found or Pending"},
        )
    logs: List[Dict[str, Any]] = receipt.get("logs") or []
    if not logs:
        return ToolOutcome.success(
            f"Transaction Hash: {tx_hash}\n\nNo logs found for this transaction.",
            {"transactionHash": tx_hash, "totalLogs": 0, "logs": [], "status": "No Logs"},
        )

    lines = [f"Transaction Hash: {tx_hash}\n\n", f"Total Logs: {len(logs)}\n\n"]
    entries = []
    for position, log in enumerate(logs, start=1):
        topics = log.get("topics") or []
        log_index = log.get("logIndex")
        lines.append(f"Log #{position}:\n")
        lines.append(f"  Address: {log.get('address')}\n")
        lines.append(f"  Block Number: {log.get('blockNumber')}\n")
        lines.append(f"  Transaction Index: {log.get('transactionIndex')}\n")
        lines.append(f"  Log Index: {log_index if log_index is not None else 'N/A'}\n")
        lines.append(f"  Removed: {str(bool(log.get('removed'))).lower()}\n")
        lines.append(f"  Topics ({len(topics)}):\n")
        lines.extend(f"    Topic {index}: {topic}\n" for index, topic in enumerate(topics))
        lines.append(f"  Data: {log.get('data')}\n\n")
        event_signature = topics[0] if topics else None
        if event_signature:
            lines.append(f"  Event Signature: {event_signature}\n\n")
        entries.append({**log, "eventSignature": event_signature})

    explorer = explorer_tx_url(context.network.get(), tx_hash)
    lines.append(f"View on Explorer: {explorer}\n")
    return ToolOutcome.success(
        "".join(lines),
        {"transactionHash": tx_hash, "totalLogs": len(logs), "logs": entries, "status": "Success", "explorerUrl": explorer},
    )


def _coerce_argument(raw: str) -> Any:
    """Interpret a string argument: booleans, addresses, integers and decimals."""
    lowered = raw.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if ADDRESS_REGEX.fullmatch(raw):
        return raw
    if _INT_ARG_REGEX.fullmatch(raw):
        return int(raw)
    if _FLOAT_ARG_REGEX.fullmatch(raw):
        return float(raw)
    return raw


def _parse_abi(abi: str) -> List[Dict[str, Any]]:
    try:
        parsed = json.loads(abi)
    except ValueError as exc:
        raise InvalidArgumentError(f"Invalid ABI format: {exc}") from exc
    if not isinstance(parsed, list):
        raise InvalidArgumentError("Invalid ABI format: expected a JSON array")
    return parsed


async def _detect_abi(context: ServerContext, private_key: str, address: str) -> tuple[str, List[Dict[str, Any]]]:
    try:
        await context.client.call_contract(private_key, address, ERC20_ABI, "decimals", [])
        return "ERC20", ERC20_ABI
    except DownstreamError:
        logger.debug("Contract %s did not answer decimals(); trying ERC721", address)
    try:
        await context.client.call_contract(private_key, address, ERC721_ABI, "ownerOf", [1])
        return "ERC721", ERC721_ABI
    except DownstreamError as exc:
        raise InvalidArgumentError("Could not determine contract type. Please provide the ABI.") from exc


async def call_contract_function(
    contract_address: str,
    function_name: str,
    function_args: Optional[List[str]] = None,
    abi: Optional[str] = None,
    *,
    context: ServerContext,
) -> ToolOutcome:
    """
    Call a read-only contract function.

    Without an ABI the contract is tried as ERC20 (``decimals()``) and then as
    ERC721 (``ownerOf(1)``). String arguments are coerced to booleans, integers
    and decimals where they look like one.
    """
    try:
        address = require_address(contract_address, "contract address")
        credential = context.accounts.get()
        contract_type: Optional[str] = None
        if abi:
            contract_abi = _parse_abi(abi)
        else:
            contract_type, contract_abi = await _detect_abi(context, credential.private_key, address)
        args = [_coerce_argument(arg) for arg in function_args or []]
        result = await context.client.call_contract(credential.private_key, address, contract_abi, function_name, args)
    except CotiMcpError as exc:
        return ToolOutcome.failure("call contract function", exc)

    rendered = render_value(result)
    return ToolOutcome.success(
        "Function Call Successful!\n\n"
        f"Contract: {address}\n\n"
        f"Function: {function_name}\n\n"
        f"Arguments: {json.dumps(args)}\n\n"
        f"Result: {rendered}",
        {
            "contractAddress": address,
            "functionName": function_name,
            "functionArgs": args,
            "result": to_jsonable(result),
            "formattedResult": rendered,
            "contractType": contract_type,
        },
    )


async def _try_decrypt(context: ServerContext, value: int) -> Optional[str]:
    try:
        credential = context.accounts.get()
        decrypted = await context.client.decrypt_value(credential.private_key, credential.aes_key, value)
    except CotiMcpError as exc:
        logger.debug("Event value is not decryptable with the default account: %s", exc)
        return None
    return str(decrypted)


async def decode_event_data(
    topics: List[str],
    data: str,
    abi: Optional[str] = None,
    *,
    context: ServerContext,
) -> ToolOutcome:
    """
    Decode a transaction log against an ABI, or the standard private ERC20/ERC721 ABIs.

    Unindexed uint256 values are also tried as ciphertexts for the default account.
    """
    try:
        contract_abi = _parse_abi(abi) if abi else [*ERC20_ABI, *ERC721_ABI]
        event = decode_event(contract_abi, topics, data)
    except CotiMcpError as exc:
        return ToolOutcome.failure("decode event data", exc)

    if event is None:
        return ToolOutcome.success(
            "No decoded data found.",
            {"eventName": "", "eventSignature": "", "eventTopic": "", "decodedInputs": [], "topics": topics, "data": data},
        )

    lines = ["Event Decoding Results:\n\n", "Decoded Data:\n\n"]
    lines.append(f"Event Name: {event.name}\n\n")
    lines.append(f"Event Signature: {event.signature}\n\n")
    lines.append(f"Event Topic: {event.topic}\n\n")
    inputs = []
    for decoded in event.inputs:
        lines.append(f"Input {decoded.index}, Name: {decoded.name}, Type: {decoded.type}, Value: {render_value(decoded.value)}\n\n")
        decrypted = None
        if decoded.type == "uint256" and not decoded.indexed:
            decrypted = await _try_decrypt(context, decoded.value)
            lines.append(f"Decrypted Value: {decrypted if decrypted is not None else '[decryption failed or not applicable]'}\n\n")
        inputs.append(
            {
                "index": decoded.index,
                "name": decoded.name,
                "type": decoded.type,
                "indexed": decoded.indexed,
                "value": to_jsonable(decoded.value),
                "decryptedValue": decrypted,
            }
        )
    return ToolOutcome.success(
        "".join(lines),
        {
            "eventName": event.name,
            "eventSignature": event.signature,
            "eventTopic": event.topic,
            "decodedInputs": inputs,
            "topics": topics,
            "data": data,
        },
    )
