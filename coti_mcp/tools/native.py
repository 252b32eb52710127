"""Native COTI coin tools."""

from __future__ import annotations

from typing import Optional

from coti_mcp.context import ServerContext
from coti_mcp.errors import CotiMcpError
from coti_mcp.tools.formatting import format_coti
from coti_mcp.tools.outcome import ToolOutcome
from coti_mcp.tools.validators import parse_gas_limit, parse_uint, require_address


async def get_native_balance(account_address: str, *, context: ServerContext) -> ToolOutcome:
    try:
        address = require_address(account_address, "account address")
        balance = await context.client.get_balance(address)
    except CotiMcpError as exc:
        return ToolOutcome.failure("get native balance", exc)
    return ToolOutcome.success(
        f"Account: {address}\nBalance: {balance} wei ({format_coti(balance)} COTI)",
        {"account": address, "balanceWei": str(balance), "balanceCoti": format_coti(balance)},
    )


async def transfer_native(
    recipient_address: str,
    amount_wei: str,
    gas_limit: Optional[str] = None,
    *,
    context: ServerContext,
) -> ToolOutcome:
    """Send native COTI from the default account and wait for the receipt."""
    try:
        recipient = require_address(recipient_address, "recipient address")
        amount = parse_uint(amount_wei, "amount_wei")
        gas = parse_gas_limit(gas_limit)
        credential = context.accounts.get()
        receipt = await context.client.send_transaction(credential.private_key, recipient, amount, gas)
    except CotiMcpError as exc:
        return ToolOutcome.failure("transfer COTI tokens", exc)

    tx_hash = receipt.get("transactionHash")
    return ToolOutcome.success(
        "Transaction successful!\n"
        "Token: COTI\n"
        f"Transaction Hash: {tx_hash}\n"
        f"Amount in Wei: {amount}\n"
        f"Recipient: {recipient}",
        {
            "transactionHash": tx_hash,
            "token": "COTI",
            "amountWei": str(amount),
            "recipient": recipient,
            "sender": credential.address,
        },
    )
