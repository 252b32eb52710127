"""Private ERC20 token tools.

Balances and allowances of COTI private tokens are stored encrypted on chain;
they are decrypted with the default account's AES key before being shown.
Transfer and approve amounts are encrypted as input text bound to the token
contract and the function selector.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Sequence

from coti_mcp.accounts import Credential
from coti_mcp.context import ServerContext
from coti_mcp.coti_api.abis import ERC20_ABI
from coti_mcp.errors import CotiMcpError, InvalidArgumentError
from coti_mcp.tools.formatting import format_units
from coti_mcp.tools.outcome import ToolOutcome
from coti_mcp.tools.validators import parse_gas_limit, parse_uint, require_address

logger = logging.getLogger(__name__)


async def _call(context: ServerContext, credential: Credential, token: str, function_name: str, *args: Any) -> Any:
    return await context.client.call_contract(credential.private_key, token, ERC20_ABI, function_name, list(args))


async def _metadata(context: ServerContext, credential: Credential, token: str, fields: Sequence[str]) -> Dict[str, Any]:
    return {field: await _call(context, credential, token, field) for field in fields}


async def _encrypted_amount(context: ServerContext, credential: Credential, token: str, function_name: str, amount: int):
    selector = context.client.function_selector(ERC20_ABI, function_name)
    encrypted = await context.client.encrypt_value(credential.private_key, credential.aes_key, amount, token, selector)
    return selector, encrypted


def _allowance_ciphertext(allowance: Any, credential: Credential, owner: str, spender: str) -> int:
    if isinstance(allowance, Mapping):
        owner_ct, spender_ct = allowance.get("ownerCiphertext"), allowance.get("spenderCiphertext")
    else:
        _, owner_ct, spender_ct = allowance
    account = credential.address.lower()
    if account == owner.lower():
        return int(owner_ct)
    if account == spender.lower():
        return int(spender_ct)
    raise InvalidArgumentError("The allowance can only be decrypted by its owner or spender account")


async def get_private_erc20_balance(account_address: str, token_address: str, *, context: ServerContext) -> ToolOutcome:
    try:
        account = require_address(account_address, "account address")
        token = require_address(token_address, "token address")
        credential = context.accounts.get()
        meta = await _metadata(context, credential, token, ("name", "decimals", "symbol"))
        encrypted_balance = await _call(context, credential, token, "balanceOf", account)
        decrypted = await context.client.decrypt_value(credential.private_key, credential.aes_key, encrypted_balance)
    except CotiMcpError as exc:
        return ToolOutcome.failure("get private token balance", exc)

    decimals = int(meta["decimals"])
    balance = format_units(int(decrypted), decimals) if decrypted is not None else "Unable to decrypt"
    return ToolOutcome.success(
        f"Balance: {balance}\nDecimals: {decimals}\nSymbol: {meta['symbol']}\nName: {meta['name']}",
        {
            "balance": balance,
            "decimals": decimals,
            "symbol": meta["symbol"],
            "name": meta["name"],
            "accountAddress": account,
            "tokenAddress": token,
        },
    )


async def get_private_erc20_decimals(token_address: str, *, context: ServerContext) -> ToolOutcome:
    try:
        token = require_address(token_address, "token address")
        credential = context.accounts.get()
        meta = await _metadata(context, credential, token, ("name", "symbol", "decimals"))
    except CotiMcpError as exc:
        return ToolOutcome.failure("get private ERC20 decimals", exc)

    decimals = int(meta["decimals"])
    return ToolOutcome.success(
        f"Collection: {meta['name']} ({meta['symbol']})\nDecimals: {decimals}\nToken Address: {token}",
        {"name": meta["name"], "symbol": meta["symbol"], "decimals": decimals, "tokenAddress": token},
    )


async def get_private_erc20_total_supply(token_address: str, *, context: ServerContext) -> ToolOutcome:
    try:
        token = require_address(token_address, "token address")
        credential = context.accounts.get()
        meta = await _metadata(context, credential, token, ("name", "symbol", "totalSupply", "decimals"))
    except CotiMcpError as exc:
        return ToolOutcome.failure("get private ERC20 total supply", exc)

    decimals = int(meta["decimals"])
    total_supply = int(meta["totalSupply"])
    formatted = format_units(total_supply, decimals)
    return ToolOutcome.success(
        f"Collection: {meta['name']} ({meta['symbol']})\n"
        f"Total Supply (in Wei): {total_supply}\n"
        f"Total Supply (formatted): {formatted} ({decimals} decimals)\n"
        f"Token Address: {token}",
        {
            "name": meta["name"],
            "symbol": meta["symbol"],
            "totalSupply": str(total_supply),
            "formattedTotalSupply": formatted,
            "decimals": decimals,
            "tokenAddress": token,
        },
    )


async def transfer_private_erc20(
    token_address: str,
    recipient_address: str,
    amount_wei: str,
    gas_limit: Optional[str] = None,
    *,
    context: ServerContext,
) -> ToolOutcome:
    try:
        token = require_address(token_address, "token address")
        recipient = require_address(recipient_address, "recipient address")
        amount = parse_uint(amount_wei, "amount_wei")
        gas = parse_gas_limit(gas_limit)
        credential = context.accounts.get()
        symbol = await _call(context, credential, token, "symbol")
        selector, encrypted = await _encrypted_amount(context, credential, token, "transfer", amount)
        receipt = await context.client.transact_contract(
            credential.private_key, token, ERC20_ABI, "transfer", [recipient, encrypted], gas
        )
    except CotiMcpError as exc:
        return ToolOutcome.failure("transfer private ERC20 tokens", exc)

    tx_hash = receipt.get("transactionHash")
    logger.info("Private ERC20 transfer %s from %s", tx_hash, credential.address)
    return ToolOutcome.success(
        "Private Token Transfer Successful!\n"
        f"Token: {symbol}\n"
        f"Transaction Hash: {tx_hash}\n"
        f"Amount in Wei: {amount}\n"
        f"Recipient: {recipient}\n"
        f"Transfer Function Selector: {selector}",
        {
            "transactionHash": tx_hash,
            "tokenSymbol": symbol,
            "amountWei": str(amount),
            "recipient": recipient,
            "transferFunctionSelector": selector,
        },
    )


async def mint_private_erc20_token(
    token_address: str,
    recipient_address: str,
    amount_wei: str,
    gas_limit: Optional[str] = None,
    *,
    context: ServerContext,
) -> ToolOutcome:
    """Mint tokens to a recipient; the contract takes a plain uint64 amount."""
    try:
        token = require_address(token_address, "token address")
        recipient = require_address(recipient_address, "recipient address")
        amount = parse_uint(amount_wei, "amount_wei")
        if amount >= 2**64:
            raise InvalidArgumentError("amount_wei does not fit in uint64")
        gas = parse_gas_limit(gas_limit)
        credential = context.accounts.get()
        receipt = await context.client.transact_contract(
            credential.private_key, token, ERC20_ABI, "mint", [recipient, amount], gas
        )
    except CotiMcpError as exc:
        return ToolOutcome.failure("mint private ERC20 token", exc)

    tx_hash = receipt.get("transactionHash")
    return ToolOutcome.success(
        "ERC20 Token Minting Successful!\n"
        f"Token Address: {token}\n"
        f"Recipient: {recipient}\n"
        f"Amount: {amount}\n"
        f"Transaction Hash: {tx_hash}",
        {"transactionHash": tx_hash, "tokenAddress": token, "recipient": recipient, "amountWei": str(amount)},
    )


async def approve_erc20_spender(
    token_address: str,
    spender_address: str,
    amount_wei: str,
    gas_limit: Optional[str] = None,
    *,
    context: ServerContext,
) -> ToolOutcome:
    try:
        token = require_address(token_address, "token address")
        spender = require_address(spender_address, "spender address")
        amount = parse_uint(amount_wei, "amount_wei")
        gas = parse_gas_limit(gas_limit)
        credential = context.accounts.get()
        symbol = await _call(context, credential, token, "symbol")
        selector, encrypted = await _encrypted_amount(context, credential, token, "approve", amount)
        receipt = await context.client.transact_contract(
            credential.private_key, token, ERC20_ABI, "approve", [spender, encrypted], gas
        )
    except CotiMcpError as exc:
        return ToolOutcome.failure("approve ERC20 spender", exc)

    tx_hash = receipt.get("transactionHash")
    return ToolOutcome.success(
        "ERC20 Approval Successful!\n"
        f"Token: {symbol}\n"
        f"Transaction Hash: {tx_hash}\n"
        f"Amount in Wei: {amount}\n"
        f"Spender: {spender}\n"
        f"Approve Function Selector: {selector}",
        {
            "transactionHash": tx_hash,
            "tokenSymbol": symbol,
            "amountWei": str(amount),
            "spender": spender,
            "approveFunctionSelector": selector,
        },
    )


async def get_erc20_allowance(
    token_address: str,
    owner_address: str,
    spender_address: str,
    *,
    context: ServerContext,
) -> ToolOutcome:
    """Decrypt the allowance copy re-encrypted for the default account (owner or spender)."""
    try:
        token = require_address(token_address, "token address")
        owner = require_address(owner_address, "owner address")
        spender = require_address(spender_address, "spender address")
        credential = context.accounts.get()
        meta = await _metadata(context, credential, token, ("symbol", "decimals"))
        allowance = await _call(context, credential, token, "allowance", owner, spender)
        ciphertext = _allowance_ciphertext(allowance, credential, owner, spender)
        decrypted = await context.client.decrypt_value(credential.private_key, credential.aes_key, ciphertext)
    except CotiMcpError as exc:
        return ToolOutcome.failure("get ERC20 allowance", exc)

    decimals = int(meta["decimals"])
    formatted = format_units(int(decrypted), decimals) if decrypted is not None else "Unable to decrypt"
    return ToolOutcome.success(
        "ERC20 Token Allowance:\n"
        f"Token: {meta['symbol']}\n"
        f"Owner: {owner}\n"
        f"Spender: {spender}\n"
        f"Allowance: {formatted}",
        {
            "tokenSymbol": meta["symbol"],
            "owner": owner,
            "spender": spender,
            "allowance": formatted,
            "decimals": decimals,
        },
    )
