"""Private ERC721 (NFT) tools."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from coti_mcp.accounts import Credential
from coti_mcp.context import ServerContext
from coti_mcp.coti_api.abis import ERC721_ABI, ERC721_EVENTS
from coti_mcp.coti_api.events import decode_event, event_topic
from coti_mcp.errors import CotiMcpError, InvalidArgumentError
from coti_mcp.tools.outcome import ToolOutcome
from coti_mcp.tools.validators import parse_gas_limit, parse_uint, require_address

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
# Transfer(address indexed from, address indexed to, uint256 indexed tokenId)
TRANSFER_TOPIC = event_topic(ERC721_EVENTS[0]).lower()


async def _call(context: ServerContext, credential: Credential, token: str, function_name: str, *args: Any) -> Any:
    return await context.client.call_contract(credential.private_key, token, ERC721_ABI, function_name, list(args))


async def _transact(
    context: ServerContext,
    credential: Credential,
    token: str,
    function_name: str,
    args: Sequence[Any],
    gas_limit: Optional[int],
) -> Dict[str, Any]:
    return await context.client.transact_contract(
        credential.private_key, token, ERC721_ABI, function_name, list(args), gas_limit
    )


async def _collection(context: ServerContext, credential: Credential, token: str) -> tuple[str, str]:
    name = await _call(context, credential, token, "name")
    symbol = await _call(context, credential, token, "symbol")
    return name, symbol


def _ct_string_chunks(encrypted: Any) -> List[int]:
    """Pull the ciphertext chunks out of a ctString tuple as returned by web3."""
    if isinstance(encrypted, Mapping):
        encrypted = encrypted.get("value")
    if isinstance(encrypted, (list, tuple)) and len(encrypted) == 1 and isinstance(encrypted[0], (list, tuple)):
        encrypted = encrypted[0]
    return [int(chunk) for chunk in encrypted]


def _minted_token_id(receipt: Mapping[str, Any], token: str) -> Optional[int]:
    for log in receipt.get("logs") or []:
        if log.get("address") and str(log["address"]).lower() != token.lower():
            continue
        topics = log.get("topics") or []
        if len(topics) != 4 or str(topics[0]).lower() != TRANSFER_TOPIC:
            continue
        try:
            event = decode_event(ERC721_EVENTS, topics, log.get("data") or "0x")
        except InvalidArgumentError:
            logger.warning("Skipping malformed Transfer log in receipt %s", receipt.get("transactionHash"))
            continue
        if event is not None:
            return int(event.args()["tokenId"])
    return None


async def get_private_erc721_balance(account_address: str, token_address: str, *, context: ServerContext) -> ToolOutcome:
    try:
        account = require_address(account_address, "account address")
        token = require_address(token_address, "token address")
        credential = context.accounts.get()
        name, symbol = await _collection(context, credential, token)
        balance = int(await _call(context, credential, token, "balanceOf", account))
    except CotiMcpError as exc:
        return ToolOutcome.failure("get private ERC721 balance", exc)
    return ToolOutcome.success(
        f"Token: {name} ({symbol})\nAccount Address: {account}\nBalance: {balance} NFT(s)",
        {"name": name, "symbol": symbol, "accountAddress": account, "balance": balance, "tokenAddress": token},
    )


async def get_private_erc721_token_owner(token_address: str, token_id: str, *, context: ServerContext) -> ToolOutcome:
    try:
        token = require_address(token_address, "token address")
        token_number = parse_uint(token_id, "token_id")
        credential = context.accounts.get()
        name, symbol = await _collection(context, credential, token)
        owner = await _call(context, credential, token, "ownerOf", token_number)
    except CotiMcpError as exc:
        return ToolOutcome.failure("get private ERC721 token owner", exc)
    return ToolOutcome.success(
        f"Token: {name} ({symbol})\nToken ID: {token_number}\nOwner Address: {owner}",
        {"name": name, "symbol": symbol, "tokenId": str(token_number), "ownerAddress": owner, "tokenAddress": token},
    )


async def get_private_erc721_token_uri(token_address: str, token_id: str, *, context: ServerContext) -> ToolOutcome:
    """
    Read and decrypt the token URI.

    A URI that cannot be decrypted by the default account is reported in the text
    (``Decryption failed: ...``) rather than failing the call.
    """
    try:
        token = require_address(token_address, "token address")
        token_number = parse_uint(token_id, "token_id")
        credential = context.accounts.get()
        name, symbol = await _collection(context, credential, token)
        encrypted = await _call(context, credential, token, "tokenURI", token_number)
    except CotiMcpError as exc:
        return ToolOutcome.failure("get private ERC721 token URI", exc)

    decrypted = True
    try:
        token_uri = await context.client.decrypt_value(
            credential.private_key, credential.aes_key, _ct_string_chunks(encrypted)
        )
    except (CotiMcpError, TypeError, ValueError) as exc:
        logger.warning("Could not decrypt token URI for %s #%s", token, token_number)
        decrypted = False
        token_uri = f"Decryption failed: {getattr(exc, 'message', exc)}"
    return ToolOutcome.success(
        f"Token: {name} ({symbol})\nToken ID: {token_number}\nDecrypted Token URI: {token_uri}",
        {
            "name": name,
            "symbol": symbol,
            "tokenId": str(token_number),
            "tokenURI": str(token_uri),
            "decryptionSuccess": decrypted,
            "tokenAddress": token,
        },
    )


async def get_private_erc721_total_supply(token_address: str, *, context: ServerContext) -> ToolOutcome:
    try:
        token = require_address(token_address, "token address")
        credential = context.accounts.get()
        name, symbol = await _collection(context, credential, token)
        total_supply = int(await _call(context, credential, token, "totalSupply"))
    except CotiMcpError as exc:
        return ToolOutcome.failure("get private ERC721 total supply", exc)
    return ToolOutcome.success(
        f"Collection: {name} ({symbol})\nTotal Supply: {total_supply} tokens",
        {"name": name, "symbol": symbol, "totalSupply": str(total_supply), "tokenAddress": token},
    )


async def transfer_private_erc721(
    token_address: str,
    recipient_address: str,
    token_id: str,
    use_safe_transfer: bool = False,
    gas_limit: Optional[str] = None,
    *,
    context: ServerContext,
) -> ToolOutcome:
    try:
        token = require_address(token_address, "token address")
        recipient = require_address(recipient_address, "recipient address")
        token_number = parse_uint(token_id, "token_id")
        gas = parse_gas_limit(gas_limit)
        credential = context.accounts.get()
        name, symbol = await _collection(context, credential, token)
        method = "safeTransferFrom" if use_safe_transfer else "transferFrom"
        receipt = await _transact(context, credential, token, method, [credential.address, recipient, token_number], gas)
    except CotiMcpError as exc:
        return ToolOutcome.failure("transfer private ERC721 token", exc)

    tx_hash = receipt.get("transactionHash")
    return ToolOutcome.success(
        "Private NFT Transfer Successful!\n"
        f"Token: {name} ({symbol})\n"
        f"Token ID: {token_number}\n"
        f"Transaction Hash: {tx_hash}\n"
        f"Transfer Method: {method}\n"
        f"Recipient: {recipient}",
        {
            "transactionHash": tx_hash,
            "name": name,
            "symbol": symbol,
            "tokenId": str(token_number),
            "transferMethod": method,
            "recipient": recipient,
        },
    )


async def mint_private_erc721_token(
    token_address: str,
    to_address: str,
    token_uri: str,
    gas_limit: Optional[str] = None,
    *,
    context: ServerContext,
) -> ToolOutcome:
    """Mint an NFT whose URI is stored encrypted; the new token id is read from the Transfer log."""
    try:
        token = require_address(token_address, "token address")
        recipient = require_address(to_address, "recipient address")
        gas = parse_gas_limit(gas_limit)
        credential = context.accounts.get()
        selector = context.client.function_selector(ERC721_ABI, "mint")
        encrypted_uri = await context.client.encrypt_value(
            credential.private_key, credential.aes_key, token_uri, token, selector
        )
        receipt = await _transact(context, credential, token, "mint", [recipient, encrypted_uri], gas)
    except CotiMcpError as exc:
        return ToolOutcome.failure("mint private ERC721 token", exc)

    tx_hash = receipt.get("transactionHash")
    minted = _minted_token_id(receipt, token)
    token_number = str(minted) if minted is not None else "Unknown"
    logger.info("Minted private NFT %s on %s (tx %s)", token_number, token, tx_hash)
    return ToolOutcome.success(
        "NFT Minting Successful!\n"
        f"To Address: {recipient}\n"
        f"Token Address: {token}\n"
        f"Token URI: {token_uri}\n"
        f"Token ID: {token_number}\n"
        f"Transaction Hash: {tx_hash}",
        {
            "transactionHash": tx_hash,
            "tokenId": token_number,
            "tokenURI": token_uri,
            "recipient": recipient,
            "tokenAddress": token,
        },
    )


async def approve_private_erc721(
    token_address: str,
    token_id: str,
    spender_address: str,
    gas_limit: Optional[str] = None,
    *,
    context: ServerContext,
) -> ToolOutcome:
    try:
        token = require_address(token_address, "token address")
        spender = require_address(spender_address, "spender address")
        token_number = parse_uint(token_id, "token_id")
        gas = parse_gas_limit(gas_limit)
        credential = context.accounts.get()
        name, symbol = await _collection(context, credential, token)
        owner = await _call(context, credential, token, "ownerOf", token_number)
        if str(owner).lower() != credential.address.lower():
            raise InvalidArgumentError(f"You are not the owner of token ID {token_number}. The owner is {owner}.")
        receipt = await _transact(context, credential, token, "approve", [spender, token_number], gas)
    except CotiMcpError as exc:
        return ToolOutcome.failure("approve private ERC721 token transfer", exc)

    tx_hash = receipt.get("transactionHash")
    return ToolOutcome.success(
        f"Successfully approved {spender} to transfer NFT token ID {token_number} from {name} ({symbol}).\n"
        f"Transaction hash: {tx_hash}",
        {"transactionHash": tx_hash, "tokenId": str(token_number), "spender": spender, "name": name, "symbol": symbol},
    )


async def get_private_erc721_approved(token_address: str, token_id: str, *, context: ServerContext) -> ToolOutcome:
    try:
        token = require_address(token_address, "token address")
        token_number = parse_uint(token_id, "token_id")
        credential = context.accounts.get()
        name, symbol = await _collection(context, credential, token)
        owner = await _call(context, credential, token, "ownerOf", token_number)
        approved = await _call(context, credential, token, "getApproved", token_number)
    except CotiMcpError as exc:
        return ToolOutcome.failure("get private ERC721 approved address", exc)

    has_approval = bool(approved) and str(approved).lower() != ZERO_ADDRESS
    status = f"Approved address: {approved}" if has_approval else "No address is currently approved to transfer this token."
    return ToolOutcome.success(
        f"Token: {name} ({symbol})\nToken ID: {token_number}\nOwner: {owner}\n{status}",
        {
            "name": name,
            "symbol": symbol,
            "tokenId": str(token_number),
            "owner": owner,
            "approvedAddress": approved or "",
            "hasApproval": has_approval,
        },
    )


async def set_private_erc721_approval_for_all(
    token_address: str,
    operator_address: str,
    approved: bool,
    gas_limit: Optional[str] = None,
    *,
    context: ServerContext,
) -> ToolOutcome:
    try:
        token = require_address(token_address, "token address")
        operator = require_address(operator_address, "operator address")
        gas = parse_gas_limit(gas_limit)
        credential = context.accounts.get()
        name, symbol = await _collection(context, credential, token)
        receipt = await _transact(context, credential, token, "setApprovalForAll", [operator, approved], gas)
    except CotiMcpError as exc:
        return ToolOutcome.failure("set private ERC721 approval for all", exc)

    tx_hash = receipt.get("transactionHash")
    action = "approved" if approved else "revoked approval for"
    return ToolOutcome.success(
        f"Successfully {action} {operator} to manage all your NFTs from {name} ({symbol}).\n"
        f"Transaction hash: {tx_hash}",
        {"transactionHash": tx_hash, "operator": operator, "approved": approved, "name": name, "symbol": symbol},
    )


async def get_private_erc721_is_approved_for_all(
    token_address: str,
    owner_address: str,
    operator_address: str,
    *,
    context: ServerContext,
) -> ToolOutcome:
    try:
        token = require_address(token_address, "token address")
        owner = require_address(owner_address, "owner address")
        operator = require_address(operator_address, "operator address")
        credential = context.accounts.get()
        name, symbol = await _collection(context, credential, token)
        is_approved = bool(await _call(context, credential, token, "isApprovedForAll", owner, operator))
    except CotiMcpError as exc:
        return ToolOutcome.failure("check private ERC721 approval for all", exc)

    if is_approved:
        status = f"{operator} IS approved to manage all NFTs owned by {owner}."
    else:
        status = f"{operator} is NOT approved to manage all NFTs owned by {owner}."
    return ToolOutcome.success(
        f"Token: {name} ({symbol})\nOwner: {owner}\nOperator: {operator}\nApproval Status: {status}",
        {"name": name, "symbol": symbol, "owner": owner, "operator": operator, "isApproved": is_approved},
    )
