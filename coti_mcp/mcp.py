"""
Tool registry and dispatcher for the MCP-style surface.

Each tool is declared once with its JSON input schema; ``call_tool`` validates
arguments against that schema with one generic validator before invoking the
handler, and always answers with a single-text-block envelope.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from coti_mcp.context import ServerContext
from coti_mcp.errors import CotiMcpError
from coti_mcp.tools import (
    approve_erc20_spender,
    approve_private_erc721,
    call_contract_function,
    change_default_account,
    create_account,
    decode_event_data,
    decrypt_value,
    encrypt_value,
    export_accounts,
    generate_aes_key,
    get_current_network,
    get_erc20_allowance,
    get_native_balance,
    get_private_erc20_balance,
    get_private_erc20_decimals,
    get_private_erc20_total_supply,
    get_private_erc721_approved,
    get_private_erc721_balance,
    get_private_erc721_is_approved_for_all,
    get_private_erc721_token_owner,
    get_private_erc721_token_uri,
    get_private_erc721_total_supply,
    get_transaction_logs,
    get_transaction_status,
    import_accounts,
    list_accounts,
    mint_private_erc20_token,
    mint_private_erc721_token,
    set_private_erc721_approval_for_all,
    sign_message,
    switch_network,
    transfer_native,
    transfer_private_erc20,
    transfer_private_erc721,
    verify_signature,
)
from coti_mcp.tools.outcome import ToolOutcome
from coti_mcp.tools.validators import ADDRESS_REGEX, schema_violations

logger = logging.getLogger(__name__)

ADDRESS_PATTERN = ADDRESS_REGEX.pattern
ADDRESS_EXAMPLE = "0x0D7C5C1DA069fd7C1fAFBeb922482B2C7B15D273"

ToolCallable = Callable[..., Awaitable[ToolOutcome]]


def _string(description: str) -> Dict[str, Any]:
    return {"type": "string", "description": description}


def _address(description: str) -> Dict[str, Any]:
    return {"type": "string", "pattern": ADDRESS_PATTERN, "description": description}


def _boolean(description: str) -> Dict[str, Any]:
    return {"type": "boolean", "description": description}


def _object(properties: Dict[str, Any], required: Sequence[str] = ()) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": list(required),
        "additionalProperties": False,
    }


TOKEN_ADDRESS_ERC20 = _address("ERC20 token contract address on COTI blockchain")
TOKEN_ADDRESS_ERC721 = _address("ERC721 token contract address on COTI blockchain")
GAS_LIMIT = _string("Optional gas limit for the transaction")
AMOUNT_WEI = _string("Amount of tokens in Wei (decimal integer string)")
TOKEN_ID = _string("ID of the NFT token")


@dataclass(slots=True)
class ToolDefinition:
    name: str
    description: str
    input_schema: Dict[str, Any]
    callable: ToolCallable


_DEFINITIONS: List[ToolDefinition] = [
    # Account management
    ToolDefinition(
        name="list_accounts",
        description="List all COTI accounts configured for this server, with masked keys and the default marked.",
        input_schema=_object({}),
        callable=list_accounts,
    ),
    ToolDefinition(
        name="create_account",
        description=(
            "Create a new COTI account with a randomly generated private key. The AES key must be generated "
            "with generate_aes_key once the account is funded."
        ),
        input_schema=_object(
            {"set_as_default": _boolean("Optional, whether to set the new account as the default account. Default is false.")}
        ),
        callable=create_account,
    ),
    ToolDefinition(
        name="change_default_account",
        description="Change the default account used for COTI blockchain operations.",
        input_schema=_object(
            {"account_address": _address(f"COTI account address to use as default, e.g., {ADDRESS_EXAMPLE}")},
            ["account_address"],
        ),
        callable=change_default_account,
    ),
    ToolDefinition(
        name="generate_aes_key",
        description="Generate (or recover) the AES key of a funded COTI account and store it for this session.",
        input_schema=_object(
            {"account_address": _address("The address of the account to generate the AES key for.")},
            ["account_address"],
        ),
        callable=generate_aes_key,
    ),
    ToolDefinition(
        name="export_accounts",
        description="Export COTI accounts as a JSON backup that can be imported later with import_accounts.",
        input_schema=_object(
            {
                "include_sensitive_data": _boolean(
                    "Optional, whether to include private keys and AES keys in the output. Default is true."
                ),
                "account_addresses": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Optional list of account addresses to export. Defaults to all accounts.",
                },
            }
        ),
        callable=export_accounts,
    ),
    ToolDefinition(
        name="import_accounts",
        description="Import COTI accounts from a backup produced by export_accounts, merging or replacing.",
        input_schema=_object(
            {
                "backup_data": _string("The JSON backup string containing the accounts to import."),
                "merge_with_existing": _boolean("Whether to merge with existing accounts or replace them. Default is true."),
                "set_default_account": _string("Optional address to set as the default account after import."),
            },
            ["backup_data"],
        ),
        callable=import_accounts,
    ),
    ToolDefinition(
        name="get_current_network",
        description="Return the COTI network (testnet or mainnet) chain calls are sent to.",
        input_schema=_object({}),
        callable=get_current_network,
    ),
    ToolDefinition(
        name="switch_network",
        description="Switch between the COTI testnet and mainnet for subsequent calls.",
        input_schema=_object(
            {
                "network": {
                    "type": "string",
                    "enum": ["testnet", "mainnet"],
                    "description": "Network to switch to - either 'testnet' or 'mainnet'",
                }
            },
            ["network"],
        ),
        callable=switch_network,
    ),
    # Signing and confidential values
    ToolDefinition(
        name="sign_message",
        description="Sign a message with the default account's private key.",
        input_schema=_object({"message": _string("Message to sign")}, ["message"]),
        callable=sign_message,
    ),
    ToolDefinition(
        name="verify_signature",
        description="Verify a message signature and recover the address that signed it.",
        input_schema=_object(
            {
                "message": _string("Message that was signed"),
                "signature": _string("Signature to verify (hexadecimal string)"),
            },
            ["message", "signature"],
        ),
        callable=verify_signature,
    ),
    ToolDefinition(
        name="encrypt_value",
        description="Encrypt a value with the default account's AES key for a private contract call.",
        input_schema=_object(
            {
                "message": _string("Message to encrypt; numeric strings are encrypted as integers"),
                "contract_address": _address("Contract address"),
                "function_selector": _string("Function selector, e.g. '0xa9059cbb' for ERC20 transfer"),
            },
            ["message", "contract_address", "function_selector"],
        ),
        callable=encrypt_value,
    ),
    ToolDefinition(
        name="decrypt_value",
        description="Decrypt a ciphertext with the default account's AES key.",
        input_schema=_object({"ciphertext": _string("Ciphertext to decrypt")}, ["ciphertext"]),
        callable=decrypt_value,
    ),
    # Native coin
    ToolDefinition(
        name="get_native_balance",
        description="Get the native COTI balance of an account.",
        input_schema=_object(
            {"account_address": _address(f"COTI account address, e.g., {ADDRESS_EXAMPLE}")},
            ["account_address"],
        ),
        callable=get_native_balance,
    ),
    ToolDefinition(
        name="transfer_native",
        description="Transfer native COTI from the default account to another address.",
        input_schema=_object(
            {
                "recipient_address": _address(f"Recipient COTI address, e.g., {ADDRESS_EXAMPLE}"),
                "amount_wei": _string("Amount of COTI to transfer (in Wei)"),
                "gas_limit": GAS_LIMIT,
            },
            ["recipient_address", "amount_wei"],
        ),
        callable=transfer_native,
    ),
    # Private ERC20
    ToolDefinition(
        name="get_private_erc20_balance",
        description="Get the decrypted balance of a private ERC20 token for an account.",
        input_schema=_object(
            {
                "account_address": _address(f"COTI account address, e.g., {ADDRESS_EXAMPLE}"),
                "token_address": TOKEN_ADDRESS_ERC20,
            },
            ["account_address", "token_address"],
        ),
        callable=get_private_erc20_balance,
    ),
    ToolDefinition(
        name="get_private_erc20_decimals",
        description="Get the number of decimals of a private ERC20 token.",
        input_schema=_object({"token_address": TOKEN_ADDRESS_ERC20}, ["token_address"]),
        callable=get_private_erc20_decimals,
    ),
    ToolDefinition(
        name="get_private_erc20_total_supply",
        description="Get the total supply of a private ERC20 token.",
        input_schema=_object({"token_address": TOKEN_ADDRESS_ERC20}, ["token_address"]),
        callable=get_private_erc20_total_supply,
    ),
    ToolDefinition(
        name="transfer_private_erc20",
        description="Transfer private ERC20 tokens from the default account; the amount is encrypted.",
        input_schema=_object(
            {
                "token_address": TOKEN_ADDRESS_ERC20,
                "recipient_address": _address(f"Recipient COTI address, e.g., {ADDRESS_EXAMPLE}"),
                "amount_wei": AMOUNT_WEI,
                "gas_limit": GAS_LIMIT,
            },
            ["token_address", "recipient_address", "amount_wei"],
        ),
        callable=transfer_private_erc20,
    ),
    ToolDefinition(
        name="mint_private_erc20_token",
        description="Mint private ERC20 tokens to a recipient (requires minting rights on the contract).",
        input_schema=_object(
            {
                "token_address": TOKEN_ADDRESS_ERC20,
                "recipient_address": _address("Address to receive the minted tokens"),
                "amount_wei": AMOUNT_WEI,
                "gas_limit": GAS_LIMIT,
            },
            ["token_address", "recipient_address", "amount_wei"],
        ),
        callable=mint_private_erc20_token,
    ),
    ToolDefinition(
        name="approve_erc20_spender",
        description="Approve a spender for a private ERC20 token; the allowance amount is encrypted.",
        input_schema=_object(
            {
                "token_address": TOKEN_ADDRESS_ERC20,
                "spender_address": _address(f"Address to approve as spender, e.g., {ADDRESS_EXAMPLE}"),
                "amount_wei": AMOUNT_WEI,
                "gas_limit": GAS_LIMIT,
            },
            ["token_address", "spender_address", "amount_wei"],
        ),
        callable=approve_erc20_spender,
    ),
    ToolDefinition(
        name="get_erc20_allowance",
        description="Get the decrypted allowance a spender has on a private ERC20 token.",
        input_schema=_object(
            {
                "token_address": TOKEN_ADDRESS_ERC20,
                "owner_address": _address("Address of the token owner"),
                "spender_address": _address("Address of the spender to check allowance for"),
            },
            ["token_address", "owner_address", "spender_address"],
        ),
        callable=get_erc20_allowance,
    ),
    # Private ERC721
    ToolDefinition(
        name="get_private_erc721_balance",
        description="Get the number of private NFTs an account holds in a collection.",
        input_schema=_object(
            {
                "account_address": _address(f"COTI account address, e.g., {ADDRESS_EXAMPLE}"),
                "token_address": TOKEN_ADDRESS_ERC721,
            },
            ["account_address", "token_address"],
        ),
        callable=get_private_erc721_balance,
    ),
    ToolDefinition(
        name="get_private_erc721_token_owner",
        description="Get the owner of a private NFT.",
        input_schema=_object({"token_address": TOKEN_ADDRESS_ERC721, "token_id": TOKEN_ID}, ["token_address", "token_id"]),
        callable=get_private_erc721_token_owner,
    ),
    ToolDefinition(
        name="get_private_erc721_token_uri",
        description="Get the decrypted metadata URI of a private NFT.",
        input_schema=_object({"token_address": TOKEN_ADDRESS_ERC721, "token_id": TOKEN_ID}, ["token_address", "token_id"]),
        callable=get_private_erc721_token_uri,
    ),
    ToolDefinition(
        name="get_private_erc721_total_supply",
        description="Get the total supply of a private ERC721 collection.",
        input_schema=_object({"token_address": TOKEN_ADDRESS_ERC721}, ["token_address"]),
        callable=get_private_erc721_total_supply,
    ),
    ToolDefinition(
        name="transfer_private_erc721",
        description="Transfer a private NFT from the default account.",
        input_schema=_object(
            {
                "token_address": TOKEN_ADDRESS_ERC721,
                "recipient_address": _address(f"Recipient COTI address, e.g., {ADDRESS_EXAMPLE}"),
                "token_id": TOKEN_ID,
                "use_safe_transfer": _boolean("Optional, use safeTransferFrom instead of transferFrom. Default is false."),
                "gas_limit": GAS_LIMIT,
            },
            ["token_address", "recipient_address", "token_id"],
        ),
        callable=transfer_private_erc721,
    ),
    ToolDefinition(
        name="mint_private_erc721_token",
        description="Mint a private NFT with an encrypted token URI.",
        input_schema=_object(
            {
                "token_address": TOKEN_ADDRESS_ERC721,
                "to_address": _address("Address to receive the minted NFT"),
                "token_uri": _string("URI for the token metadata, e.g. \"https://example.com/token/0\""),
                "gas_limit": GAS_LIMIT,
            },
            ["token_address", "to_address", "token_uri"],
        ),
        callable=mint_private_erc721_token,
    ),
    ToolDefinition(
        name="approve_private_erc721",
        description="Approve an address to transfer one private NFT owned by the default account.",
        input_schema=_object(
            {
                "token_address": TOKEN_ADDRESS_ERC721,
                "token_id": TOKEN_ID,
                "spender_address": _address(f"Address to approve as spender, e.g., {ADDRESS_EXAMPLE}"),
                "gas_limit": GAS_LIMIT,
            },
            ["token_address", "token_id", "spender_address"],
        ),
        callable=approve_private_erc721,
    ),
    ToolDefinition(
        name="get_private_erc721_approved",
        description="Get the address approved to transfer a private NFT.",
        input_schema=_object({"token_address": TOKEN_ADDRESS_ERC721, "token_id": TOKEN_ID}, ["token_address", "token_id"]),
        callable=get_private_erc721_approved,
    ),
    ToolDefinition(
        name="set_private_erc721_approval_for_all",
        description="Approve or revoke an operator for all private NFTs of the default account in a collection.",
        input_schema=_object(
            {
                "token_address": TOKEN_ADDRESS_ERC721,
                "operator_address": _address(f"Address to approve as operator, e.g., {ADDRESS_EXAMPLE}"),
                "approved": _boolean("Whether to approve (true) or revoke (false) the operator"),
                "gas_limit": GAS_LIMIT,
            },
            ["token_address", "operator_address", "approved"],
        ),
        callable=set_private_erc721_approval_for_all,
    ),
    ToolDefinition(
        name="get_private_erc721_is_approved_for_all",
        description="Check whether an operator may manage all private NFTs of an owner in a collection.",
        input_schema=_object(
            {
                "token_address": TOKEN_ADDRESS_ERC721,
                "owner_address": _address("Address of the token owner"),
                "operator_address": _address("Address of the operator to check approval for"),
            },
            ["token_address", "owner_address", "operator_address"],
        ),
        callable=get_private_erc721_is_approved_for_all,
    ),
    # Transactions
    ToolDefinition(
        name="get_transaction_status",
        description="Get the status, gas and confirmations of a COTI transaction.",
        input_schema=_object({"transaction_hash": _string("Transaction hash to check status for")}, ["transaction_hash"]),
        callable=get_transaction_status,
    ),
    ToolDefinition(
        name="get_transaction_logs",
        description="Get the event logs emitted by a COTI transaction.",
        input_schema=_object({"transaction_hash": _string("Transaction hash to get logs for")}, ["transaction_hash"]),
        callable=get_transaction_logs,
    ),
    ToolDefinition(
        name="call_contract_function",
        description="Call a read-only function on any contract; standard ERC20/ERC721 ABIs are tried when none is given.",
        input_schema=_object(
            {
                "contract_address": _address("Address of the smart contract to call"),
                "function_name": _string("Name of the function to call on the contract"),
                "function_args": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Arguments to pass to the function (can be empty)",
                },
                "abi": _string("Optional JSON string of the contract ABI"),
            },
            ["contract_address", "function_name"],
        ),
        callable=call_contract_function,
    ),
    ToolDefinition(
        name="decode_event_data",
        description=(
            "Decode a transaction log (topics and data) into its event name and parameters. "
            "Uses the given ABI, or the standard private ERC20/ERC721 ABIs when none is given."
        ),
        input_schema=_object(
            {
                "topics": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Array of topics from the transaction log",
                },
                "data": _string("Data field from the transaction log"),
                "abi": _string("Optional JSON string of the contract ABI"),
            },
            ["topics", "data"],
        ),
        callable=decode_event_data,
    ),
]

TOOL_REGISTRY: Dict[str, ToolDefinition] = {definition.name: definition for definition in _DEFINITIONS}


def list_tools() -> List[Dict[str, Any]]:
    """Return tool metadata for MCP-style discovery."""
    return [
        {
            "name": tool.name,
            "description": tool.description,
            "inputSchema": tool.input_schema,
        }
        for tool in TOOL_REGISTRY.values()
    ]


async def dispatch(
    tool_name: str,
    arguments: Optional[Mapping[str, Any]],
    context: ServerContext,
) -> ToolOutcome:
    """Validate arguments and run a tool, returning its outcome."""
    tool = TOOL_REGISTRY.get(tool_name)
    if tool is None:
        return ToolOutcome(text=f"Unknown tool: {tool_name}", error="unknown_tool")

    arguments = {} if arguments is None else arguments
    violations = schema_violations(tool.input_schema, arguments)
    if violations:
        logger.info("tool=%s rejected arguments: %s", tool_name, "; ".join(violations), extra={"tool": tool_name})
        return ToolOutcome(
            text=f"Invalid arguments for {tool_name}",
            data={"violations": violations},
            error="invalid_argument",
        )

    params = {key: value for key, value in arguments.items() if value is not None}
    try:
        return await tool.callable(**params, context=context)
    except CotiMcpError as exc:
        logger.warning("tool=%s raised %s", tool_name, exc.kind, extra={"tool": tool_name, "error": exc.kind})
        return ToolOutcome(text=f"Error: {exc.message}", error=exc.kind)
    except Exception as exc:
        logger.exception("Unexpected error in tool %s", tool_name, extra={"tool": tool_name})
        return ToolOutcome(text=f"Error: {exc}", error="internal")


async def call_tool(
    tool_name: str,
    arguments: Optional[Mapping[str, Any]],
    context: ServerContext,
) -> Dict[str, Any]:
    """Dispatch to a tool by name and wrap the outcome in the response envelope."""
    outcome = await dispatch(tool_name, arguments, context)
    return outcome.to_envelope()
