from coti_mcp.tools.account import (
    change_default_account,
    create_account,
    export_accounts,
    generate_aes_key,
    get_current_network,
    import_accounts,
    list_accounts,
    switch_network,
)
from coti_mcp.tools.erc20 import (
    approve_erc20_spender,
    get_erc20_allowance,
    get_private_erc20_balance,
    get_private_erc20_decimals,
    get_private_erc20_total_supply,
    mint_private_erc20_token,
    transfer_private_erc20,
)
from coti_mcp.tools.erc721 import (
    approve_private_erc721,
    get_private_erc721_approved,
    get_private_erc721_balance,
    get_private_erc721_is_approved_for_all,
    get_private_erc721_token_owner,
    get_private_erc721_token_uri,
    get_private_erc721_total_supply,
    mint_private_erc721_token,
    set_private_erc721_approval_for_all,
    transfer_private_erc721,
)
from coti_mcp.tools.native import get_native_balance, transfer_native
from coti_mcp.tools.outcome import ToolOutcome
from coti_mcp.tools.signing import decrypt_value, encrypt_value, sign_message, verify_signature
from coti_mcp.tools.transaction import (
    call_contract_function,
    decode_event_data,
    get_transaction_logs,
    get_transaction_status,
)

__all__ = [
    "ToolOutcome",
    "list_accounts",
    "create_account",
    "change_default_account",
    "generate_aes_key",
    "export_accounts",
    "import_accounts",
    "get_current_network",
    "switch_network",
    "sign_message",
    "verify_signature",
    "encrypt_value",
    "decrypt_value",
    "get_native_balance",
    "transfer_native",
    "get_private_erc20_balance",
    "get_private_erc20_decimals",
    "get_private_erc20_total_supply",
    "transfer_private_erc20",
    "mint_private_erc20_token",
    "approve_erc20_spender",
    "get_erc20_allowance",
    "get_private_erc721_balance",
    "get_private_erc721_token_owner",
    "get_private_erc721_token_uri",
    "get_private_erc721_total_supply",
    "transfer_private_erc721",
    "mint_private_erc721_token",
    "approve_private_erc721",
    "get_private_erc721_approved",
    "set_private_erc721_approval_for_all",
    "get_private_erc721_is_approved_for_all",
    "get_transaction_status",
    "get_transaction_logs",
    "call_contract_function",
    "decode_event_data",
]
