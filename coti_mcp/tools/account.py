"""Account management and network selection tools."""

from __future__ import annotations

import logging
from typing import List, Optional

from coti_mcp.context import ServerContext
from coti_mcp.errors import CotiMcpError
from coti_mcp.tools.outcome import ToolOutcome

logger = logging.getLogger(__name__)

EXPORT_HEADER = "=== COTI ACCOUNTS BACKUP (JSON FORMAT) ===\n\n"
EXPORT_WARNING = "\nWARNING: This backup contains sensitive information. Keep it secure and do not share it."
SESSION_NOTE = (
    "Note: These changes are only active for the current session. "
    "To make them permanent, you need to update your environment variables."
)


async def list_accounts(*, context: ServerContext) -> ToolOutcome:
    """List configured accounts with masked keys, marking the default."""
    summaries = context.accounts.list_accounts()
    network = context.network.get().value
    if not summaries:
        return ToolOutcome.success("No COTI accounts configured in the environment.", {"accounts": []})

    lines = [f"Available COTI Accounts on {network}:\n\n", "======================\n\n"]
    for summary in summaries:
        marker = " (DEFAULT)" if summary.is_default else ""
        lines.append(f"Account {summary.index}{marker}:\n\n")
        lines.append(f"Address: {summary.address}\n\n")
        lines.append(f"Private Key: {summary.private_key}\n\n")
        lines.append(f"AES Key: {summary.aes_key}\n\n")
    return ToolOutcome.success(
        "".join(lines),
        {"network": network, "accounts": [summary.to_dict() for summary in summaries]},
    )


async def create_account(set_as_default: bool = False, *, context: ServerContext) -> ToolOutcome:
    try:
        credential = context.accounts.create(context.client.create_random_keypair, set_as_default=set_as_default)
    except CotiMcpError as exc:
        return ToolOutcome.failure("create new account", exc)

    default_line = "Set as default account." if set_as_default else "Not set as default account."
    text = (
        "New COTI account created successfully!\n\n"
        f"Address: {credential.address}\n\n"
        f"Private Key: {credential.private_key}\n\n"
        f"AES Key: {credential.aes_key}\n\n"
        f"{default_line}"
    )
    return ToolOutcome.success(
        text,
        {
            "address": credential.address,
            "privateKey": credential.private_key,
            "aesKey": credential.aes_key,
            "isDefault": set_as_default,
        },
    )


async def change_default_account(account_address: str, *, context: ServerContext) -> ToolOutcome:
    try:
        address = context.accounts.set_default(account_address)
    except CotiMcpError as exc:
        return ToolOutcome.failure("change default account", exc)
    return ToolOutcome.success(f"Default account successfully changed to: {address}", {"defaultAccount": address})


async def generate_aes_key(account_address: str, *, context: ServerContext) -> ToolOutcome:
    """Onboard the account's AES key through the COTI client and store it."""
    try:
        credential = await context.accounts.generate_aes_key(account_address, context.client)
    except CotiMcpError as exc:
        return ToolOutcome.failure("generate AES key", exc)
    return ToolOutcome.success(
        f"AES key: {credential.aes_key}\n\nAddress: {credential.address}",
        {"aesKey": credential.aes_key, "address": credential.address},
    )


async def export_accounts(
    include_sensitive_data: bool = True,
    account_addresses: Optional[List[str]] = None,
    *,
    context: ServerContext,
) -> ToolOutcome:
    """
    Export accounts as a backup document wrapped in a readable header.

    The text can be passed back to ``import_accounts`` unchanged; the JSON object
    is extracted from it. Without sensitive data the keys are redacted and such a
    backup cannot be imported.
    """
    total = len(context.accounts)
    if total == 0:
        return ToolOutcome.success(
            "No COTI accounts configured in the environment. Nothing to export.",
            {"timestamp": None, "accounts": []},
        )

    document = context.accounts.export_backup(account_addresses, include_secrets=include_sensitive_data)
    header = EXPORT_HEADER
    if account_addresses:
        header = f"=== COTI ACCOUNTS BACKUP ({len(document.accounts)} of {total} accounts) ===\n\n"
    footer = EXPORT_WARNING if include_sensitive_data else ""
    logger.info("Exported %d account(s) (secrets=%s)", len(document.accounts), include_sensitive_data)
    return ToolOutcome.success(f"{header}{document.to_json()}{footer}", document.to_dict())


async def import_accounts(
    backup_data: str,
    merge_with_existing: bool = True,
    set_default_account: Optional[str] = None,
    *,
    context: ServerContext,
) -> ToolOutcome:
    try:
        summary = context.accounts.import_backup(
            backup_data,
            merge=merge_with_existing,
            preferred_default=set_default_account or None,
        )
    except CotiMcpError as exc:
        return ToolOutcome.failure("import accounts", exc)

    action = "Merged with" if summary.merged else "Replaced"
    text = (
        f"Successfully imported {summary.imported} account(s).\n\n"
        f"{action} existing accounts. Total accounts now: {summary.total_after}.\n\n"
        f"Default account set to: {summary.default_address}\n\n"
        f"{SESSION_NOTE}"
    )
    return ToolOutcome.success(
        text,
        {
            "importedCount": summary.imported,
            "totalAccounts": summary.total_after,
            "merged": summary.merged,
            "defaultAccount": summary.default_address,
            "addresses": summary.addresses,
        },
    )


async def get_current_network(*, context: ServerContext) -> ToolOutcome:
    network = context.network.get().value
    return ToolOutcome.success(f"Current network: {network}", {"network": network})


async def switch_network(network: str, *, context: ServerContext) -> ToolOutcome:
    try:
        switch = context.network.switch(network)
    except CotiMcpError as exc:
        return ToolOutcome.failure("switch network", exc)

    if not switch.changed:
        text = f"Network is already set to: {switch.current.value}"
    else:
        logger.info("Network switched from %s to %s", switch.previous.value, switch.current.value)
        text = f"Network successfully switched from {switch.previous.value} to: {switch.current.value}"
    return ToolOutcome.success(
        text,
        {"previousNetwork": switch.previous.value, "network": switch.current.value, "changed": switch.changed},
    )
