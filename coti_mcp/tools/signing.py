"""Message signing and confidential value tools."""

from __future__ import annotations

import logging

from coti_mcp.context import ServerContext
from coti_mcp.errors import CotiMcpError, InvalidArgumentError
from coti_mcp.tools.formatting import render_value, to_jsonable
from coti_mcp.tools.outcome import ToolOutcome
from coti_mcp.tools.validators import SELECTOR_REGEX, UINT_REGEX, require_address

logger = logging.getLogger(__name__)


async def sign_message(message: str, *, context: ServerContext) -> ToolOutcome:
    """Sign a message (EIP-191 personal_sign) with the default account's key."""
    try:
        credential = context.accounts.get()
        signature = await context.client.sign_message(credential.private_key, message)
    except CotiMcpError as exc:
        return ToolOutcome.failure("sign message", exc)
    logger.info("Signed message with account %s", credential.address)
    return ToolOutcome.success(
        f'Message: "{message}"\nSignature: {signature}',
        {"message": message, "signature": signature, "address": credential.address},
    )


async def verify_signature(message: str, signature: str, *, context: ServerContext) -> ToolOutcome:
    try:
        signer = await context.client.recover_signer(message, signature)
    except CotiMcpError as exc:
        return ToolOutcome.failure("verify signature", exc)
    return ToolOutcome.success(
        f'Message: "{message}"\nSignature: {signature}\nSigned by address: {signer}',
        {"message": message, "signature": signature, "signerAddress": signer},
    )


async def encrypt_value(
    message: str,
    contract_address: str,
    function_selector: str,
    *,
    context: ServerContext,
) -> ToolOutcome:
    """
    Encrypt a value for a private contract call with the default account's AES key.

    Numeric messages are encrypted as integers, anything else as a string. The
    input text is bound to the target contract and function selector.
    """
    try:
        contract_address = require_address(contract_address, "contract address")
        if not SELECTOR_REGEX.fullmatch(function_selector):
            raise InvalidArgumentError(f"Invalid function selector: {function_selector}")
        value: int | str = int(message) if UINT_REGEX.fullmatch(message) else message
        credential = context.accounts.get()
        encrypted = await context.client.encrypt_value(
            credential.private_key,
            credential.aes_key,
            value,
            contract_address,
            function_selector,
        )
    except CotiMcpError as exc:
        return ToolOutcome.failure("encrypt message", exc)

    rendered = render_value(encrypted)
    return ToolOutcome.success(
        f"Encrypted Message: {rendered}",
        {
            "encryptedMessage": to_jsonable(encrypted),
            "originalMessage": message,
            "contractAddress": contract_address,
            "functionSelector": function_selector,
        },
    )


async def decrypt_value(ciphertext: str, *, context: ServerContext) -> ToolOutcome:
    try:
        if not UINT_REGEX.fullmatch(ciphertext.strip()):
            raise InvalidArgumentError("Ciphertext must be a decimal integer")
        credential = context.accounts.get()
        decrypted = await context.client.decrypt_value(
            credential.private_key, credential.aes_key, int(ciphertext.strip())
        )
    except CotiMcpError as exc:
        return ToolOutcome.failure("decrypt message", exc)
    return ToolOutcome.success(
        f"Decrypted Message: {decrypted}",
        {"decryptedMessage": str(decrypted), "ciphertext": ciphertext.strip()},
    )
